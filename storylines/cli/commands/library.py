"""Graph file commands: journeys, bootstrap documents, inspection, export."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click

from storylines.cli.colors import console, print_error, print_header, print_info, print_success
from storylines.cli.commands.explore import graph_option
from storylines.cli.session import open_session
from storylines.core.errors import StorylinesError
from storylines.graph import persistence
from storylines.graph.clustering import cluster_stats, detect_clusters
from storylines.graph.store import GraphStore


@click.command()
@click.argument("name")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding journey-<name>.json files",
)
@graph_option
def journey(name: str, data_dir: Optional[Path], graph_path: Path):
    """Replace the graph with a curated journey.

    Example:
        storylines journey "science fiction"
    """
    try:
        asyncio.run(_journey(name, data_dir, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _journey(name: str, data_dir: Optional[Path], graph_path: Path):
    async with open_session(graph_path) as explorer:
        result = await explorer.load_journey(name, directory=data_dir)
        if not result.new_ids:
            print_error(explorer.caption or f"Journey {name} is empty.")
            return
        print_success(f"Loaded {len(result.new_ids)} nodes from the {name} journey")


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@graph_option
def bootstrap(source: Path, graph_path: Path):
    """Merge a bootstrap document into the graph without enrichment.

    Example:
        storylines bootstrap data/initial-graph.json
    """
    try:
        asyncio.run(_bootstrap(source, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _bootstrap(source: Path, graph_path: Path):
    store = GraphStore()
    if graph_path.exists():
        await persistence.load_graph(store, graph_path)
    result = await persistence.import_graph(store, await persistence.read_json(source))
    await persistence.save_graph(store.snapshot(), graph_path)
    print_success(f"Added {len(result.new_ids)} nodes to {graph_path}")


@click.command()
@click.option("--clusters", "show_clusters", is_flag=True, help="Also list connected clusters")
@graph_option
def show(show_clusters: bool, graph_path: Path):
    """Print a digest of the graph file."""
    if not graph_path.exists():
        print_info(f"No graph at {graph_path}. Start with 'storylines search'.")
        return
    try:
        asyncio.run(_show(show_clusters, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _show(show_clusters: bool, graph_path: Path):
    store = GraphStore()
    await persistence.load_graph(store, graph_path)
    console.print(persistence.graph_summary(store.snapshot()))

    if show_clusters:
        result = detect_clusters(store.nodes, store.edges)
        stats = cluster_stats(result.clusters)
        print_header(f"{stats['total_clusters']} clusters")
        for cluster in result.clusters:
            console.print(f"  [{cluster.color}]*[/{cluster.color}] {cluster.label} ({len(cluster.nodes)} nodes)")


@click.command("export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path), required=False)
@graph_option
def export_graph(output: Optional[Path], graph_path: Path):
    """Export the graph document to a file, or to stdout.

    Example:
        storylines export my-graph.json
    """
    try:
        asyncio.run(_export(output, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _export(output: Optional[Path], graph_path: Path):
    store = GraphStore()
    if graph_path.exists():
        await persistence.load_graph(store, graph_path)

    if output is None:
        click.echo(json.dumps(persistence.export_graph(store.snapshot()), indent=2, ensure_ascii=False))
        return
    await persistence.save_graph(store.snapshot(), output)
    print_success(f"Exported {len(store)} nodes to {output}")

