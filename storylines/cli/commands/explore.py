"""Exploration commands: search, expand, connect, summarize.

Each command operates on a graph file (``--graph``) that is loaded before
the command and saved after it, so consecutive invocations grow one graph.
"""

import asyncio
from pathlib import Path

import click

from storylines.cli.colors import (
    console,
    print_error,
    print_header,
    print_info,
    print_node_table,
    print_panel,
    print_path,
    print_warning,
)
from storylines.cli.session import open_session
from storylines.core.errors import StorylinesError
from storylines.graph.models import SummaryReady

DEFAULT_GRAPH = Path("storylines-graph.json")

graph_option = click.option(
    "--graph",
    "graph_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_GRAPH,
    show_default=True,
    help="Graph file to load before and save after the command",
)


def _print_caption(caption):
    if caption:
        console.print(f"[dim]{caption}[/dim]")


@click.command()
@click.argument("query")
@click.option("--web", "grounded", is_flag=True, help="Answer from a web-grounded model instead of library data")
@click.option("--json", "json_output", is_flag=True, help="Output the new nodes as JSON")
@graph_option
def search(query: str, grounded: bool, json_output: bool, graph_path: Path):
    """Search for a book, author, or theme and add it to the graph.

    Examples:
        storylines search "Dune"
        storylines search "Ursula K. Le Guin"
        storylines search "books about grief" --web
    """
    try:
        asyncio.run(_search(query, grounded, json_output, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _search(query: str, grounded: bool, json_output: bool, graph_path: Path):
    async with open_session(graph_path) as explorer:
        before = set(explorer.store.nodes)
        primary_id = await explorer.search(query, grounded=grounded)
        added = [node for node_id, node in explorer.store.nodes.items() if node_id not in before]

        if json_output:
            console.print_json(data={
                "query": query,
                "primary_id": primary_id,
                "nodes": [node.to_dict() for node in added],
                "caption": explorer.caption,
            })
            return

        if primary_id is None:
            print_warning(explorer.caption or "Nothing found.")
            return

        print_header(f"Added {len(added)} nodes")
        _print_caption(explorer.caption)
        print_node_table(added, highlight=primary_id)

        if explorer.grounded or grounded:
            node = explorer.store.get_node(primary_id)
            for source in node.grounding_sources if node else ():
                console.print(f"   [dim]{source.title or source.uri}: {source.uri}[/dim]")


@click.command()
@click.argument("node_id")
@graph_option
def expand(node_id: str, graph_path: Path):
    """Grow the graph around an existing node.

    Example:
        storylines expand "book:Dune"
    """
    try:
        asyncio.run(_expand(node_id, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _expand(node_id: str, graph_path: Path):
    async with open_session(graph_path) as explorer:
        if explorer.store.get_node(node_id) is None:
            print_error(f"Node not found: {node_id}")
            return
        result = await explorer.expand(node_id)
        if not result.new_ids:
            print_info(explorer.caption or "No new nodes.")
            return
        print_header(f"Added {len(result.new_ids)} nodes")
        _print_caption(explorer.caption)
        print_node_table(explorer.store.get_node(i) for i in result.new_ids)


@click.command()
@click.argument("start_id")
@click.argument("end_id")
@graph_option
def connect(start_id: str, end_id: str, graph_path: Path):
    """Ask for a chain of connections between two nodes.

    Example:
        storylines connect "book:Dune" "author:Ursula K. Le Guin"
    """
    try:
        asyncio.run(_connect(start_id, end_id, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _connect(start_id: str, end_id: str, graph_path: Path):
    async with open_session(graph_path) as explorer:
        for node_id in (start_id, end_id):
            if explorer.store.get_node(node_id) is None:
                print_error(f"Node not found: {node_id}")
                return

        path = await explorer.path_finder.find_connection(start_id, end_id)
        if not path:
            print_warning(explorer.path_finder.status or "No connection found.")
            return

        print_header("Connection")
        _print_caption(explorer.path_finder.status)
        print_path(explorer.store.get_node(node_id).label for node_id in path)


@click.command()
@click.argument("node_id")
@graph_option
def summary(node_id: str, graph_path: Path):
    """Generate the AI summary and analysis of a node.

    Example:
        storylines summary "book:Dune"
    """
    try:
        asyncio.run(_summary(node_id, graph_path))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _summary(node_id: str, graph_path: Path):
    async with open_session(graph_path) as explorer:
        node = explorer.store.get_node(node_id)
        if node is None:
            print_error(f"Node not found: {node_id}")
            return
        result = await explorer.generate_summary(node_id)
        if isinstance(result, SummaryReady):
            print_panel(result.summary, title=node.label)
            print_panel(result.analysis, title="Analysis", style="blue")
        else:
            print_error(getattr(result, "error", "Summary unavailable."))
