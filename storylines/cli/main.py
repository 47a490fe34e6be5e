"""
Storylines CLI - explore a graph of books, authors, and themes.

Examples:
    storylines search "Dune"
    storylines expand "book:Dune"
    storylines connect "book:Dune" "author:Ursula K. Le Guin"
    storylines grid "Piranesi"
    storylines show --clusters
"""

import logging
from typing import Optional

import click

from storylines import __version__
from storylines.cli.colors import console
from storylines.core import constants
from storylines.core.settings import get_settings


@click.group()
@click.version_option(version=__version__, prog_name="Storylines")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR)")
def cli(debug: bool, log_level: Optional[str]):
    """
    Storylines - an incremental literary knowledge graph.
    """
    constants.load_config()
    settings = get_settings(cli_overrides={"debug": debug or None, "log_level": log_level})
    level = "DEBUG" if settings.debug else settings.log_level
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command("config")
def show_config():
    """Show the effective configuration (API keys masked)."""
    console.print_json(data=get_settings().to_dict())


from storylines.cli.commands import explore, grid, library  # noqa: E402

cli.add_command(explore.search)
cli.add_command(explore.expand)
cli.add_command(explore.connect)
cli.add_command(explore.summary)
cli.add_command(grid.grid)
cli.add_command(library.journey)
cli.add_command(library.bootstrap)
cli.add_command(library.show)
cli.add_command(library.export_graph)


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
