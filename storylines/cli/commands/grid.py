"""Book wall command."""

import asyncio
from typing import Tuple

import click

from storylines.cli.colors import console, print_error, print_grid_table, print_header, print_warning
from storylines.cli.session import open_session
from storylines.core.errors import StorylinesError


@click.command()
@click.argument("query")
@click.option("--lock", "lock_indices", type=int, multiple=True, help="Lock a suggested slot, then refill (repeatable)")
@click.option("--dismiss", "dismiss_indices", type=int, multiple=True, help="Dismiss a slot, then refill (repeatable)")
@click.option("--json", "json_output", is_flag=True, help="Output the wall as JSON")
def grid(query: str, lock_indices: Tuple[int, ...], dismiss_indices: Tuple[int, ...], json_output: bool):
    """Build a wall of recommendations around one book.

    Examples:
        storylines grid "The Left Hand of Darkness"
        storylines grid "Piranesi" --dismiss 12 --lock 44
    """
    try:
        asyncio.run(_grid(query, lock_indices, dismiss_indices, json_output))
    except StorylinesError as e:
        print_error(e.message)
        raise click.Abort()


async def _grid(query: str, lock_indices: Tuple[int, ...], dismiss_indices: Tuple[int, ...], json_output: bool):
    async with open_session(save=False) as explorer:
        wall = explorer.book_grid
        if not await wall.seed(query):
            print_warning(f'Could not find "{query}" in the library.')
            return

        for index in dismiss_indices:
            await wall.dismiss(index)
        for index in lock_indices:
            await wall.lock(index)

        if json_output:
            console.print_json(data={
                "query": query,
                "slots": [slot.to_dict() for slot in wall.slots if slot.book is not None],
                "dismissed": list(wall.dismissed),
            })
            return

        filled = sum(1 for slot in wall.slots if slot.book is not None)
        print_header(f"Book wall: {filled} of {wall.size} slots")
        print_grid_table(wall.slots)
