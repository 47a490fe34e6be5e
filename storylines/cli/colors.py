"""CLI color utilities built on rich."""

from typing import Iterable, Optional

from rich.box import ASCII
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from storylines.graph.models import GridSlot, Node, SlotStatus

custom_theme = Theme({
    "info": "cyan",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
    "dim": "dim white",
    "highlight": "bold cyan",
    "command": "bold magenta",
    "book": "bold blue",
    "author": "bold green",
    "theme": "bold yellow",
    "slot_locked": "bold green",
    "slot_suggested": "cyan",
    "slot_empty": "dim white",
})

console = Console(theme=custom_theme)


def print_header(text: str):
    """Print a section header."""
    console.print(f"\n[bold cyan]{text}[/bold cyan]")
    console.print("[dim]" + "-" * len(text) + "[/dim]")


def print_success(text: str):
    console.print(f"[success][OK][/success] {text}")


def print_error(text: str):
    console.print(f"[error][X][/error] {text}")


def print_warning(text: str):
    console.print(f"[warning][!][/warning] {text}")


def print_info(text: str):
    console.print(f"[info][i][/info] {text}")


def print_panel(text: str, title: Optional[str] = None, style: str = "cyan"):
    """Print text in a panel."""
    console.print(Panel(text, title=title, border_style=style))


def truncate_text(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    return text[: limit - 3] + "..." if len(text) > limit else text


def _type_style(node_type: str) -> str:
    return node_type if node_type in ("book", "author", "theme") else "dim"


def print_node_table(nodes: Iterable[Node], highlight: Optional[str] = None):
    """Print graph nodes in a formatted table."""
    table = Table(show_header=True, header_style="bold cyan", box=ASCII)
    table.add_column("Type", width=8)
    table.add_column("Label", style="white", width=32)
    table.add_column("Year", style="dim", width=6)
    table.add_column("Key", style="dim", width=14)
    table.add_column("Description", style="white", width=50)

    for node in nodes:
        style = _type_style(node.type)
        label = f"[highlight]{node.label}[/highlight]" if node.id == highlight else node.label
        table.add_row(
            f"[{style}]{node.type}[/{style}]",
            label,
            str(node.publication_year or "-"),
            node.external_key or "-",
            truncate_text(node.description, 50),
        )

    console.print(table)


def print_grid_table(slots: Iterable[GridSlot]):
    """Print the occupied slots of the book wall."""
    table = Table(show_header=True, header_style="bold cyan", box=ASCII)
    table.add_column("Slot", style="dim", width=5)
    table.add_column("Status", width=10)
    table.add_column("Title", style="white", width=36)
    table.add_column("Author", style="white", width=24)

    for slot in slots:
        if slot.book is None:
            continue
        style = "slot_locked" if slot.status == SlotStatus.LOCKED else "slot_suggested"
        table.add_row(
            str(slot.index),
            f"[{style}]{slot.status.value}[/{style}]",
            truncate_text(slot.book.title, 36),
            truncate_text(slot.book.author, 24),
        )

    console.print(table)


def print_path(labels: Iterable[str]):
    console.print("[highlight]" + "[/highlight] [dim]->[/dim] [highlight]".join(labels) + "[/highlight]")
