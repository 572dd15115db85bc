"""Rich table formatting helpers for the parley CLI."""

from datetime import datetime
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

console = Console()


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
):
    """Print a formatted table."""
    table = Table(
        title=title,
        box=box.ROUNDED,
        header_style="bold cyan",
        border_style="dim",
    )
    for header in headers:
        table.add_column(header)
    for row in rows:
        table.add_row(*row)
    console.print(table)


def print_status(label: str, value: str, color: str = "green"):
    """Print a status line with colored value."""
    console.print(f"[bold]{label}:[/bold] [{color}]{value}[/{color}]")


def format_ts(ts) -> str:
    """Format epoch ms timestamp to readable string."""
    if not ts or not isinstance(ts, (int, float)):
        return "-"
    try:
        return datetime.fromtimestamp(ts / 1000).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return str(ts)


STATUS_COLORS = {
    "processed": "green",
    "ignored": "yellow",
    "failed": "red",
    "pending": "dim",
    "completed": "green",
    "error": "red",
}


def colored_status(status: str) -> str:
    """Return a Rich-markup colored status string."""
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"
