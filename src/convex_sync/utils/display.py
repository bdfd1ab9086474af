"""
Rich Terminal Display Components.

Provides console UI for:
- A live spinner with running counts during a sync
- Summary, state and schema tables
- Status messages
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from convex_sync.core.schema import TableDescription
from convex_sync.core.state import InitialSync, State


# stdout may carry the update stream
console = Console(stderr=True)


class ProgressDisplay:
    """
    Live status line for a running sync.

    Example:
        with ProgressDisplay("https://aware-llama-900.convex.cloud") as display:
            display.update(rows_processed=500, checkpoints=3, rate=100.0)
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self._live: Live | None = None
        self._stats: dict[str, Any] = {}

    def start(self) -> None:
        """Start the live display."""
        self._stats = {
            "rows_processed": 0,
            "truncates": 0,
            "checkpoints": 0,
            "tables": 0,
            "rate": 0.0,
        }
        self._live = Live(
            self._build_display(),
            console=console,
            refresh_per_second=4,
            transient=True,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the live display."""
        if self._live:
            self._live.stop()
            self._live = None

    def update(self, **stats: Any) -> None:
        """Update the displayed counters."""
        self._stats.update({k: v for k, v in stats.items() if v is not None})
        if self._live:
            self._live.update(self._build_display())

    def _build_display(self) -> Text:
        text = Text()
        text.append("Syncing ", style="bold blue")
        text.append(self.source, style="cyan")
        text.append(
            f"  rows {self._stats.get('rows_processed', 0):,}"
            f"  tables {self._stats.get('tables', 0)}"
            f"  checkpoints {self._stats.get('checkpoints', 0)}"
            f"  {self._stats.get('rate', 0):,.0f}/s",
            style="dim",
        )
        return text

    def __enter__(self) -> "ProgressDisplay":
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


def print_summary(stats: dict[str, Any]) -> None:
    """Print a summary table after sync completion."""
    table = Table(title="Sync Summary", border_style="green")

    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Duration", f"{stats.get('duration', 0):.1f}s")
    table.add_row("Tables", f"{stats.get('tables', 0):,}")
    table.add_row("Upserts", f"{stats.get('upserts', 0):,}")
    table.add_row("Deletes", f"{stats.get('deletes', 0):,}")
    table.add_row("Truncates", f"{stats.get('truncates', 0):,}")
    table.add_row("Checkpoints", f"{stats.get('checkpoints', 0):,}")
    table.add_row("Average Speed", f"{stats.get('rows_per_second', 0):,.0f} rows/s")
    table.add_row("Position", stats.get("position", "N/A"))

    console.print(table)


def print_state(state: State) -> None:
    """Print the stored checkpoint."""
    table = Table(title="Sync Status", border_style="blue")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    checkpoint = state.checkpoint
    phase = "initial sync" if isinstance(checkpoint, InitialSync) else "delta updates"
    table.add_row("Version", str(state.version))
    table.add_row("Phase", phase)
    table.add_row("Position", state.describe())
    if state.tables_seen is None:
        table.add_row("Tables Seen", "[dim]not tracked[/dim]")
    else:
        table.add_row("Tables Seen", ", ".join(sorted(state.tables_seen)) or "[dim]none[/dim]")

    console.print(table)


def print_tables(tables: list[TableDescription]) -> None:
    """Print the source tables and their columns."""
    for description in tables:
        table = Table(title=description.name, border_style="cyan")
        table.add_column("Column")
        table.add_column("Type")
        table.add_column("Primary Key", justify="center")
        for column in description.columns:
            table.add_row(column.name, column.type.value, "✓" if column.primary_key else "")
        console.print(table)


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red bold]Error:[/red bold] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green bold]✓[/green bold] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow bold]⚠[/yellow bold] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
