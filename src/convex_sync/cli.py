"""
Convex Sync CLI - Command Line Interface.

Commands:
    update  Run one sync invocation from the stored checkpoint
    schema  Show the tables and columns of the deployment
    test    Check that the deployment is reachable with the given key
    status  Show the stored checkpoint
    config  Manage configuration
"""

from __future__ import annotations

import asyncio
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Optional, TextIO

import typer
from pydantic import SecretStr

from convex_sync import __version__
from convex_sync.config import Settings, load_settings
from convex_sync.connectors.convex_client import create_client
from convex_sync.core.runner import SyncRunner, SyncStats
from convex_sync.core.schema import describe_tables
from convex_sync.core.state import StateStore
from convex_sync.errors import SyncError
from convex_sync.utils.display import (
    ProgressDisplay,
    console,
    print_error,
    print_info,
    print_state,
    print_success,
    print_summary,
    print_tables,
    print_warning,
)
from convex_sync.utils.logger import setup_logging


app = typer.Typer(
    name="convex-sync",
    help="Change data capture from a Convex deployment.",
    add_completion=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]convex-sync[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Convex Sync - change data capture from a Convex deployment."""
    pass


# Options shared by every command talking to the deployment
_URL_OPTION = typer.Option(None, "--url", "-u", help="Deployment URL (overrides config).")
_KEY_OPTION = typer.Option(
    None,
    "--key",
    "-k",
    envvar="CONVEX_SYNC_DEPLOY_KEY",
    help="Deploy key (overrides config).",
)
_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config file.", exists=True)
_ALLOW_ALL_HOSTS_OPTION = typer.Option(
    False,
    "--allow-all-hosts",
    help="Accept any http(s) host as deployment URL.",
)


# =============================================================================
# UPDATE Command
# =============================================================================
@app.command()
def update(
    url: Optional[str] = _URL_OPTION,
    key: Optional[str] = _KEY_OPTION,
    config_file: Optional[Path] = _CONFIG_OPTION,
    allow_all_hosts: bool = _ALLOW_ALL_HOSTS_OPTION,
    state_file: Optional[Path] = typer.Option(
        None,
        "--state-file",
        "-s",
        help="Checkpoint file to resume from and write to.",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the update stream here instead of stdout.",
    ),
    reset: bool = typer.Option(
        False,
        "--reset",
        help="Discard the stored checkpoint and start a fresh sync.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output.",
    ),
) -> None:
    """
    Run one sync invocation.

    Resumes from the stored checkpoint, drains every change currently
    available and writes one JSON object per update message.

    Example:
        convex-sync update --url https://aware-llama-900.convex.cloud -o updates.jsonl
    """
    settings = _load_valid_settings(
        config_file,
        url=url,
        key=key,
        allow_all_hosts=allow_all_hosts,
        state_file=state_file,
        output=output,
    )
    setup_logging(
        level="WARNING" if quiet else settings.logging.level,
        log_file=settings.logging.file,
        format_style=settings.logging.format,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )

    store = StateStore(settings.sync.state_file)
    if reset:
        store.clear()
        print_warning("Stored checkpoint discarded, starting a fresh sync")

    display = ProgressDisplay(settings.deploy_url) if not quiet else None

    def on_progress(stats: SyncStats) -> None:
        if display:
            display.update(
                rows_processed=stats.rows_processed,
                checkpoints=stats.checkpoints,
                tables=len(stats.tables),
                rate=stats.rows_per_second,
            )

    output_path = settings.sync.output
    sink_context = output_path.open("a", encoding="utf-8") if output_path else nullcontext(sys.stdout)

    try:
        with sink_context as sink, (display or nullcontext()):
            stats = asyncio.run(_run_update(settings, store, sink, on_progress))
    except SyncError as e:
        print_error(str(e))
        print_info(f"Resume point kept in {settings.sync.state_file}")
        raise typer.Exit(1)

    if not quiet:
        print_summary({
            "duration": stats.duration_seconds,
            "tables": len(stats.tables),
            "upserts": stats.upserts,
            "deletes": stats.deletes,
            "truncates": stats.truncates,
            "checkpoints": stats.checkpoints,
            "rows_per_second": stats.rows_per_second,
            "position": stats.last_state.describe() if stats.last_state else "N/A",
        })
        print_success("Sync completed successfully!")


async def _run_update(
    settings: Settings,
    store: StateStore,
    sink: TextIO,
    on_progress: Any,
) -> SyncStats:
    async with create_client(settings) as source:
        runner = SyncRunner(source, store, sink)
        return await runner.run(on_progress=on_progress)


# =============================================================================
# SCHEMA Command
# =============================================================================
@app.command()
def schema(
    url: Optional[str] = _URL_OPTION,
    key: Optional[str] = _KEY_OPTION,
    config_file: Optional[Path] = _CONFIG_OPTION,
    allow_all_hosts: bool = _ALLOW_ALL_HOSTS_OPTION,
) -> None:
    """Show the tables and columns exported by the deployment."""
    settings = _load_valid_settings(
        config_file, url=url, key=key, allow_all_hosts=allow_all_hosts
    )

    async def fetch_columns() -> dict[str, list[str]]:
        async with create_client(settings) as source:
            return await source.get_columns()

    try:
        columns = asyncio.run(fetch_columns())
    except SyncError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not columns:
        print_info("The deployment has no tables.")
        return
    print_tables(describe_tables(columns))


# =============================================================================
# TEST Command
# =============================================================================
@app.command()
def test(
    url: Optional[str] = _URL_OPTION,
    key: Optional[str] = _KEY_OPTION,
    config_file: Optional[Path] = _CONFIG_OPTION,
    allow_all_hosts: bool = _ALLOW_ALL_HOSTS_OPTION,
) -> None:
    """Verify that the credentials give access to the deployment."""
    settings = _load_valid_settings(
        config_file, url=url, key=key, allow_all_hosts=allow_all_hosts
    )

    async def check() -> None:
        async with create_client(settings) as source:
            await source.json_schemas()

    try:
        asyncio.run(check())
    except SyncError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Connected to {settings.deploy_url}")


# =============================================================================
# STATUS Command
# =============================================================================
@app.command()
def status(
    config_file: Optional[Path] = _CONFIG_OPTION,
    state_file: Optional[Path] = typer.Option(
        None,
        "--state-file",
        "-s",
        help="Path to state file (overrides config).",
    ),
) -> None:
    """Show the stored checkpoint."""
    try:
        settings = _build_settings(config_file, state_file=state_file)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    try:
        state = StateStore(settings.sync.state_file).load()
    except SyncError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if state is None:
        print_info("No sync state found. The next update starts a fresh sync.")
        raise typer.Exit(0)

    print_state(state)


# =============================================================================
# CONFIG Command
# =============================================================================
@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration.",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        help="Write a default config file.",
    ),
    output: Path = typer.Option(
        Path("config.toml"),
        "--output",
        "-o",
        help="Output path for config file.",
    ),
) -> None:
    """Manage configuration."""
    if init:
        Settings().to_file(output)
        print_success(f"Generated config file: {output}")
        return

    if show:
        from rich.table import Table

        settings = Settings()
        table = Table(title="Current Configuration", border_style="cyan")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        table.add_row("Deployment URL", settings.deploy_url or "[dim]not set[/dim]")
        table.add_row(
            "Deploy Key",
            "[dim]set[/dim]" if settings.deploy_key.get_secret_value() else "[dim]not set[/dim]",
        )
        table.add_row("Allow All Hosts", str(settings.allow_all_hosts))
        table.add_row("State File", str(settings.sync.state_file))
        table.add_row("Max Retries", str(settings.http.max_retries))

        console.print(table)
        return

    console.print("Use --show to view config or --init to create config file.")


# =============================================================================
# Helper Functions
# =============================================================================
def _build_settings(
    config_file: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Build settings from config file and overrides."""
    settings = load_settings(config_file) if config_file else Settings()

    if overrides.get("url"):
        settings.deploy_url = overrides["url"]
    if overrides.get("key"):
        settings.deploy_key = SecretStr(overrides["key"])
    if overrides.get("allow_all_hosts"):
        settings.allow_all_hosts = True
    if overrides.get("state_file"):
        settings.sync.state_file = overrides["state_file"]
    if overrides.get("output"):
        settings.sync.output = overrides["output"]

    return settings


def _load_valid_settings(config_file: Path | None, **overrides: Any) -> Settings:
    try:
        settings = _build_settings(config_file, **overrides)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    errors = settings.validate_credentials()
    if errors:
        for err in errors:
            print_error(err)
        print_info("Use --help for configuration options.")
        raise typer.Exit(1)
    return settings


if __name__ == "__main__":
    app()
