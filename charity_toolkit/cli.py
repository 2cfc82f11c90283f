#!/usr/bin/env python3
"""
Command-line interface for the Charity Python Toolkit.

Inspects and manages the recycle bin and the toolkit configuration.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional, TypeVar

import click
import pandas as pd  # type: ignore[import-untyped]
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .activity_log import ActivityLogService
from .config import CharityConfig, StoreBackend, get_config
from .document_store import StoreUnavailable, get_document_store
from .document_store.models import utc_now
from .recycle_bin import PartialBatchFailure, RecordNotFound, RecycleBinService
from .settings import SettingsService

console = Console()

T = TypeVar("T")

EXPORT_COLUMNS = [
    "id",
    "type",
    "name",
    "original_collection",
    "original_id",
    "deleted_by",
    "deleted_at",
    "batch_id",
    "days_remaining",
]


def run(coro: Awaitable[T]) -> T:
    """Run a coroutine from a synchronous click command."""

    async def _run() -> T:
        return await coro

    return asyncio.run(_run())


async def build_recycle_bin(config: CharityConfig) -> RecycleBinService:
    """Wire a recycle bin service against the configured store."""
    store = await get_document_store(**config.get_store_config())
    activity_log = None
    if config.activity_log_enabled:
        activity_log = ActivityLogService(store, max_logs=config.activity_log_max_entries)
    return RecycleBinService(
        store,
        settings=SettingsService(store),
        activity_log=activity_log,
        config=config,
    )


def _effective_config(ctx: click.Context) -> CharityConfig:
    return ctx.obj["config"]  # type: ignore[no-any-return]


def _recycle_bin(ctx: click.Context) -> RecycleBinService:
    return run(build_recycle_bin(_effective_config(ctx)))


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Charity Python Toolkit - back-office tools for membership charities."""
    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Charity Python Toolkit[/bold blue] v{__version__}\n"
                "[dim]Back-office tools for membership charities[/dim]\n\n"
                "Use [bold]charity --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Inspect toolkit configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config = get_config()
        config_dict = config.to_dict()

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml  # type: ignore[import-untyped]

            console.print(yaml.dump(config_dict, default_flow_style=False, allow_unicode=True))
        else:
            table = Table(title="Charity Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            categories = {
                "General": ["application_name", "environment", "timezone", "log_level"],
                "Document Store": ["store_backend", "database_url"],
                "Recycle Bin": [
                    "recycle_bin_enabled",
                    "recycle_retention_days",
                    "default_actor",
                    "cleanup_on_view",
                ],
                "Activity Log": ["activity_log_enabled", "activity_log_max_entries"],
                "Finance": ["currency_symbol"],
            }

            for category, settings in categories.items():
                table.add_row(f"[bold]{category}[/bold]", "")
                for setting in settings:
                    value = config_dict.get(setting)
                    if value is None:
                        value = "[dim]Not configured[/dim]"
                    elif isinstance(value, bool):
                        value = "✓" if value else "✗"
                    table.add_row(f"  {setting}", str(value))

            console.print(table)

    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


@config.command("validate")
def config_validate() -> None:
    """Validate current configuration."""
    try:
        config = get_config()

        issues = []
        warnings = []

        if config.store_backend != StoreBackend.MEMORY and not config.database_url:
            issues.append(
                f"database_url is required for the {config.store_backend.value} backend"
            )

        if config.store_backend == StoreBackend.MEMORY and config.environment == "production":
            warnings.append("Memory store loses all data on exit; not for production")

        if not config.recycle_bin_enabled:
            warnings.append("Recycle bin disabled - deletions cannot be undone")

        if config.recycle_retention_days < 7:
            warnings.append(
                f"Retention of {config.recycle_retention_days} day(s) leaves little "
                "time to notice a mistaken delete"
            )

        if issues:
            console.print("[red]✗ Configuration validation failed:[/red]")
            for issue in issues:
                console.print(f"  [red]• {issue}[/red]")
            sys.exit(1)
        else:
            console.print("[green]✓ Configuration is valid[/green]")

        if warnings:
            console.print("\n[yellow]⚠ Warnings:[/yellow]")
            for warning in warnings:
                console.print(f"  [yellow]• {warning}[/yellow]")

    except ValueError as e:
        console.print(f"[red]Error validating configuration: {e}[/red]")
        sys.exit(1)


@cli.group("bin")
@click.option("--database-url", help="Connection string of the document store")
@click.option(
    "--backend",
    type=click.Choice([b.value for b in StoreBackend]),
    help="Document store backend",
)
@click.pass_context
def bin_group(
    ctx: click.Context, database_url: Optional[str], backend: Optional[str]
) -> None:
    """Recycle bin management."""
    config = get_config()
    overrides: Dict[str, Any] = {}
    if database_url:
        overrides["database_url"] = database_url
        if backend is None and database_url.startswith("sqlite"):
            overrides["store_backend"] = StoreBackend.SQLITE
        elif backend is None and database_url.startswith("postgresql"):
            overrides["store_backend"] = StoreBackend.POSTGRESQL
    if backend:
        overrides["store_backend"] = StoreBackend(backend)

    logging.getLogger("charity_toolkit").setLevel(config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config.model_copy(update=overrides)


@bin_group.command("list")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.option("--no-cleanup", is_flag=True, help="Skip the retention sweep")
@click.pass_context
def bin_list(ctx: click.Context, format: str, no_cleanup: bool) -> None:
    """List held records, most recently deleted first."""
    try:
        recycle_bin = _recycle_bin(ctx)
        if recycle_bin.config.cleanup_on_view and not no_cleanup:
            removed = run(recycle_bin.cleanup_old_items())
            if removed:
                console.print(f"[dim]Removed {removed} expired item(s)[/dim]")

        items = run(recycle_bin.list_items())
        now = utc_now()

        if format == "json":
            data = []
            for item in items:
                row = item.summary()
                row["days_remaining"] = item.days_remaining(recycle_bin.retention_days, now)
                data.append(row)
            console.print_json(data=data)
            return

        if not items:
            console.print("[yellow]Recycle bin is empty[/yellow]")
            return

        table = Table(title=f"Recycle Bin ({len(items)} items)")
        table.add_column("ID", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Name", style="green")
        table.add_column("Deleted By")
        table.add_column("Deleted At", style="blue")
        table.add_column("Days Left", justify="right")
        table.add_column("Batch", style="dim")

        for item in items:
            days = item.days_remaining(recycle_bin.retention_days, now)
            days_text = f"[red]{days}[/red]" if days <= 1 else str(days)
            deleted_at = (
                item.deleted_at.strftime("%Y-%m-%d %H:%M:%S") if item.deleted_at else ""
            )
            table.add_row(
                item.id,
                item.kind.value,
                item.display_name,
                item.deleted_by,
                deleted_at,
                days_text,
                item.batch_id or "",
            )

        console.print(table)

    except StoreUnavailable as e:
        console.print(f"[red]Error reading recycle bin: {e}[/red]")
        sys.exit(1)


@bin_group.command("restore")
@click.argument("held_id")
@click.option("--actor", help="Admin performing the restore")
@click.pass_context
def bin_restore(ctx: click.Context, held_id: str, actor: Optional[str]) -> None:
    """Restore a held record and its batch."""
    try:
        recycle_bin = _recycle_bin(ctx)
        result = run(recycle_bin.restore(held_id, actor=actor))

        console.print(
            f"[green]✓ Restored {result.total_restored} item(s) ({result.kind.value})[/green]"
        )
        if result.config_reapplied:
            console.print("  [green]• Collection settings re-applied[/green]")
        if result.purged_payment_ids:
            console.print(
                f"  [yellow]• Removed {len(result.purged_payment_ids)} "
                "aggregated payment(s)[/yellow]"
            )

    except RecordNotFound:
        console.print(f"[red]Error: Held record '{held_id}' not found[/red]")
        sys.exit(1)
    except PartialBatchFailure as e:
        console.print(
            f"[red]✗ Restore incomplete: batch {e.batch_id} stopped at "
            f"{e.failed_id}[/red]"
        )
        for restored_id in e.restored_ids:
            console.print(f"  [yellow]• restored {restored_id}[/yellow]")
        sys.exit(1)
    except StoreUnavailable as e:
        console.print(f"[red]Error restoring item: {e}[/red]")
        sys.exit(1)


@bin_group.command("purge")
@click.argument("held_id")
@click.pass_context
def bin_purge(ctx: click.Context, held_id: str) -> None:
    """Permanently delete one held record."""
    try:
        recycle_bin = _recycle_bin(ctx)
        run(recycle_bin.permanent_delete(held_id))
        console.print(f"[green]✓ Permanently deleted {held_id}[/green]")
    except StoreUnavailable as e:
        console.print(f"[red]Error deleting item: {e}[/red]")
        sys.exit(1)


@bin_group.command("cleanup")
@click.pass_context
def bin_cleanup(ctx: click.Context) -> None:
    """Purge held records past the retention window."""
    try:
        recycle_bin = _recycle_bin(ctx)
        removed = run(recycle_bin.cleanup_old_items())
        console.print(
            f"[green]✓ Removed {removed} item(s) older than "
            f"{recycle_bin.retention_days} days[/green]"
        )
    except StoreUnavailable as e:
        console.print(f"[red]Error cleaning up recycle bin: {e}[/red]")
        sys.exit(1)


@bin_group.command("empty")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def bin_empty(ctx: click.Context, yes: bool) -> None:
    """Permanently delete every held record."""
    if not yes:
        click.confirm(
            "Permanently delete all items in the recycle bin? This cannot be undone.",
            abort=True,
        )
    try:
        recycle_bin = _recycle_bin(ctx)
        removed = run(recycle_bin.empty_bin())
        console.print(f"[green]✓ Recycle bin emptied ({removed} item(s))[/green]")
    except StoreUnavailable as e:
        console.print(f"[red]Error emptying recycle bin: {e}[/red]")
        sys.exit(1)


@bin_group.command("export")
@click.option("--output", type=click.Path(), required=True, help="Output file path")
@click.option("--format", type=click.Choice(["json", "csv", "excel"]), default="csv")
@click.pass_context
def bin_export(ctx: click.Context, output: str, format: str) -> None:
    """Export the held records for review."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Exporting recycle bin...", total=None)

        try:
            recycle_bin = _recycle_bin(ctx)
            items = run(recycle_bin.list_items())
            now = utc_now()

            progress.update(task, description=f"Found {len(items)} items, exporting...")

            rows = []
            for item in items:
                row = item.summary()
                row["days_remaining"] = item.days_remaining(recycle_bin.retention_days, now)
                rows.append(row)
            df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)

            output_path = Path(output)
            if format == "json":
                df.to_json(output_path, orient="records", indent=2, force_ascii=False)
            elif format == "excel":
                df.to_excel(output_path, index=False, engine="openpyxl")
            else:  # csv
                df.to_csv(output_path, index=False)

            progress.stop()
            console.print(
                f"[green]✓ Exported {len(items)} held records to {output_path}[/green]"
            )

        except StoreUnavailable as e:
            progress.stop()
            console.print(f"[red]Error exporting recycle bin: {e}[/red]")
            sys.exit(1)


if __name__ == "__main__":
    cli()
