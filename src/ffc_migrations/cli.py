"""Command-line interface for running data migrations.

This module provides commands for:
- Listing registered migrations and whether they can run
- Showing the status of a migration
- Running a migration batch by batch until nothing is pending
- Checking whether legacy plaintext columns may be dropped
"""

import logging
import sys
from contextlib import contextmanager

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .activity import ActivityLogger
from .config import MigrationSettings
from .crypto import FernetCryptoProvider
from .exceptions import MigrationError, MigrationNotFoundError, PreconditionError
from .manager import build_manager
from .options import SQLiteOptionStore
from .storage import SQLiteStorage

console = Console()


def _describe(error: PreconditionError) -> str:
    return escape(f"[{error.code}] {error}")


def _load_settings(config_path, database, log_level):
    settings = MigrationSettings.load(config_path) if config_path else MigrationSettings.from_env()
    if database:
        settings.database_path = database
    if log_level:
        settings.log_level = log_level.upper()
    return settings


@contextmanager
def _open_manager(settings, batch_size=None):
    with SQLiteStorage(settings.database_config()) as storage:
        manager = build_manager(
            storage,
            FernetCryptoProvider.from_config(settings.encryption_config()),
            table_prefix=settings.table_prefix,
            batch_size=batch_size or settings.batch_size,
            drop_legacy_columns=settings.drop_legacy_columns,
            activity=ActivityLogger(),
            options=SQLiteOptionStore(storage, table=f"{settings.table_prefix}ffc_options"),
        )
        yield manager


@click.group()
@click.version_option(version=__version__)
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='YAML settings file')
@click.option('--database', help='SQLite database path (overrides settings)')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def cli(ctx, config_path, database, log_level):
    """FFC migrations - encrypt and split sensitive submission data"""
    try:
        settings = _load_settings(config_path, database, log_level)
    except MigrationError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        sys.exit(1)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@cli.command(name='list')
@click.pass_obj
def list_migrations(settings):
    """List registered migrations"""
    with _open_manager(settings) as manager:
        table = Table(title="Migrations")
        table.add_column("Key", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Available")
        table.add_column("Progress", justify="right")
        for definition in manager.get_migrations():
            available = manager.is_migration_available(definition.key)
            progress = "-"
            if available:
                progress = f"{manager.get_migration_status(definition.key).percent:.2f}%"
            table.add_row(
                definition.key,
                definition.name,
                "[green]yes[/green]" if available else "[yellow]no[/yellow]",
                progress,
            )
        console.print(table)


@cli.command()
@click.argument('key')
@click.pass_obj
def status(settings, key):
    """Show the status of a migration"""
    with _open_manager(settings) as manager:
        try:
            definition = manager.get_migration(key)
            current = manager.get_migration_status(key)
        except MigrationNotFoundError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            sys.exit(1)

        table = Table(title=f"{definition.name} ({key})")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        for name, value in current.to_dict().items():
            table.add_row(name, str(value))
        console.print(table)

        allowed = manager.can_run_migration(key)
        if isinstance(allowed, PreconditionError):
            console.print(f"[yellow]Cannot run: {_describe(allowed)}[/yellow]")


@cli.command()
@click.argument('key')
@click.option('--batch-size', type=click.IntRange(min=1), help='Rows per batch')
@click.option('--max-batches', type=click.IntRange(min=1), help='Stop after this many batches')
@click.pass_obj
def run(settings, key, batch_size, max_batches):
    """Run a migration until nothing is pending"""

    def report(batch_number, result):
        colour = "green" if result.success else "yellow"
        console.print(f"[{colour}]Batch {batch_number}:[/{colour}] {escape(result.message)}")
        for error in result.errors:
            console.print(f"  [red]{escape(error)}[/red]")

    with _open_manager(settings, batch_size) as manager:
        try:
            progress = manager.run_until_complete(key, max_batches=max_batches, on_batch=report)
        except MigrationNotFoundError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            sys.exit(1)
        except PreconditionError as e:
            console.print(f"[red]Cannot run {key}: {_describe(e)}[/red]")
            sys.exit(1)

        console.print(
            f"\n[bold]{progress.processed}[/bold] rows in {progress.batches} batches "
            f"({progress.stopped_reason}), {len(progress.errors)} errors"
        )
        console.print(str(manager.get_migration_status(key)))
        if progress.has_errors:
            sys.exit(2)


@cli.command(name='drop-check')
@click.pass_obj
def drop_check(settings):
    """Check whether plaintext columns may be dropped"""
    with _open_manager(settings) as manager:
        allowed = manager.can_drop_columns()
        if isinstance(allowed, PreconditionError):
            console.print(f"[yellow]{_describe(allowed)}[/yellow]")
            sys.exit(1)
        console.print("[green]Legacy plaintext columns can be dropped[/green]")


def main():
    """Main entry point for CLI"""
    cli()


if __name__ == '__main__':
    main()
