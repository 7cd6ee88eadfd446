"""Output formatting utilities for CLI."""

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from docmigrate.core.exceptions import MigrationError
from docmigrate.migrations.models import NO_VERSION, MigrationStatusReport, VersionChange

console = Console()
error_console = Console(stderr=True)


def format_version(version: int | None) -> str:
    """Format a ledger version for display."""
    if version is None or version == NO_VERSION:
        return "-"
    return str(version)


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, default=str, indent=2))


def print_error(message: str, details: dict | None = None) -> None:
    """Print an error message."""
    error_console.print(f"[red]Error:[/red] {message}", highlight=False)
    if details:
        for key, value in details.items():
            error_console.print(f"  [dim]{key}:[/dim] {value}", highlight=False)


def print_migration_error(error: MigrationError) -> None:
    """Print a migrator error with the ledger position it left behind."""
    details = {"code": error.error_code}
    if error.old_version is not None:
        details["old version"] = format_version(error.old_version)
    if error.new_version is not None:
        details["reached version"] = format_version(error.new_version)
    print_error(error.message, details)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def print_version_change(change: VersionChange, action: str) -> None:
    """Print the result of a migration command."""
    old, new = format_version(change.old_version), format_version(change.new_version)
    if change.old_version == change.new_version:
        print_info(f"{action}: version [cyan]{new}[/cyan] (unchanged)")
    else:
        print_success(f"{action}: version [cyan]{old}[/cyan] → [cyan]{new}[/cyan]")


def print_status(report: MigrationStatusReport, as_json: bool = False) -> None:
    """Print the migration status report."""
    if as_json:
        print_json(report.to_dict())
        return

    console.print()
    console.print("[bold]Migration Status[/bold]")
    console.print(f"  Current Version: [cyan]{format_version(report.current_version)}[/cyan]")
    console.print(f"  Latest Version:  [cyan]{format_version(report.latest_version)}[/cyan]")
    console.print(f"  Applied:         [green]{len(report.applied)}[/green]")
    console.print(f"  Pending:         [yellow]{len(report.pending)}[/yellow]")
    console.print()

    if report.applied:
        table = Table(title="Applied Migrations", show_header=True)
        table.add_column("Version", style="cyan")
        table.add_column("Name", style="white")
        table.add_column("Declared", style="dim")

        unknown = {r.version for r in report.unknown}
        for record in report.applied:
            declared = "[red]missing[/red]" if record.version in unknown else "yes"
            table.add_row(str(record.version), record.name, declared)

        console.print(table)
        console.print()

    if report.pending:
        table = Table(title="Pending Migrations", show_header=True)
        table.add_column("Version", style="yellow")
        table.add_column("Name", style="white")
        table.add_column("Description", style="dim")

        for migration in report.pending:
            table.add_row(str(migration.version), migration.name, migration.description)

        console.print(table)
    else:
        console.print("[green]All migrations are up to date![/green]")

    if report.unknown:
        console.print()
        print_warning(
            f"{len(report.unknown)} applied migration(s) are not declared; "
            "down/reset cannot roll them back. Use set-version to repair the ledger."
        )
