"""
Migration CLI commands for managing database migrations.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from motor.motor_asyncio import AsyncIOMotorClient

from docmigrate.cli.output import (
    console,
    print_error,
    print_migration_error,
    print_status,
    print_success,
    print_version_change,
)
from docmigrate.core.config import settings
from docmigrate.core.exceptions import MigrationError
from docmigrate.migrations.loader import discover_migrations, next_version
from docmigrate.migrations.migrator import Migrator

migrate_app = typer.Typer(name="migrate", help="Database migration commands")


def get_options(ctx: typer.Context) -> dict:
    """Connection and migration options collected by the root callback."""
    options = {
        "mongodb": settings.mongodb,
        "database": settings.mongodb_database,
        "prefix": settings.migrations_prefix,
        "migrations_dir": settings.migrations_dir,
    }
    if isinstance(ctx.obj, dict):
        options.update({k: v for k, v in ctx.obj.items() if v is not None})
    return options


def get_client(options: dict) -> AsyncIOMotorClient:
    """Get database client."""
    return AsyncIOMotorClient(
        options["mongodb"],
        connectTimeoutMS=settings.mongo_connect_timeout_ms,
        serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
        socketTimeoutMS=settings.mongo_socket_timeout_ms,
    )


def get_migrator(client: AsyncIOMotorClient, options: dict) -> Migrator:
    """Get migrator instance."""
    migrations = discover_migrations(options["migrations_dir"])
    return Migrator.for_database(client[options["database"]], migrations, options["prefix"])


def run_migrator(ctx: typer.Context, call) -> Any:
    """Build a migrator, await ``call(migrator)`` and close the client."""
    options = get_options(ctx)

    async def _run() -> Any:
        client = get_client(options)
        try:
            migrator = get_migrator(client, options)
            return await call(migrator)
        finally:
            client.close()

    return asyncio.run(_run())


def run_command(ctx: typer.Context, args: list[str], action: str) -> None:
    """Dispatch a ledger command through ``Migrator.run`` and report the outcome."""
    try:
        change = run_migrator(ctx, lambda migrator: migrator.run(args))
    except MigrationError as e:
        print_migration_error(e)
        raise typer.Exit(1)
    except Exception as e:
        print_error(f"{action} failed: {e}")
        raise typer.Exit(1)

    print_version_change(change, action)


def confirm_or_exit(message: str, force: bool) -> None:
    if force:
        return
    if not typer.confirm(message):
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(0)


@migrate_app.command("init")
def init(ctx: typer.Context):
    """Create the migrations ledger and record the root migration."""
    run_command(ctx, ["init"], "Init")


@migrate_app.command("up")
def up(
    ctx: typer.Context,
    target: Annotated[
        Optional[str],
        typer.Argument(help="Target version to migrate to (latest when omitted)"),
    ] = None,
):
    """Apply pending migrations."""
    run_command(ctx, ["up"] + ([target] if target is not None else []), "Up")


@migrate_app.command("down")
def down(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
):
    """Roll back the most recently applied migration."""
    confirm_or_exit("Roll back the latest migration? This may cause data loss.", force)
    run_command(ctx, ["down"], "Down")


@migrate_app.command("reset")
def reset(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
):
    """Roll back every applied migration down to the root."""
    confirm_or_exit("Roll back ALL applied migrations? This may cause data loss.", force)
    run_command(ctx, ["reset"], "Reset")


@migrate_app.command("version")
def version(ctx: typer.Context):
    """Show the current ledger version."""
    run_command(ctx, ["version"], "Version")


@migrate_app.command("set-version")
def set_version(
    ctx: typer.Context,
    target: Annotated[
        Optional[str],
        typer.Argument(help="Declared version to stamp the ledger with"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
):
    """Force the ledger to a declared version without running migrations."""
    if target is not None:
        confirm_or_exit(
            f"Rewrite the ledger to version {target} without running migrations?", force
        )
    run_command(ctx, ["set_version"] + ([target] if target is not None else []), "Set version")


@migrate_app.command("status")
def status(
    ctx: typer.Context,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the status as JSON"),
    ] = False,
):
    """Show current migration status."""
    try:
        report = run_migrator(ctx, lambda migrator: migrator.status())
    except MigrationError as e:
        print_migration_error(e)
        raise typer.Exit(1)
    except Exception as e:
        print_error(f"Failed to get migration status: {e}")
        raise typer.Exit(1)

    print_status(report, as_json=as_json)


@migrate_app.command("create")
def create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Name for the migration (use_underscores)")],
    description: Annotated[
        Optional[str],
        typer.Option("--description", "-d", help="Description of the migration"),
    ] = None,
):
    """Create a new migration file."""

    if not name.replace("_", "").isalnum():
        print_error("Migration name must be alphanumeric with underscores only")
        raise typer.Exit(1)

    migrations_dir = Path(get_options(ctx)["migrations_dir"])
    migrations_dir.mkdir(parents=True, exist_ok=True)

    version_number = next_version(migrations_dir)
    filepath = migrations_dir / f"{version_number:03d}_{name}.py"
    desc = description or f"Migration {version_number}: {name.replace('_', ' ')}"

    template = f'''"""
Migration: {desc}
Created: {datetime.now().strftime('%Y-%m-%d')}
"""

from motor.motor_asyncio import AsyncIOMotorDatabase

description = "{desc}"


async def up(db: AsyncIOMotorDatabase, prefix: str) -> None:
    """Apply migration."""


async def down(db: AsyncIOMotorDatabase, prefix: str) -> None:
    """Rollback migration."""
'''

    filepath.write_text(template)

    print_success(f"Created migration file: {filepath}")
