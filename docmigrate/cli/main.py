"""CLI entry point for docmigrate."""

from typing import Annotated, Optional

import typer
from rich.console import Console

from docmigrate import __version__
from docmigrate.cli.commands import migrate

# Create main app
app = typer.Typer(
    name="docmigrate",
    help="docmigrate CLI - Apply and roll back MongoDB migrations",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register sub-commands
app.add_typer(migrate.migrate_app, name="migrate", help="Database migration commands")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"docmigrate version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    mongodb: Annotated[
        Optional[str],
        typer.Option("--mongodb", envvar="MONGODB", help="MongoDB connection URL"),
    ] = None,
    database: Annotated[
        Optional[str],
        typer.Option("--database", "-d", envvar="MONGODB_DATABASE", help="Database name"),
    ] = None,
    prefix: Annotated[
        Optional[str],
        typer.Option(
            "--prefix", "-p", envvar="MIGRATIONS_PREFIX", help="Namespace prefix of the ledger"
        ),
    ] = None,
    migrations_dir: Annotated[
        Optional[str],
        typer.Option(
            "--migrations-dir", "-m", envvar="MIGRATIONS_DIR", help="Directory of migration files"
        ),
    ] = None,
) -> None:
    """
    docmigrate CLI.

    Applied migrations are recorded in the [cyan]<prefix>_migrations[/cyan] collection.

    [bold]Quick Start:[/bold]

        # Create the ledger
        docmigrate migrate init

        # Apply all pending migrations
        docmigrate migrate up

        # Roll back the latest migration
        docmigrate migrate down

        # Show applied and pending migrations
        docmigrate migrate status

    [bold]Environment Variables:[/bold]

        MONGODB            - MongoDB connection URL
        MONGODB_DATABASE   - Database name
        MIGRATIONS_PREFIX  - Namespace prefix
        MIGRATIONS_DIR     - Directory of migration files
    """
    ctx.obj = {
        "mongodb": mongodb,
        "database": database,
        "prefix": prefix,
        "migrations_dir": migrations_dir,
    }


if __name__ == "__main__":
    app()
