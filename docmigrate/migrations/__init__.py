"""
MongoDB Migration System.

This module provides a versioned migration framework: declared migrations
are reconciled with a ledger collection of applied migrations and applied or
rolled back in version order.
"""

from docmigrate.migrations.ledger import LedgerStore, MongoLedgerStore
from docmigrate.migrations.loader import discover_migrations
from docmigrate.migrations.migrator import Migrator, parse_version
from docmigrate.migrations.models import (
    NO_VERSION,
    Migration,
    MigrationRecord,
    MigrationSet,
    PlanEntry,
    VersionChange,
)
from docmigrate.migrations.reconciler import correlate, merge

__all__ = [
    "NO_VERSION",
    "LedgerStore",
    "Migration",
    "MigrationRecord",
    "MigrationSet",
    "Migrator",
    "MongoLedgerStore",
    "PlanEntry",
    "VersionChange",
    "correlate",
    "discover_migrations",
    "merge",
    "parse_version",
]
