"""
docmigrate - ordered, reversible migrations for MongoDB.

Applied migrations are recorded as documents in a `<prefix>_migrations`
ledger collection; the Migrator reconciles that ledger with the migrations
declared in code.
"""

__version__ = "1.0.0"
