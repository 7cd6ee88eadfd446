"""
Custom exception classes for the migrator.

This module provides:
- Error codes for programmatic error handling
- Usage errors (bad or missing command / argument)
- Precondition errors, reported before any ledger mutation
- Consistency and partial-application errors
"""

from typing import Any


class ErrorCode:
    """Error codes for programmatic error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"

    # Usage errors (2xxx)
    COMMAND_REQUIRED = "ERR_2001"
    UNEXPECTED_COMMAND = "ERR_2002"
    VERSION_NUMBER_REQUIRED = "ERR_2003"
    INVALID_VERSION_FORMAT = "ERR_2004"

    # Precondition errors (3xxx)
    LEDGER_ALREADY_INITIALIZED = "ERR_3001"
    TARGET_VERSION_NOT_FOUND = "ERR_3002"
    NO_MIGRATIONS = "ERR_3003"

    # Consistency errors (4xxx)
    MIGRATIONS_ABSENT = "ERR_4001"

    # Execution errors (5xxx)
    MIGRATION_FAILED = "ERR_5001"

    # Store errors (6xxx)
    LEDGER_STORE_ERROR = "ERR_6001"

    # Definition errors (7xxx)
    DUPLICATE_MIGRATION = "ERR_7001"
    INVALID_MIGRATION = "ERR_7002"
    MIGRATION_LOAD_FAILED = "ERR_7003"


class MigrationError(Exception):
    """
    Base exception for all migrator errors.

    ``old_version``/``new_version`` are set when the error is raised after the
    ledger may already have changed, so the caller knows where to resume.
    """

    error_code: str = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        old_version: int | None = None,
        new_version: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.old_version = old_version
        self.new_version = new_version

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for logs and JSON output."""
        return {
            "error": self.__class__.__name__,
            "code": self.error_code,
            "message": self.message,
            "old_version": self.old_version,
            "new_version": self.new_version,
        }


# =============================================================================
# Usage Errors
# =============================================================================


class UsageError(MigrationError):
    """Base class for malformed invocations."""


class CommandRequiredError(UsageError):
    """Raised when no command was given."""

    error_code = ErrorCode.COMMAND_REQUIRED

    def __init__(self):
        super().__init__("Command required")


class UnexpectedCommandError(UsageError):
    """Raised when the command is not recognized."""

    error_code = ErrorCode.UNEXPECTED_COMMAND

    def __init__(self, command: str):
        super().__init__(f"Unexpected command: {command}")
        self.command = command


class VersionNumberRequiredError(UsageError):
    """Raised when a command requires a version argument and none was given."""

    error_code = ErrorCode.VERSION_NUMBER_REQUIRED

    def __init__(self):
        super().__init__("Version number required")


class InvalidVersionFormatError(UsageError):
    """Raised when the version argument is not a signed 64-bit integer."""

    error_code = ErrorCode.INVALID_VERSION_FORMAT

    def __init__(self, value: str):
        super().__init__(f"Invalid version argument format: {value!r}")
        self.value = value


# =============================================================================
# Precondition Errors
# =============================================================================


class LedgerAlreadyInitializedError(MigrationError):
    """Raised by init when the root record is already present."""

    error_code = ErrorCode.LEDGER_ALREADY_INITIALIZED

    def __init__(self, collection: str):
        super().__init__(f"Migrations ledger already exists: {collection}")
        self.collection = collection


class TargetVersionNotFoundError(MigrationError):
    """Raised when the target version is not among the declared migrations."""

    error_code = ErrorCode.TARGET_VERSION_NOT_FOUND

    def __init__(self, version: int):
        super().__init__(f"Target version not found: {version}")
        self.version = version


class NoMigrationsError(MigrationError):
    """Raised when the ledger holds no applied records but one is expected."""

    error_code = ErrorCode.NO_MIGRATIONS

    def __init__(self, old_version: int | None = None, new_version: int | None = None):
        super().__init__("No applied migrations found", old_version, new_version)


# =============================================================================
# Consistency and Execution Errors
# =============================================================================


class MigrationsAbsentError(MigrationError):
    """
    Raised when an applied record has no matching declared migration.

    Attributes:
        record: The applied record without a declaration.
        correlated: Migrations correlated so far, ending with ``record``.
    """

    error_code = ErrorCode.MIGRATIONS_ABSENT

    def __init__(self, record: Any, correlated: list | None = None):
        super().__init__(
            f"Some migrations are absent: version {record.version} ({record.name}) "
            "is applied but not declared"
        )
        self.record = record
        self.correlated = correlated if correlated is not None else [record]


class MigrationExecutionError(MigrationError):
    """Raised when an up/down body fails; earlier steps stay committed."""

    error_code = ErrorCode.MIGRATION_FAILED

    def __init__(
        self,
        version: int,
        direction: str,
        error: BaseException,
        old_version: int | None = None,
        new_version: int | None = None,
    ):
        super().__init__(
            f"Migration {version} {direction} failed: {error}",
            old_version=old_version,
            new_version=new_version,
        )
        self.version = version
        self.direction = direction


class LedgerStoreError(MigrationError):
    """Raised when the document store rejects a ledger operation."""

    error_code = ErrorCode.LEDGER_STORE_ERROR


# =============================================================================
# Definition Errors
# =============================================================================


class DuplicateMigrationError(MigrationError):
    """Raised when two declared migrations share a version."""

    error_code = ErrorCode.DUPLICATE_MIGRATION

    def __init__(self, version: int):
        super().__init__(f"Duplicate migration version: {version}")
        self.version = version


class InvalidMigrationError(MigrationError):
    """Raised when a declared migration is malformed."""

    error_code = ErrorCode.INVALID_MIGRATION


class MigrationLoadError(MigrationError):
    """Raised when a migration file cannot be loaded."""

    error_code = ErrorCode.MIGRATION_LOAD_FAILED
