"""
Reconciliation of declared migrations with the applied ledger history.

Both functions are pure: they take sequences sorted ascending by version
(the ledger is always queried in ascending order and ``MigrationSet`` sorts
at construction) and never touch the store.
"""

from typing import Optional, Sequence

from docmigrate.core.exceptions import MigrationsAbsentError
from docmigrate.migrations.models import Migration, MigrationRecord, PlanEntry


def merge(
    applied: Sequence[MigrationRecord],
    declared: Sequence[Migration],
    target: Optional[int] = None,
) -> list[PlanEntry]:
    """
    Merge applied records and declared migrations into an apply plan.

    Args:
        applied: Ledger records, ascending by version.
        declared: Declared migrations, ascending by version.
        target: Highest version to include from ``declared``; None means the
            latest declared migration.

    Returns:
        Plan entries ascending by version. Entries with ``applied=False`` are
        the migrations ``up`` must run, in order. On equal versions the
        applied record wins. Declared migrations above ``target`` are left
        out; applied records are always kept.
    """
    merged: list[PlanEntry] = []
    i = j = 0

    if declared:
        bound = (declared[-1].version if target is None else target) + 1
    else:
        bound = 0

    while i < len(applied) and j < len(declared) and declared[j].version < bound:
        if applied[i].version < declared[j].version:
            merged.append(PlanEntry(applied[i], True))
            i += 1
        elif declared[j].version < applied[i].version:
            merged.append(PlanEntry(declared[j], False))
            j += 1
        else:
            merged.append(PlanEntry(applied[i], True))
            i += 1
            j += 1

    merged.extend(PlanEntry(record, True) for record in applied[i:])

    while j < len(declared) and declared[j].version < bound:
        merged.append(PlanEntry(declared[j], False))
        j += 1

    return merged


def correlate(
    applied: Sequence[MigrationRecord],
    declared: Sequence[Migration],
) -> list[Migration]:
    """
    Replace each applied record with the declared migration of the same version.

    Declared migrations that were never applied are skipped.

    Returns:
        The declared migrations matching ``applied``, ascending by version.

    Raises:
        MigrationsAbsentError: An applied record has no declared counterpart.
            ``correlated`` on the error holds the partial result with the
            offending record as its last element.
    """
    correlated: list = []
    i = j = 0

    while i < len(applied) and j < len(declared):
        if applied[i].version < declared[j].version:
            correlated.append(applied[i])
            raise MigrationsAbsentError(applied[i], correlated)
        elif declared[j].version < applied[i].version:
            # never applied, nothing to roll back
            j += 1
        else:
            correlated.append(declared[j])
            i += 1
            j += 1

    if i < len(applied):
        correlated.append(applied[i])
        raise MigrationsAbsentError(applied[i], correlated)

    return correlated
