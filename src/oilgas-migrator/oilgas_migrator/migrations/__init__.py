"""
Schema migrations: the ordered script set applied identically to every tenant
database and, with central-only extras, to the central database.

Each step has a unique three digit key. Steps run in sorted key order, each in
its own transaction together with its tracker row. Keys already present in the
tracker are skipped, and every statement is idempotent on its own, so a run
interrupted half way can simply be repeated. On any failure the step is not
recorded and the error is re-raised.
"""

import re
from typing import Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from oilgas_common.models import MigrationRecord

from oilgas_migrator.migrations.base import MigrationScope, MigrationStep
from oilgas_migrator.migrations.migrations import (
    CreateAuthTables,
    CreateCustomers,
    CreateInventoryAndReceived,
    CreatePerformanceIndexes,
    CreateReferenceTables,
    CreateSchemas,
)
from oilgas_migrator.tracker import applied_migrations, ensure_tracker, record_migration

# Registry: unique key -> step. Run in sorted order by key.
MIGRATIONS: Dict[str, MigrationStep] = {
    "001": CreateSchemas(),
    "002": CreateReferenceTables(),
    "003": CreateCustomers(),
    "004": CreateInventoryAndReceived(),
    "005": CreatePerformanceIndexes(),
    "006": CreateAuthTables(),
}

# Key format: three digits. Enforced at import.
_MIGRATION_KEY_RE = re.compile(r"^\d{3}$")


def _assert_migration_keys_valid() -> None:
    """Enforce at load time that keys are unique and well formed, and names are set."""
    keys = list(MIGRATIONS.keys())
    assert len(keys) == len(set(keys)), "migration keys must be unique"
    for k, step in MIGRATIONS.items():
        assert _MIGRATION_KEY_RE.match(k), f"migration key must be three digits, got {k!r}"
        assert step.name, f"migration {k} has no name"


_assert_migration_keys_valid()


def migrations_for(scope: MigrationScope) -> List[Tuple[str, MigrationStep]]:
    return [(key, MIGRATIONS[key]) for key in sorted(MIGRATIONS) if MIGRATIONS[key].applies_to(scope)]


def latest_known_version(scope: MigrationScope = MigrationScope.TENANT) -> str:
    return migrations_for(scope)[-1][0]


async def run_migrations(
    engine: AsyncEngine, scope: MigrationScope = MigrationScope.TENANT, label: str = ""
) -> List[str]:
    """
    Apply every pending step for the given scope. Returns the keys applied by
    this call (empty when the database was already up to date).
    """
    label = label or scope.value
    async with engine.begin() as conn:
        await ensure_tracker(conn)
        applied = await applied_migrations(conn)

    newly_applied: List[str] = []
    for key, step in migrations_for(scope):
        if key in applied:
            logger.debug(f"[{label}] migration {key} ({step.name}) already applied, skipping")
            continue
        try:
            async with engine.begin() as conn:
                await step.run(conn, scope)
                await record_migration(conn, key, step.name)
        except Exception as exc:
            logger.error(f"[{label}] migration {key} ({step.name}) failed: {exc}")
            raise
        logger.success(f"[{label}] migration {key} ({step.name}) completed")
        newly_applied.append(key)

    if not newly_applied:
        logger.info(f"[{label}] no pending migrations")
    return newly_applied


async def migration_status(
    engine: AsyncEngine, scope: MigrationScope = MigrationScope.TENANT
) -> List[Tuple[str, str, Optional[MigrationRecord]]]:
    """(key, name, record-or-None) for every step of the scope, in order."""
    async with engine.begin() as conn:
        await ensure_tracker(conn)
        applied = await applied_migrations(conn)
    return [(key, step.name, applied.get(key)) for key, step in migrations_for(scope)]
