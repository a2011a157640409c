import re
from unittest.mock import AsyncMock, patch

import pytest

from oilgas_common.models import MigrationRecord
from oilgas_migrator.migrations import (
    MIGRATIONS,
    MigrationScope,
    latest_known_version,
    migration_status,
    migrations_for,
    run_migrations,
)
from oilgas_migrator.migrations.migrations import CreateAuthTables, CreateSchemas

from fixtures.db_fixtures import *  # noqa


@pytest.fixture
def tracker():
    """Patch the tracker helpers with an in-memory version table."""
    rows = {}

    async def _applied(conn):
        return {v: MigrationRecord(version=v, name=n) for v, n in rows.items()}

    async def _record(conn, version, name):
        rows.setdefault(version, name)

    with (
        patch("oilgas_migrator.migrations.ensure_tracker", new_callable=AsyncMock),
        patch("oilgas_migrator.migrations.applied_migrations", side_effect=_applied),
        patch("oilgas_migrator.migrations.record_migration", side_effect=_record),
    ):
        yield rows


def test_migration_keys_are_three_digits_and_ordered():
    keys = list(MIGRATIONS)
    assert keys == sorted(keys)
    assert all(re.match(r"^\d{3}$", k) for k in keys)
    assert all(step.name for step in MIGRATIONS.values())


def test_tenant_scope_excludes_central_only_steps():
    tenant_keys = [k for k, _ in migrations_for(MigrationScope.TENANT)]
    central_keys = [k for k, _ in migrations_for(MigrationScope.CENTRAL)]
    assert tenant_keys == ["001", "002", "003", "004", "005"]
    assert central_keys == tenant_keys + ["006"]
    assert latest_known_version(MigrationScope.TENANT) == "005"
    assert latest_known_version(MigrationScope.CENTRAL) == "006"


def test_central_schemas_include_auth():
    step = CreateSchemas()
    assert not any("auth" in s for s in step.statements_for(MigrationScope.TENANT))
    assert any("auth" in s for s in step.statements_for(MigrationScope.CENTRAL))
    assert not CreateAuthTables().applies_to(MigrationScope.TENANT)


def test_every_statement_is_idempotent():
    for key, step in MIGRATIONS.items():
        for statement in step.statements_for(MigrationScope.CENTRAL):
            upper = statement.upper()
            assert "IF NOT EXISTS" in upper or "ON CONFLICT" in upper, f"{key}: {statement}"


@pytest.mark.asyncio
async def test_run_migrations_is_idempotent(mock_engine, mock_connection, tracker):
    first = await run_migrations(mock_engine, MigrationScope.TENANT, label="ab")
    executed = mock_connection.exec_driver_sql.await_count

    second = await run_migrations(mock_engine, MigrationScope.TENANT, label="ab")

    assert first == ["001", "002", "003", "004", "005"]
    assert second == []
    assert mock_connection.exec_driver_sql.await_count == executed
    assert sorted(tracker) == first


@pytest.mark.asyncio
async def test_run_migrations_resumes_after_partial_run(mock_engine, tracker):
    tracker.update({"001": "create_schemas", "002": "create_reference_tables"})
    applied = await run_migrations(mock_engine, MigrationScope.TENANT)
    assert applied == ["003", "004", "005"]


@pytest.mark.asyncio
async def test_failed_step_is_not_recorded(mock_engine, mock_connection, tracker):
    async def _exec(sql):
        if "store.customers" in sql and "CREATE TABLE" in sql:
            raise RuntimeError("permission denied for schema store")

    mock_connection.exec_driver_sql.side_effect = _exec

    with pytest.raises(RuntimeError):
        await run_migrations(mock_engine, MigrationScope.TENANT)

    assert sorted(tracker) == ["001", "002"]


@pytest.mark.asyncio
async def test_migration_status_marks_pending(mock_engine, tracker):
    tracker["001"] = "create_schemas"
    status = await migration_status(mock_engine, MigrationScope.TENANT)

    assert [key for key, _, _ in status] == ["001", "002", "003", "004", "005"]
    assert status[0][2] is not None
    assert all(record is None for _, _, record in status[1:])


def test_no_statement_runs_twice_in_a_scope():
    for scope in MigrationScope:
        statements = [s.strip() for _, step in migrations_for(scope) for s in step.statements_for(scope)]
        assert len(statements) == len(set(statements)), scope
