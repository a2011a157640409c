from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import DBAPIError

from oilgas_common.constants import COUNT_UNAVAILABLE
from oilgas_common.exceptions import InvalidIdentifier, ProvisioningError, TenantNotFound
from oilgas_common.models import RolloutOutcome
from oilgas_migrator.tenants import LIST_TABLES, TenantManager

from fixtures.db_fixtures import *  # noqa


@pytest.fixture
def mock_connector(mock_engine):
    connector = MagicMock()
    connector.engine.side_effect = lambda tenant_id, wait=False: async_cm(mock_engine)
    connector.close = AsyncMock()
    return connector


@pytest.fixture
def manager(mock_engine, mock_catalog, mock_connector):
    return TenantManager(mock_engine, mock_catalog, mock_connector)


@pytest.fixture
def mock_run_migrations():
    with patch(
        "oilgas_migrator.tenants.run_migrations",
        AsyncMock(return_value=["001", "002", "003", "004", "005"]),
    ) as _mock:
        yield _mock


@pytest.fixture
def mock_seed():
    with patch("oilgas_migrator.tenants.seed_reference_data", new_callable=AsyncMock) as _mock:
        yield _mock


def _executed(conn):
    return [call.args[0] for call in conn.exec_driver_sql.await_args_list]


@pytest.mark.asyncio
async def test_create_new_tenant(manager, mock_catalog, mock_connection, mock_connector, mock_run_migrations, mock_seed):
    result = await manager.create("longbeach")

    assert result.created
    assert result.database == "oilgas_longbeach"
    assert result.applied_versions == ["001", "002", "003", "004", "005"]
    assert _executed(mock_connection) == ["CREATE DATABASE \"oilgas_longbeach\" ENCODING 'UTF8'"]
    mock_connector.engine.assert_called_once_with("longbeach", wait=True)
    mock_seed.assert_awaited_once()


@pytest.mark.asyncio
async def test_create_existing_tenant_skips_creation(manager, mock_catalog, mock_connection, mock_run_migrations, mock_seed):
    mock_catalog.database_exists.return_value = True
    mock_run_migrations.return_value = []

    result = await manager.create("longbeach")

    assert not result.created
    assert result.applied_versions == []
    assert _executed(mock_connection) == []
    mock_run_migrations.assert_awaited_once()
    mock_seed.assert_awaited_once()


@pytest.mark.asyncio
async def test_create_tolerates_concurrent_creation(manager, mock_connection, mock_run_migrations, mock_seed):
    orig = Exception("database already exists")
    orig.sqlstate = "42P04"
    mock_connection.exec_driver_sql.side_effect = DBAPIError("CREATE DATABASE", {}, orig)

    result = await manager.create("longbeach")
    assert not result.created


@pytest.mark.asyncio
async def test_create_invalid_id_touches_nothing(manager, mock_catalog, mock_connection):
    with pytest.raises(InvalidIdentifier):
        await manager.create("Long-Beach")
    mock_catalog.database_exists.assert_not_awaited()
    mock_connection.exec_driver_sql.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_reports_failing_stage(manager, mock_run_migrations, mock_seed):
    mock_run_migrations.side_effect = RuntimeError("syntax error at or near")

    with pytest.raises(ProvisioningError) as exc_info:
        await manager.create("longbeach")

    assert exc_info.value.stage == "migration"
    assert exc_info.value.tenant_id == "longbeach"
    assert isinstance(exc_info.value.cause, RuntimeError)
    mock_seed.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_database_failure(manager, mock_connection):
    mock_connection.exec_driver_sql.side_effect = DBAPIError("CREATE DATABASE", {}, Exception("permission denied"))

    with pytest.raises(ProvisioningError) as exc_info:
        await manager.create("longbeach")
    assert exc_info.value.stage == "database creation"


@pytest.mark.asyncio
async def test_drop_existing(manager, mock_catalog, mock_connection, mock_connector):
    mock_catalog.database_exists.return_value = True

    assert await manager.drop("longbeach")
    mock_connector.close.assert_awaited_once_with("longbeach")
    assert _executed(mock_connection) == ['DROP DATABASE IF EXISTS "oilgas_longbeach"']


@pytest.mark.asyncio
async def test_drop_missing_is_not_an_error(manager, mock_catalog):
    mock_catalog.database_exists.return_value = False
    assert not await manager.drop("longbeach")


@pytest.mark.asyncio
async def test_drop_invalid_id(manager, mock_connection):
    with pytest.raises(InvalidIdentifier):
        await manager.drop("x")
    mock_connection.exec_driver_sql.assert_not_awaited()


@pytest.mark.asyncio
async def test_status_requires_existing_tenant(manager, mock_catalog):
    mock_catalog.database_exists.return_value = False
    with pytest.raises(TenantNotFound):
        await manager.status("longbeach")


@pytest.mark.asyncio
async def test_list_with_stats_marks_failed_counts(manager, mock_catalog, mock_connection):
    mock_catalog.list_tenants.return_value = ["ab", "cd"]
    counts = MagicMock()
    counts.scalar.return_value = 7
    last_import = MagicMock()
    last_import.scalar.return_value = None

    async def _execute(statement, *args):
        sql = str(statement)
        if "store.inventory" in sql:
            raise RuntimeError('relation "store.inventory" does not exist')
        return last_import if "MAX(imported_at)" in sql else counts

    mock_connection.execute.side_effect = _execute

    stats = await manager.list_with_stats()

    assert [s.tenant_id for s in stats] == ["ab", "cd"]
    for s in stats:
        assert s.count("customers") == 7
        assert s.count("inventory") == COUNT_UNAVAILABLE
        assert s.count("received") == 7


@pytest.mark.asyncio
async def test_list_with_stats_unreachable_tenant(manager, mock_catalog, mock_connector):
    mock_catalog.list_tenants.return_value = ["ab"]
    mock_connector.engine.side_effect = OSError("connection refused")

    stats = await manager.list_with_stats()
    assert stats[0].counts == {table: COUNT_UNAVAILABLE for table in LIST_TABLES}


@pytest.mark.asyncio
async def test_migrate_all_collects_failures(manager, mock_catalog):
    mock_catalog.list_tenants.return_value = ["ab", "cd", "ef"]

    async def _migrate(tenant_id):
        if tenant_id == "cd":
            raise RuntimeError("lock timeout")
        return ["005"] if tenant_id == "ab" else []

    with patch.object(manager, "migrate", side_effect=_migrate):
        report = await manager.migrate_all()

    outcomes = {r.tenant_id: r.outcome for r in report.results}
    assert outcomes == {
        "ab": RolloutOutcome.SUCCESS,
        "cd": RolloutOutcome.ERROR,
        "ef": RolloutOutcome.SUCCESS,
    }
    assert not report.ok


@pytest.mark.asyncio
async def test_admin_database_is_never_a_tenant(manager, mock_catalog, mock_connection):
    mock_catalog.admin_database = "oilgas_inventory_local"

    with pytest.raises(InvalidIdentifier):
        await manager.create("inventory_local")
    with pytest.raises(InvalidIdentifier):
        await manager.drop("inventory_local")

    mock_catalog.database_exists.assert_not_awaited()
    mock_connection.exec_driver_sql.assert_not_awaited()
