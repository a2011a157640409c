"""
Tenant lifecycle: create (idempotent), drop, list, status and re-migration of
tenant databases. The only component allowed to create or destroy a tenant
database.
"""

from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine

from oilgas_common.constants import COUNT_UNAVAILABLE
from oilgas_common.exceptions import InvalidIdentifier, ProvisioningError, TenantNotFound
from oilgas_common.identifiers import tenant_database_name
from oilgas_common.models import (
    ProvisioningResult,
    RolloutOutcome,
    RolloutReport,
    RolloutResult,
    TenantStats,
)

from oilgas_migrator.catalog import TenantCatalog
from oilgas_migrator.database import TenantConnector, autocommit
from oilgas_migrator.migrations import MigrationScope, run_migrations
from oilgas_migrator.migrations.seeds import seed_reference_data

# Tables reported by list/status
STATUS_TABLES = ("customers", "inventory", "received", "grade", "sizes")
LIST_TABLES = ("customers", "inventory", "received")

_DUPLICATE_DATABASE = "42P04"


def _is_duplicate_database(exc: Exception) -> bool:
    return isinstance(exc, DBAPIError) and getattr(exc.orig, "sqlstate", None) == _DUPLICATE_DATABASE


class TenantManager:
    def __init__(self, engine: AsyncEngine, catalog: TenantCatalog, connector: TenantConnector):
        self.admin = autocommit(engine)
        self.catalog = catalog
        self.connector = connector

    def _database(self, tenant_id: str) -> str:
        database = tenant_database_name(tenant_id)
        if self.catalog.is_admin_database(database):
            raise InvalidIdentifier(tenant_id, f"{database} is the administrative database")
        return database

    async def _create_database(self, database: str) -> bool:
        """CREATE DATABASE unless it exists. Returns True when this call created it."""
        if await self.catalog.database_exists(database):
            logger.info(f"Database {database} already exists, skipping creation")
            return False
        try:
            async with self.admin.connect() as conn:
                # identifier was validated; it cannot contain a quote
                await conn.exec_driver_sql(f"CREATE DATABASE \"{database}\" ENCODING 'UTF8'")
        except DBAPIError as exc:
            if not _is_duplicate_database(exc):
                raise
            logger.info(f"Database {database} was created concurrently, continuing")
            return False
        logger.success(f"Database created: {database}")
        return True

    async def create(self, tenant_id: str) -> ProvisioningResult:
        """
        Create the tenant database if missing, then migrate and seed it.

        Every step is idempotent, so a create that failed half way is completed
        by simply running it again. Nothing is rolled back on failure.
        """
        database = self._database(tenant_id)
        logger.info(f"Creating tenant database: {database}")

        stage = "database creation"
        try:
            created = await self._create_database(database)
            stage = "connection"
            async with self.connector.engine(tenant_id, wait=True) as engine:
                stage = "migration"
                applied = await run_migrations(engine, MigrationScope.TENANT, label=tenant_id)
                stage = "seeding"
                async with engine.begin() as conn:
                    await seed_reference_data(conn)
        except Exception as exc:
            logger.error(f"Provisioning tenant {tenant_id} failed during {stage}: {exc}")
            raise ProvisioningError(tenant_id, stage, exc) from exc

        logger.success(f"Tenant database ready: {database}")
        return ProvisioningResult(
            tenant_id=tenant_id, database=database, created=created, applied_versions=applied
        )

    async def drop(self, tenant_id: str) -> bool:
        """
        Drop the tenant database. Destructive and irreversible; confirmation is
        the caller's job. Returns False when there was nothing to drop.
        """
        database = self._database(tenant_id)
        logger.warning(f"Dropping tenant database: {database}")

        await self.connector.close(tenant_id)
        existed = await self.catalog.database_exists(database)
        async with self.admin.connect() as conn:
            await conn.exec_driver_sql(f'DROP DATABASE IF EXISTS "{database}"')

        if existed:
            logger.success(f"Tenant database dropped: {database}")
        else:
            logger.info(f"Tenant database {database} did not exist")
        return existed

    async def reset(self, tenant_id: str) -> ProvisioningResult:
        """Drop and re-create a tenant database from scratch."""
        await self.drop(tenant_id)
        return await self.create(tenant_id)

    async def list(self) -> List[str]:
        return await self.catalog.list_tenants()

    async def require(self, tenant_id: str) -> str:
        database = self._database(tenant_id)
        if not await self.catalog.database_exists(database):
            raise TenantNotFound(f"Tenant database {database} does not exist")
        return database

    async def _count_rows(self, tenant_id: str, tables) -> TenantStats:
        stats = TenantStats(tenant_id=tenant_id)
        try:
            async with self.connector.engine(tenant_id) as engine:
                # autocommit so one failing count does not abort the others
                async with autocommit(engine).connect() as conn:
                    for table in tables:
                        try:
                            result = await conn.execute(text(f"SELECT COUNT(*) FROM store.{table}"))
                            stats.counts[table] = int(result.scalar())
                        except Exception as exc:
                            logger.warning(f"Tenant {tenant_id}: counting store.{table} failed: {exc}")
                            stats.counts[table] = COUNT_UNAVAILABLE
                    try:
                        result = await conn.execute(
                            text("SELECT MAX(imported_at) FROM store.customers")
                        )
                        stats.last_import = result.scalar()
                    except Exception as exc:
                        logger.warning(f"Tenant {tenant_id}: reading last import failed: {exc}")
        except Exception as exc:
            logger.warning(f"Tenant {tenant_id}: database not reachable for stats: {exc}")
            stats.counts = {table: COUNT_UNAVAILABLE for table in tables}
        return stats

    async def list_with_stats(self) -> List[TenantStats]:
        """List tenants with best-effort row counts; a failed count never aborts the listing."""
        return [await self._count_rows(t, LIST_TABLES) for t in await self.list()]

    async def status(self, tenant_id: str) -> TenantStats:
        await self.require(tenant_id)
        return await self._count_rows(tenant_id, STATUS_TABLES)

    async def migrate(self, tenant_id: str) -> List[str]:
        """Apply pending migration steps to an existing tenant database."""
        await self.require(tenant_id)
        async with self.connector.engine(tenant_id) as engine:
            return await run_migrations(engine, MigrationScope.TENANT, label=tenant_id)

    async def migrate_all(self, tenant_ids: Optional[List[str]] = None) -> RolloutReport:
        """
        Bring every tenant up to date, one at a time. Failures are collected per
        tenant and never stop the remaining tenants.
        """
        tenant_ids = tenant_ids if tenant_ids is not None else await self.list()
        results: Dict[str, RolloutResult] = {}
        for tenant_id in tenant_ids:
            try:
                applied = await self.migrate(tenant_id)
            except Exception as exc:
                logger.error(f"Tenant {tenant_id}: migration failed: {exc}")
                results[tenant_id] = RolloutResult(
                    tenant_id=tenant_id, outcome=RolloutOutcome.ERROR, reason=str(exc)
                )
                continue
            reason = f"applied {', '.join(applied)}" if applied else "up to date"
            results[tenant_id] = RolloutResult(
                tenant_id=tenant_id, outcome=RolloutOutcome.SUCCESS, reason=reason
            )
        return RolloutReport(statement="apply pending migrations", results=list(results.values()))
