"""
Composition root: builds the engine and every component once, shares them by
reference and disposes the engine on shutdown.
"""

from typing import List

from loguru import logger

from oilgas_common.connection import database_name, redact

from oilgas_migrator.catalog import TenantCatalog
from oilgas_migrator.config import MigratorSettings
from oilgas_migrator.consistency import ConsistencyChecker
from oilgas_migrator.database import TenantConnector, create_admin_engine
from oilgas_migrator.migrations import MigrationScope, migration_status, run_migrations
from oilgas_migrator.rollout import RolloutCoordinator
from oilgas_migrator.tenants import TenantManager


class Migrator:
    def __init__(self, settings: MigratorSettings):
        self.settings = settings
        self.engine = create_admin_engine(settings)
        self.connector = TenantConnector(settings)
        self.catalog = TenantCatalog(self.engine, database_name(settings.database_url))
        self.tenants = TenantManager(self.engine, self.catalog, self.connector)
        self.rollout = RolloutCoordinator(
            self.catalog,
            self.connector.connect,
            concurrency=settings.rollout_concurrency,
            timeout=settings.rollout_timeout,
        )
        self.consistency = ConsistencyChecker(self.catalog, self.connector.connect)

    async def migrate_central(self) -> List[str]:
        """Apply the central scope (tenant tables plus auth) to the administrative database."""
        logger.info(f"Migrating central database {redact(self.settings.database_url)}")
        return await run_migrations(self.engine, MigrationScope.CENTRAL, label="central")

    async def central_status(self):
        return await migration_status(self.engine, MigrationScope.CENTRAL)

    async def tenant_status(self, tenant_id: str):
        await self.tenants.require(tenant_id)
        async with self.connector.engine(tenant_id) as engine:
            return await migration_status(engine, MigrationScope.TENANT)

    async def close(self) -> None:
        await self.engine.dispose()

    async def __aenter__(self) -> "Migrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
