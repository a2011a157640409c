"""
Tenant catalog: tenant databases are discovered from the server's system
catalog by naming convention, never from tenant-specific state.
"""

from typing import List

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from oilgas_common.constants import TENANT_DB_PREFIX
from oilgas_common.identifiers import tenant_id_from_database

_DATABASE_EXISTS = text(
    "SELECT EXISTS(SELECT 1 FROM pg_catalog.pg_database WHERE datname = :name)"
)
_TENANT_DATABASES = text(
    "SELECT datname FROM pg_catalog.pg_database "
    "WHERE datname LIKE :pattern AND datname <> :admin AND NOT datistemplate "
    "ORDER BY datname"
)


class TenantCatalog:
    """
    The administrative database is never a tenant, even when its name carries
    the tenant prefix.
    """

    def __init__(self, engine: AsyncEngine, admin_database: str):
        self.engine = engine
        self.admin_database = admin_database

    def is_admin_database(self, database: str) -> bool:
        return database == self.admin_database

    async def database_exists(self, database: str) -> bool:
        async with self.engine.connect() as conn:
            result = await conn.execute(_DATABASE_EXISTS, {"name": database})
            return bool(result.scalar())

    async def list_tenants(self) -> List[str]:
        """Tenant ids of every oilgas_<id> database, sorted."""
        # _ is a LIKE wildcard; match the prefix literally
        pattern = TENANT_DB_PREFIX.replace("_", "\\_") + "%"
        async with self.engine.connect() as conn:
            result = await conn.execute(
                _TENANT_DATABASES, {"pattern": pattern, "admin": self.admin_database}
            )
            databases = result.scalars().all()

        tenants = []
        for database in databases:
            if self.is_admin_database(database):
                continue
            tenant_id = tenant_id_from_database(database)
            if tenant_id is None:
                logger.warning(f"Ignoring database {database}: not a valid tenant database name")
                continue
            tenants.append(tenant_id)
        return tenants
