"""
Schema drift detection: compare the latest applied version across tenants.
"""

from loguru import logger

from oilgas_common.models import ConsistencyReport, SchemaVersionSnapshot

from oilgas_migrator.catalog import TenantCatalog
from oilgas_migrator.rollout import Connect
from oilgas_migrator.tracker import latest_version


class ConsistencyChecker:
    def __init__(self, catalog: TenantCatalog, connect: Connect):
        self.catalog = catalog
        self.connect = connect

    async def snapshot(self, tenant_id: str) -> SchemaVersionSnapshot:
        async with self.connect(tenant_id) as conn:
            version = await latest_version(conn)
        return SchemaVersionSnapshot(tenant_id=tenant_id, latest_version=version)

    async def check(self) -> ConsistencyReport:
        """
        Read every tenant's latest version, one tenant at a time. A tenant whose
        version cannot be read is logged and left out of the grouping.
        """
        report = ConsistencyReport()
        for tenant_id in await self.catalog.list_tenants():
            try:
                report.snapshots.append(await self.snapshot(tenant_id))
            except Exception as exc:
                logger.error(f"Tenant {tenant_id}: could not read schema version: {exc}")
                report.unreadable[tenant_id] = str(exc)

        if report.consistent:
            versions = list(report.groups)
            logger.info(
                f"Schema consistent across {len(report.snapshots)} tenant(s)"
                + (f" at version {versions[0]}" if versions else "")
            )
        else:
            for version, tenants in sorted(report.groups.items()):
                logger.warning(f"Version {version}: {len(tenants)} tenant(s): {', '.join(tenants)}")
        return report
