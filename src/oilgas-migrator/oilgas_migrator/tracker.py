"""
Schema version tracker: migrations.schema_migrations, the sole record of what
has been applied to a database.
"""

from typing import Dict

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.schema import CreateSchema

from oilgas_common.constants import NO_VERSION, TRACKER_SCHEMA
from oilgas_common.models import MigrationRecord
from oilgas_common.schemas.schema_migration import SchemaMigration


async def ensure_tracker(conn: AsyncConnection) -> None:
    """Create the tracker schema and table if missing."""
    await conn.execute(CreateSchema(TRACKER_SCHEMA, if_not_exists=True))
    await conn.run_sync(
        lambda sync_conn: SchemaMigration.__table__.create(sync_conn, checkfirst=True)
    )


async def applied_migrations(conn: AsyncConnection) -> Dict[str, MigrationRecord]:
    """Every recorded version, oldest first."""
    result = await conn.execute(
        select(SchemaMigration.version, SchemaMigration.name, SchemaMigration.applied_at)
        .order_by(SchemaMigration.applied_at, SchemaMigration.version)
    )
    return {
        row.version: MigrationRecord(version=row.version, name=row.name, applied_at=row.applied_at)
        for row in result.all()
    }


async def record_migration(conn: AsyncConnection, version: str, name: str) -> None:
    """Record a version; a version that is already present is left untouched."""
    await conn.execute(
        insert(SchemaMigration)
        .values(version=version, name=name)
        .on_conflict_do_nothing(index_elements=[SchemaMigration.version])
    )


async def latest_version(conn: AsyncConnection) -> str:
    """Most recently applied version, or NO_VERSION for an empty tracker."""
    result = await conn.execute(
        select(SchemaMigration.version)
        .order_by(SchemaMigration.applied_at.desc(), SchemaMigration.version.desc())
        .limit(1)
    )
    version = result.scalar_one_or_none()
    return version if version is not None else NO_VERSION


async def has_version(conn: AsyncConnection, version: str) -> bool:
    result = await conn.execute(
        select(SchemaMigration.version).where(SchemaMigration.version == version)
    )
    return result.scalar_one_or_none() is not None
