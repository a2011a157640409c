"""
Runs the full migration set twice against a real, empty Postgres database.
Skipped unless TEST_DATABASE_URL points at a disposable database.
"""

import os

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from oilgas_migrator.database import sqlalchemy_url
from oilgas_migrator.migrations import MigrationScope, latest_known_version, run_migrations
from oilgas_migrator.migrations.seeds import GRADES, SIZES, seed_reference_data
from oilgas_migrator.tracker import latest_version

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set")


@pytest.mark.asyncio
async def test_migrations_and_seeds_are_idempotent():
    engine = create_async_engine(sqlalchemy_url(TEST_DATABASE_URL), poolclass=NullPool)
    try:
        first = await run_migrations(engine, MigrationScope.TENANT, label="live")
        async with engine.begin() as conn:
            await seed_reference_data(conn)

        second = await run_migrations(engine, MigrationScope.TENANT, label="live")
        async with engine.begin() as conn:
            await seed_reference_data(conn)

        assert second == []
        assert first == [] or first[-1] == latest_known_version(MigrationScope.TENANT)

        async with engine.connect() as conn:
            rows = (
                await conn.execute(
                    text("SELECT version, COUNT(*) FROM migrations.schema_migrations GROUP BY version")
                )
            ).all()
            grades = (await conn.execute(text("SELECT COUNT(*) FROM store.grade"))).scalar()
            sizes = (await conn.execute(text("SELECT COUNT(*) FROM store.sizes"))).scalar()
            version = await latest_version(conn)

        assert all(count == 1 for _, count in rows)
        assert {v for v, _ in rows} >= {"001", "002", "003", "004", "005"}
        assert grades == len(GRADES)
        assert sizes == len(SIZES)
        assert version == latest_known_version(MigrationScope.TENANT)
    finally:
        await engine.dispose()
