"""
Database setup/config/funcs.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Set

import backoff
from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from oilgas_common.connection import asyncpg_connect_args, derive_connection_string, redact
from oilgas_common.identifiers import tenant_database_name
from oilgas_migrator.config import MigratorSettings


def sqlalchemy_url(connection_string: str) -> URL:
    """
    Convert an operator connection string (postgres://...) into an asyncpg URL.
    libpq's sslmode is spelled ssl for asyncpg; the remaining query parameters
    are passed as connect_args (see asyncpg_connect_args).
    """
    url = make_url(connection_string).set(drivername="postgresql+asyncpg")
    sslmode = url.query.get("sslmode")
    return url.set(query={"ssl": sslmode} if sslmode is not None else {})


def create_admin_engine(settings: MigratorSettings) -> AsyncEngine:
    """
    Pooled engine for the administrative (central) database. Outlives every
    tenant engine; disposed once at shutdown.
    """
    return create_async_engine(
        sqlalchemy_url(settings.database_url),
        connect_args=asyncpg_connect_args(settings.database_url),
        echo=settings.debug,
        pool_size=5,
        max_overflow=5,
        pool_timeout=30,
        pool_pre_ping=True,
    )


def autocommit(engine: AsyncEngine) -> AsyncEngine:
    """CREATE/DROP DATABASE cannot run inside a transaction block."""
    return engine.execution_options(isolation_level="AUTOCOMMIT")


async def ping(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


class TenantConnector:
    """
    Opens short-lived, unpooled connections to tenant databases derived from
    the administrative connection string. Nothing is cached between
    operations; open engines are only tracked so a drop can close them.
    """

    def __init__(self, settings: MigratorSettings):
        self.admin_url = settings.database_url
        self.echo = settings.debug
        self.connect_retries = settings.tenant_connect_retries
        self._open: Dict[str, Set[AsyncEngine]] = {}

    def connection_string(self, tenant_id: str) -> str:
        return derive_connection_string(self.admin_url, tenant_database_name(tenant_id))

    @asynccontextmanager
    async def engine(self, tenant_id: str, wait: bool = False) -> AsyncGenerator[AsyncEngine, None]:
        """
        Engine bound to one tenant database, disposed on exit. With wait=True
        the database is pinged (with retries) before the engine is handed out,
        for databases that were created moments ago.
        """
        connection_string = self.connection_string(tenant_id)
        engine = create_async_engine(
            sqlalchemy_url(connection_string),
            connect_args=asyncpg_connect_args(connection_string),
            echo=self.echo,
            poolclass=NullPool,
        )
        self._open.setdefault(tenant_id, set()).add(engine)
        try:
            if wait:
                await self._wait_until_ready(engine, tenant_id, connection_string)
            yield engine
        finally:
            self._open.get(tenant_id, set()).discard(engine)
            if not self._open.get(tenant_id):
                self._open.pop(tenant_id, None)
            await engine.dispose()

    @asynccontextmanager
    async def connect(self, tenant_id: str) -> AsyncGenerator[AsyncConnection, None]:
        async with self.engine(tenant_id) as engine:
            async with engine.connect() as conn:
                yield conn

    async def _wait_until_ready(
        self, engine: AsyncEngine, tenant_id: str, connection_string: str
    ) -> None:
        def _on_backoff(details):
            logger.warning(
                f"Tenant {tenant_id} database not reachable yet ({redact(connection_string)}), "
                f"attempt {details['tries']}/{self.connect_retries}"
            )

        retrying_ping = backoff.on_exception(
            backoff.constant,
            (OSError, DBAPIError),
            jitter=None,
            interval=1,
            max_tries=self.connect_retries,
            on_backoff=_on_backoff,
        )(ping)
        await retrying_ping(engine)

    async def close(self, tenant_id: str) -> None:
        """Dispose every engine currently open against the tenant's database."""
        engines = self._open.pop(tenant_id, set())
        for engine in engines:
            await engine.dispose()
        if engines:
            logger.info(f"Closed {len(engines)} open connection(s) to tenant {tenant_id}")
