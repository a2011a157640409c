"""
Rollout of one operator-supplied schema change to every tenant database.

The statement is dry-run (executed, then rolled back) against one tenant
first; if that fails nothing is touched. It is then applied to every tenant in
its own connection and transaction, at most `concurrency` tenants at a time.
Rollout is best effort per tenant, not atomic across tenants: a failure in one
tenant never rolls back or blocks another, and every tenant's outcome ends up
in the report.
"""

import asyncio
from contextlib import AbstractAsyncContextManager
from typing import Callable, Dict, List, Optional, Set

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncConnection

from oilgas_common.constants import DEFAULT_ROLLOUT_CONCURRENCY
from oilgas_common.exceptions import PerTenantExecutionError, ValidationError
from oilgas_common.models import RolloutOutcome, RolloutReport, RolloutResult

from oilgas_migrator.catalog import TenantCatalog
from oilgas_migrator.tracker import has_version, record_migration

Connect = Callable[[str], AbstractAsyncContextManager[AsyncConnection]]


class RolloutCoordinator:
    def __init__(
        self,
        catalog: TenantCatalog,
        connect: Connect,
        concurrency: int = DEFAULT_ROLLOUT_CONCURRENCY,
        timeout: Optional[float] = None,
    ):
        self.catalog = catalog
        self.connect = connect
        self.concurrency = concurrency
        self.timeout = timeout

    async def _already_recorded(self, tenant_id: str, version: Optional[str]) -> bool:
        if version is None:
            return False
        async with self.connect(tenant_id) as conn:
            return await has_version(conn, version)

    async def _execute(
        self, conn: AsyncConnection, sql: str, version: Optional[str], name: Optional[str]
    ) -> None:
        await conn.exec_driver_sql(sql)
        if version is not None:
            await record_migration(conn, version, name or "adhoc_schema_update")

    async def dry_run(
        self, tenant_id: str, sql: str, version: Optional[str] = None, name: Optional[str] = None
    ) -> None:
        """Execute the statement in a transaction that is always rolled back."""
        try:
            async with self.connect(tenant_id) as conn:
                async with conn.begin() as trans:
                    await self._execute(conn, sql, version, name)
                    await trans.rollback()
        except Exception as exc:
            logger.error(f"Dry run against tenant {tenant_id} failed: {exc}")
            raise ValidationError(
                f"Dry run against tenant {tenant_id} failed, rollout aborted: {exc}",
                tenant_id=tenant_id,
                cause=exc,
            ) from exc
        logger.info(f"Dry run against tenant {tenant_id} succeeded (rolled back)")

    async def apply_to_tenant(
        self, tenant_id: str, sql: str, version: Optional[str] = None, name: Optional[str] = None
    ) -> None:
        try:
            async with self.connect(tenant_id) as conn:
                async with conn.begin():
                    await self._execute(conn, sql, version, name)
        except Exception as exc:
            raise PerTenantExecutionError(tenant_id, exc) from exc

    async def _pick_validation_tenant(self, tenants: List[str], version: Optional[str]) -> Optional[str]:
        """First tenant that still needs the change."""
        for tenant_id in tenants:
            try:
                if not await self._already_recorded(tenant_id, version):
                    return tenant_id
            except Exception as exc:
                raise ValidationError(
                    f"Could not read schema version of tenant {tenant_id}: {exc}",
                    tenant_id=tenant_id,
                    cause=exc,
                ) from exc
        return None

    async def _run_tenant(
        self,
        tenant_id: str,
        sql: str,
        version: Optional[str],
        name: Optional[str],
        gate: asyncio.Semaphore,
        admitted: Set[str],
    ) -> RolloutResult:
        async with gate:
            admitted.add(tenant_id)
            try:
                if await self._already_recorded(tenant_id, version):
                    logger.info(f"Tenant {tenant_id}: version {version} already recorded, skipping")
                    return RolloutResult(
                        tenant_id=tenant_id,
                        outcome=RolloutOutcome.SUCCESS,
                        reason=f"version {version} already applied",
                    )
                await self.apply_to_tenant(tenant_id, sql, version, name)
            except Exception as exc:
                logger.error(f"Tenant {tenant_id}: schema update failed: {exc}")
                return RolloutResult(
                    tenant_id=tenant_id, outcome=RolloutOutcome.ERROR, reason=str(exc)
                )
            logger.success(f"Tenant {tenant_id}: schema update committed")
            return RolloutResult(tenant_id=tenant_id, outcome=RolloutOutcome.SUCCESS)

    async def apply_to_all_tenants(
        self,
        sql: str,
        *,
        version: Optional[str] = None,
        name: Optional[str] = None,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> RolloutReport:
        """
        Validate then apply `sql` to every tenant. When `version` is given the
        change is also recorded in each tenant's tracker, in the same
        transaction, and tenants that already recorded it are skipped.

        On deadline expiry (or when `cancel` is set) no further tenants are
        admitted and every tenant that has not finished is reported as
        timed_out. Raises ValidationError if the dry run fails.
        """
        if not sql or not sql.strip():
            raise ValidationError("Refusing to roll out an empty statement")
        concurrency = concurrency if concurrency is not None else self.concurrency
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        timeout = timeout if timeout is not None else self.timeout

        report = RolloutReport(statement=sql)
        tenants = await self.catalog.list_tenants()
        if not tenants:
            logger.info("No tenant databases found, nothing to update")
            return report

        validation_tenant = await self._pick_validation_tenant(tenants, version)
        if validation_tenant is None:
            logger.info(f"Every tenant already recorded version {version}, nothing to update")
            report.results = [
                RolloutResult(
                    tenant_id=t,
                    outcome=RolloutOutcome.SUCCESS,
                    reason=f"version {version} already applied",
                )
                for t in tenants
            ]
            return report
        await self.dry_run(validation_tenant, sql, version, name)
        report.validated_against = validation_tenant

        logger.info(
            f"Applying schema update to {len(tenants)} tenant(s), {concurrency} at a time"
            + (f", deadline {timeout}s" if timeout else "")
        )
        gate = asyncio.Semaphore(concurrency)
        admitted: Set[str] = set()
        tasks: Dict[str, asyncio.Task] = {
            tenant_id: asyncio.create_task(
                self._run_tenant(tenant_id, sql, version, name, gate, admitted)
            )
            for tenant_id in tenants
        }

        cancelled = await self._join(list(tasks.values()), timeout, cancel)

        stop_reason = "cancelled" if cancelled else "deadline reached"
        for tenant_id, task in tasks.items():
            if task.cancelled():
                if tenant_id in admitted:
                    reason = f"{stop_reason} while in flight; transaction abandoned, verify this tenant"
                else:
                    reason = f"{stop_reason} before this tenant was started"
                logger.warning(f"Tenant {tenant_id}: {reason}")
                report.results.append(
                    RolloutResult(tenant_id=tenant_id, outcome=RolloutOutcome.TIMED_OUT, reason=reason)
                )
            elif task.exception() is not None:
                exc = task.exception()
                report.results.append(
                    RolloutResult(tenant_id=tenant_id, outcome=RolloutOutcome.ERROR, reason=str(exc))
                )
            else:
                report.results.append(task.result())

        if report.ok:
            logger.success(f"Schema update applied to all {len(report.results)} tenant(s)")
        else:
            logger.warning(
                f"Schema update failed for {len(report.failed)} of {len(report.results)} tenant(s); "
                "tenants are now in different schema states"
            )
        return report

    @staticmethod
    async def _join(
        tasks: List[asyncio.Task], timeout: Optional[float], cancel: Optional[asyncio.Event]
    ) -> bool:
        """
        Wait for every task, the deadline or the cancel event, whichever comes
        first. Unfinished tasks are cancelled and awaited before returning, so
        callers always see a complete set. Returns True if cancelled by the event.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        cancel_waiter = asyncio.create_task(cancel.wait()) if cancel is not None else None
        pending = set(tasks)
        cancelled = False
        try:
            while pending:
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    break
                waitables = pending | {cancel_waiter} if cancel_waiter else pending
                done, _ = await asyncio.wait(
                    waitables, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if cancel_waiter is not None and cancel_waiter in done:
                    cancelled = True
                    break
                pending -= done
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        pending = {t for t in pending if not t.done()}
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        return cancelled
