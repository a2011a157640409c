"""
Schema rollout and audit commands: schema-update-all, schema-check-consistency,
schema-versions.
"""

import asyncio
import signal
from typing import Optional

import typer
from loguru import logger
from rich import box
from rich.table import Table

from oilgas_common.exceptions import ConsistencyDriftError
from oilgas_common.models import ConsistencyReport, RolloutReport

from oilgas_migrator_cli.constants import ROLLOUT_CONCURRENCY_ENVVAR, ROLLOUT_TIMEOUT_ENVVAR
from oilgas_migrator_cli.util import console, fail, run_with_migrator

PARTIAL_ROLLOUT_WARNING = (
    "Rollout is not atomic across tenants: tenants listed above are now at a different "
    "schema state than the rest. Run 'schema-check-consistency' and re-apply the fix to them."
)


def display_rollout(report: RolloutReport) -> None:
    if report.validated_against:
        console.print(f"Validated against tenant {report.validated_against} (rolled back)")
    console.print(
        f"[bold]Succeeded:[/bold] {len(report.succeeded)}  "
        f"[bold]Failed:[/bold] {len(report.failed) - len(report.timed_out)}  "
        f"[bold]Timed out:[/bold] {len(report.timed_out)}  "
        f"[bold]Total:[/bold] {len(report.results)}"
    )
    if report.ok:
        console.print("[green]Schema update applied to every tenant[/green]")
        return

    table = Table(title="Failed tenants", box=box.ROUNDED)
    table.add_column("Tenant", style="cyan")
    table.add_column("Outcome", style="red")
    table.add_column("Error")
    for r in report.failed:
        table.add_row(r.tenant_id, r.outcome.value, r.reason or "-")
    console.print(table)
    console.print(f"[bold yellow]WARNING:[/bold yellow] {PARTIAL_ROLLOUT_WARNING}")


def display_versions(report: ConsistencyReport) -> None:
    table = Table(title="Tenant schema versions", box=box.ROUNDED)
    table.add_column("Tenant", style="cyan")
    table.add_column("Latest version")
    for snapshot in report.snapshots:
        table.add_row(snapshot.tenant_id, snapshot.latest_version)
    for tenant_id, error in report.unreadable.items():
        table.add_row(tenant_id, f"[red]unreadable: {error}[/red]")
    console.print(table)


def display_groups(report: ConsistencyReport) -> None:
    table = Table(title="Schema versions", box=box.ROUNDED)
    table.add_column("Version", style="cyan")
    table.add_column("Tenants", justify="right")
    table.add_column("Members")
    for version, tenants in sorted(report.groups.items()):
        table.add_row(version, str(len(tenants)), ", ".join(tenants))
    console.print(table)


def register(app: typer.Typer) -> None:
    """Register schema commands on the given Typer app."""

    @app.command("schema-update-all", help="Validate, then roll a SQL statement out to every tenant")
    def schema_update_all(
        ctx: typer.Context,
        sql: str = typer.Argument(..., help="DDL/DML statement to apply"),
        version: Optional[str] = typer.Option(
            None, "--version", help="Record the change in each tenant's tracker under this version"
        ),
        name: Optional[str] = typer.Option(None, "--name", help="Name stored with --version"),
        concurrency: Optional[int] = typer.Option(
            None,
            "--concurrency",
            min=1,
            envvar=ROLLOUT_CONCURRENCY_ENVVAR,
            help="Tenants updated at the same time",
        ),
        timeout: Optional[float] = typer.Option(
            None,
            "--timeout",
            min=0,
            envvar=ROLLOUT_TIMEOUT_ENVVAR,
            help="Seconds before unfinished tenants are reported as timed out",
        ),
    ):
        async def _rollout(m):
            cancel = asyncio.Event()
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, cancel.set)
            except NotImplementedError:
                logger.debug("SIGINT handler not supported on this platform")
            try:
                return await m.rollout.apply_to_all_tenants(
                    sql,
                    version=version,
                    name=name,
                    concurrency=concurrency,
                    timeout=timeout or None,
                    cancel=cancel,
                )
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except NotImplementedError:
                    pass

        report = run_with_migrator(ctx, _rollout)
        if report.is_noop:
            console.print("No tenant databases found, nothing to update.")
            return
        display_rollout(report)
        if not report.ok:
            raise typer.Exit(1)

    @app.command("schema-check-consistency", help="Report schema-version drift across tenants")
    def schema_check_consistency(ctx: typer.Context):
        report = run_with_migrator(ctx, lambda m: m.consistency.check())
        if not report.snapshots and not report.unreadable:
            console.print("No tenant databases found.")
            return
        if report.snapshots:
            display_groups(report)
        if report.unreadable:
            console.print(
                f"[yellow]Could not read {len(report.unreadable)} tenant(s):[/yellow] "
                + ", ".join(report.unreadable)
            )
        try:
            report.raise_for_drift()
        except ConsistencyDriftError as exc:
            fail(str(exc))
        if report.unreadable:
            fail(f"Schema version unknown for {len(report.unreadable)} tenant(s)")
        console.print(
            f"[green]All {len(report.snapshots)} tenant(s) at version "
            f"{next(iter(report.groups))}[/green]"
        )

    @app.command("schema-versions", help="Print each tenant's latest applied version")
    def schema_versions(ctx: typer.Context):
        report = run_with_migrator(ctx, lambda m: m.consistency.check())
        if not report.snapshots and not report.unreadable:
            console.print("No tenant databases found.")
            return
        display_versions(report)
