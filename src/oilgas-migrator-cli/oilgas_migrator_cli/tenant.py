"""
Tenant lifecycle commands: tenant-create, tenant-drop, tenant-reset,
tenant-status, tenant-list, tenant-migrate.
"""

from typing import List, Optional

import typer
from rich import box
from rich.table import Table

from oilgas_common.identifiers import tenant_database_name
from oilgas_common.models import ProvisioningResult, RolloutReport, TenantStats
from oilgas_migrator.tenants import LIST_TABLES, STATUS_TABLES

from oilgas_migrator_cli.util import (
    check_tenant_id,
    confirm_destructive,
    console,
    fail,
    format_count,
    run_with_migrator,
)


def display_provisioning(result: ProvisioningResult) -> None:
    state = "created" if result.created else "already existed"
    console.print(f"[green]Tenant {result.tenant_id} ready[/green] (database {result.database} {state})")
    if result.applied_versions:
        console.print(f"Applied migrations: {', '.join(result.applied_versions)}")
    else:
        console.print("Schema already up to date")


def display_tenant_list(stats: List[TenantStats], with_stats: bool) -> None:
    if not stats:
        console.print("No tenant databases found.")
        return
    table = Table(title="Tenants", box=box.ROUNDED)
    table.add_column("Tenant", style="cyan")
    table.add_column("Database")
    if with_stats:
        for name in LIST_TABLES:
            table.add_column(name.capitalize(), justify="right")
    for s in stats:
        row = [s.tenant_id, tenant_database_name(s.tenant_id)]
        if with_stats:
            row.extend(format_count(s.count(name)) for name in LIST_TABLES)
        table.add_row(*row)
    console.print(table)
    console.print(f"Total: {len(stats)} tenant(s)")


def display_tenant_status(stats: TenantStats) -> None:
    console.print(f"[bold]Tenant:[/bold] {stats.tenant_id}")
    console.print(f"[bold]Database:[/bold] {tenant_database_name(stats.tenant_id)}")
    table = Table(title="Table status", box=box.ROUNDED)
    table.add_column("Table", style="cyan")
    table.add_column("Records", justify="right")
    for name in STATUS_TABLES:
        table.add_row(name, format_count(stats.count(name)))
    console.print(table)
    last_import = stats.last_import.strftime("%Y-%m-%d %H:%M:%S") if stats.last_import else "-"
    console.print(f"[bold]Last import:[/bold] {last_import}")


def display_bulk_report(report: RolloutReport) -> None:
    table = Table(title="Tenant results", box=box.ROUNDED)
    table.add_column("Tenant", style="cyan")
    table.add_column("Outcome")
    table.add_column("Detail")
    for r in report.results:
        outcome = "[green]success[/green]" if r.ok else f"[red]{r.outcome.value}[/red]"
        table.add_row(r.tenant_id, outcome, r.reason or "-")
    console.print(table)
    console.print(
        f"Succeeded: {len(report.succeeded)}  Failed: {len(report.failed)}  Total: {len(report.results)}"
    )


def register(app: typer.Typer) -> None:
    """Register tenant commands on the given Typer app."""

    @app.command("tenant-create", help="Provision, migrate and seed a tenant database")
    def tenant_create(
        ctx: typer.Context,
        tenant_id: str = typer.Argument(..., help="Tenant id (2-20 chars: a-z, 0-9, _)"),
    ):
        check_tenant_id(tenant_id)
        result = run_with_migrator(ctx, lambda m: m.tenants.create(tenant_id))
        display_provisioning(result)

    @app.command("tenant-drop", help="Destroy a tenant database (asks for confirmation)")
    def tenant_drop(
        ctx: typer.Context,
        tenant_id: str = typer.Argument(..., help="Tenant id"),
        yes: bool = typer.Option(False, "--yes", help="Skip the interactive confirmation"),
    ):
        check_tenant_id(tenant_id)
        confirm_destructive(
            f"This will permanently delete database {tenant_database_name(tenant_id)}", yes
        )
        existed = run_with_migrator(ctx, lambda m: m.tenants.drop(tenant_id))
        if existed:
            console.print(f"[green]Tenant {tenant_id} dropped[/green]")
        else:
            console.print(f"Tenant {tenant_id} did not exist, nothing dropped")

    @app.command("tenant-reset", help="Drop and re-create a tenant database (asks for confirmation)")
    def tenant_reset(
        ctx: typer.Context,
        tenant_id: str = typer.Argument(..., help="Tenant id"),
        yes: bool = typer.Option(False, "--yes", help="Skip the interactive confirmation"),
    ):
        check_tenant_id(tenant_id)
        confirm_destructive(
            f"This will delete all data in {tenant_database_name(tenant_id)} and re-create it", yes
        )
        result = run_with_migrator(ctx, lambda m: m.tenants.reset(tenant_id))
        display_provisioning(result)

    @app.command("tenant-status", help="Row counts and last import time for one tenant")
    def tenant_status(
        ctx: typer.Context,
        tenant_id: str = typer.Argument(..., help="Tenant id"),
    ):
        check_tenant_id(tenant_id)
        stats = run_with_migrator(ctx, lambda m: m.tenants.status(tenant_id))
        display_tenant_status(stats)

    @app.command("tenant-list", help="List tenant databases with basic stats")
    def tenant_list(
        ctx: typer.Context,
        stats: bool = typer.Option(True, "--stats/--no-stats", help="Include row counts"),
    ):
        async def _list(m):
            if stats:
                return await m.tenants.list_with_stats()
            return [TenantStats(tenant_id=t) for t in await m.tenants.list()]

        display_tenant_list(run_with_migrator(ctx, _list), stats)

    @app.command("tenant-migrate", help="Apply pending migrations to one or all existing tenants")
    def tenant_migrate(
        ctx: typer.Context,
        tenant_id: Optional[str] = typer.Argument(None, help="Tenant id"),
        all_tenants: bool = typer.Option(False, "--all", help="Migrate every tenant"),
    ):
        if (tenant_id is None) == (not all_tenants):
            fail("Provide either a tenant id or --all, not both.")
        if tenant_id is not None:
            check_tenant_id(tenant_id)
            applied = run_with_migrator(ctx, lambda m: m.tenants.migrate(tenant_id))
            if applied:
                console.print(f"[green]Tenant {tenant_id}: applied {', '.join(applied)}[/green]")
            else:
                console.print(f"Tenant {tenant_id}: schema already up to date")
            return

        report = run_with_migrator(ctx, lambda m: m.tenants.migrate_all())
        if report.is_noop:
            console.print("No tenant databases found.")
            return
        display_bulk_report(report)
        if not report.ok:
            fail(f"{len(report.failed)} tenant(s) failed to migrate")
