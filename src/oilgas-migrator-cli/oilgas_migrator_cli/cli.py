"""
oilgas-migrator: tenant database lifecycle and schema rollout.
"""

from typing import Optional

import typer
from rich import box
from rich.table import Table

from oilgas_migrator_cli import schema, tenant
from oilgas_migrator_cli.constants import DEBUG_ENVVAR
from oilgas_migrator_cli.util import check_tenant_id, configure_logging, console, run_with_migrator

app = typer.Typer(
    help="Per-tenant database lifecycle and schema rollout for oilgas inventory.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", envvar=DEBUG_ENVVAR, help="Verbose logging"),
):
    configure_logging(debug)
    ctx.ensure_object(dict)["debug"] = debug


def display_migration_status(title: str, rows) -> None:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Version", style="cyan")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Applied at")
    for key, name, record in rows:
        if record is None:
            table.add_row(key, name, "[yellow]pending[/yellow]", "-")
        else:
            table.add_row(
                key, name, "[green]applied[/green]", record.applied_at.strftime("%Y-%m-%d %H:%M:%S")
            )
    console.print(table)
    applied = sum(1 for _, _, record in rows if record is not None)
    console.print(f"Applied: {applied}  Pending: {len(rows) - applied}")


@app.command("migrate", help="Apply pending migrations to the central database")
def migrate(ctx: typer.Context):
    applied = run_with_migrator(ctx, lambda m: m.migrate_central())
    if applied:
        console.print(f"[green]Central database: applied {', '.join(applied)}[/green]")
    else:
        console.print("Central database schema already up to date")


@app.command("migration-status", help="Show applied and pending migrations")
def migration_status(
    ctx: typer.Context,
    tenant_id: Optional[str] = typer.Option(
        None, "--tenant", help="Show a tenant database instead of the central one"
    ),
):
    if tenant_id is None:
        rows = run_with_migrator(ctx, lambda m: m.central_status())
        display_migration_status("Central database migrations", rows)
        return
    check_tenant_id(tenant_id)
    rows = run_with_migrator(ctx, lambda m: m.tenant_status(tenant_id))
    display_migration_status(f"Tenant {tenant_id} migrations", rows)


tenant.register(app)
schema.register(app)


if __name__ == "__main__":
    app()
