"""
Shared CLI helpers: logging setup, settings, running async work, confirmation.
"""

import asyncio
import sys
from typing import Any, Awaitable, Callable, TypeVar

import typer
from loguru import logger
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from oilgas_common.exceptions import InvalidIdentifier, OilgasError
from oilgas_common.identifiers import validate_tenant_id
from oilgas_migrator.config import MigratorSettings, load_settings
from oilgas_migrator.migrator import Migrator

from oilgas_migrator_cli.constants import CONFIRMATION_WORD

T = TypeVar("T")

console = Console()


def configure_logging(debug: bool) -> None:
    """Single stderr sink; library code only ever logs."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if debug else "INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def get_settings(ctx: typer.Context) -> MigratorSettings:
    """Load settings once per invocation; missing DATABASE_URL is fatal."""
    state = ctx.ensure_object(dict)
    if "settings" not in state:
        overrides = {"debug": True} if state.get("debug") else {}
        try:
            state["settings"] = load_settings(**overrides)
        except OilgasError as exc:
            fail(str(exc))
    return state["settings"]


def check_tenant_id(tenant_id: str) -> str:
    try:
        return validate_tenant_id(tenant_id)
    except InvalidIdentifier as exc:
        fail(str(exc))


def run_with_migrator(ctx: typer.Context, func: Callable[[Migrator], Awaitable[T]]) -> T:
    """
    Build the Migrator, run `func` against it and tear it down. Domain and
    database errors become a red error line and exit code 1.
    """
    settings = get_settings(ctx)

    async def _run():
        async with Migrator(settings) as migrator:
            return await func(migrator)

    try:
        return asyncio.run(_run())
    except OilgasError as exc:
        fail(str(exc))
    except (SQLAlchemyError, OSError) as exc:
        fail(f"Database error: {exc}")


def confirm_destructive(action: str, yes: bool) -> None:
    """
    Require the literal word 'yes'. Anything else cancels with exit code 0.
    """
    if yes:
        return
    console.print(f"[bold yellow]WARNING:[/bold yellow] {action}. This cannot be undone.")
    answer = typer.prompt(
        f"Type '{CONFIRMATION_WORD}' to continue", default="", show_default=False
    )
    if answer != CONFIRMATION_WORD:
        console.print("Operation cancelled.")
        raise typer.Exit(0)


def format_count(value: Any) -> str:
    if value is None or value < 0:
        return "[red]error[/red]"
    return str(value)
