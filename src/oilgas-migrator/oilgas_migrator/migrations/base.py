"""
Base class for schema migration steps.
"""

from abc import ABC
from enum import Enum
from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncConnection


class MigrationScope(str, Enum):
    TENANT = "tenant"
    CENTRAL = "central"


class MigrationStep(ABC):
    """
    One ordered, idempotent unit of DDL/DML. Every statement must be safe to
    run again (IF NOT EXISTS / ON CONFLICT DO NOTHING).
    """

    name: str = ""
    statements: Tuple[str, ...] = ()
    # Extra statements only executed against the central database
    central_statements: Tuple[str, ...] = ()
    central_only: bool = False

    def applies_to(self, scope: MigrationScope) -> bool:
        return scope == MigrationScope.CENTRAL or not self.central_only

    def statements_for(self, scope: MigrationScope) -> Tuple[str, ...]:
        if scope == MigrationScope.CENTRAL:
            return self.statements + self.central_statements
        return self.statements

    async def run(self, conn: AsyncConnection, scope: MigrationScope) -> None:
        """Execute inside the caller's transaction. Raise on any error."""
        for statement in self.statements_for(scope):
            await conn.exec_driver_sql(statement)
