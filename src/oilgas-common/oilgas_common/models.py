from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from oilgas_common.constants import COUNT_UNAVAILABLE
from oilgas_common.exceptions import ConsistencyDriftError


class TenantStats(BaseModel):
    """Best-effort row counts for one tenant; COUNT_UNAVAILABLE marks a failed count"""
    tenant_id: str
    counts: Dict[str, int] = Field(default_factory=dict)
    last_import: Optional[datetime] = None

    def count(self, table: str) -> int:
        return self.counts.get(table, COUNT_UNAVAILABLE)


class MigrationRecord(BaseModel):
    version: str
    name: str
    applied_at: Optional[datetime] = None


class RolloutOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMED_OUT = "timed_out"


class RolloutResult(BaseModel):
    """Outcome of one tenant in one rollout invocation"""
    tenant_id: str
    outcome: RolloutOutcome
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == RolloutOutcome.SUCCESS


class RolloutReport(BaseModel):
    """Every tenant's result for one rollout; never partially discarded"""
    statement: str
    results: List[RolloutResult] = Field(default_factory=list)
    validated_against: Optional[str] = None

    @property
    def succeeded(self) -> List[RolloutResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[RolloutResult]:
        return [r for r in self.results if not r.ok]

    @property
    def timed_out(self) -> List[RolloutResult]:
        return [r for r in self.results if r.outcome == RolloutOutcome.TIMED_OUT]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def is_noop(self) -> bool:
        return not self.results


class SchemaVersionSnapshot(BaseModel):
    tenant_id: str
    latest_version: str


class ConsistencyReport(BaseModel):
    """Tenants grouped by latest applied version, plus tenants whose version could not be read"""
    snapshots: List[SchemaVersionSnapshot] = Field(default_factory=list)
    unreadable: Dict[str, str] = Field(default_factory=dict)

    @property
    def groups(self) -> Dict[str, List[str]]:
        groups: Dict[str, List[str]] = {}
        for snapshot in self.snapshots:
            groups.setdefault(snapshot.latest_version, []).append(snapshot.tenant_id)
        return groups

    @property
    def consistent(self) -> bool:
        return len(self.groups) <= 1

    def raise_for_drift(self) -> None:
        if not self.consistent:
            raise ConsistencyDriftError(self.groups)


class ProvisioningResult(BaseModel):
    """Outcome of an (idempotent) tenant create"""
    tenant_id: str
    database: str
    created: bool
    applied_versions: List[str] = Field(default_factory=list)
