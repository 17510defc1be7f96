"""Collaborators the vesting engine talks to.

The processor never touches a database handle directly. It opens a
repository through a ``VestingStore`` and looks up prices, tenants and audit
destinations through the protocols below, so the SQL backend in ``ledger.py``
and the in-memory backend in ``memory_store.py`` are interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncContextManager, Protocol
from uuid import UUID

GRANT_ACTIVE = "active"
GRANT_INACTIVE = "inactive"
TENANT_ACTIVE = "active"

SOURCE_SCHEDULED = "scheduled"
SOURCE_MANUAL = "manual"


class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True, slots=True)
class GrantSnapshot:
    id: UUID
    org_id: str
    employee_id: str
    grant_date: date
    share_amount: Decimal
    vested_amount: Decimal
    status: str
    version: int

    @property
    def is_active(self) -> bool:
        return self.status == GRANT_ACTIVE


@dataclass(frozen=True, slots=True)
class VestingEventRecord:
    id: UUID
    grant_id: UUID
    org_id: str
    vest_date: date
    shares_vested: Decimal
    price_per_share: Decimal | None
    source: str
    created_by: str
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class InsertResult:
    outcome: InsertOutcome
    event: VestingEventRecord | None = None

    @property
    def inserted(self) -> bool:
        return self.outcome is InsertOutcome.INSERTED


@dataclass(frozen=True, slots=True)
class TenantRecord:
    id: str
    name: str
    timezone: str
    status: str = TENANT_ACTIVE


@dataclass(slots=True)
class AuditEntry:
    tenant_id: str
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    old_value: Any | None = None
    new_value: Any | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class VestingRepository(Protocol):
    """Grant store and event ledger bound to one unit of work."""

    async def get_grant(
        self, grant_id: UUID, *, tenant_id: str, for_update: bool = False
    ) -> GrantSnapshot | None: ...

    async def list_active_grants(self, tenant_id: str) -> list[GrantSnapshot]: ...

    async def list_vest_dates(self, grant: GrantSnapshot) -> set[date]: ...

    async def list_events(self, grant: GrantSnapshot) -> list[VestingEventRecord]: ...

    async def try_insert(
        self,
        grant: GrantSnapshot,
        vest_date: date,
        shares: Decimal,
        price_per_share: Decimal | None,
        source: str,
        actor_id: str,
    ) -> InsertResult: ...

    async def sum_vested(self, grant: GrantSnapshot) -> Decimal: ...

    async def compare_and_set_vested(
        self, grant: GrantSnapshot, *, expected_version: int, vested_amount: Decimal
    ) -> bool: ...


class VestingStore(Protocol):
    def session(self) -> AsyncContextManager[VestingRepository]:
        """Read-only unit of work."""

    def transaction(self) -> AsyncContextManager[VestingRepository]:
        """Unit of work that commits on clean exit and rolls back on error."""


class PriceLookup(Protocol):
    async def price_on_or_before(self, tenant_id: str, on_date: date) -> Decimal | None: ...


class AuditSink(Protocol):
    async def record(self, entry: AuditEntry) -> None: ...


class TenantRegistry(Protocol):
    async def list_active_tenants(self) -> list[TenantRecord]: ...

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None: ...
