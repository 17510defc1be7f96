"""In-process backend for the vesting engine.

Used by the test-suite and by embedders that do not run Postgres. Every
repository call yields to the event loop first so concurrent ``process``
calls interleave the way they would against a real database, while each
individual check-and-write stays atomic.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Callable
from uuid import UUID

from vestengine.services import share_math
from vestengine.services.interfaces import (
    GRANT_ACTIVE,
    TENANT_ACTIVE,
    AuditEntry,
    GrantSnapshot,
    InsertOutcome,
    InsertResult,
    TenantRecord,
    VestingEventRecord,
)


class MemoryVestingStore:
    def __init__(self) -> None:
        self.grants: dict[UUID, GrantSnapshot] = {}
        self.events: dict[UUID, dict[date, VestingEventRecord]] = {}

    def add_grant(
        self,
        *,
        org_id: str,
        grant_date: date,
        share_amount,
        employee_id: str = "E-1",
        status: str = GRANT_ACTIVE,
        grant_id: UUID | None = None,
    ) -> GrantSnapshot:
        grant = GrantSnapshot(
            id=grant_id or uuid.uuid4(),
            org_id=org_id,
            employee_id=employee_id,
            grant_date=grant_date,
            share_amount=share_math.quantize_shares(share_amount),
            vested_amount=share_math.ZERO,
            status=status,
            version=0,
        )
        self.grants[grant.id] = grant
        self.events.setdefault(grant.id, {})
        return grant

    def set_status(self, grant_id: UUID, status: str) -> None:
        self.grants[grant_id] = replace(self.grants[grant_id], status=status)

    def ledger_total(self, grant_id: UUID) -> Decimal:
        return share_math.total(event.shares_vested for event in self.events.get(grant_id, {}).values())

    @asynccontextmanager
    async def session(self) -> AsyncIterator["MemoryVestingRepository"]:
        yield MemoryVestingRepository(self, journal=None)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryVestingRepository"]:
        journal: list[Callable[[], None]] = []
        try:
            yield MemoryVestingRepository(self, journal=journal)
        except BaseException:
            for undo in reversed(journal):
                undo()
            raise


class MemoryVestingRepository:
    def __init__(self, store: MemoryVestingStore, *, journal: list[Callable[[], None]] | None) -> None:
        self._store = store
        self._journal = journal

    def _record_undo(self, undo: Callable[[], None]) -> None:
        if self._journal is None:
            raise RuntimeError("writes require a transaction")
        self._journal.append(undo)

    async def get_grant(
        self, grant_id: UUID, *, tenant_id: str, for_update: bool = False
    ) -> GrantSnapshot | None:
        await asyncio.sleep(0)
        grant = self._store.grants.get(grant_id)
        if grant is None or grant.org_id != tenant_id:
            return None
        return grant

    async def list_active_grants(self, tenant_id: str) -> list[GrantSnapshot]:
        await asyncio.sleep(0)
        grants = [g for g in self._store.grants.values() if g.org_id == tenant_id and g.is_active]
        return sorted(grants, key=lambda g: g.grant_date)

    async def list_vest_dates(self, grant: GrantSnapshot) -> set[date]:
        await asyncio.sleep(0)
        return set(self._store.events.get(grant.id, {}))

    async def list_events(self, grant: GrantSnapshot) -> list[VestingEventRecord]:
        await asyncio.sleep(0)
        events = self._store.events.get(grant.id, {})
        return [events[key] for key in sorted(events)]

    async def try_insert(
        self,
        grant: GrantSnapshot,
        vest_date: date,
        shares: Decimal,
        price_per_share: Decimal | None,
        source: str,
        actor_id: str,
    ) -> InsertResult:
        await asyncio.sleep(0)
        ledger = self._store.events.setdefault(grant.id, {})
        if vest_date in ledger:
            return InsertResult(InsertOutcome.ALREADY_EXISTS)
        event = VestingEventRecord(
            id=uuid.uuid4(),
            grant_id=grant.id,
            org_id=grant.org_id,
            vest_date=vest_date,
            shares_vested=share_math.quantize_shares(shares),
            price_per_share=price_per_share,
            source=source,
            created_by=actor_id,
            created_at=datetime.now(timezone.utc),
        )
        self._record_undo(lambda: ledger.pop(vest_date, None))
        ledger[vest_date] = event
        return InsertResult(InsertOutcome.INSERTED, event)

    async def sum_vested(self, grant: GrantSnapshot) -> Decimal:
        await asyncio.sleep(0)
        return self._store.ledger_total(grant.id)

    async def compare_and_set_vested(
        self, grant: GrantSnapshot, *, expected_version: int, vested_amount: Decimal
    ) -> bool:
        await asyncio.sleep(0)
        current = self._store.grants.get(grant.id)
        if current is None or current.version != expected_version:
            return False
        if vested_amount > current.share_amount:
            raise ValueError("vested_amount would exceed share_amount")
        self._record_undo(lambda: self._store.grants.__setitem__(grant.id, current))
        self._store.grants[grant.id] = replace(
            current,
            vested_amount=share_math.quantize_shares(vested_amount),
            version=expected_version + 1,
        )
        return True


class MemoryPriceLookup:
    def __init__(self, prices: dict[str, dict[date, Decimal]] | None = None) -> None:
        self.prices: dict[str, dict[date, Decimal]] = prices or {}

    def set_price(self, tenant_id: str, effective_date: date, price) -> None:
        self.prices.setdefault(tenant_id, {})[effective_date] = Decimal(str(price))

    async def price_on_or_before(self, tenant_id: str, on_date: date) -> Decimal | None:
        history = self.prices.get(tenant_id, {})
        eligible = [day for day in history if day <= on_date]
        if not eligible:
            return None
        return history[max(eligible)]


class MemoryTenantRegistry:
    def __init__(self, tenants: list[TenantRecord] | None = None) -> None:
        self.tenants: dict[str, TenantRecord] = {tenant.id: tenant for tenant in tenants or []}

    def add_tenant(self, tenant_id: str, *, timezone: str = "UTC", status: str = TENANT_ACTIVE) -> TenantRecord:
        record = TenantRecord(id=tenant_id, name=tenant_id, timezone=timezone, status=status)
        self.tenants[tenant_id] = record
        return record

    async def list_active_tenants(self) -> list[TenantRecord]:
        return [t for _, t in sorted(self.tenants.items()) if t.status == TENANT_ACTIVE]

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None:
        return self.tenants.get(tenant_id)


class MemoryAuditSink:
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    async def record(self, entry: AuditEntry) -> None:
        self.entries.append(entry)
