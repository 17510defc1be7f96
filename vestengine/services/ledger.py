from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vestengine.models.equity_grant import EquityGrant
from vestengine.models.price_history import PriceHistory
from vestengine.models.tenant import Tenant
from vestengine.models.vesting_event import VestingEvent
from vestengine.services import share_math
from vestengine.services.interfaces import (
    GRANT_ACTIVE,
    GrantSnapshot,
    InsertOutcome,
    InsertResult,
    TENANT_ACTIVE,
    TenantRecord,
    VestingEventRecord,
)

logger = logging.getLogger(__name__)

UNIQUE_CONSTRAINT_NAME = "uq_vesting_events_grant_date"


def grant_snapshot(grant: EquityGrant) -> GrantSnapshot:
    return GrantSnapshot(
        id=grant.id,
        org_id=grant.org_id,
        employee_id=grant.employee_id,
        grant_date=grant.grant_date,
        share_amount=share_math.quantize_shares(grant.share_amount),
        vested_amount=share_math.quantize_shares(grant.vested_amount or 0),
        status=grant.status,
        version=int(grant.version or 0),
    )


def event_record(event: VestingEvent) -> VestingEventRecord:
    return VestingEventRecord(
        id=event.id,
        grant_id=event.grant_id,
        org_id=event.org_id,
        vest_date=event.vest_date,
        shares_vested=share_math.quantize_shares(event.shares_vested),
        price_per_share=Decimal(event.price_per_share) if event.price_per_share is not None else None,
        source=event.source,
        created_by=event.created_by,
        created_at=event.created_at,
    )


def _is_duplicate_vest_date(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint:
        return constraint == UNIQUE_CONSTRAINT_NAME
    return UNIQUE_CONSTRAINT_NAME in str(orig or exc)


class SqlVestingRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_grant(
        self, grant_id: UUID, *, tenant_id: str, for_update: bool = False
    ) -> GrantSnapshot | None:
        stmt = select(EquityGrant).where(EquityGrant.id == grant_id, EquityGrant.org_id == tenant_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        grant = result.scalar_one_or_none()
        return grant_snapshot(grant) if grant is not None else None

    async def list_active_grants(self, tenant_id: str) -> list[GrantSnapshot]:
        stmt = (
            select(EquityGrant)
            .where(EquityGrant.org_id == tenant_id, EquityGrant.status == GRANT_ACTIVE)
            .order_by(EquityGrant.grant_date.asc(), EquityGrant.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return [grant_snapshot(grant) for grant in result.scalars().all()]

    async def list_vest_dates(self, grant: GrantSnapshot) -> set[date]:
        stmt = select(VestingEvent.vest_date).where(VestingEvent.grant_id == grant.id)
        result = await self.session.execute(stmt)
        return {row[0] for row in result.all()}

    async def list_events(self, grant: GrantSnapshot) -> list[VestingEventRecord]:
        stmt = (
            select(VestingEvent)
            .where(VestingEvent.grant_id == grant.id)
            .order_by(VestingEvent.vest_date.asc())
        )
        result = await self.session.execute(stmt)
        return [event_record(event) for event in result.scalars().all()]

    async def try_insert(
        self,
        grant: GrantSnapshot,
        vest_date: date,
        shares: Decimal,
        price_per_share: Decimal | None,
        source: str,
        actor_id: str,
    ) -> InsertResult:
        event = VestingEvent(
            org_id=grant.org_id,
            grant_id=grant.id,
            vest_date=vest_date,
            shares_vested=share_math.quantize_shares(shares),
            price_per_share=price_per_share,
            source=source,
            created_by=actor_id,
        )
        try:
            # The savepoint keeps the outer transaction usable when another
            # writer already recorded this date.
            async with self.session.begin_nested():
                self.session.add(event)
                await self.session.flush()
        except IntegrityError as exc:
            if not _is_duplicate_vest_date(exc):
                raise
            logger.info(
                "Vest date already recorded by a concurrent writer",
                extra={"grant_id": str(grant.id), "vest_date": vest_date.isoformat()},
            )
            return InsertResult(InsertOutcome.ALREADY_EXISTS)
        return InsertResult(InsertOutcome.INSERTED, event_record(event))

    async def sum_vested(self, grant: GrantSnapshot) -> Decimal:
        stmt = select(func.coalesce(func.sum(VestingEvent.shares_vested), 0)).where(
            VestingEvent.grant_id == grant.id
        )
        result = await self.session.execute(stmt)
        return share_math.quantize_shares(result.scalar_one())

    async def compare_and_set_vested(
        self, grant: GrantSnapshot, *, expected_version: int, vested_amount: Decimal
    ) -> bool:
        stmt = (
            update(EquityGrant)
            .where(
                EquityGrant.id == grant.id,
                EquityGrant.org_id == grant.org_id,
                EquityGrant.version == expected_version,
            )
            .values(
                vested_amount=share_math.quantize_shares(vested_amount),
                version=expected_version + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class SqlVestingStore:
    """Opens one ``AsyncSession`` per unit of work."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[SqlVestingRepository]:
        async with self._session_factory() as session:
            yield SqlVestingRepository(session)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlVestingRepository]:
        async with self._session_factory() as session:
            async with session.begin():
                yield SqlVestingRepository(session)


class SqlPriceLookup:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def price_on_or_before(self, tenant_id: str, on_date: date) -> Decimal | None:
        stmt = (
            select(PriceHistory.price_per_share)
            .where(PriceHistory.org_id == tenant_id, PriceHistory.effective_date <= on_date)
            .order_by(PriceHistory.effective_date.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            price = result.scalar_one_or_none()
        return Decimal(price) if price is not None else None


class SqlTenantRegistry:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _record(tenant: Tenant) -> TenantRecord:
        return TenantRecord(id=tenant.id, name=tenant.name, timezone=tenant.timezone, status=tenant.status)

    async def list_active_tenants(self) -> list[TenantRecord]:
        stmt = select(Tenant).where(Tenant.status == TENANT_ACTIVE).order_by(Tenant.id.asc())
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [self._record(tenant) for tenant in result.scalars().all()]

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None:
        async with self._session_factory() as session:
            tenant = await session.get(Tenant, tenant_id)
            return self._record(tenant) if tenant is not None else None
