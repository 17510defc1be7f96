"""Read-only views of a grant's schedule for reporting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_EVEN, Decimal
from uuid import UUID

from vestengine.core.exceptions import GrantNotFoundError
from vestengine.services import share_math
from vestengine.services.calendar import CLIFF_MONTHS, cliff_date, months_between, project_schedule
from vestengine.services.interfaces import GrantSnapshot, VestingEventRecord, VestingStore
from vestengine.services.processor import eligible_candidates
from vestengine.services.tranches import allocate_tranches

STATUS_VESTED = "vested"
STATUS_CLIFF = "cliff"
STATUS_PENDING = "pending"
STATUS_FUTURE = "future"

PERCENT_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class ScheduleRow:
    period: int
    vest_date: date
    shares: Decimal
    status: str
    price_per_share: Decimal | None = None
    vested_at: datetime | None = None


@dataclass(frozen=True)
class GrantSchedule:
    grant: GrantSnapshot
    as_of: date
    rows: list[ScheduleRow]


@dataclass(frozen=True)
class VestingSummary:
    grant_id: UUID
    as_of: date
    share_amount: Decimal
    vested_amount: Decimal
    unvested_amount: Decimal
    vested_percent: Decimal
    theoretical_vested_amount: Decimal
    theoretical_vested_percent: Decimal
    months_elapsed: int
    is_past_cliff: bool
    up_to_date: bool


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return Decimal("0.00")
    return (part * 100 / whole).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_EVEN)


def schedule_rows(grant: GrantSnapshot, events: list[VestingEventRecord], as_of: date) -> list[ScheduleRow]:
    """One row per month.

    Months 1-11 accrue into the cliff event recorded on month 12, so until
    they carry their own event they report ``cliff``. Recorded months show the
    ledger amount, which for month 12 is the whole cliff lump sum.
    """
    by_date = {event.vest_date: event for event in events}
    tranches = allocate_tranches(grant.share_amount)
    rows: list[ScheduleRow] = []
    for index, vest_on in enumerate(project_schedule(grant.grant_date)):
        event = by_date.get(vest_on)
        if event is not None:
            status = STATUS_VESTED
        elif index < CLIFF_MONTHS - 1:
            status = STATUS_CLIFF
        elif vest_on > as_of:
            status = STATUS_FUTURE
        else:
            status = STATUS_PENDING
        rows.append(
            ScheduleRow(
                period=index + 1,
                vest_date=vest_on,
                shares=event.shares_vested if event else max(tranches[index], share_math.ZERO),
                status=status,
                price_per_share=event.price_per_share if event else None,
                vested_at=event.created_at if event else None,
            )
        )
    return rows


def theoretical_vested(grant: GrantSnapshot, as_of: date) -> Decimal:
    earned = share_math.total(candidate.shares for candidate in eligible_candidates(grant, as_of))
    return min(earned, grant.share_amount)


async def _load(store: VestingStore, grant_id: UUID, tenant_id: str):
    async with store.session() as repo:
        grant = await repo.get_grant(grant_id, tenant_id=tenant_id)
        if grant is None:
            raise GrantNotFoundError("Grant not found", details={"grant_id": str(grant_id)})
        events = await repo.list_events(grant)
        recorded = await repo.sum_vested(grant)
    return grant, events, recorded


async def build_schedule(store: VestingStore, grant_id: UUID, as_of: date, *, tenant_id: str) -> GrantSchedule:
    grant, events, _ = await _load(store, grant_id, tenant_id)
    return GrantSchedule(grant=grant, as_of=as_of, rows=schedule_rows(grant, events, as_of))


async def build_summary(store: VestingStore, grant_id: UUID, as_of: date, *, tenant_id: str) -> VestingSummary:
    grant, _, recorded = await _load(store, grant_id, tenant_id)
    # Vesting stops when a grant goes inactive, so nothing further is owed.
    theoretical = theoretical_vested(grant, as_of) if grant.is_active else recorded
    unvested = share_math.subtract(grant.share_amount, recorded)
    return VestingSummary(
        grant_id=grant.id,
        as_of=as_of,
        share_amount=grant.share_amount,
        vested_amount=recorded,
        unvested_amount=max(unvested, share_math.ZERO),
        vested_percent=_percent(recorded, grant.share_amount),
        theoretical_vested_amount=theoretical,
        theoretical_vested_percent=_percent(theoretical, grant.share_amount),
        months_elapsed=months_between(grant.grant_date, as_of),
        is_past_cliff=as_of >= cliff_date(grant.grant_date),
        up_to_date=recorded >= theoretical,
    )
