"""Turn a grant's 48/12 schedule into recorded vesting events.

``VestingProcessor.process`` is safe to call from any number of triggers at
once: the ledger's (grant, vest_date) uniqueness decides which caller records
a date, and the grant aggregate is written with a version check. When the
version moved underneath us the aggregate is re-derived from the ledger
instead of re-applying our delta.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from vestengine.core.exceptions import GrantNotFoundError, VestingConflictError
from vestengine.core.settings import settings
from vestengine.services import share_math
from vestengine.services.audit import emit_audit
from vestengine.services.calendar import CLIFF_MONTHS, TOTAL_VESTING_MONTHS, project_schedule
from vestengine.services.interfaces import (
    SOURCE_SCHEDULED,
    AuditEntry,
    AuditSink,
    GrantSnapshot,
    PriceLookup,
    VestingEventRecord,
    VestingRepository,
    VestingStore,
)
from vestengine.services.tranches import allocate_tranches, cliff_amount

logger = logging.getLogger(__name__)

CLIFF_INDEX = CLIFF_MONTHS - 1


@dataclass(frozen=True)
class VestingCandidate:
    vest_date: date
    shares: Decimal


def eligible_candidates(grant: GrantSnapshot, as_of: date) -> list[VestingCandidate]:
    """Schedule entries that have vested by ``as_of``.

    The cliff date carries tranches 1-12 as one lump sum; every later month
    vests its own tranche.
    """
    schedule = project_schedule(grant.grant_date)
    if as_of < schedule[CLIFF_INDEX]:
        return []
    tranches = allocate_tranches(grant.share_amount)
    candidates = [VestingCandidate(schedule[CLIFF_INDEX], cliff_amount(tranches))]
    for index in range(CLIFF_MONTHS, TOTAL_VESTING_MONTHS):
        if schedule[index] > as_of:
            break
        candidates.append(VestingCandidate(schedule[index], tranches[index]))
    return [candidate for candidate in candidates if candidate.shares > 0]


async def update_vested_aggregate(
    repo: VestingRepository,
    grant: GrantSnapshot,
    inserted_sum: Decimal,
    *,
    attempts: int | None = None,
) -> GrantSnapshot:
    """Add ``inserted_sum`` to the grant, reconciling from the ledger on a version conflict."""
    target = share_math.add(grant.vested_amount, inserted_sum)
    if await repo.compare_and_set_vested(grant, expected_version=grant.version, vested_amount=target):
        return _with_aggregate(grant, target, grant.version + 1)

    logger.info(
        "Grant version changed during commit; reconciling from ledger",
        extra={"grant_id": str(grant.id)},
    )
    for _ in range(attempts or settings.vesting_reconcile_attempts):
        latest = await repo.get_grant(grant.id, tenant_id=grant.org_id, for_update=True)
        if latest is None:
            raise GrantNotFoundError("Grant disappeared during vesting", details={"grant_id": str(grant.id)})
        authoritative = await repo.sum_vested(latest)
        if await repo.compare_and_set_vested(latest, expected_version=latest.version, vested_amount=authoritative):
            return _with_aggregate(latest, authoritative, latest.version + 1)
    raise VestingConflictError(
        "Could not reconcile vested amount with the ledger",
        details={"grant_id": str(grant.id)},
    )


def _with_aggregate(grant: GrantSnapshot, vested_amount: Decimal, version: int) -> GrantSnapshot:
    return GrantSnapshot(
        id=grant.id,
        org_id=grant.org_id,
        employee_id=grant.employee_id,
        grant_date=grant.grant_date,
        share_amount=grant.share_amount,
        vested_amount=vested_amount,
        status=grant.status,
        version=version,
    )


def _aggregate_snapshot(grant: GrantSnapshot) -> dict:
    return {"vested_amount": grant.vested_amount, "version": grant.version}


class VestingProcessor:
    def __init__(
        self,
        store: VestingStore,
        prices: PriceLookup,
        audit: AuditSink,
        *,
        reconcile_attempts: int | None = None,
    ) -> None:
        self.store = store
        self.prices = prices
        self.audit = audit
        self.reconcile_attempts = reconcile_attempts

    async def process(
        self,
        grant_id: UUID,
        as_of: date,
        *,
        tenant_id: str,
        actor_id: str,
    ) -> list[VestingEventRecord]:
        log_extra = {"grant_id": str(grant_id), "as_of": as_of.isoformat()}

        async with self.store.session() as repo:
            grant = await repo.get_grant(grant_id, tenant_id=tenant_id)
            if grant is None or not grant.is_active:
                logger.debug("Grant missing or inactive; nothing to vest", extra=log_extra)
                return []
            candidates = eligible_candidates(grant, as_of)
            if not candidates:
                return []
            recorded = await repo.list_vest_dates(grant)

        pending = [candidate for candidate in candidates if candidate.vest_date not in recorded]
        if not pending:
            return []

        # Price history is append-only, so snapshots are resolved before the
        # grant row is locked.
        prices = {
            candidate.vest_date: await self.prices.price_on_or_before(tenant_id, candidate.vest_date)
            for candidate in pending
        }

        inserted: list[VestingEventRecord] = []
        async with self.store.transaction() as repo:
            current = await repo.get_grant(grant_id, tenant_id=tenant_id, for_update=True)
            if current is None or not current.is_active:
                return []
            recorded = await repo.list_vest_dates(current)
            headroom = share_math.subtract(current.share_amount, await repo.sum_vested(current))
            for candidate in pending:
                if candidate.vest_date in recorded:
                    continue
                shares = min(candidate.shares, headroom)
                if shares <= 0:
                    logger.warning(
                        "Grant fully vested; skipping scheduled date",
                        extra={**log_extra, "vest_date": candidate.vest_date.isoformat()},
                    )
                    continue
                result = await repo.try_insert(
                    current,
                    candidate.vest_date,
                    shares,
                    prices[candidate.vest_date],
                    SOURCE_SCHEDULED,
                    actor_id,
                )
                if result.inserted:
                    inserted.append(result.event)
                    headroom = share_math.subtract(headroom, shares)
            if not inserted:
                return []
            updated = await update_vested_aggregate(
                repo,
                current,
                share_math.total(event.shares_vested for event in inserted),
                attempts=self.reconcile_attempts,
            )

        logger.info(
            "Recorded vesting events",
            extra={**log_extra, "events_created": len(inserted)},
        )
        await emit_audit(
            self.audit,
            AuditEntry(
                tenant_id=tenant_id,
                actor_id=actor_id,
                action="vesting.events_recorded",
                resource_type="equity_grant",
                resource_id=str(grant_id),
                old_value=_aggregate_snapshot(current),
                new_value={
                    **_aggregate_snapshot(updated),
                    "events": [
                        {"vest_date": event.vest_date, "shares_vested": event.shares_vested}
                        for event in inserted
                    ],
                },
            ),
        )
        return inserted
