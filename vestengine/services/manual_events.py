from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from vestengine.core.exceptions import GrantNotFoundError, VestingConflictError, VestingValidationError
from vestengine.services import share_math
from vestengine.services.audit import emit_audit
from vestengine.services.interfaces import (
    SOURCE_MANUAL,
    AuditEntry,
    AuditSink,
    PriceLookup,
    VestingEventRecord,
    VestingStore,
)
from vestengine.services.processor import update_vested_aggregate

logger = logging.getLogger(__name__)


def validate_manual_shares(shares) -> Decimal:
    try:
        amount = share_math.to_decimal(shares)
    except ValueError as exc:
        raise VestingValidationError(str(exc), details={"shares_vested": str(shares)}) from exc
    if not share_math.has_share_precision(amount):
        raise VestingValidationError(
            "Shares vested must have at most 3 decimal places",
            details={"shares_vested": str(shares)},
        )
    if amount <= 0:
        raise VestingValidationError(
            "Shares vested must be greater than zero",
            details={"shares_vested": str(shares)},
        )
    return share_math.quantize_shares(amount)


async def add_manual_event(
    store: VestingStore,
    prices: PriceLookup,
    audit: AuditSink,
    grant_id: UUID,
    *,
    vest_date: date,
    shares_vested,
    tenant_id: str,
    actor_id: str,
    expected_version: int | None = None,
) -> VestingEventRecord:
    """Record an off-schedule vesting event entered by an administrator."""
    shares = validate_manual_shares(shares_vested)
    price = await prices.price_on_or_before(tenant_id, vest_date)
    details = {"grant_id": str(grant_id), "vest_date": vest_date.isoformat()}

    async with store.transaction() as repo:
        grant = await repo.get_grant(grant_id, tenant_id=tenant_id, for_update=True)
        if grant is None:
            raise GrantNotFoundError("Grant not found", details=details)
        if expected_version is not None and expected_version != grant.version:
            raise VestingConflictError(
                "Grant has been modified by another user. Please refresh and try again.",
                details={**details, "version": grant.version},
            )
        if not grant.is_active:
            raise VestingValidationError("Cannot add vesting events to an inactive grant", details=details)

        recorded = await repo.sum_vested(grant)
        new_total = share_math.add(recorded, shares)
        if new_total > grant.share_amount:
            raise VestingValidationError(
                "Vesting would exceed total shares",
                details={
                    **details,
                    "share_amount": str(grant.share_amount),
                    "vested_amount": str(recorded),
                    "shares_vested": str(shares),
                },
            )

        result = await repo.try_insert(grant, vest_date, shares, price, SOURCE_MANUAL, actor_id)
        if not result.inserted:
            raise VestingValidationError("A vesting event already exists for this date", details=details)
        updated = await update_vested_aggregate(repo, grant, shares)

    logger.info("Recorded manual vesting event", extra={"grant_id": str(grant_id), "vest_date": vest_date.isoformat()})
    await emit_audit(
        audit,
        AuditEntry(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="vesting.manual_event_created",
            resource_type="equity_grant",
            resource_id=str(grant_id),
            old_value={"vested_amount": grant.vested_amount, "version": grant.version},
            new_value={
                "vested_amount": updated.vested_amount,
                "version": updated.version,
                "vesting_event": {
                    "vest_date": vest_date,
                    "shares_vested": shares,
                    "price_per_share": price,
                },
            },
        ),
    )
    return result.event
