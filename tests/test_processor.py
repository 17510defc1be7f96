from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from vestengine.services import share_math
from vestengine.services.interfaces import GRANT_INACTIVE, SOURCE_SCHEDULED, GrantSnapshot
from vestengine.services.processor import VestingProcessor, eligible_candidates
from vestengine.services.tranches import allocate_tranches, cliff_amount


class FailingAuditSink:
    async def record(self, entry) -> None:
        raise OSError("audit store unavailable")


def _grant(memory_store, *, grant_date=date(2023, 1, 15), shares="1000", status="active"):
    return memory_store.add_grant(org_id="default", grant_date=grant_date, share_amount=Decimal(shares), status=status)


@pytest.mark.asyncio
async def test_nothing_vests_the_day_before_the_cliff(memory_store, processor):
    grant = _grant(memory_store)
    events = await processor.process(grant.id, date(2024, 1, 14), tenant_id="default", actor_id="tester")
    assert events == []
    assert memory_store.events[grant.id] == {}


@pytest.mark.asyncio
async def test_cliff_day_records_one_lump_sum_event(memory_store, processor):
    grant = _grant(memory_store)
    events = await processor.process(grant.id, date(2024, 1, 15), tenant_id="default", actor_id="tester")

    assert len(events) == 1
    assert events[0].vest_date == date(2024, 1, 15)
    assert events[0].shares_vested == cliff_amount(allocate_tranches(Decimal("1000")))
    assert events[0].source == SOURCE_SCHEDULED
    assert events[0].created_by == "tester"
    assert memory_store.grants[grant.id].vested_amount == Decimal("249.996")
    assert memory_store.grants[grant.id].version == 1


@pytest.mark.asyncio
async def test_second_call_is_a_no_op(memory_store, processor):
    grant = _grant(memory_store)
    first = await processor.process(grant.id, date(2024, 3, 20), tenant_id="default", actor_id="tester")
    state_after_first = memory_store.grants[grant.id]
    second = await processor.process(grant.id, date(2024, 3, 20), tenant_id="default", actor_id="tester")

    assert len(first) == 3
    assert second == []
    assert memory_store.grants[grant.id] == state_after_first


@pytest.mark.asyncio
async def test_backdated_grant_catches_up_in_one_call(memory_store, processor):
    grant = _grant(memory_store, grant_date=date(2023, 1, 15))
    # One day short of 25 months: the cliff plus months 13 through 24.
    events = await processor.process(grant.id, date(2025, 2, 14), tenant_id="default", actor_id="tester")
    assert len(events) == 13
    assert [e.vest_date for e in events][:2] == [date(2024, 1, 15), date(2024, 2, 15)]
    assert memory_store.grants[grant.id].vested_amount == Decimal("499.992")

    other = _grant(memory_store, grant_date=date(2023, 1, 15))
    events = await processor.process(other.id, date(2025, 2, 15), tenant_id="default", actor_id="tester")
    assert len(events) == 14


@pytest.mark.asyncio
async def test_vested_amount_matches_ledger_after_each_step(memory_store, processor):
    grant = _grant(memory_store, shares="12345.678")
    for as_of in (date(2024, 1, 15), date(2024, 6, 20), date(2025, 12, 31), date(2030, 1, 1)):
        await processor.process(grant.id, as_of, tenant_id="default", actor_id="tester")
        assert memory_store.grants[grant.id].vested_amount == memory_store.ledger_total(grant.id)
    assert memory_store.grants[grant.id].vested_amount == Decimal("12345.678")
    assert len(memory_store.events[grant.id]) == 37


@pytest.mark.asyncio
async def test_inactive_and_missing_grants_vest_nothing(memory_store, processor):
    grant = _grant(memory_store, status=GRANT_INACTIVE)
    assert await processor.process(grant.id, date(2026, 1, 1), tenant_id="default", actor_id="t") == []
    assert await processor.process(uuid4(), date(2026, 1, 1), tenant_id="default", actor_id="t") == []


@pytest.mark.asyncio
async def test_grant_of_another_tenant_is_invisible(memory_store, processor):
    grant = memory_store.add_grant(org_id="other", grant_date=date(2023, 1, 15), share_amount=Decimal("480"))
    assert await processor.process(grant.id, date(2026, 1, 1), tenant_id="default", actor_id="t") == []


@pytest.mark.asyncio
async def test_price_snapshot_uses_latest_price_on_or_before(memory_store, prices, processor):
    prices.set_price("default", date(2024, 1, 1), "1.50")
    prices.set_price("default", date(2024, 2, 20), "2.00")
    grant = _grant(memory_store)
    events = await processor.process(grant.id, date(2024, 3, 15), tenant_id="default", actor_id="t")

    by_date = {e.vest_date: e.price_per_share for e in events}
    assert by_date[date(2024, 1, 15)] == Decimal("1.50")
    assert by_date[date(2024, 2, 15)] == Decimal("1.50")
    assert by_date[date(2024, 3, 15)] == Decimal("2.00")


@pytest.mark.asyncio
async def test_missing_price_records_null_snapshot(memory_store, processor):
    grant = _grant(memory_store)
    events = await processor.process(grant.id, date(2024, 1, 15), tenant_id="default", actor_id="t")
    assert events[0].price_per_share is None


@pytest.mark.asyncio
async def test_audit_failure_does_not_undo_vesting(memory_store, prices):
    processor = VestingProcessor(memory_store, prices, FailingAuditSink())
    grant = _grant(memory_store)
    events = await processor.process(grant.id, date(2024, 1, 15), tenant_id="default", actor_id="t")
    assert len(events) == 1
    assert memory_store.grants[grant.id].vested_amount == Decimal("249.996")


@pytest.mark.asyncio
async def test_audit_entry_describes_aggregate_change(memory_store, processor, audit_sink):
    grant = _grant(memory_store)
    await processor.process(grant.id, date(2024, 2, 15), tenant_id="default", actor_id="tester")

    assert len(audit_sink.entries) == 1
    entry = audit_sink.entries[0]
    assert entry.actor_id == "tester"
    assert entry.resource_id == str(grant.id)
    assert entry.old_value == {"vested_amount": Decimal("0.000"), "version": 0}
    assert entry.new_value["vested_amount"] == Decimal("270.829")
    assert len(entry.new_value["events"]) == 2


@pytest.mark.asyncio
async def test_manual_event_on_other_date_caps_final_tranche(memory_store, processor):
    grant = _grant(memory_store, shares="480")
    await processor.process(grant.id, date(2024, 1, 15), tenant_id="default", actor_id="t")
    async with memory_store.transaction() as repo:
        current = await repo.get_grant(grant.id, tenant_id="default")
        await repo.try_insert(current, date(2024, 1, 20), Decimal("5"), None, "manual", "admin")
        await repo.compare_and_set_vested(
            current, expected_version=current.version, vested_amount=Decimal("125")
        )

    await processor.process(grant.id, date(2030, 1, 1), tenant_id="default", actor_id="t")
    assert memory_store.grants[grant.id].vested_amount == Decimal("480.000")
    assert memory_store.ledger_total(grant.id) == Decimal("480.000")


def test_candidates_stop_at_first_future_date():
    grant = GrantSnapshot(
        id=uuid4(),
        org_id="default",
        employee_id="E-1",
        grant_date=date(2023, 1, 31),
        share_amount=Decimal("4800"),
        vested_amount=share_math.ZERO,
        status="active",
        version=0,
    )
    candidates = eligible_candidates(grant, date(2024, 3, 30))
    assert [c.vest_date for c in candidates] == [date(2024, 1, 31), date(2024, 2, 29)]
    assert candidates[0].shares == Decimal("1200.000")
    assert candidates[1].shares == Decimal("100.000")


@pytest.mark.asyncio
async def test_tiny_grant_vests_up_to_its_total(memory_store, processor):
    grant = _grant(memory_store, shares="0.030")

    cliff = await processor.process(grant.id, date(2024, 1, 15), tenant_id="default", actor_id="t")
    assert [e.shares_vested for e in cliff] == [Decimal("0.012")]

    rest = await processor.process(grant.id, date(2027, 1, 15), tenant_id="default", actor_id="t")
    assert len(rest) == 18
    assert all(e.shares_vested == Decimal("0.001") for e in rest)
    assert memory_store.grants[grant.id].vested_amount == Decimal("0.030")
    assert memory_store.ledger_total(grant.id) == Decimal("0.030")

    assert await processor.process(grant.id, date(2027, 1, 15), tenant_id="default", actor_id="t") == []
