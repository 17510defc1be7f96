from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import FakeResult, entity_handler, sequence_handler
from vestengine.models.equity_grant import EquityGrant
from vestengine.models.vesting_event import VestingEvent
from vestengine.services.interfaces import InsertOutcome, SOURCE_SCHEDULED
from vestengine.services.ledger import SqlVestingRepository, grant_snapshot


def _grant_row(**overrides) -> EquityGrant:
    defaults = dict(
        id=uuid4(),
        org_id="default",
        employee_id="E-1",
        grant_date=date(2023, 1, 15),
        share_amount=Decimal("1000"),
        vested_amount=Decimal("0"),
        status="active",
        version=3,
    )
    defaults.update(overrides)
    return EquityGrant(**defaults)


def _integrity_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO vesting_events ...", {}, Exception(message))


@pytest.mark.asyncio
async def test_insert_records_event(fake_db):
    grant = grant_snapshot(_grant_row())
    repo = SqlVestingRepository(fake_db)

    result = await repo.try_insert(grant, date(2024, 1, 15), Decimal("249.996"), None, SOURCE_SCHEDULED, "tester")

    assert result.outcome is InsertOutcome.INSERTED
    assert result.event.shares_vested == Decimal("249.996")
    assert result.event.created_by == "tester"
    assert fake_db.savepoints == 1
    assert isinstance(fake_db.added[0], VestingEvent)


@pytest.mark.asyncio
async def test_duplicate_vest_date_becomes_already_exists(fake_db):
    grant = grant_snapshot(_grant_row())
    repo = SqlVestingRepository(fake_db)
    fake_db.flush_error = _integrity_error(
        'duplicate key value violates unique constraint "uq_vesting_events_grant_date"'
    )

    result = await repo.try_insert(grant, date(2024, 1, 15), Decimal("1"), None, SOURCE_SCHEDULED, "tester")

    assert result.outcome is InsertOutcome.ALREADY_EXISTS
    assert result.event is None
    assert fake_db.savepoint_rollbacks == 1
    assert fake_db.added == []


@pytest.mark.asyncio
async def test_other_integrity_errors_propagate(fake_db):
    grant = grant_snapshot(_grant_row())
    repo = SqlVestingRepository(fake_db)
    fake_db.flush_error = _integrity_error('violates check constraint "ck_vesting_events_shares_positive"')

    with pytest.raises(IntegrityError):
        await repo.try_insert(grant, date(2024, 1, 15), Decimal("1"), None, SOURCE_SCHEDULED, "tester")


@pytest.mark.asyncio
async def test_get_grant_maps_row_to_snapshot(fake_db):
    row = _grant_row(vested_amount=Decimal("12.5"))
    fake_db.on_execute(entity_handler(EquityGrant, FakeResult(scalar=row)))

    snapshot = await SqlVestingRepository(fake_db).get_grant(row.id, tenant_id="default", for_update=True)

    assert snapshot.id == row.id
    assert snapshot.vested_amount == Decimal("12.500")
    assert snapshot.version == 3
    assert "FOR UPDATE" in str(fake_db.executed[0].compile())


@pytest.mark.asyncio
async def test_sum_and_dates(fake_db):
    grant = grant_snapshot(_grant_row())
    fake_db.on_execute(
        sequence_handler(
            [
                FakeResult(rows=[(date(2024, 1, 15),), (date(2024, 2, 15),)]),
                FakeResult(scalar=Decimal("270.8290")),
            ]
        )
    )
    repo = SqlVestingRepository(fake_db)

    assert await repo.list_vest_dates(grant) == {date(2024, 1, 15), date(2024, 2, 15)}
    assert await repo.sum_vested(grant) == Decimal("270.829")


@pytest.mark.asyncio
async def test_compare_and_set_reports_lost_race(fake_db):
    grant = grant_snapshot(_grant_row())
    fake_db.on_execute(sequence_handler([FakeResult(rowcount=0), FakeResult(rowcount=1)]))
    repo = SqlVestingRepository(fake_db)

    assert await repo.compare_and_set_vested(grant, expected_version=3, vested_amount=Decimal("10")) is False
    assert await repo.compare_and_set_vested(grant, expected_version=3, vested_amount=Decimal("10")) is True
    compiled = str(fake_db.executed[0].compile())
    assert "equity_grants.version" in compiled
