from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

import pytest

from vestengine.models.audit_log import AuditLog
from vestengine.services.audit import SqlAuditSink, build_audit_row, emit_audit
from vestengine.services.interfaces import AuditEntry


def _entry(**overrides) -> AuditEntry:
    params = dict(
        tenant_id="default",
        actor_id="admin",
        action="vesting.events_recorded",
        resource_type="equity_grant",
        resource_id="g-1",
        old_value={"vested_amount": Decimal("0.000"), "version": 0},
        new_value={"vested_amount": Decimal("249.996"), "version": 1, "events": [{"vest_date": date(2024, 1, 15)}]},
    )
    params.update(overrides)
    return AuditEntry(**params)


def test_build_audit_row_diffs_and_serializes():
    row = build_audit_row(_entry())

    assert isinstance(row, AuditLog)
    assert row.new_value["vested_amount"] == "249.996"
    assert row.new_value["events"] == [{"vest_date": "2024-01-15"}]
    assert row.changes["vested_amount"] == {"from": "0.000", "to": "249.996"}
    assert row.changes["version"] == {"from": 0, "to": 1}
    assert row.summary.startswith("vesting.events_recorded: ")


def test_build_audit_row_without_values():
    row = build_audit_row(_entry(old_value=None, new_value=None))
    assert row.changes is None
    assert row.summary == "vesting.events_recorded"


@pytest.mark.asyncio
async def test_sql_sink_commits_row(fake_db):
    @asynccontextmanager
    async def factory():
        yield fake_db

    await SqlAuditSink(factory).record(_entry())

    assert fake_db.committed is True
    assert isinstance(fake_db.added[0], AuditLog)


class _FailingSink:
    async def record(self, entry):
        raise RuntimeError("audit store down")


@pytest.mark.asyncio
async def test_emit_audit_swallows_sink_failures(caplog):
    await emit_audit(_FailingSink(), _entry())
    assert "Audit sink failed" in caplog.text
