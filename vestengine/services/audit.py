from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vestengine.core.logging import get_audit_logger
from vestengine.models.audit_log import AuditLog
from vestengine.services.interfaces import AuditEntry, AuditSink

logger = logging.getLogger(__name__)


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
            UUID: lambda v: str(v),
        },
    )


def _diff_values(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        keys = set(old.keys()) | set(new.keys())
        for key in sorted(keys, key=str):
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_diff_values(old.get(key), new.get(key), path))
        return changes
    if old != new:
        changes[prefix or "value"] = {"from": old, "to": new}
    return changes


def _build_summary(action: str, changes: dict[str, dict[str, Any]] | None) -> str:
    if not changes:
        return action
    keys = list(changes.keys())
    snippet = ", ".join(keys[:3])
    suffix = "..." if len(keys) > 3 else ""
    return f"{action}: {snippet}{suffix}"


def build_audit_row(entry: AuditEntry) -> AuditLog:
    serialized_old = serialize_for_audit(entry.old_value) if entry.old_value is not None else None
    serialized_new = serialize_for_audit(entry.new_value) if entry.new_value is not None else None
    changes = None
    if serialized_old is not None or serialized_new is not None:
        changes = _diff_values(serialized_old or {}, serialized_new or {})
        if not changes:
            changes = None
    return AuditLog(
        org_id=entry.tenant_id,
        actor_id=entry.actor_id,
        action=entry.action,
        resource_type=entry.resource_type,
        resource_id=entry.resource_id,
        old_value=serialized_old,
        new_value=serialized_new,
        changes=changes,
        summary=_build_summary(entry.action, changes),
    )


class LoggingAuditSink:
    """Writes audit entries to the ``vestengine.audit`` log stream only."""

    def __init__(self, audit_logger: logging.Logger | None = None) -> None:
        self._logger = audit_logger or get_audit_logger()

    async def record(self, entry: AuditEntry) -> None:
        row = build_audit_row(entry)
        self._logger.info(
            row.summary,
            extra={"grant_id": entry.resource_id if entry.resource_type == "equity_grant" else None},
        )


class SqlAuditSink:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._stream = LoggingAuditSink()

    async def record(self, entry: AuditEntry) -> None:
        async with self._session_factory() as session:
            session.add(build_audit_row(entry))
            await session.commit()
        await self._stream.record(entry)


async def emit_audit(sink: AuditSink, entry: AuditEntry) -> None:
    """Deliver an entry after the vesting commit; failures are logged and dropped."""
    try:
        await sink.record(entry)
    except Exception:
        logger.exception(
            "Audit sink failed; vesting change is already committed",
            extra={"grant_id": entry.resource_id},
        )
