from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime

from vestengine.core.context import reset_tenant_id, set_tenant_id
from vestengine.core.exceptions import VestingError
from vestengine.core.settings import settings
from vestengine.services.calendar import today_in_timezone
from vestengine.services.interfaces import TenantRecord, TenantRegistry, VestingStore
from vestengine.services.processor import VestingProcessor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchError:
    tenant_id: str
    grant_id: str | None
    message: str


@dataclass(slots=True)
class BatchSummary:
    tenants_processed: int = 0
    grants_processed: int = 0
    events_created: int = 0
    errors: list[BatchError] = field(default_factory=list)
    timed_out: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class BatchOrchestrator:
    """Daily catch-up over every active tenant and grant.

    Each grant is committed on its own, so one failing grant never aborts the
    run and a re-run only records what is still missing.
    """

    def __init__(
        self,
        processor: VestingProcessor,
        store: VestingStore,
        tenants: TenantRegistry,
        *,
        actor_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.processor = processor
        self.store = store
        self.tenants = tenants
        self.actor_id = actor_id or settings.system_actor_id
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.vesting_batch_timeout_seconds
        )

    async def run_daily(self, *, now: datetime | None = None) -> BatchSummary:
        summary = BatchSummary()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds if self.timeout_seconds else None

        for tenant in await self.tenants.list_active_tenants():
            if deadline is not None and loop.time() >= deadline:
                summary.timed_out = True
                break
            await self._run_tenant(tenant, summary, now=now, deadline=deadline)
            summary.tenants_processed += 1
            if summary.timed_out:
                break

        logger.info(
            "Daily vesting run finished: %s tenants, %s grants, %s errors%s",
            summary.tenants_processed,
            summary.grants_processed,
            len(summary.errors),
            " (timed out)" if summary.timed_out else "",
            extra={"events_created": summary.events_created},
        )
        return summary

    async def _run_tenant(
        self,
        tenant: TenantRecord,
        summary: BatchSummary,
        *,
        now: datetime | None,
        deadline: float | None,
    ) -> None:
        token = set_tenant_id(tenant.id)
        try:
            await self._run_tenant_grants(tenant, summary, now=now, deadline=deadline)
        finally:
            reset_tenant_id(token)

    async def _run_tenant_grants(
        self,
        tenant: TenantRecord,
        summary: BatchSummary,
        *,
        now: datetime | None,
        deadline: float | None,
    ) -> None:
        loop = asyncio.get_running_loop()
        try:
            as_of = today_in_timezone(tenant.timezone or settings.default_timezone, now=now)
        except VestingError as exc:
            logger.error("Skipping tenant %s: %s", tenant.id, exc.message)
            summary.errors.append(BatchError(tenant_id=tenant.id, grant_id=None, message=exc.message))
            return

        try:
            async with self.store.session() as repo:
                grants = await repo.list_active_grants(tenant.id)
        except Exception as exc:
            logger.exception("Could not list grants for tenant %s", tenant.id)
            summary.errors.append(BatchError(tenant_id=tenant.id, grant_id=None, message=str(exc)))
            return

        for grant in grants:
            if deadline is not None and loop.time() >= deadline:
                logger.warning("Daily vesting run hit its time limit; remaining grants deferred")
                summary.timed_out = True
                return
            try:
                events = await self.processor.process(
                    grant.id, as_of, tenant_id=tenant.id, actor_id=self.actor_id
                )
            except Exception as exc:
                logger.exception(
                    "Vesting failed for grant",
                    extra={"grant_id": str(grant.id), "as_of": as_of.isoformat()},
                )
                summary.errors.append(
                    BatchError(tenant_id=tenant.id, grant_id=str(grant.id), message=str(exc))
                )
                continue
            summary.grants_processed += 1
            summary.events_created += len(events)
