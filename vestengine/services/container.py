from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vestengine.core.settings import settings
from vestengine.services.audit import SqlAuditSink
from vestengine.services.batch import BatchOrchestrator
from vestengine.services.interfaces import AuditSink, PriceLookup, TenantRegistry, VestingStore
from vestengine.services.ledger import SqlPriceLookup, SqlTenantRegistry, SqlVestingStore
from vestengine.services.processor import VestingProcessor


@dataclass(slots=True)
class VestingServices:
    store: VestingStore
    prices: PriceLookup
    audit: AuditSink
    tenants: TenantRegistry
    processor: VestingProcessor

    @classmethod
    def create(
        cls,
        store: VestingStore,
        prices: PriceLookup,
        audit: AuditSink,
        tenants: TenantRegistry,
    ) -> "VestingServices":
        processor = VestingProcessor(
            store, prices, audit, reconcile_attempts=settings.vesting_reconcile_attempts
        )
        return cls(store=store, prices=prices, audit=audit, tenants=tenants, processor=processor)

    def orchestrator(self, *, timeout_seconds: float | None = None) -> BatchOrchestrator:
        return BatchOrchestrator(
            self.processor,
            self.store,
            self.tenants,
            actor_id=settings.system_actor_id,
            timeout_seconds=timeout_seconds,
        )


def build_sql_services(session_factory: async_sessionmaker[AsyncSession]) -> VestingServices:
    return VestingServices.create(
        SqlVestingStore(session_factory),
        SqlPriceLookup(session_factory),
        SqlAuditSink(session_factory),
        SqlTenantRegistry(session_factory),
    )
