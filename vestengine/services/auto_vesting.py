from __future__ import annotations

import logging
from datetime import date, datetime
from uuid import UUID

from vestengine.core.exceptions import GrantNotFoundError
from vestengine.core.settings import settings
from vestengine.services.calendar import today_in_timezone
from vestengine.services.interfaces import TenantRegistry, VestingEventRecord
from vestengine.services.processor import VestingProcessor

logger = logging.getLogger(__name__)


async def tenant_today(tenants: TenantRegistry, tenant_id: str, *, now: datetime | None = None) -> date:
    tenant = await tenants.get_tenant(tenant_id)
    timezone_name = tenant.timezone if tenant is not None and tenant.timezone else settings.default_timezone
    return today_in_timezone(timezone_name, now=now)


async def process_new_grant(
    processor: VestingProcessor,
    tenants: TenantRegistry,
    grant_id: UUID,
    *,
    tenant_id: str,
    actor_id: str,
    now: datetime | None = None,
) -> list[VestingEventRecord]:
    """Catch a newly created grant up to today.

    Called synchronously by the grant-creation flow. A backdated grant gets
    every event it has already earned; a grant dated today or later gets none.
    """
    today = await tenant_today(tenants, tenant_id, now=now)

    async with processor.store.session() as repo:
        grant = await repo.get_grant(grant_id, tenant_id=tenant_id)
    if grant is None:
        raise GrantNotFoundError("Grant not found", details={"grant_id": str(grant_id)})
    if grant.grant_date >= today:
        logger.debug("Grant is not backdated; no initial vesting", extra={"grant_id": str(grant_id)})
        return []

    return await processor.process(grant_id, today, tenant_id=tenant_id, actor_id=actor_id)
