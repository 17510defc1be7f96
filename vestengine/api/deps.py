from dataclasses import dataclass
from functools import lru_cache

from fastapi import Header, HTTPException, status

from vestengine.core.context import set_actor_id, set_tenant_id
from vestengine.core.settings import settings
from vestengine.core.tenant import is_valid_org_id, normalize_org_id
from vestengine.db.session import AsyncSessionLocal
from vestengine.services.container import VestingServices, build_sql_services


@dataclass(slots=True)
class TenantContext:
    org_id: str


async def get_tenant_context(
    tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
) -> TenantContext:
    if settings.tenancy_mode == "multi":
        if not tenant_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Tenant resolution failed: provide X-Tenant-ID header",
            )
        if not is_valid_org_id(tenant_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-Tenant-ID header")
        org_id = normalize_org_id(tenant_id)
        set_tenant_id(org_id)
        return TenantContext(org_id=org_id)

    default_org = settings.default_org_id
    set_tenant_id(default_org)
    return TenantContext(org_id=default_org)


async def get_actor_id(actor_id: str | None = Header(default=None, alias="X-Actor-ID")) -> str:
    resolved = (actor_id or "").strip() or settings.system_actor_id
    set_actor_id(resolved)
    return resolved


@lru_cache(maxsize=1)
def _sql_services() -> VestingServices:
    return build_sql_services(AsyncSessionLocal)


async def get_vesting_services() -> VestingServices:
    return _sql_services()
