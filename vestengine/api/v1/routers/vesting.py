from datetime import date
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, status

from vestengine.api import deps
from vestengine.core.limiter import limiter
from vestengine.core.settings import settings
from vestengine.schemas.vesting import (
    BatchSummaryOut,
    GrantScheduleOut,
    ManualEventCreate,
    ProcessRequest,
    ProcessResponse,
    ScheduleRowOut,
    VestingEventOut,
    VestingSummaryOut,
)
from vestengine.services import auto_vesting, manual_events, schedule_view
from vestengine.services.container import VestingServices

router = APIRouter(prefix="/vesting", tags=["vesting"])


async def _as_of_or_today(services: VestingServices, ctx: deps.TenantContext, as_of: date | None) -> date:
    if as_of is not None:
        return as_of
    return await auto_vesting.tenant_today(services.tenants, ctx.org_id)


@router.post(
    "/grants/{grant_id}/process",
    response_model=ProcessResponse,
    summary="Record every vesting event a grant has earned",
)
async def process_grant(
    grant_id: UUID,
    payload: ProcessRequest | None = Body(default=None),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor_id: str = Depends(deps.get_actor_id),
    services: VestingServices = Depends(deps.get_vesting_services),
) -> ProcessResponse:
    as_of = await _as_of_or_today(services, ctx, payload.as_of if payload else None)
    events = await services.processor.process(grant_id, as_of, tenant_id=ctx.org_id, actor_id=actor_id)
    return ProcessResponse(
        grant_id=grant_id,
        as_of=as_of,
        events_created=len(events),
        events=[VestingEventOut.model_validate(event) for event in events],
    )


@router.post(
    "/grants/{grant_id}/initialize",
    response_model=ProcessResponse,
    summary="Catch a newly created, possibly backdated grant up to today",
)
async def initialize_grant(
    grant_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor_id: str = Depends(deps.get_actor_id),
    services: VestingServices = Depends(deps.get_vesting_services),
) -> ProcessResponse:
    events = await auto_vesting.process_new_grant(
        services.processor,
        services.tenants,
        grant_id,
        tenant_id=ctx.org_id,
        actor_id=actor_id,
    )
    return ProcessResponse(
        grant_id=grant_id,
        events_created=len(events),
        events=[VestingEventOut.model_validate(event) for event in events],
    )


@router.post(
    "/grants/{grant_id}/events",
    response_model=VestingEventOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record a manual vesting event",
)
async def create_manual_event(
    grant_id: UUID,
    payload: ManualEventCreate,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor_id: str = Depends(deps.get_actor_id),
    services: VestingServices = Depends(deps.get_vesting_services),
) -> VestingEventOut:
    event = await manual_events.add_manual_event(
        services.store,
        services.prices,
        services.audit,
        grant_id,
        vest_date=payload.vest_date,
        shares_vested=payload.shares_vested,
        tenant_id=ctx.org_id,
        actor_id=actor_id,
        expected_version=payload.expected_version,
    )
    return VestingEventOut.model_validate(event)


@router.get(
    "/grants/{grant_id}/schedule",
    response_model=GrantScheduleOut,
    summary="Full 48-month schedule with per-month status",
)
async def get_schedule(
    grant_id: UUID,
    as_of: date | None = Query(default=None),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    services: VestingServices = Depends(deps.get_vesting_services),
) -> GrantScheduleOut:
    resolved = await _as_of_or_today(services, ctx, as_of)
    view = await schedule_view.build_schedule(services.store, grant_id, resolved, tenant_id=ctx.org_id)
    grant = view.grant
    return GrantScheduleOut(
        grant_id=grant.id,
        employee_id=grant.employee_id,
        grant_date=grant.grant_date,
        share_amount=grant.share_amount,
        vested_amount=grant.vested_amount,
        status=grant.status,
        as_of=view.as_of,
        schedule=[ScheduleRowOut.model_validate(row) for row in view.rows],
    )


@router.get(
    "/grants/{grant_id}/summary",
    response_model=VestingSummaryOut,
    summary="Recorded versus theoretical vesting for a grant",
)
async def get_summary(
    grant_id: UUID,
    as_of: date | None = Query(default=None),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    services: VestingServices = Depends(deps.get_vesting_services),
) -> VestingSummaryOut:
    resolved = await _as_of_or_today(services, ctx, as_of)
    summary = await schedule_view.build_summary(services.store, grant_id, resolved, tenant_id=ctx.org_id)
    return VestingSummaryOut.model_validate(summary)


@router.post(
    "/batch/run",
    response_model=BatchSummaryOut,
    summary="Run the daily vesting batch now",
)
@limiter.limit(lambda: settings.batch_run_rate_limit)
async def run_batch(
    request: Request,
    services: VestingServices = Depends(deps.get_vesting_services),
) -> BatchSummaryOut:
    summary = await services.orchestrator().run_daily()
    return BatchSummaryOut.model_validate(summary)
