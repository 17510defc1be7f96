from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class VestingSource(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class ScheduleStatus(str, Enum):
    VESTED = "vested"
    CLIFF = "cliff"
    PENDING = "pending"
    FUTURE = "future"


class VestingEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    grant_id: UUID
    vest_date: date
    shares_vested: Decimal
    price_per_share: Decimal | None = None
    source: VestingSource
    created_by: str
    created_at: datetime | None = None


class ProcessRequest(BaseModel):
    as_of: date | None = None


class ProcessResponse(BaseModel):
    grant_id: UUID
    as_of: date | None = None
    events_created: int
    events: list[VestingEventOut] = Field(default_factory=list)


class ManualEventCreate(BaseModel):
    vest_date: date
    shares_vested: Decimal
    expected_version: int | None = Field(default=None, ge=0)


class ScheduleRowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: int
    vest_date: date
    shares: Decimal
    status: ScheduleStatus
    price_per_share: Decimal | None = None
    vested_at: datetime | None = None


class GrantScheduleOut(BaseModel):
    grant_id: UUID
    employee_id: str
    grant_date: date
    share_amount: Decimal
    vested_amount: Decimal
    status: str
    as_of: date
    schedule: list[ScheduleRowOut]


class VestingSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    grant_id: UUID
    as_of: date
    share_amount: Decimal
    vested_amount: Decimal
    unvested_amount: Decimal
    vested_percent: Decimal
    theoretical_vested_amount: Decimal
    theoretical_vested_percent: Decimal
    months_elapsed: int
    is_past_cliff: bool
    up_to_date: bool


class BatchErrorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    grant_id: str | None = None
    message: str


class BatchSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenants_processed: int
    grants_processed: int
    events_created: int
    errors: list[BatchErrorOut] = Field(default_factory=list)
    timed_out: bool = False
