"""Monthly vesting calendar.

Every date is derived from the grant's own effective date, never from the
previous vest date, so a grant on Jan 31 vests on Feb 28/29 and then on
Mar 31 again.
"""

from __future__ import annotations

import calendar as _calendar
from datetime import date, datetime, timezone

from vestengine.core.tenant import resolve_timezone

TOTAL_VESTING_MONTHS = 48
CLIFF_MONTHS = 12


def vest_date(effective_date: date, months: int) -> date:
    month_index = effective_date.month - 1 + months
    year = effective_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(effective_date.day, _calendar.monthrange(year, month)[1])
    return date(year, month, day)


def cliff_date(effective_date: date) -> date:
    return vest_date(effective_date, CLIFF_MONTHS)


def project_schedule(effective_date: date, timezone_name: str | None = None) -> list[date]:
    """Return the 48 monthly vest dates for a grant.

    The timezone is validated but never shifts a date: inputs and outputs are
    tenant-local calendar dates.
    """
    if timezone_name is not None:
        resolve_timezone(timezone_name)
    return [vest_date(effective_date, n) for n in range(1, TOTAL_VESTING_MONTHS + 1)]


def today_in_timezone(timezone_name: str | None, now: datetime | None = None) -> date:
    zone = resolve_timezone(timezone_name)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(zone).date()


def months_between(start: date, end: date) -> int:
    """Whole months elapsed from ``start`` to ``end`` using the same clamping rule."""
    if end < start:
        return 0
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if months > 0 and vest_date(start, months) > end:
        months -= 1
    return months
