from __future__ import annotations

import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from vestengine.core.exceptions import InvalidTimezoneError


ORG_ID_MIN_LENGTH = 2
ORG_ID_MAX_LENGTH = 64
_ORG_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def normalize_org_id(value: str) -> str:
    cleaned = value.strip().lower()
    if len(cleaned) < ORG_ID_MIN_LENGTH or len(cleaned) > ORG_ID_MAX_LENGTH:
        raise ValueError(
            f"org_id must be between {ORG_ID_MIN_LENGTH} and {ORG_ID_MAX_LENGTH} characters"
        )
    if not _ORG_ID_RE.fullmatch(cleaned):
        raise ValueError(
            "org_id may only contain lowercase letters, numbers, '-' and '_'"
        )
    return cleaned


def is_valid_org_id(value: str | None) -> bool:
    if not value:
        return False
    try:
        normalize_org_id(value)
    except ValueError:
        return False
    return True


def resolve_timezone(name: str | None, *, default: str = "UTC") -> ZoneInfo:
    """Return the IANA zone for a tenant, falling back to ``default`` when unset."""
    candidate = (name or "").strip() or default
    try:
        return ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(
            f"Unknown timezone: {candidate}", details={"timezone": candidate}
        ) from exc
