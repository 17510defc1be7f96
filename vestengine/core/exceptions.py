from __future__ import annotations


class VestingError(Exception):
    """Base class for vesting errors that are safe to show to callers."""

    status_code = 400
    code = "vesting_error"

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class GrantNotFoundError(VestingError):
    status_code = 404
    code = "grant_not_found"


class VestingValidationError(VestingError):
    status_code = 422
    code = "vesting_validation_failed"


class InvalidTimezoneError(VestingError):
    status_code = 422
    code = "invalid_timezone"


class VestingConflictError(VestingError):
    status_code = 409
    code = "vesting_conflict"
