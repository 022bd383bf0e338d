"""Typed outcomes raised by the lifecycle managers and the store."""

from __future__ import annotations


class SafetyError(Exception):
    """Base class for every failure the core reports to its callers."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(SafetyError):
    """Entity absent, or not owned by the caller."""

    code = "not_found"


class InvalidTripStateError(SafetyError):
    """Trip is not in a state that allows the requested operation."""

    code = "invalid_trip_state"


class StateConflictError(SafetyError):
    """Transition forbidden from the current state, or another writer got there first."""

    code = "state_conflict"


class ValidationError(SafetyError):
    """Missing or malformed input. Never retried automatically."""

    code = "validation_error"

    def __init__(self, fields: dict[str, str]) -> None:
        super().__init__("Invalid input: " + ", ".join(sorted(fields)))
        self.fields = fields


class StoreUnavailableError(SafetyError):
    """Transient infrastructure fault; the caller may retry."""

    code = "store_unavailable"


class ForbiddenError(SafetyError):
    """Caller's role may not perform this operation."""

    code = "forbidden"
