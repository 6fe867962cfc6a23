"""Error taxonomy shared by the complaint workflow, aggregator, and API layer."""
from __future__ import annotations

from typing import Dict, List, Optional


class ComplaintEngineError(Exception):
    """Base class for failures that map onto an HTTP response."""

    status_code = 500
    code = "internal_error"
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None, *, errors: Optional[Dict[str, List[str]]] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.errors = errors or {}

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.code, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ValidationFailed(ComplaintEngineError):
    status_code = 400
    code = "validation_failed"
    default_message = "Validation failed"


class Unauthenticated(ComplaintEngineError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Missing, invalid or expired credential"


class Forbidden(ComplaintEngineError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied"


class NotFound(ComplaintEngineError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class InvalidTransition(ComplaintEngineError):
    status_code = 400
    code = "invalid_transition"
    default_message = "Requested status is not reachable from the current status"


class Conflict(ComplaintEngineError):
    """Concurrent write collision; the caller may retry with fresh state."""

    status_code = 409
    code = "conflict"
    default_message = "The resource was modified concurrently, please retry"


class AggregateDrift(ComplaintEngineError):
    """Internal signal that stored dashboard counters diverged from live complaints.

    Never rendered to a caller; the aggregator catches it and recomputes.
    """

    code = "aggregate_drift"
    default_message = "Dashboard counters drifted from live complaints"

    def __init__(self, owner_id: str, counters: Optional[dict] = None, reason: str = "") -> None:
        super().__init__(f"Aggregate drift for owner {owner_id}: {reason}".strip())
        self.owner_id = owner_id
        self.counters = counters or {}
        self.reason = reason
