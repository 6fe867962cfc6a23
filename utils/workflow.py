"""Complaint status state machine.

Pending is the only initial state. Resolved and Rejected are terminal:

    Pending -> In Progress -> Resolved
    Pending -> Rejected
    In Progress -> Rejected
"""
from __future__ import annotations

from typing import Optional

from models import (
    COMPLAINT_STATUSES,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_RESOLVED,
)
from utils.errors import InvalidTransition, ValidationFailed

INITIAL_STATUS = STATUS_PENDING

TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_IN_PROGRESS, STATUS_REJECTED}),
    STATUS_IN_PROGRESS: frozenset({STATUS_RESOLVED, STATUS_REJECTED}),
    STATUS_RESOLVED: frozenset(),
    STATUS_REJECTED: frozenset(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Spellings accepted on input for the canonical status values.
_STATUS_ALIASES: dict[str, str] = {
    "pending": STATUS_PENDING,
    "in progress": STATUS_IN_PROGRESS,
    "inprogress": STATUS_IN_PROGRESS,
    "in_progress": STATUS_IN_PROGRESS,
    "resolved": STATUS_RESOLVED,
    "rejected": STATUS_REJECTED,
}


def normalize_status(value: Optional[str]) -> Optional[str]:
    """Return the canonical status for ``value`` or None when it is not a known status."""
    if value is None:
        return None
    return _STATUS_ALIASES.get(str(value).strip().lower())


def require_status(value: Optional[str], field: str = "status") -> str:
    status = normalize_status(value)
    if status is None:
        raise ValidationFailed(
            "Invalid status value",
            errors={field: [f"Must be one of: {', '.join(COMPLAINT_STATUSES)}"]},
        )
    return status


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def allowed_targets(status: str) -> frozenset[str]:
    return TRANSITIONS.get(status, frozenset())


def can_transition(current: str, target: str) -> bool:
    return target in allowed_targets(current)


def ensure_transition(current: str, target: str) -> None:
    if can_transition(current, target):
        return
    if is_terminal(current):
        raise InvalidTransition(f"Complaint is {current}; no further status changes are allowed")
    raise InvalidTransition(f"Cannot change status from {current} to {target}")


def default_transition_note(previous: str, target: str) -> str:
    return f"Status changed from {previous} to {target}"
