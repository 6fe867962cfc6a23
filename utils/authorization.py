"""Authorization predicates, one per complaint operation.

Each predicate is a pure function of the acting subject, its role, the
resource owner and the resource status, so it can be tested without a
request or a database.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from models import ROLE_ADMIN, STATUS_PENDING


@dataclass(frozen=True)
class Subject:
    """The acting subject resolved from a bearer credential."""

    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return is_admin_role(self.role)

    @classmethod
    def from_user(cls, user) -> "Subject":
        return cls(id=str(user.id), role=user.role_name)


def is_admin_role(role: Optional[str]) -> bool:
    return (role or "").strip().lower() == ROLE_ADMIN.lower()


def can_view_complaint(subject_id: str, role: str, owner_id: str, status: Optional[str] = None) -> bool:
    return is_admin_role(role) or subject_id == owner_id


def can_transition_complaint(subject_id: str, role: str, owner_id: str, status: Optional[str] = None) -> bool:
    return is_admin_role(role)


def can_delete_complaint(subject_id: str, role: str, owner_id: str, status: str) -> bool:
    if is_admin_role(role):
        return True
    return subject_id == owner_id and status == STATUS_PENDING


def can_update_details(subject_id: str, role: str, owner_id: str, status: str) -> bool:
    if is_admin_role(role):
        return True
    return subject_id == owner_id and status == STATUS_PENDING


def can_edit_history_note(subject_id: str, role: str, owner_id: str, status: Optional[str] = None) -> bool:
    # Terminal complaints included.
    return is_admin_role(role)


def can_assign_complaint(subject_id: str, role: str, owner_id: str, status: Optional[str] = None) -> bool:
    return is_admin_role(role)


def can_view_dashboard(subject_id: str, role: str, owner_id: str, status: Optional[str] = None) -> bool:
    return is_admin_role(role) or subject_id == owner_id


def can_recompute_dashboard(subject_id: str, role: str, owner_id: str, status: Optional[str] = None) -> bool:
    return is_admin_role(role)


def can_view_overview(subject_id: str, role: str, owner_id: str, status: Optional[str] = None) -> bool:
    return is_admin_role(role)
