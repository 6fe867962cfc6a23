"""Complaint lifecycle: create, transition, edit, assign, delete.

Every write follows the same order: authorize, validate, persist the
complaint (one commit, optimistic version check), then apply the dashboard
delta as a separate write. A failed delta is logged and left for
``dashboard_aggregator.recompute``; it never fails the request.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from extensions import db
from models import Complaint, ComplaintStatusHistory, User, generate_uuid
from utils import dashboard_aggregator
from utils.audit import record_audit
from utils.authorization import (
    Subject,
    can_assign_complaint,
    can_delete_complaint,
    can_edit_history_note,
    can_transition_complaint,
    can_update_details,
    can_view_complaint,
)
from utils.errors import Conflict, Forbidden, NotFound, ValidationFailed
from utils.forms import ComplaintForm, HistoryNoteForm, StatusUpdateForm, validate_payload
from utils.workflow import INITIAL_STATUS, default_transition_note, ensure_transition, require_status

EDITABLE_FIELDS: tuple[str, ...] = ("title", "description", "category", "priority", "location")
CREATION_NOTE = "created"


def _deny(subject: Subject, action: str, complaint_id: Optional[str], message: str = "Access denied") -> Forbidden:
    current_app.logger.warning(
        "Complaint action denied",
        extra={"user_id": subject.id, "role": subject.role, "action": action, "complaint_id": complaint_id},
    )
    record_audit("UNAUTHORIZED_ACCESS", subject.id, f"{action}:{complaint_id}", commit=True)
    return Forbidden(message)


def load_complaint(complaint_id: str) -> Complaint:
    complaint = Complaint.query.filter_by(id=str(complaint_id)).first()
    if complaint is None:
        raise NotFound("Complaint not found")
    return complaint


def _check_version(complaint: Complaint, expected_version: Optional[int]) -> None:
    if expected_version is not None and int(expected_version) != complaint.version:
        raise Conflict(
            f"Complaint was modified (version {complaint.version}, expected {expected_version}); reload and retry"
        )


def _commit(complaint_id: str, action: str) -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        current_app.logger.warning("Concurrent complaint write rejected", extra={"complaint_id": complaint_id, "action": action})
        raise Conflict() from exc
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while saving complaint", extra={"complaint_id": complaint_id, "action": action})
        raise


def _sync_dashboard(delta: Callable, owner_id: str, *args) -> None:
    try:
        delta(owner_id, *args)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Dashboard delta failed; aggregate left for recompute",
            extra={"owner_id": owner_id, "delta": delta.__name__},
        )


def _next_history_timestamp(complaint: Complaint) -> datetime:
    # History timestamps never go backwards, even if the clock does.
    now = datetime.utcnow()
    if complaint.status_history:
        return max(now, complaint.status_history[-1].changed_at)
    return now


def get_complaint(complaint_id: str, subject: Subject) -> Complaint:
    complaint = load_complaint(complaint_id)
    if not can_view_complaint(subject.id, subject.role, complaint.user_id, complaint.status):
        raise _deny(subject, "view", complaint.id)
    return complaint


def create_complaint(subject: Subject, payload: Mapping | None) -> Complaint:
    payload = dict(payload or {})
    if not payload.get("priority"):
        payload.pop("priority", None)
    fields = validate_payload(ComplaintForm, payload)

    now = datetime.utcnow()
    complaint = Complaint(
        id=generate_uuid(),
        user_id=subject.id,
        status=INITIAL_STATUS,
        created_at=now,
        updated_at=now,
        **{name: fields[name] for name in EDITABLE_FIELDS},
    )
    complaint.status_history.append(
        ComplaintStatusHistory(
            previous_status=None,
            status=INITIAL_STATUS,
            changed_by=subject.id,
            changed_at=now,
            note=CREATION_NOTE,
        )
    )
    db.session.add(complaint)
    record_audit("COMPLAINT_CREATED", subject.id, f"complaint:{complaint.id}")
    _commit(complaint.id, "create")
    current_app.logger.info(
        "Complaint created",
        extra={"complaint_id": complaint.id, "owner_id": subject.id, "category": fields["category"]},
    )

    _sync_dashboard(dashboard_aggregator.on_create, subject.id)
    return complaint


def transition(
    complaint_id: str,
    subject: Subject,
    target_status: str,
    note: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Complaint:
    if not can_transition_complaint(subject.id, subject.role, ""):
        raise _deny(subject, "transition", complaint_id, "Access denied. Admin only.")
    target = require_status(target_status)
    if note:
        note = validate_payload(StatusUpdateForm, {"status": target_status, "note": note})["note"] or None
    complaint = load_complaint(complaint_id)
    _check_version(complaint, expected_version)

    previous = complaint.status
    ensure_transition(previous, target)

    # Build the entry before touching the row so loading the history cannot autoflush a stale write.
    entry = ComplaintStatusHistory(
        previous_status=previous,
        status=target,
        changed_by=subject.id,
        changed_at=_next_history_timestamp(complaint),
        note=note or default_transition_note(previous, target),
    )
    complaint.status = target
    if note:
        complaint.admin_note = note
    complaint.status_history.append(entry)
    owner_id = complaint.user_id
    record_audit("COMPLAINT_STATUS_CHANGED", subject.id, f"complaint:{complaint.id}:{target}")
    _commit(complaint.id, "transition")
    current_app.logger.info(
        "Complaint status changed",
        extra={"complaint_id": complaint.id, "from_status": previous, "to_status": target, "actor_id": subject.id},
    )

    _sync_dashboard(dashboard_aggregator.on_transition, owner_id, previous, target)
    return complaint


def transition_from_payload(complaint_id: str, subject: Subject, payload: Mapping | None) -> Complaint:
    """Route adapter: authorize before validating so members always see Forbidden."""
    if not can_transition_complaint(subject.id, subject.role, ""):
        raise _deny(subject, "transition", complaint_id, "Access denied. Admin only.")
    payload = dict(payload or {})
    # Older clients send the note as adminNote.
    if payload.get("note") is None and payload.get("adminNote") is not None:
        payload["note"] = payload["adminNote"]
    data = validate_payload(StatusUpdateForm, payload)
    return transition(
        complaint_id,
        subject,
        data["status"],
        note=data.get("note") or None,
        expected_version=data.get("version"),
    )


def delete_complaint(complaint_id: str, subject: Subject, expected_version: Optional[int] = None) -> None:
    complaint = load_complaint(complaint_id)
    if not can_delete_complaint(subject.id, subject.role, complaint.user_id, complaint.status):
        message = "Access denied"
        if subject.id == complaint.user_id:
            message = "Cannot delete complaint after it has been processed"
        raise _deny(subject, "delete", complaint.id, message)
    _check_version(complaint, expected_version)

    owner_id, status = complaint.user_id, complaint.status
    db.session.delete(complaint)
    record_audit("COMPLAINT_DELETED", subject.id, f"complaint:{complaint_id}:{status}")
    _commit(complaint_id, "delete")
    current_app.logger.info(
        "Complaint deleted",
        extra={"complaint_id": complaint_id, "owner_id": owner_id, "status": status, "actor_id": subject.id},
    )

    _sync_dashboard(dashboard_aggregator.on_delete, owner_id, status)


def update_details(
    complaint_id: str,
    subject: Subject,
    payload: Mapping | None,
    expected_version: Optional[int] = None,
) -> Complaint:
    complaint = load_complaint(complaint_id)
    if not can_update_details(subject.id, subject.role, complaint.user_id, complaint.status):
        message = "Access denied"
        if subject.id == complaint.user_id:
            message = "Cannot update complaint after it has been processed"
        raise _deny(subject, "update", complaint.id, message)
    _check_version(complaint, expected_version)

    payload = payload or {}
    merged = {name: getattr(complaint, name) for name in EDITABLE_FIELDS}
    merged.update({name: payload[name] for name in EDITABLE_FIELDS if payload.get(name) is not None})
    fields = validate_payload(ComplaintForm, merged)

    changed = [name for name in EDITABLE_FIELDS if getattr(complaint, name) != fields[name]]
    if not changed:
        return complaint
    for name in changed:
        setattr(complaint, name, fields[name])
    record_audit("COMPLAINT_UPDATED", subject.id, f"complaint:{complaint.id}")
    _commit(complaint.id, "update")
    current_app.logger.info("Complaint details updated", extra={"complaint_id": complaint.id, "fields": changed})
    return complaint


def assign(complaint_id: str, subject: Subject, assignee_id: Optional[str]) -> Complaint:
    if not can_assign_complaint(subject.id, subject.role, ""):
        raise _deny(subject, "assign", complaint_id, "Access denied. Admin only.")
    complaint = load_complaint(complaint_id)

    if assignee_id:
        assignee = User.query.filter_by(id=str(assignee_id)).first()
        if assignee is None or not assignee.is_admin or not assignee.is_active:
            raise ValidationFailed("Invalid assignee", errors={"assignee": ["Assignee must be an active administrator"]})
        complaint.assigned_to = assignee.id
    else:
        complaint.assigned_to = None

    record_audit("COMPLAINT_ASSIGNED", subject.id, f"complaint:{complaint.id}:{complaint.assigned_to}")
    _commit(complaint.id, "assign")
    current_app.logger.info("Complaint assignee set", extra={"complaint_id": complaint.id, "assignee_id": assignee_id})
    return complaint


def edit_history_note(complaint_id: str, entry_id, subject: Subject, payload: Mapping | None) -> ComplaintStatusHistory:
    """Replace the note of one audit-trail entry; allowed in every state, terminal included."""
    if not can_edit_history_note(subject.id, subject.role, ""):
        raise _deny(subject, "edit_note", complaint_id, "Access denied. Admin only.")
    complaint = load_complaint(complaint_id)
    try:
        entry_pk = int(entry_id)
    except (TypeError, ValueError) as exc:
        raise NotFound("History entry not found") from exc
    entry = ComplaintStatusHistory.query.filter_by(id=entry_pk, complaint_id=complaint.id).first()
    if entry is None:
        raise NotFound("History entry not found")

    data = validate_payload(HistoryNoteForm, payload)
    entry.note = data["note"]
    record_audit("COMPLAINT_NOTE_EDITED", subject.id, f"complaint:{complaint.id}:{entry.id}")
    _commit(complaint.id, "edit_note")
    return entry
