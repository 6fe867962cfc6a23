"""Audit trail entries for complaint actions and denied access attempts."""
from __future__ import annotations

from typing import Optional

from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import AuditLog


def record_audit(action: str, user_id: Optional[str], context: Optional[str] = None, *, commit: bool = False) -> None:
    """Stage an audit entry in the current session.

    With ``commit=True`` the entry is committed on its own; used for denied
    attempts where no other write follows.
    """
    in_request = has_request_context()
    entry = AuditLog(
        user_id=user_id,
        action_type=action,
        ip_address=request.remote_addr if in_request else None,
        user_agent=request.headers.get("User-Agent", "unknown")[:255] if in_request else "system",
        context_entity=(context or "")[:120] or None,
    )
    db.session.add(entry)
    if not commit:
        return
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Audit log write failed", extra={"action": action, "user_id": user_id})
