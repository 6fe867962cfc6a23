"""Per-complaint supporter set with toggle semantics."""
from __future__ import annotations

from typing import Tuple

from flask import current_app
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import ComplaintLike
from utils.authorization import Subject
from utils.errors import Conflict
from utils.complaint_service import load_complaint


def like_count(complaint_id: str) -> int:
    return int(
        db.session.execute(
            select(func.count(ComplaintLike.id)).where(ComplaintLike.complaint_id == complaint_id)
        ).scalar()
        or 0
    )


def toggle_like(complaint_id: str, subject: Subject) -> Tuple[bool, int]:
    """Add the subject to the complaint's likes if absent, remove it if present.

    Any authenticated subject may like any complaint. Returns ``(liked, count)``
    after the toggle; dashboards are not touched.
    """
    complaint = load_complaint(complaint_id)

    removed = db.session.execute(
        delete(ComplaintLike)
        .where(ComplaintLike.complaint_id == complaint.id, ComplaintLike.user_id == subject.id)
        .execution_options(synchronize_session=False)
    ).rowcount
    liked = not removed
    if liked:
        db.session.add(ComplaintLike(complaint_id=complaint.id, user_id=subject.id))
    try:
        db.session.commit()
    except IntegrityError as exc:
        # A concurrent toggle inserted the same membership row.
        db.session.rollback()
        current_app.logger.warning("Concurrent like toggle rejected", extra={"complaint_id": complaint.id, "user_id": subject.id})
        raise Conflict() from exc

    count = like_count(complaint.id)
    current_app.logger.info(
        "Complaint like toggled",
        extra={"complaint_id": complaint.id, "user_id": subject.id, "liked": liked, "count": count},
    )
    return liked, count
