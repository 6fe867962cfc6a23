"""Read-only complaint listing and administrator statistics."""
from __future__ import annotations

from typing import Mapping

from flask import current_app
from sqlalchemy import case, func, select

from extensions import db
from models import COMPLAINT_CATEGORIES, COMPLAINT_PRIORITIES, STATUS_COUNTER_COLUMNS, Complaint
from utils.authorization import Subject, can_view_overview
from utils.errors import Forbidden, ValidationFailed
from utils.workflow import normalize_status

_PRIORITY_RANK = case(
    {priority: rank for rank, priority in enumerate(COMPLAINT_PRIORITIES)},
    value=Complaint.priority,
    else_=len(COMPLAINT_PRIORITIES),
)

SORT_COLUMNS = {
    "createdAt": Complaint.created_at,
    "updatedAt": Complaint.updated_at,
    "title": Complaint.title,
    "category": Complaint.category,
    "status": Complaint.status,
    "priority": _PRIORITY_RANK,
}
DEFAULT_SORT = "createdAt"
MAX_OFFSET = 10**9


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _pagination_args(args: Mapping) -> tuple[int, int]:
    default_limit = int(current_app.config.get("COMPLAINTS_PER_PAGE", 10))
    max_limit = int(current_app.config.get("COMPLAINTS_MAX_PER_PAGE", 100))
    page = _to_int(args.get("page"), 1)
    if page < 1:
        page = 1
    limit = _to_int(args.get("limit"), default_limit)
    limit = min(max(limit, 1), max_limit)
    # Huge page numbers would overflow the OFFSET integer.
    page = min(page, MAX_OFFSET // limit)
    return page, limit


def _apply_filters(query, subject: Subject, args: Mapping):
    errors: dict[str, list[str]] = {}

    if subject.is_admin:
        owner = (args.get("user") or "").strip()
        if owner:
            query = query.filter(Complaint.user_id == owner)
    else:
        # Members only ever see their own complaints, whatever filters they send.
        query = query.filter(Complaint.user_id == subject.id)

    raw_status = (args.get("status") or "").strip()
    if raw_status:
        status = normalize_status(raw_status)
        if status is None:
            errors["status"] = ["Invalid status value"]
        else:
            query = query.filter(Complaint.status == status)

    category = (args.get("category") or "").strip()
    if category:
        if category not in COMPLAINT_CATEGORIES:
            errors["category"] = ["Invalid category"]
        else:
            query = query.filter(Complaint.category == category)

    priority = (args.get("priority") or "").strip()
    if priority:
        if priority not in COMPLAINT_PRIORITIES:
            errors["priority"] = ["Invalid priority"]
        else:
            query = query.filter(Complaint.priority == priority)

    location = (args.get("location") or "").strip()
    if location:
        query = query.filter(Complaint.location.ilike(f"%{_escape_like(location)}%", escape="\\"))

    if errors:
        raise ValidationFailed("Invalid filter", errors=errors)
    return query


def _apply_sort(query, args: Mapping):
    sort_by = args.get("sortBy") or DEFAULT_SORT
    column = SORT_COLUMNS.get(sort_by, SORT_COLUMNS[DEFAULT_SORT])
    descending = (args.get("sortOrder") or "desc").lower() != "asc"
    primary = column.desc() if descending else column.asc()
    # Tie-break on id so pages never overlap.
    return query.order_by(primary, Complaint.id.asc())


def list_complaints(subject: Subject, args: Mapping | None = None) -> dict:
    """One page of complaints visible to ``subject`` plus pagination metadata."""
    args = args or {}
    page, limit = _pagination_args(args)
    query = _apply_sort(_apply_filters(Complaint.query, subject, args), args)
    result = query.paginate(page=page, per_page=limit, error_out=False)
    return {
        "items": [c.to_payload(viewer_id=subject.id, include_history=False) for c in result.items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": result.total,
            "pages": result.pages,
        },
    }


def stats_overview(subject: Subject) -> dict:
    if not can_view_overview(subject.id, subject.role, ""):
        current_app.logger.warning("Overview denied", extra={"user_id": subject.id, "role": subject.role})
        raise Forbidden("Access denied. Admin only.")

    by_status = dict(
        db.session.execute(select(Complaint.status, func.count(Complaint.id)).group_by(Complaint.status)).all()
    )
    by_category = db.session.execute(
        select(Complaint.category, func.count(Complaint.id))
        .group_by(Complaint.category)
        .order_by(func.count(Complaint.id).desc(), Complaint.category.asc())
    ).all()
    recent_limit = int(current_app.config.get("OVERVIEW_RECENT_LIMIT", 5))
    recent = Complaint.query.order_by(Complaint.created_at.desc(), Complaint.id.asc()).limit(recent_limit).all()

    overview = {"total": sum(int(count) for count in by_status.values())}
    for status, column in STATUS_COUNTER_COLUMNS.items():
        key = "inProgress" if column == "in_progress" else column
        overview[key] = int(by_status.get(status, 0))
    overview["byCategory"] = [{"category": category, "count": int(count)} for category, count in by_category]
    overview["recent"] = [c.to_payload(include_history=False) for c in recent]
    return overview
