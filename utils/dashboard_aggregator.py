"""Per-owner dashboard counters kept in step with complaint writes.

The stored aggregate is a cache over the live complaints table. Deltas are
applied as single UPDATE statements (``col = col + 1``) so concurrent writers
never lose increments. The complaint write and the counter delta are separate
commits; when a delta is lost or applied twice the aggregate drifts, which is
detected after every delta and on stale reads and repaired by ``recompute``.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import COMPLAINT_STATUSES, STATUS_COUNTER_COLUMNS, Complaint, Dashboard
from utils.errors import AggregateDrift

COUNTER_FIELDS: tuple[str, ...] = ("total", "pending", "in_progress", "resolved", "rejected")


def _column(status: str):
    try:
        return getattr(Dashboard, STATUS_COUNTER_COLUMNS[status])
    except KeyError as exc:
        raise ValueError(f"Unknown complaint status {status!r}") from exc


def _increment(column):
    return column + 1


def _decrement(column):
    # Clamp at zero; a clamped decrement leaves the row inconsistent and is caught as drift.
    return case((column > 0, column - 1), else_=0)


def _ensure_dashboard(owner_id: str) -> None:
    exists = db.session.execute(select(Dashboard.id).where(Dashboard.user_id == owner_id)).scalar()
    if exists:
        return
    # Never reconciled; the first read recomputes from live complaints.
    db.session.add(Dashboard(user_id=owner_id))
    try:
        db.session.commit()
    except IntegrityError:
        # Another request created it first.
        db.session.rollback()
        current_app.logger.info("Dashboard created concurrently", extra={"owner_id": owner_id})


def _apply_delta(owner_id: str, values: dict, event: str) -> Dashboard:
    _ensure_dashboard(owner_id)
    stmt = (
        update(Dashboard)
        .where(Dashboard.user_id == owner_id)
        .values(updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    db.session.commit()

    dashboard = Dashboard.query.filter_by(user_id=owner_id).one()
    current_app.logger.info(
        "Dashboard delta applied",
        extra={"owner_id": owner_id, "event": event, "counters": dashboard.counters()},
    )
    try:
        check_consistency(dashboard)
    except AggregateDrift as drift:
        return _repair(drift)
    return dashboard


def _repair(drift: AggregateDrift) -> Dashboard:
    current_app.logger.warning(
        "Dashboard aggregate drift detected",
        extra={"owner_id": drift.owner_id, "reason": drift.reason, "counters": drift.counters},
    )
    return recompute(drift.owner_id)


def check_consistency(dashboard: Dashboard) -> None:
    """Raise AggregateDrift when the stored counters break ``total == sum(buckets)`` or go negative."""
    if not dashboard.is_consistent:
        counts = dashboard.counters()
        raise AggregateDrift(
            dashboard.user_id,
            counts,
            reason=f"total={counts['total']} does not match status buckets",
        )


def on_create(owner_id: str) -> Dashboard:
    return _apply_delta(
        owner_id,
        {"total": _increment(Dashboard.total), "pending": _increment(Dashboard.pending)},
        event="create",
    )


def on_transition(owner_id: str, from_status: str, to_status: str) -> Dashboard:
    if from_status == to_status:
        return get_dashboard(owner_id)
    source = _column(from_status)
    target = _column(to_status)
    return _apply_delta(
        owner_id,
        {source.key: _decrement(source), target.key: _increment(target)},
        event="transition",
    )


def on_delete(owner_id: str, status: str) -> Dashboard:
    bucket = _column(status)
    return _apply_delta(
        owner_id,
        {"total": _decrement(Dashboard.total), bucket.key: _decrement(bucket)},
        event="delete",
    )


def live_counts(owner_id: str) -> Dict[str, int]:
    """Counts derived from the owner's live complaints, the source of truth."""
    rows = db.session.execute(
        select(Complaint.status, func.count(Complaint.id))
        .where(Complaint.user_id == owner_id)
        .group_by(Complaint.status)
    ).all()
    counts = {field: 0 for field in COUNTER_FIELDS}
    for status, count in rows:
        column = STATUS_COUNTER_COLUMNS.get(status)
        if column:
            counts[column] = int(count)
    counts["total"] = sum(counts[STATUS_COUNTER_COLUMNS[s]] for s in COMPLAINT_STATUSES)
    return counts


def recompute(owner_id: str) -> Dashboard:
    """Replace the owner's aggregate with counts freshly derived from live complaints.

    Safe to run concurrently with deltas: the snapshot is written in one
    statement and the last writer wins.
    """
    counts = live_counts(owner_id)
    now = datetime.utcnow()
    _ensure_dashboard(owner_id)
    db.session.execute(
        update(Dashboard)
        .where(Dashboard.user_id == owner_id)
        .values(reconciled_at=now, updated_at=now, **counts)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    dashboard = Dashboard.query.filter_by(user_id=owner_id).one()
    current_app.logger.info("Dashboard recomputed", extra={"owner_id": owner_id, "counters": counts})
    return dashboard


def _is_stale(dashboard: Dashboard, max_age_seconds: int) -> bool:
    if dashboard.reconciled_at is None:
        return True
    return datetime.utcnow() - dashboard.reconciled_at > timedelta(seconds=max_age_seconds)


def get_dashboard(owner_id: str, max_age_seconds: Optional[int] = None) -> Dashboard:
    """Return the owner's aggregate, reconciling it first when stale or inconsistent.

    Owners without a stored aggregate get one computed from live complaints.
    """
    if max_age_seconds is None:
        max_age_seconds = int(current_app.config.get("DASHBOARD_MAX_STALENESS_SECONDS", 300))
    dashboard = Dashboard.query.filter_by(user_id=owner_id).first()
    if dashboard is None:
        return recompute(owner_id)
    try:
        check_consistency(dashboard)
    except AggregateDrift as drift:
        return _repair(drift)
    if _is_stale(dashboard, max_age_seconds):
        return recompute(owner_id)
    return dashboard


def reconcile_all(owner_ids: Optional[Iterable[str]] = None) -> List[str]:
    """Recompute every owner's aggregate (or the given ones) and return owners whose counters had drifted."""
    if owner_ids is None:
        complaint_owners = db.session.execute(select(Complaint.user_id).distinct()).scalars().all()
        dashboard_owners = db.session.execute(select(Dashboard.user_id)).scalars().all()
        owner_ids = sorted(set(complaint_owners) | set(dashboard_owners))
    drifted: List[str] = []
    for owner_id in owner_ids:
        before = Dashboard.query.filter_by(user_id=owner_id).first()
        stored = before.counters() if before else None
        try:
            after = recompute(owner_id)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Dashboard reconciliation failed", extra={"owner_id": owner_id})
            continue
        if stored is not None and stored != after.counters():
            drifted.append(owner_id)
            current_app.logger.warning(
                "Dashboard aggregate drift repaired",
                extra={"owner_id": owner_id, "stored": stored, "recomputed": after.counters()},
            )
    return drifted
