"""Per-owner complaint counter endpoints."""
from flask import Blueprint, current_app, jsonify
from flask_login import login_required

from models import User
from utils import dashboard_aggregator
from utils.audit import record_audit
from utils.authorization import can_recompute_dashboard, can_view_dashboard
from utils.decorators import current_subject
from utils.errors import Forbidden, NotFound

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


def _deny(subject, owner_id: str) -> None:
    current_app.logger.warning("Dashboard access denied", extra={"user_id": subject.id, "owner_id": owner_id})
    record_audit("UNAUTHORIZED_ACCESS", subject.id, f"dashboard:{owner_id}", commit=True)
    raise Forbidden()


def _require_owner(owner_id: str) -> User:
    owner = User.query.filter_by(id=str(owner_id)).first()
    if owner is None:
        raise NotFound("User not found")
    return owner


@dashboard_bp.route("", methods=["GET"])
@login_required
def own():
    subject = current_subject()
    dashboard = dashboard_aggregator.get_dashboard(subject.id)
    return jsonify({"success": True, "dashboard": dashboard.to_payload()})


@dashboard_bp.route("/<owner_id>", methods=["GET"])
@login_required
def for_owner(owner_id):
    subject = current_subject()
    if not can_view_dashboard(subject.id, subject.role, owner_id):
        _deny(subject, owner_id)
    owner = _require_owner(owner_id)
    dashboard = dashboard_aggregator.get_dashboard(owner.id)
    return jsonify({"success": True, "dashboard": dashboard.to_payload()})


@dashboard_bp.route("/<owner_id>/recompute", methods=["POST"])
@login_required
def recompute(owner_id):
    subject = current_subject()
    if not can_recompute_dashboard(subject.id, subject.role, owner_id):
        _deny(subject, owner_id)
    owner = _require_owner(owner_id)
    dashboard = dashboard_aggregator.recompute(owner.id)
    record_audit("DASHBOARD_RECOMPUTED", subject.id, f"dashboard:{owner.id}", commit=True)
    return jsonify({"success": True, "dashboard": dashboard.to_payload()})
