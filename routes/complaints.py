"""Complaint lifecycle, likes, and administrator statistics blueprint."""
from flask import Blueprint, jsonify, request
from flask_login import login_required

from models import ROLE_ADMIN
from utils import complaint_query, complaint_service, like_registry
from utils.decorators import current_subject, roles_required
from utils.errors import ValidationFailed

complaints_bp = Blueprint("complaints", __name__, url_prefix="/complaints")


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _expected_version(body: dict):
    value = body.get("version", request.args.get("version"))
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed("Invalid version", errors={"version": ["Version must be an integer"]}) from exc


def _complaint_response(complaint, status: int = 200):
    subject = current_subject()
    return jsonify({"success": True, "complaint": complaint.to_payload(viewer_id=subject.id)}), status


@complaints_bp.route("", methods=["POST"])
@login_required
def create():
    complaint = complaint_service.create_complaint(current_subject(), _json_body())
    return _complaint_response(complaint, 201)


@complaints_bp.route("", methods=["GET"])
@login_required
def index():
    page = complaint_query.list_complaints(current_subject(), request.args)
    return jsonify({"success": True, "complaints": page["items"], "pagination": page["pagination"]})


@complaints_bp.route("/stats/overview", methods=["GET"])
@roles_required(ROLE_ADMIN)
def overview():
    return jsonify({"success": True, "stats": complaint_query.stats_overview(current_subject())})


@complaints_bp.route("/<complaint_id>", methods=["GET"])
@login_required
def detail(complaint_id):
    return _complaint_response(complaint_service.get_complaint(complaint_id, current_subject()))


@complaints_bp.route("/<complaint_id>", methods=["PUT"])
@login_required
def update(complaint_id):
    body = _json_body()
    complaint = complaint_service.update_details(
        complaint_id, current_subject(), body, expected_version=_expected_version(body)
    )
    return _complaint_response(complaint)


@complaints_bp.route("/<complaint_id>", methods=["DELETE"])
@login_required
def delete(complaint_id):
    body = _json_body()
    complaint_service.delete_complaint(complaint_id, current_subject(), expected_version=_expected_version(body))
    return jsonify({"success": True, "message": "Complaint deleted", "id": complaint_id})


@complaints_bp.route("/<complaint_id>/status", methods=["PUT"])
@login_required
def update_status(complaint_id):
    complaint = complaint_service.transition_from_payload(complaint_id, current_subject(), _json_body())
    return _complaint_response(complaint)


@complaints_bp.route("/<complaint_id>/like", methods=["POST", "PUT"])
@login_required
def like(complaint_id):
    liked, count = like_registry.toggle_like(complaint_id, current_subject())
    return jsonify({"success": True, "id": complaint_id, "liked": liked, "likesCount": count})


@complaints_bp.route("/<complaint_id>/assign", methods=["PUT"])
@login_required
def assign(complaint_id):
    body = _json_body()
    complaint = complaint_service.assign(complaint_id, current_subject(), body.get("assignee"))
    return _complaint_response(complaint)


@complaints_bp.route("/<complaint_id>/history/<entry_id>", methods=["PATCH"])
@login_required
def edit_history_note(complaint_id, entry_id):
    entry = complaint_service.edit_history_note(complaint_id, entry_id, current_subject(), _json_body())
    return jsonify({"success": True, "complaintId": complaint_id, "entry": entry.to_payload()})
