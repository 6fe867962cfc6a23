"""Blueprint registration and service health."""
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from .auth import auth_bp
from .complaints import complaints_bp
from .dashboard import dashboard_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Health check failed")
        return jsonify({"success": False, "status": "degraded", "database": "unavailable"}), 503
    return jsonify({"success": True, "status": "ok", "database": "ok"})


__all__ = ["main_bp", "auth_bp", "complaints_bp", "dashboard_bp"]
