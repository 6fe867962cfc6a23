"""Registration, login and bearer credential issue."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError
from wtforms import Form, PasswordField, StringField
from wtforms.validators import DataRequired, Email, Length

from extensions import db
from models import ROLE_MEMBER, Role, User
from utils.audit import record_audit
from utils.errors import Conflict, Forbidden, Unauthenticated, ValidationFailed
from utils.forms import normalize_email, strip_value, validate_payload
from utils.security import password_meets_policy
from utils.tokens import issue_token

auth_bp = Blueprint("auth", __name__)


class RegistrationForm(Form):
    name = StringField("Full Name", filters=[strip_value], validators=[DataRequired(message="Name is required"), Length(max=150)])
    email = StringField("Email", filters=[normalize_email], validators=[DataRequired(message="Email is required"), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(message="Password is required"), Length(min=12)])
    location = StringField("Location", filters=[strip_value], validators=[Length(max=200)])


class LoginForm(Form):
    email = StringField("Email", filters=[normalize_email], validators=[DataRequired(message="Email is required"), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(message="Password is required")])


def _session_payload(user: User) -> dict:
    return {"success": True, "token": issue_token(user), "user": user.to_payload()}


@auth_bp.route("/register", methods=["POST"])
def register():
    data = validate_payload(RegistrationForm, request.get_json(silent=True))
    password_ok, reason = password_meets_policy(data["password"])
    if not password_ok:
        raise ValidationFailed("Validation failed", errors={"password": [reason]})
    if User.query.filter_by(email=data["email"]).first():
        raise Conflict("An account with this email already exists.")

    role = Role.get_or_create(ROLE_MEMBER, description="Files and tracks complaints")
    user = User(
        full_name=data["name"],
        email=data["email"],
        location=data.get("location") or None,
        role=role,
        is_active=True,
    )
    user.set_password(data["password"])
    try:
        db.session.add(user)
        db.session.flush()
        log_action("REGISTER", user)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("An account with this email already exists.") from exc

    current_app.logger.info("User registered", extra={"user_id": user.id})
    return jsonify(_session_payload(user)), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = validate_payload(LoginForm, request.get_json(silent=True))
    user = User.query.filter_by(email=data["email"]).first()
    if not user or not user.check_password(data["password"]):
        log_action("LOGIN_FAILED", user, context=data["email"])
        db.session.commit()
        current_app.logger.warning("Login failed", extra={"email": data["email"]})
        raise Unauthenticated("Invalid credentials provided.")

    if not user.is_active:
        raise Forbidden("Your account is inactive. Please contact support.")

    user.last_login_at = datetime.utcnow()
    log_action("LOGIN", user)
    db.session.commit()
    return jsonify(_session_payload(user))


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "user": current_user.to_payload()})


def log_action(action: str, user: User | None, context: str | None = None):
    record_audit(action, user.id if user else None, context)
