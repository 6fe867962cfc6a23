"""Request-level helpers for role-based access control on the JSON API."""
from functools import wraps

from flask import current_app
from flask_login import current_user, login_required

from utils.audit import record_audit
from utils.authorization import Subject
from utils.errors import Forbidden


def current_subject() -> Subject:
    """The acting subject behind the request's bearer credential."""
    return Subject.from_user(current_user)


def roles_required(*roles):
    allowed = {r.lower() for r in roles}

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            role_name = current_user.role_name.lower()
            if role_name in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Unauthorized role access attempt",
                extra={"user_id": current_user.id, "role": current_user.role_name, "endpoint": view_func.__name__},
            )
            record_audit("UNAUTHORIZED_ACCESS", current_user.id, view_func.__name__, commit=True)
            raise Forbidden("Access denied. Admin only.")

        return wrapped

    return decorator
