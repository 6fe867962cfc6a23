"""
Pytest configuration and shared fixtures for the complaint service tests.

Testing Standards:
- Every test gets a fresh application bound to an in-memory SQLite database.
- Service-level tests run inside ``ctx`` (one pushed application context).
- API tests use ``client`` without ``ctx`` so each request gets its own
  application context (and its own Flask-Login user cache).
"""

from types import SimpleNamespace

import pytest

from app import create_app
from extensions import db
from models import ROLE_ADMIN, ROLE_MEMBER, Role, User
from utils.authorization import Subject
from utils.tokens import issue_token

STRONG_PASSWORD = "Str0ng!Passw0rd"


@pytest.fixture
def app(tmp_path):
    """Application built from TestingConfig with logs under a temp dir."""
    application = create_app("testing", overrides={"LOG_DIR": str(tmp_path / "logs")})
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


def _create_user(full_name: str, email: str, role_name: str, is_active: bool = True) -> Subject:
    role = Role.get_or_create(role_name)
    user = User(full_name=full_name, email=email, role=role, is_active=is_active)
    user.set_password(STRONG_PASSWORD)
    db.session.add(user)
    db.session.commit()
    return Subject.from_user(user)


@pytest.fixture
def users(app) -> SimpleNamespace:
    """Two members and one administrator, as detached ``Subject`` values."""
    with app.app_context():
        return SimpleNamespace(
            member=_create_user("Maya Member", "maya@example.com", ROLE_MEMBER),
            other=_create_user("Omar Other", "omar@example.com", ROLE_MEMBER),
            admin=_create_user("Ada Admin", "ada@example.com", ROLE_ADMIN),
        )


@pytest.fixture
def ctx(app, users):
    """Push one application context for service-level tests."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth(app):
    """Build bearer headers for a subject."""

    def _headers(subject: Subject) -> dict:
        with app.app_context():
            user = db.session.get(User, subject.id)
            return {"Authorization": f"Bearer {issue_token(user)}"}

    return _headers


@pytest.fixture
def complaint_payload() -> dict:
    return {
        "title": "Overflowing bins on Elm Street",
        "description": "Bins have not been collected for two weeks and are overflowing.",
        "category": "Sanitation",
        "priority": "High",
        "location": "Elm Street, Ward 4",
    }
