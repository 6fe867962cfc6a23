"""Flask application factory for the complaint lifecycle service."""
import os
from typing import Optional

import click
from flask import Flask, current_app, g, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from utils.errors import ComplaintEngineError, Unauthenticated
from utils.logger import init_logging
from utils.security import apply_security_headers
from extensions import csrf, db, migrate, login_manager

HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
}


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ComplaintEngineError)
    def engine_error(error: ComplaintEngineError):
        if error.status_code >= 500:
            app.logger.error("Unhandled engine error", extra={"path": request.path, "code": error.code})
        elif error.status_code != 404:
            app.logger.info(
                "Request rejected",
                extra={"path": request.path, "method": request.method, "code": error.code, "error_message": error.message},
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        app.logger.warning(f"{error.code} {error.name}", extra={"path": request.path, "method": request.method})
        payload = {
            "success": False,
            "error": HTTP_ERROR_CODES.get(error.code, "http_error"),
            "message": error.description,
        }
        return jsonify(payload), error.code

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        db.session.rollback()
        return jsonify({"success": False, "error": "internal_error", "message": "Unexpected error"}), 500


def ensure_default_roles_and_admin(app: Flask) -> None:
    """Ensure baseline roles exist and a default admin can log in without registering."""
    from models import ROLE_ADMIN, ROLE_MEMBER, Role, User  # Local import to avoid circular dependency

    default_roles = [
        (ROLE_MEMBER, "Files and tracks complaints"),
        (ROLE_ADMIN, "Reviews, transitions and deletes any complaint"),
    ]

    role_cache: dict[str, Role] = {}
    for name, description in default_roles:
        role_cache[name] = Role.get_or_create(name, description=description)

    admin_email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    admin_password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        return

    admin_role = role_cache[ROLE_ADMIN]
    admin_user = User.query.filter_by(email=admin_email).first()

    if admin_user:
        updates = False
        if admin_user.role != admin_role:
            admin_user.role = admin_role
            updates = True
        if not admin_user.is_active:
            admin_user.is_active = True
            updates = True
        if updates:
            db.session.add(admin_user)
            db.session.commit()
        return

    admin_user = User(
        full_name="System Administrator",
        email=admin_email,
        role=admin_role,
        is_active=True,
    )
    admin_user.set_password(admin_password)
    db.session.add(admin_user)
    db.session.commit()
    app.logger.info("Default administrator created", extra={"email": admin_email})


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def register_auth(app: Flask) -> None:
    from models import User  # Local import to avoid circular dependency
    from utils.tokens import bearer_token_from_header, decode_token

    @login_manager.request_loader
    def load_user_from_request(req):
        token = bearer_token_from_header(req.headers.get("Authorization"))
        if not token:
            return None
        try:
            claims = decode_token(token)
        except Unauthenticated as exc:
            g.auth_error = exc.message
            return None
        user = User.query.filter_by(id=str(claims["sub"])).first()
        if user is None or not user.is_active:
            g.auth_error = "Subject is unknown or inactive"
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        message = g.pop("auth_error", None) or "Authentication required"
        current_app.logger.info("Unauthenticated request", extra={"path": request.path, "reason": message})
        return jsonify(Unauthenticated(message).to_dict()), 401


def register_cli(app: Flask) -> None:
    @app.cli.command("dashboards-recompute")
    @click.option("--owner", "owner_id", default=None, help="Recompute a single owner's dashboard.")
    def dashboards_recompute(owner_id):
        """Rebuild dashboard counters from live complaints (schedule this via cron)."""
        from utils.dashboard_aggregator import reconcile_all

        drifted = reconcile_all([owner_id] if owner_id else None)
        if drifted:
            click.echo(f"Repaired drift for {len(drifted)} owner(s): {', '.join(drifted)}")
        else:
            click.echo("All dashboards consistent.")


def create_app(config_name: Optional[str] = None, overrides: Optional[dict] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Resolve configuration
    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    # Optional instance-specific overrides
    app.config.from_pyfile("config.py", silent=True)
    if overrides:
        app.config.update(overrides)

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    register_auth(app)

    # Blueprints; bearer-authenticated JSON endpoints carry no CSRF token.
    from routes import main_bp, auth_bp, complaints_bp, dashboard_bp

    for blueprint in (main_bp, auth_bp, complaints_bp, dashboard_bp):
        csrf.exempt(blueprint)
    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(complaints_bp)
    app.register_blueprint(dashboard_bp)

    register_error_handlers(app)
    register_cli(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        ensure_default_roles_and_admin(app)

    return app
