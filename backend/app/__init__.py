import os
from pathlib import Path

import click
from flask import Flask, jsonify, request, g
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from app.errors import ApiError
from app.extensions import db, migrate, cors
from app.models import User
from app.segments.segment_checkin import checkin_bp
from app.segments.segment_disputes import disputes_bp
from app.segments.segment_orders_api import orders_bp
from app.segments.segment_payment_webhooks import webhooks_bp
from app.segments.segment_pricing import pricing_bp
from app.segments.segment_reconciliation_admin import recon_bp
from app.segments.segment_settlements import settlements_bp
from app.segments.segment_users import users_bp
from app.utils.observability import init_sentry, init_otel, install_request_observers


def _resolve_alembic_head() -> str:
    from alembic.config import Config
    from alembic.script import ScriptDirectory
    from alembic.util import CommandError

    migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
    try:
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        heads = ScriptDirectory.from_config(cfg).get_heads()
    except CommandError:
        return "unknown"
    return heads[0] if heads else "unknown"


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _with_trace_id(payload: dict) -> dict:
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("HELLPME_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.config["HELLPME_ENV"] = env
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["PORTONE_WEBHOOK_SECRET"] = (os.getenv("PORTONE_WEBHOOK_SECRET") or "").strip()
    app.config["ENABLE_IDEMPOTENCY_ENFORCEMENT"] = _env_bool("ENABLE_IDEMPOTENCY_ENFORCEMENT")
    app.config["CELERY"] = {"task_always_eager": _env_bool("CELERY_TASK_ALWAYS_EAGER")}

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        os.makedirs(instance_dir, exist_ok=True)
        database_url = f"sqlite:///{os.path.join(instance_dir, 'hellpme.db').replace(os.sep, '/')}"
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {
        "pool_pre_ping": True,
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s",
            engine_options["pool_size"], engine_options["max_overflow"], engine_options["pool_timeout"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    if not origins and env not in ("prod", "production"):
        origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)
    init_otel(app, enabled=(os.getenv("OTEL_ENABLED") or "").strip() == "1")

    @app.errorhandler(ApiError)
    def _api_error(error: ApiError):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error("api_error code=%s path=%s message=%s", error.code, request.path, error.message)
        else:
            app.logger.info("api_error code=%s status=%s path=%s", error.code, error.status_code, request.path)
        return jsonify(_with_trace_id(error.to_dict())), int(error.status_code)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable client handling.
        if not request.path.startswith("/api/"):
            return error
        payload = {
            "ok": False,
            "error": error.name,
            "message": error.description or error.name,
            "status": int(error.code or 500),
        }
        return jsonify(_with_trace_id(payload)), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        db.session.rollback()
        app.logger.exception("unhandled_exception path=%s", request.path)
        payload = {
            "ok": False,
            "error": "InternalServerError",
            "message": "Internal server error",
            "status": 500,
        }
        return jsonify(_with_trace_id(payload)), 500

    app.register_blueprint(users_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(checkin_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(disputes_bp)
    app.register_blueprint(settlements_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(recon_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            db_error = str(e)[:300]
        payload = {
            "ok": True,
            "service": "hellpme-backend",
            "env": env,
            "db": db_state,
            "git_sha": _resolve_git_sha(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.get("/api/version")
    def version():
        return jsonify({
            "ok": True,
            "alembic_head": _resolve_alembic_head(),
            "git_sha": _resolve_git_sha(),
        })

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("bootstrap-admin")
    def bootstrap_admin():
        allow = (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() == "1"
        if env not in ("dev", "development", "local", "test") and not allow:
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or HELLPME_ENV=dev.")

        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")

        u = User.query.filter_by(email=email).first()
        if u:
            u.role = "admin"
        else:
            u = User(name=email.split("@")[0], email=email, role="admin")
            db.session.add(u)
        u.set_password(password)
        u.ensure_personal_code()
        db.session.commit()
        click.echo(f"admin_bootstrap_ok {u.email}")

    return app
