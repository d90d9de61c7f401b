import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from flask import Flask, jsonify, request, session
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from cdk import (
    ADMIN_RATE_LIMITER_KEY,
    FixedWindowRateLimiter,
    RATE_LIMITER_KEY,
    VERIFY_RATE_LIMITER_KEY,
    create_claim_blueprint,
    create_project_admin_blueprint,
)

APP_VERSION = "1.0.0"


# ====== Feature toggle ======
def _env_flag(name: str, default: bool) -> bool:
    """Parse truthy feature-toggle values from the environment."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        print(f"⚠️ Invalid {name} value: {raw!r}. Using default {default}.")
        return default


MAINTENANCE_MODE = _env_flag("MAINTENANCE_MODE", False)  # ⛔️ 503 for every API call
CDK_REQUIRE_LOGIN = _env_flag("CDK_REQUIRE_LOGIN", True)  # 🔐 session user required for claims/admin
TURNSTILE_ENABLED = _env_flag("TURNSTILE_ENABLED", False)  # 🤖 bot challenge on /api/claim

# ====== Claim engine settings ======
CDK_CLAIM_MAX_ATTEMPTS = _env_int("CDK_CLAIM_MAX_ATTEMPTS", 5, 1)
CDK_CLAIM_RATE_LIMIT = _env_int("CDK_CLAIM_RATE_LIMIT", 10, 1)
CDK_CLAIM_RATE_WINDOW = _env_int("CDK_CLAIM_RATE_WINDOW", 60, 1)
CDK_VERIFY_RATE_LIMIT = _env_int("CDK_VERIFY_RATE_LIMIT", 10, 1)
CDK_VERIFY_RATE_WINDOW = _env_int("CDK_VERIFY_RATE_WINDOW", 60, 1)
CDK_ADMIN_RATE_LIMIT = _env_int("CDK_ADMIN_RATE_LIMIT", 60, 1)
CDK_ADMIN_RATE_WINDOW = _env_int("CDK_ADMIN_RATE_WINDOW", 60, 1)
CDK_IDENTITY_SALT = os.environ.get("CDK_IDENTITY_SALT", "cdk-salt")  # set a real secret in prod!

DATA_DIR = Path(__file__).resolve().parent / "data"
SQLITE_PATH = DATA_DIR / "cdk.db"


def create_app(test_config: Optional[dict] = None) -> Flask:
    """Build the Flask app; ``test_config`` overrides anything read from the environment."""
    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY") or os.urandom(24)
    app.permanent_session_lifetime = timedelta(days=30)

    app.config.setdefault("MAINTENANCE_MODE", MAINTENANCE_MODE)
    app.config.setdefault("CDK_REQUIRE_LOGIN", CDK_REQUIRE_LOGIN)
    app.config.setdefault("CDK_CLAIM_MAX_ATTEMPTS", CDK_CLAIM_MAX_ATTEMPTS)
    app.config.setdefault("CDK_CLAIM_RATE_LIMIT", CDK_CLAIM_RATE_LIMIT)
    app.config.setdefault("CDK_CLAIM_RATE_WINDOW", CDK_CLAIM_RATE_WINDOW)
    app.config.setdefault("CDK_VERIFY_RATE_LIMIT", CDK_VERIFY_RATE_LIMIT)
    app.config.setdefault("CDK_VERIFY_RATE_WINDOW", CDK_VERIFY_RATE_WINDOW)
    app.config.setdefault("CDK_ADMIN_RATE_LIMIT", CDK_ADMIN_RATE_LIMIT)
    app.config.setdefault("CDK_ADMIN_RATE_WINDOW", CDK_ADMIN_RATE_WINDOW)
    app.config.setdefault("CDK_IDENTITY_SALT", CDK_IDENTITY_SALT)
    app.config.setdefault("TURNSTILE_ENABLED", TURNSTILE_ENABLED)
    app.config.setdefault("TURNSTILE_SECRET_KEY", os.environ.get("TURNSTILE_SECRET_KEY"))
    app.config.setdefault("TURNSTILE_SITE_KEY", os.environ.get("TURNSTILE_SITE_KEY"))
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

    if test_config:
        app.config.update(test_config)

    database_url = app.config.get("SQLALCHEMY_DATABASE_URI") or os.environ.get("DATABASE_URL")
    if not database_url:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        database_url = f"sqlite:///{SQLITE_PATH}"
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    if database_url.startswith("sqlite"):
        # Concurrent claims queue on SQLite's write lock instead of failing fast.
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"connect_args": {"timeout": 30}})

    db.init_app(app)

    _install_rate_limiters(app)

    _register_handlers(app)
    app.register_blueprint(create_claim_blueprint(get_current_user))
    app.register_blueprint(create_project_admin_blueprint(get_current_user))

    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            event.listen(db.engine, "connect", _enable_sqlite_foreign_keys)
        db.create_all()

    return app


def _install_rate_limiters(app: Flask) -> None:
    limits = {
        RATE_LIMITER_KEY: ("CDK_CLAIM_RATE_LIMIT", "CDK_CLAIM_RATE_WINDOW"),
        VERIFY_RATE_LIMITER_KEY: ("CDK_VERIFY_RATE_LIMIT", "CDK_VERIFY_RATE_WINDOW"),
        ADMIN_RATE_LIMITER_KEY: ("CDK_ADMIN_RATE_LIMIT", "CDK_ADMIN_RATE_WINDOW"),
    }
    for extension_key, (limit_key, window_key) in limits.items():
        app.extensions[extension_key] = FixedWindowRateLimiter(app.config[limit_key], app.config[window_key])


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite only honours ON DELETE CASCADE with this pragma set per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_current_user() -> Optional[dict[str, Any]]:
    """Return the session user stored by the OAuth login flow, or None."""
    user = session.get("user")
    if not isinstance(user, dict) or not user.get("username"):
        return None
    return user


def _register_handlers(app: Flask) -> None:
    @app.before_request
    def check_maintenance_mode():
        if not app.config.get("MAINTENANCE_MODE"):
            return None
        if request.endpoint in {"static", "health"}:
            return None
        return jsonify({"success": False, "error": "Service under maintenance."}), 503

    @app.get("/api/health", endpoint="health")
    def health():
        return jsonify(
            {
                "message": "CDK API is running",
                "version": APP_VERSION,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "auth": {"required": bool(app.config.get("CDK_REQUIRE_LOGIN"))},
            }
        )

    @app.errorhandler(SQLAlchemyError)
    def storage_failure(exc):
        db.session.rollback()
        app.logger.error("Storage error while handling %s %s", request.method, request.path, exc_info=exc)
        return jsonify({"success": False, "error": "Internal server error."}), 500

    @app.errorhandler(404)
    @app.errorhandler(405)
    @app.errorhandler(500)
    def show_json_error(err):
        status_code = getattr(err, "code", 500) or 500
        messages = {404: "Not found.", 405: "Method not allowed."}
        return jsonify({"success": False, "error": messages.get(status_code, "Internal server error.")}), status_code


if __name__ == "__main__":
    create_app().run(debug=_env_flag("FLASK_DEBUG", False))
