# family_finance/__init__.py
# ------------------------------------------------------------
# Flask application factory with clear, layered registration:
# - register_extensions()
# - register_blueprints()
# - register_template_filters()
# - register_cli()
# - register_error_handlers()
# - start_scheduler()
#
# Notes:
# - load_dotenv() runs once at import time.
# - Every error leaves the app as JSON: {"error": ..., "code": ...}.
# ------------------------------------------------------------

import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .errors import ApiError
from .extensions import db, migrate, login_manager, mail
from .models import User  # ensure models registered

# Load environment from .env exactly once
load_dotenv()

logger = logging.getLogger(__name__)


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)
    if config_object is None:
        env = os.getenv("FLASK_ENV", "development").lower()
        config_object = (
            "family_finance.config.Production" if env == "production" else "family_finance.config.Development"
        )
    app.config.from_object(config_object)

    register_extensions(app)
    register_blueprints(app)
    register_template_filters(app)
    register_cli(app)
    register_error_handlers(app)
    # Start background scheduler
    from .scheduler import start_scheduler
    start_scheduler(app)
    return app


# ---------------------------
# Registrations (by concern)
# ---------------------------
def register_extensions(app: Flask) -> None:
    """Initialize Flask extensions (db, migrate, login manager, mail)."""
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    mail.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        if not user_id.isdigit():
            return None
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401


def register_blueprints(app: Flask) -> None:
    """
    Register all blueprints. Keep imports local to avoid circulars.
    """
    from .api import api as api_blueprint
    from .auth import auth as auth_blueprint
    from .settings import settings as settings_blueprint
    from .uploads import uploads as uploads_blueprint

    app.register_blueprint(auth_blueprint)                          # /auth/login, /auth/register
    app.register_blueprint(settings_blueprint)                      # /settings/...
    app.register_blueprint(api_blueprint, url_prefix="/api")        # /api/...
    app.register_blueprint(uploads_blueprint)                       # /uploads/<family_id>/<name>


def register_template_filters(app: Flask) -> None:
    """Jinja filters used by the email templates."""

    def _money(value):
        """Format a number as currency with two decimals and thousands separators."""
        try:
            return "{:,.2f}".format(float(value))
        except (ValueError, TypeError):
            return value

    def _pct(value):
        try:
            return "{:.1f}%".format(float(value))
        except (ValueError, TypeError):
            return value

    app.add_template_filter(_money, name="money")
    app.add_template_filter(_pct, name="pct")


def register_cli(app: Flask) -> None:
    """Register custom CLI commands."""
    from .cli import register_cli as _register_cli
    _register_cli(app)


def register_error_handlers(app: Flask) -> None:
    """Render every error as JSON."""

    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(413)
    def _too_large(e):
        limit_mb = app.config["MAX_UPLOAD_BYTES"] // (1024 * 1024)
        return jsonify({"error": f"File too large (max {limit_mb}MB)", "code": "FILE_TOO_LARGE"}), 413

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        code = (e.name or "error").upper().replace(" ", "_")
        return jsonify({"error": e.description or e.name, "code": code}), e.code

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        db.session.rollback()
        logger.exception(f"[app] Unhandled error: {e}")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
