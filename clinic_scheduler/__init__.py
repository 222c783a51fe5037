"""Clinic scheduler package exposing the Flask application factory."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError

from .auth import login_manager
from .blueprints import register_blueprints
from .cli import register_cli
from .extensions import init_extensions
from .services.audit import audit_rate_limit
from .services.auto_migrate import auto_upgrade
from .services.errors import record_exception
from .services.security import init_security

APP_HOST = "127.0.0.1"
APP_PORT = 8080


def _data_root(base_dir: Path, override: Path | None = None) -> Path:
    root = override if override else base_dir / "data"
    root.mkdir(parents=True, exist_ok=True)
    (root / "logs").mkdir(parents=True, exist_ok=True)
    return root


def create_app() -> Flask:
    project_root = Path(__file__).resolve().parent.parent
    db_override = os.getenv("CLINIC_DB_PATH")
    data_root = _data_root(project_root, Path(db_override).parent if db_override else None)
    db_path = Path(db_override) if db_override else data_root / "app.db"

    app = Flask(__name__)

    secret_key = os.getenv("CLINIC_SECRET_KEY")
    if not secret_key:
        secret_key = os.urandom(32)

    app.config.update(
        SECRET_KEY=secret_key,
        SESSION_COOKIE_NAME="clinic_session",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=timedelta(hours=12),
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{db_path}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"check_same_thread": False}},
        RATELIMIT_STORAGE_URI=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
        DATA_ROOT=str(data_root),
        CLINIC_DB=str(db_path),
        APPOINTMENT_SLOT_STEP_MINUTES=int(os.getenv("APPOINTMENT_SLOT_STEP_MINUTES", "15")),
        JSON_SORT_KEYS=False,
    )

    init_extensions(app)
    login_manager.init_app(app)
    register_blueprints(app)
    auto_upgrade(app)
    init_security(app)
    register_cli(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning("CSRF validation failed: %s", e.description)
        return jsonify({"ok": False, "error": "csrf_failed", "detail": e.description}), 400

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"ok": False, "error": "not_found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"ok": False, "error": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def handle_rate_limited(e):
        app.logger.warning("Rate limit hit on %s from %s", request.path, request.remote_addr)
        audit_rate_limit(request.endpoint or "unknown")
        return jsonify({"ok": False, "error": "rate_limited"}), 429

    @app.errorhandler(500)
    def handle_server_error(e):
        record_exception("unhandled", getattr(e, "original_exception", None) or e)
        return jsonify({"ok": False, "error": "server_error"}), 500

    return app


__all__ = ["create_app", "APP_HOST", "APP_PORT"]
