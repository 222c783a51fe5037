"""Flask-Login wiring."""

from __future__ import annotations

from flask import jsonify
from flask_login import LoginManager

from clinic_scheduler.services.users import load_user

login_manager = LoginManager()
login_manager.session_protection = "strong"


@login_manager.user_loader
def _load_user(user_id: str):
    user = load_user(user_id)
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify({"ok": False, "error": "authentication_required"}), 401
