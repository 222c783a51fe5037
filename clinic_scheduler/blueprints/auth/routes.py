"""Authentication blueprint."""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from clinic_scheduler.blueprints.api import fail, ok, server_error
from clinic_scheduler.extensions import limiter
from clinic_scheduler.forms.auth import ChangePasswordForm, LoginForm
from clinic_scheduler.models_rbac import ROLE_PERMISSIONS
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.security import record_login, record_logout
from clinic_scheduler.services.users import (
    change_password,
    create_initial_admin,
    find_by_username,
    record_login_time,
    users_exist,
)

bp = Blueprint("auth", __name__, url_prefix="/auth")


def _login_rate_key() -> str:
    payload = request.get_json(silent=True) or {}
    username = payload.get("username") if isinstance(payload, dict) else None
    username = username or request.form.get("username", "")
    return f"{request.remote_addr}:{username}"


def _me() -> dict[str, object]:
    data = current_user.to_dict()
    data["permissions"] = sorted(ROLE_PERMISSIONS.get(current_user.role, set()))
    return data


def _form_errors(form) -> tuple:
    return jsonify({"ok": False, "error": "validation_failed", "fields": form.errors}), 400


@bp.route("/csrf", methods=["GET"])
def csrf_token():
    return ok({"csrf_token": generate_csrf()})


@bp.route("/login", methods=["POST"])
@limiter.limit("5 per 15 minutes", key_func=_login_rate_key, methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    username = form.username.data.strip()
    password = form.password.data
    try:
        if not users_exist():
            user = create_initial_admin(username, password)
            current_app.logger.info("Bootstrap admin %s created", username)
            bootstrap = True
        else:
            user = find_by_username(username)
            if user is None or not user.is_active or not user.check_password(password):
                record_login(None, success=False)
                return jsonify({"ok": False, "error": "invalid_credentials"}), 401
            bootstrap = False
        session.permanent = True
        login_user(user)
        g.current_user = user
        record_login(user, success=True)
        record_login_time(user.id)
        return ok({"user": _me(), "bootstrap": bootstrap})
    except ClinicError as exc:
        return fail("auth.login", exc)
    except Exception as exc:
        return server_error("auth.login", exc)


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    record_logout(g.get("current_user"))
    logout_user()
    return ok(None)


@bp.route("/me", methods=["GET"])
@login_required
def me():
    return ok(_me())


@bp.route("/change-password", methods=["POST"])
@login_required
def change_password_view():
    form = ChangePasswordForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    try:
        change_password(current_user.id, form.current_password.data, form.new_password.data)
        return ok(None)
    except ClinicError as exc:
        return fail("auth.change_password", exc)
    except Exception as exc:
        return server_error("auth.change_password", exc)
