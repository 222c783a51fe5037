"""Permission checks, login bookkeeping and response hardening."""

from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar

from flask import Flask, g, jsonify, request
from flask_login import current_user

from clinic_scheduler.services.audit import audit_denied, write_event

F = TypeVar("F", bound=Callable)

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Referrer-Policy": "no-referrer",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Permissions-Policy": "geolocation=(), camera=(), microphone=()",
}


def require_permission(code: str) -> Callable[[F], F]:
    """401 for anonymous callers, 403 (and an audit row) when ``code`` is missing."""

    def decorator(view: F) -> F:
        @wraps(view)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({"ok": False, "error": "authentication_required"}), 401
            if not current_user.has_permission(code):
                audit_denied(code, reason="missing_permission")
                return jsonify({"ok": False, "error": "forbidden", "permission": code}), 403
            return view(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def record_login(user, *, success: bool) -> None:
    write_event(
        getattr(user, "id", None),
        "login",
        entity="user",
        entity_id=getattr(user, "id", None),
        result="ok" if success else "failed",
        meta={"path": request.path},
    )


def record_logout(user) -> None:
    if user is None:
        return
    write_event(user.id, "logout", entity="user", entity_id=user.id)


def init_security(app: Flask) -> None:
    @app.before_request
    def _bind_current_user() -> None:
        g.current_user = current_user if current_user.is_authenticated else None

    @app.after_request
    def _harden(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        response.headers["Cache-Control"] = "no-store"
        return response
