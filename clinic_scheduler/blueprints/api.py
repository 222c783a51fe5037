"""JSON envelope helpers shared by the API blueprints."""

from __future__ import annotations

from typing import Any

from flask import current_app, jsonify, request

from clinic_scheduler.services.errors import ClinicError, StorageError, ValidationFailed, record_exception


def ok(data: Any = None, status: int = 200):
    return jsonify({"ok": True, "data": data}), status


def no_content():
    return "", 204


def fail(context: str, exc: ClinicError):
    if isinstance(exc, StorageError):
        record_exception(context, exc)
    else:
        current_app.logger.info("%s rejected: %s", context, exc)
    body: dict[str, Any] = {"ok": False}
    body.update(exc.to_dict())
    return jsonify(body), exc.status_code


def server_error(context: str, exc: Exception):
    record_exception(context, exc)
    return jsonify({"ok": False, "error": "server_error"}), 500


def json_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed("json_object_required")
    payload.pop("csrf_token", None)
    return payload
