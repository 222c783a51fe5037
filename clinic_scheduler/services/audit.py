"""Append-only audit logging."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Mapping

from flask import g, has_request_context, request

import sqlalchemy as sa

from clinic_scheduler.extensions import db

SENSITIVE_KEYS = {"notes", "note", "password", "password_hash", "diagnosis"}

_INSERT_SQL = """
    INSERT INTO audit_log(actor_user_id, action, entity, entity_id, ts, result, meta_json_redacted)
    VALUES (:actor_user_id, :action, :entity, :entity_id, :ts, :result, :meta)
"""


def _sanitize_meta(meta: Mapping[str, Any] | None) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    if not meta:
        return cleaned
    for key, value in meta.items():
        if key.lower() in SENSITIVE_KEYS:
            cleaned[key] = "[redacted]"
        else:
            cleaned[key] = value
    return cleaned


def current_actor_id() -> str | None:
    if not has_request_context():
        return None
    actor = getattr(g, "current_user", None)
    return getattr(actor, "id", None)


def write_event(
    actor_user_id: str | None,
    action: str,
    *,
    entity: str | None = None,
    entity_id: str | None = None,
    result: str = "ok",
    meta: Mapping[str, Any] | None = None,
    conn: sqlite3.Connection | None = None,
) -> None:
    """Insert one audit row.

    When ``conn`` is given the row joins that connection's open transaction,
    so it commits or rolls back together with the audited write.
    """

    params = {
        "actor_user_id": actor_user_id,
        "action": action,
        "entity": entity,
        "entity_id": entity_id,
        "ts": datetime.now(timezone.utc).isoformat(),
        "result": result,
        "meta": json.dumps(_sanitize_meta(meta), ensure_ascii=False, default=str),
    }
    if conn is not None:
        conn.execute(_INSERT_SQL, params)
        return
    session = db.session()
    try:
        session.execute(sa.text(_INSERT_SQL), params)
        session.commit()
    finally:
        session.close()


def audit_denied(action: str, *, reason: str) -> None:
    write_event(current_actor_id(), action, result="denied", meta={"reason": reason, "path": request.path})


def audit_rate_limit(scope: str) -> None:
    write_event(current_actor_id(), "rate_limit", meta={"scope": scope, "path": request.path}, result="blocked")
