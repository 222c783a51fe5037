from __future__ import annotations

import sqlite3

from flask import Blueprint, jsonify

from clinic_scheduler.services.database import db
from clinic_scheduler.services.errors import record_exception

bp = Blueprint("core", __name__)


@bp.route("/health", methods=["GET"])
def health():
    conn = db()
    try:
        conn.execute("SELECT 1").fetchone()
    except sqlite3.Error as exc:
        record_exception("core.health", exc)
        return jsonify({"ok": False, "status": "degraded", "database": "unavailable"}), 503
    finally:
        conn.close()
    return jsonify({"ok": True, "status": "ok", "database": "ok"})
