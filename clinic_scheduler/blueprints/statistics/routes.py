from __future__ import annotations

from flask import Blueprint

from clinic_scheduler.blueprints.api import fail, ok, server_error
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.security import require_permission
from clinic_scheduler.services.statistics import dashboard

bp = Blueprint("statistics", __name__, url_prefix="/api/statistics")


@bp.route("/dashboard", methods=["GET"])
@require_permission("statistics:view")
def dashboard_view():
    try:
        return ok(dashboard())
    except ClinicError as exc:
        return fail("statistics.dashboard", exc)
    except Exception as exc:
        return server_error("statistics.dashboard", exc)
