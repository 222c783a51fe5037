from __future__ import annotations

from flask import Blueprint, request

from clinic_scheduler.blueprints.api import fail, json_payload, no_content, ok, server_error
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.security import require_permission
from clinic_scheduler.services.treatments import (
    create_treatment,
    delete_treatment,
    get_treatment,
    list_treatments,
    update_treatment,
)

bp = Blueprint("treatments", __name__, url_prefix="/api/treatments")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_permission("treatments:view")
def index():
    try:
        return ok(list_treatments(request.args.get("specialization_id") or None))
    except ClinicError as exc:
        return fail("treatments.index", exc)
    except Exception as exc:
        return server_error("treatments.index", exc)


@bp.route("/", methods=["POST"], strict_slashes=False)
@require_permission("treatments:edit")
def create():
    try:
        return ok(create_treatment(json_payload()), 201)
    except ClinicError as exc:
        return fail("treatments.create", exc)
    except Exception as exc:
        return server_error("treatments.create", exc)


@bp.route("/<treatment_id>", methods=["GET"])
@require_permission("treatments:view")
def detail(treatment_id: str):
    try:
        return ok(get_treatment(treatment_id))
    except ClinicError as exc:
        return fail("treatments.detail", exc)
    except Exception as exc:
        return server_error("treatments.detail", exc)


@bp.route("/<treatment_id>", methods=["PUT", "PATCH"])
@require_permission("treatments:edit")
def update(treatment_id: str):
    try:
        return ok(update_treatment(treatment_id, json_payload()))
    except ClinicError as exc:
        return fail("treatments.update", exc)
    except Exception as exc:
        return server_error("treatments.update", exc)


@bp.route("/<treatment_id>", methods=["DELETE"])
@require_permission("treatments:edit")
def delete(treatment_id: str):
    try:
        delete_treatment(treatment_id)
        return no_content()
    except ClinicError as exc:
        return fail("treatments.delete", exc)
    except Exception as exc:
        return server_error("treatments.delete", exc)
