from __future__ import annotations

from flask import Blueprint

from clinic_scheduler.blueprints.api import fail, json_payload, no_content, ok, server_error
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.security import require_permission
from clinic_scheduler.services.specializations import (
    create_specialization,
    delete_specialization,
    doctor_specializations,
    get_specialization,
    list_specializations,
    room_specializations,
    update_specialization,
)

bp = Blueprint("specializations", __name__, url_prefix="/api/specializations")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_permission("specializations:view")
def index():
    try:
        return ok(list_specializations())
    except ClinicError as exc:
        return fail("specializations.index", exc)
    except Exception as exc:
        return server_error("specializations.index", exc)


@bp.route("/", methods=["POST"], strict_slashes=False)
@require_permission("specializations:edit")
def create():
    try:
        return ok(create_specialization(json_payload()), 201)
    except ClinicError as exc:
        return fail("specializations.create", exc)
    except Exception as exc:
        return server_error("specializations.create", exc)


@bp.route("/doctors/<doctor_id>", methods=["GET"])
@require_permission("specializations:view")
def for_doctor(doctor_id: str):
    try:
        return ok(doctor_specializations(doctor_id))
    except ClinicError as exc:
        return fail("specializations.for_doctor", exc)
    except Exception as exc:
        return server_error("specializations.for_doctor", exc)


@bp.route("/rooms/<room_id>", methods=["GET"])
@require_permission("specializations:view")
def for_room(room_id: str):
    try:
        return ok(room_specializations(room_id))
    except ClinicError as exc:
        return fail("specializations.for_room", exc)
    except Exception as exc:
        return server_error("specializations.for_room", exc)


@bp.route("/<spec_id>", methods=["GET"])
@require_permission("specializations:view")
def detail(spec_id: str):
    try:
        return ok(get_specialization(spec_id))
    except ClinicError as exc:
        return fail("specializations.detail", exc)
    except Exception as exc:
        return server_error("specializations.detail", exc)


@bp.route("/<spec_id>", methods=["PUT", "PATCH"])
@require_permission("specializations:edit")
def update(spec_id: str):
    try:
        return ok(update_specialization(spec_id, json_payload()))
    except ClinicError as exc:
        return fail("specializations.update", exc)
    except Exception as exc:
        return server_error("specializations.update", exc)


@bp.route("/<spec_id>", methods=["DELETE"])
@require_permission("specializations:edit")
def delete(spec_id: str):
    try:
        delete_specialization(spec_id)
        return no_content()
    except ClinicError as exc:
        return fail("specializations.delete", exc)
    except Exception as exc:
        return server_error("specializations.delete", exc)
