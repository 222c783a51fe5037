from __future__ import annotations

from flask import Blueprint, request

from clinic_scheduler.blueprints.api import fail, json_payload, no_content, ok, server_error
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.patients import create_patient, delete_patient, get_patient, list_patients, update_patient
from clinic_scheduler.services.security import require_permission

bp = Blueprint("patients", __name__, url_prefix="/api/patients")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_permission("patients:view")
def index():
    try:
        return ok(list_patients(request.args.get("q")))
    except ClinicError as exc:
        return fail("patients.index", exc)
    except Exception as exc:
        return server_error("patients.index", exc)


@bp.route("/", methods=["POST"], strict_slashes=False)
@require_permission("patients:edit")
def create():
    try:
        return ok(create_patient(json_payload()), 201)
    except ClinicError as exc:
        return fail("patients.create", exc)
    except Exception as exc:
        return server_error("patients.create", exc)


@bp.route("/<patient_id>", methods=["GET"])
@require_permission("patients:view")
def detail(patient_id: str):
    try:
        return ok(get_patient(patient_id))
    except ClinicError as exc:
        return fail("patients.detail", exc)
    except Exception as exc:
        return server_error("patients.detail", exc)


@bp.route("/<patient_id>", methods=["PUT", "PATCH"])
@require_permission("patients:edit")
def update(patient_id: str):
    try:
        return ok(update_patient(patient_id, json_payload()))
    except ClinicError as exc:
        return fail("patients.update", exc)
    except Exception as exc:
        return server_error("patients.update", exc)


@bp.route("/<patient_id>", methods=["DELETE"])
@require_permission("patients:edit")
def delete(patient_id: str):
    try:
        delete_patient(patient_id)
        return no_content()
    except ClinicError as exc:
        return fail("patients.delete", exc)
    except Exception as exc:
        return server_error("patients.delete", exc)
