from __future__ import annotations

from flask import Blueprint, request

from clinic_scheduler.blueprints.api import fail, json_payload, no_content, ok, server_error
from clinic_scheduler.services.doctors import (
    create_doctor,
    delete_doctor,
    doctor_schedule_for,
    doctors_by_treatment,
    get_doctor,
    list_doctors,
    update_doctor,
)
from clinic_scheduler.services.errors import ClinicError, ValidationFailed
from clinic_scheduler.services.security import require_permission

bp = Blueprint("doctors", __name__, url_prefix="/api/doctors")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_permission("doctors:view")
def index():
    try:
        return ok(list_doctors())
    except ClinicError as exc:
        return fail("doctors.index", exc)
    except Exception as exc:
        return server_error("doctors.index", exc)


@bp.route("/", methods=["POST"], strict_slashes=False)
@require_permission("doctors:edit")
def create():
    try:
        return ok(create_doctor(json_payload()), 201)
    except ClinicError as exc:
        return fail("doctors.create", exc)
    except Exception as exc:
        return server_error("doctors.create", exc)


@bp.route("/by-treatment", methods=["GET"])
@require_permission("doctors:view")
def by_treatment():
    try:
        treatment_id = request.args.get("treatment_id")
        if not treatment_id:
            raise ValidationFailed("treatment_id_required", "treatment_id")
        return ok(doctors_by_treatment(treatment_id))
    except ClinicError as exc:
        return fail("doctors.by_treatment", exc)
    except Exception as exc:
        return server_error("doctors.by_treatment", exc)


@bp.route("/<doctor_id>", methods=["GET"])
@require_permission("doctors:view")
def detail(doctor_id: str):
    try:
        return ok(get_doctor(doctor_id))
    except ClinicError as exc:
        return fail("doctors.detail", exc)
    except Exception as exc:
        return server_error("doctors.detail", exc)


@bp.route("/<doctor_id>/schedule", methods=["GET"])
@require_permission("doctors:view")
def schedule(doctor_id: str):
    try:
        return ok(doctor_schedule_for(doctor_id, request.args.get("date")))
    except ClinicError as exc:
        return fail("doctors.schedule", exc)
    except Exception as exc:
        return server_error("doctors.schedule", exc)


@bp.route("/<doctor_id>", methods=["PUT", "PATCH"])
@require_permission("doctors:edit")
def update(doctor_id: str):
    try:
        return ok(update_doctor(doctor_id, json_payload()))
    except ClinicError as exc:
        return fail("doctors.update", exc)
    except Exception as exc:
        return server_error("doctors.update", exc)


@bp.route("/<doctor_id>", methods=["DELETE"])
@require_permission("doctors:edit")
def delete(doctor_id: str):
    try:
        delete_doctor(doctor_id)
        return no_content()
    except ClinicError as exc:
        return fail("doctors.delete", exc)
    except Exception as exc:
        return server_error("doctors.delete", exc)
