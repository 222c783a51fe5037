from __future__ import annotations

from flask import Blueprint, request

from clinic_scheduler.blueprints.api import fail, json_payload, no_content, ok, server_error
from clinic_scheduler.services.appointments import (
    create_appointment,
    delete_appointment,
    get_appointment,
    list_appointments,
    preview_conflicts,
    update_appointment,
    update_payment_status,
    update_status,
)
from clinic_scheduler.services.audit import current_actor_id
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.security import require_permission
from clinic_scheduler.services.slots import doctors_availability, slots_for_doctor

bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")

LIST_FILTERS = ("start_date", "end_date", "doctor_id", "patient_id", "status")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_permission("appointments:view")
def index():
    try:
        filters = {key: request.args.get(key) for key in LIST_FILTERS if request.args.get(key)}
        return ok(list_appointments(filters))
    except ClinicError as exc:
        return fail("appointments.index", exc)
    except Exception as exc:
        return server_error("appointments.index", exc)


@bp.route("/", methods=["POST"], strict_slashes=False)
@require_permission("appointments:edit")
def create():
    try:
        return ok(create_appointment(json_payload(), actor_id=current_actor_id()), 201)
    except ClinicError as exc:
        return fail("appointments.create", exc)
    except Exception as exc:
        return server_error("appointments.create", exc)


@bp.route("/check-conflicts", methods=["POST"])
@require_permission("appointments:view")
def check_conflicts():
    try:
        return ok(preview_conflicts(json_payload()))
    except ClinicError as exc:
        return fail("appointments.check_conflicts", exc)
    except Exception as exc:
        return server_error("appointments.check_conflicts", exc)


@bp.route("/available-slots", methods=["GET"])
@require_permission("appointments:view")
def available_slots():
    try:
        data = slots_for_doctor(
            request.args.get("doctor_id", ""),
            request.args.get("date"),
            request.args.get("duration"),
            treatment_id=request.args.get("treatment_id") or None,
            room_id=request.args.get("room_id") or None,
            patient_id=request.args.get("patient_id") or None,
        )
        return ok(data)
    except ClinicError as exc:
        return fail("appointments.available_slots", exc)
    except Exception as exc:
        return server_error("appointments.available_slots", exc)


@bp.route("/doctors/availability", methods=["GET"])
@require_permission("appointments:view")
def availability():
    try:
        return ok(doctors_availability(request.args.get("date")))
    except ClinicError as exc:
        return fail("appointments.availability", exc)
    except Exception as exc:
        return server_error("appointments.availability", exc)


@bp.route("/<appt_id>", methods=["GET"])
@require_permission("appointments:view")
def detail(appt_id: str):
    try:
        return ok(get_appointment(appt_id))
    except ClinicError as exc:
        return fail("appointments.detail", exc)
    except Exception as exc:
        return server_error("appointments.detail", exc)


@bp.route("/<appt_id>", methods=["PUT", "PATCH"])
@require_permission("appointments:edit")
def update(appt_id: str):
    try:
        return ok(update_appointment(appt_id, json_payload(), actor_id=current_actor_id()))
    except ClinicError as exc:
        return fail("appointments.update", exc)
    except Exception as exc:
        return server_error("appointments.update", exc)


@bp.route("/<appt_id>", methods=["DELETE"])
@require_permission("appointments:edit")
def delete(appt_id: str):
    try:
        delete_appointment(appt_id, actor_id=current_actor_id())
        return no_content()
    except ClinicError as exc:
        return fail("appointments.delete", exc)
    except Exception as exc:
        return server_error("appointments.delete", exc)


@bp.route("/<appt_id>/status", methods=["POST"])
@require_permission("appointments:edit")
def change_status(appt_id: str):
    try:
        payload = json_payload()
        return ok(update_status(appt_id, payload.get("status"), actor_id=current_actor_id()))
    except ClinicError as exc:
        return fail("appointments.status", exc)
    except Exception as exc:
        return server_error("appointments.status", exc)


@bp.route("/<appt_id>/payment", methods=["POST"])
@require_permission("appointments:edit")
def change_payment(appt_id: str):
    try:
        payload = json_payload()
        return ok(update_payment_status(appt_id, payload.get("payment_status"), actor_id=current_actor_id()))
    except ClinicError as exc:
        return fail("appointments.payment", exc)
    except Exception as exc:
        return server_error("appointments.payment", exc)
