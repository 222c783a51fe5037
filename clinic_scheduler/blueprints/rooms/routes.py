from __future__ import annotations

from flask import Blueprint, request

from clinic_scheduler.blueprints.api import fail, json_payload, no_content, ok, server_error
from clinic_scheduler.services.errors import ClinicError, ValidationFailed
from clinic_scheduler.services.rooms import create_room, delete_room, get_room, list_rooms, rooms_by_treatment, update_room
from clinic_scheduler.services.security import require_permission

bp = Blueprint("rooms", __name__, url_prefix="/api/rooms")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_permission("rooms:view")
def index():
    try:
        return ok(list_rooms())
    except ClinicError as exc:
        return fail("rooms.index", exc)
    except Exception as exc:
        return server_error("rooms.index", exc)


@bp.route("/", methods=["POST"], strict_slashes=False)
@require_permission("rooms:edit")
def create():
    try:
        return ok(create_room(json_payload()), 201)
    except ClinicError as exc:
        return fail("rooms.create", exc)
    except Exception as exc:
        return server_error("rooms.create", exc)


@bp.route("/by-treatment", methods=["GET"])
@require_permission("rooms:view")
def by_treatment():
    try:
        treatment_id = request.args.get("treatment_id")
        if not treatment_id:
            raise ValidationFailed("treatment_id_required", "treatment_id")
        return ok(rooms_by_treatment(treatment_id))
    except ClinicError as exc:
        return fail("rooms.by_treatment", exc)
    except Exception as exc:
        return server_error("rooms.by_treatment", exc)


@bp.route("/<room_id>", methods=["GET"])
@require_permission("rooms:view")
def detail(room_id: str):
    try:
        return ok(get_room(room_id))
    except ClinicError as exc:
        return fail("rooms.detail", exc)
    except Exception as exc:
        return server_error("rooms.detail", exc)


@bp.route("/<room_id>", methods=["PUT", "PATCH"])
@require_permission("rooms:edit")
def update(room_id: str):
    try:
        return ok(update_room(room_id, json_payload()))
    except ClinicError as exc:
        return fail("rooms.update", exc)
    except Exception as exc:
        return server_error("rooms.update", exc)


@bp.route("/<room_id>", methods=["DELETE"])
@require_permission("rooms:edit")
def delete(room_id: str):
    try:
        delete_room(room_id)
        return no_content()
    except ClinicError as exc:
        return fail("rooms.delete", exc)
    except Exception as exc:
        return server_error("rooms.delete", exc)
