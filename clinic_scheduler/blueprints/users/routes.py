from __future__ import annotations

from flask import Blueprint

from clinic_scheduler.blueprints.api import fail, json_payload, no_content, ok, server_error
from clinic_scheduler.services.audit import current_actor_id, write_event
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.security import require_permission
from clinic_scheduler.services.users import create_user, delete_user, get_user, list_users, update_user

bp = Blueprint("users", __name__, url_prefix="/api/users")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_permission("users:manage")
def index():
    try:
        return ok(list_users())
    except ClinicError as exc:
        return fail("users.index", exc)
    except Exception as exc:
        return server_error("users.index", exc)


@bp.route("/", methods=["POST"], strict_slashes=False)
@require_permission("users:manage")
def create():
    try:
        user = create_user(json_payload())
        write_event(current_actor_id(), "user_create", entity="user", entity_id=user["id"], meta={"role": user["role"]})
        return ok(user, 201)
    except ClinicError as exc:
        return fail("users.create", exc)
    except Exception as exc:
        return server_error("users.create", exc)


@bp.route("/<user_id>", methods=["GET"])
@require_permission("users:manage")
def detail(user_id: str):
    try:
        return ok(get_user(user_id))
    except ClinicError as exc:
        return fail("users.detail", exc)
    except Exception as exc:
        return server_error("users.detail", exc)


@bp.route("/<user_id>", methods=["PUT", "PATCH"])
@require_permission("users:manage")
def update(user_id: str):
    try:
        payload = json_payload()
        user = update_user(user_id, payload)
        write_event(current_actor_id(), "user_update", entity="user", entity_id=user_id, meta={"fields": sorted(payload)})
        return ok(user)
    except ClinicError as exc:
        return fail("users.update", exc)
    except Exception as exc:
        return server_error("users.update", exc)


@bp.route("/<user_id>", methods=["DELETE"])
@require_permission("users:manage")
def delete(user_id: str):
    try:
        delete_user(user_id, acting_user_id=current_actor_id())
        write_event(current_actor_id(), "user_delete", entity="user", entity_id=user_id)
        return no_content()
    except ClinicError as exc:
        return fail("users.delete", exc)
    except Exception as exc:
        return server_error("users.delete", exc)
