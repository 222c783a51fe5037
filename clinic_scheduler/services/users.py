"""User accounts backed by the ORM model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import func, select

from clinic_scheduler.extensions import db as sa_db
from clinic_scheduler.models_rbac import User, UserRole
from clinic_scheduler.services.database import db, require_row, session_scope
from clinic_scheduler.services.errors import Duplicate, InUse, NotFound, ValidationFailed
from clinic_scheduler.services.validation import email, text

MIN_PASSWORD_LENGTH = 8
MIN_USERNAME_LENGTH = 3


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _role(value: Any) -> str:
    try:
        return UserRole(str(value or "").strip().lower()).value
    except ValueError as exc:
        raise ValidationFailed("role_invalid", "role") from exc


def _username(payload: Mapping[str, Any]) -> str:
    value = text(payload, "username", max_len=64)
    if len(value) < MIN_USERNAME_LENGTH:
        raise ValidationFailed("username_too_short", "username")
    return value


def validate_password(password: Any, field_name: str = "password") -> str:
    if not isinstance(password, str) or not password:
        raise ValidationFailed(f"{field_name}_required", field_name)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"{field_name}_too_short", field_name)
    return password


def _doctor_link(value: Any) -> str | None:
    if value in (None, ""):
        return None
    conn = db()
    try:
        return require_row(conn, "doctors", str(value), "doctor")["id"]
    finally:
        conn.close()


def _check_unique(session, username: str | None, email_addr: str | None, exclude_id: str | None = None) -> None:
    if username:
        stmt = select(User.id).where(func.lower(User.username) == username.lower())
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if session.execute(stmt).first() is not None:
            raise Duplicate("username")
    if email_addr:
        stmt = select(User.id).where(func.lower(User.email) == email_addr.lower())
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if session.execute(stmt).first() is not None:
            raise Duplicate("email")


def _other_admins(session, exclude_user_id: str) -> int:
    return session.scalar(
        select(func.count())
        .select_from(User)
        .where(User.role == UserRole.ADMIN.value, User.is_active.is_(True), User.id != exclude_user_id)
    )


def users_exist() -> bool:
    session = sa_db.session()
    try:
        return session.execute(select(User.id).limit(1)).first() is not None
    finally:
        session.close()


def find_by_username(username: str) -> User | None:
    session = sa_db.session()
    try:
        user = session.execute(select(User).where(User.username == username)).scalars().one_or_none()
        if user is not None:
            session.expunge(user)
        return user
    finally:
        session.close()


def load_user(user_id: str) -> User | None:
    session = sa_db.session()
    try:
        user = session.get(User, user_id)
        if user is not None:
            session.expunge(user)
        return user
    finally:
        session.close()


def list_users() -> list[dict[str, Any]]:
    session = sa_db.session()
    try:
        users = session.execute(select(User).order_by(User.username)).scalars().all()
        return [user.to_dict() for user in users]
    finally:
        session.close()


def get_user(user_id: str) -> dict[str, Any]:
    user = load_user(user_id)
    if user is None:
        raise NotFound("user", user_id)
    return user.to_dict()


def create_user(payload: Mapping[str, Any], *, default_role: str | None = None) -> dict[str, Any]:
    username = _username(payload)
    password = validate_password(payload.get("password"))
    role = _role(payload.get("role") or default_role)
    email_addr = email(payload, required=False)
    doctor_id = _doctor_link(payload.get("doctor_id"))
    with session_scope() as session:
        _check_unique(session, username, email_addr)
        user = User(
            id=str(uuid.uuid4()),
            username=username,
            first_name=text(payload, "first_name", required=False),
            last_name=text(payload, "last_name", required=False),
            email=email_addr,
            role=role,
            doctor_id=doctor_id,
            is_active=True,
            created_at=_now(),
        )
        user.set_password(password)
        session.add(user)
        session.flush()
        return user.to_dict()


def update_user(user_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
    with session_scope() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("user", user_id)
        username = _username(payload) if "username" in payload else None
        email_addr = email(payload, required=False) if "email" in payload else None
        _check_unique(session, username, email_addr, exclude_id=user_id)
        if username:
            user.username = username
        if "email" in payload:
            user.email = email_addr
        for name in ("first_name", "last_name"):
            if name in payload:
                setattr(user, name, text(payload, name, required=False))
        if "doctor_id" in payload:
            user.doctor_id = _doctor_link(payload.get("doctor_id"))
        demoting = "role" in payload and _role(payload["role"]) != UserRole.ADMIN.value
        deactivating = "is_active" in payload and not payload["is_active"]
        if user.role == UserRole.ADMIN.value and (demoting or deactivating) and not _other_admins(session, user_id):
            raise InUse("last_admin")
        if "role" in payload:
            user.role = _role(payload["role"])
        if "is_active" in payload:
            user.is_active = bool(payload["is_active"])
        if payload.get("password"):
            user.set_password(validate_password(payload["password"]))
        session.flush()
        return user.to_dict()


def delete_user(user_id: str, *, acting_user_id: str | None = None) -> None:
    with session_scope() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("user", user_id)
        if user_id == acting_user_id:
            raise InUse("cannot_delete_self")
        if user.role == UserRole.ADMIN.value and not _other_admins(session, user_id):
            raise InUse("last_admin")
        session.delete(user)


def change_password(user_id: str, current_password: str, new_password: str) -> None:
    with session_scope() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("user", user_id)
        if not user.check_password(current_password or ""):
            raise ValidationFailed("current_password_incorrect", "current_password")
        user.set_password(validate_password(new_password, "new_password"))


def record_login_time(user_id: str) -> None:
    with session_scope() as session:
        user = session.get(User, user_id)
        if user is not None:
            user.last_login_at = _now()


def create_initial_admin(username: str, password: str) -> User:
    """First account on an empty database; always an admin."""

    create_user({"username": username, "password": password, "role": UserRole.ADMIN.value})
    user = find_by_username(username.strip())
    if user is None:
        raise NotFound("user", username)
    return user
