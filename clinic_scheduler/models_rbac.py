"""SQLAlchemy models for users and role-based permissions."""

from __future__ import annotations

from enum import Enum

from flask_login import UserMixin
from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from werkzeug.security import check_password_hash, generate_password_hash


class UserRole(str, Enum):
    ADMIN = "admin"
    RECEPTIONIST = "receptionist"
    DOCTOR = "doctor"


_VIEW_ALL = {
    "appointments:view",
    "patients:view",
    "doctors:view",
    "rooms:view",
    "specializations:view",
    "treatments:view",
    "statistics:view",
}

ROLE_PERMISSIONS: dict[str, set[str]] = {
    UserRole.ADMIN.value: _VIEW_ALL
    | {
        "appointments:edit",
        "patients:edit",
        "doctors:edit",
        "rooms:edit",
        "specializations:edit",
        "treatments:edit",
        "users:manage",
    },
    UserRole.RECEPTIONIST.value: _VIEW_ALL
    | {
        "appointments:edit",
        "patients:edit",
        "doctors:edit",
        "rooms:edit",
        "specializations:edit",
    },
    UserRole.DOCTOR.value: set(_VIEW_ALL),
}


class Base(DeclarativeBase):
    pass


class User(Base, UserMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    username: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    role: Mapped[str] = mapped_column(Text, nullable=False, default=UserRole.RECEPTIONIST.value)
    doctor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    created_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_login_at: Mapped[str | None] = mapped_column(Text, nullable=True)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def has_permission(self, code: str) -> bool:
        return code in ROLE_PERMISSIONS.get((self.role or "").lower(), set())

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "role": self.role,
            "doctor_id": self.doctor_id,
            "is_active": bool(self.is_active),
            "created_at": self.created_at,
            "last_login_at": self.last_login_at,
        }
