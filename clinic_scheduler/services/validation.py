"""Small payload validators shared by the record services."""

from __future__ import annotations

import re
import sqlite3
from typing import Any, Mapping

from clinic_scheduler.services.database import fetch_one
from clinic_scheduler.services.errors import Duplicate, ValidationFailed

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def text(payload: Mapping[str, Any], field_name: str, *, required: bool = True, max_len: int = 200) -> str | None:
    value = payload.get(field_name)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationFailed(f"{field_name}_required", field_name)
        return None
    if not isinstance(value, str):
        raise ValidationFailed(f"{field_name}_invalid", field_name)
    value = value.strip()
    if len(value) > max_len:
        raise ValidationFailed(f"{field_name}_too_long", field_name)
    return value


def email(payload: Mapping[str, Any], field_name: str = "email", *, required: bool = True) -> str | None:
    value = text(payload, field_name, required=required)
    if value is None:
        return None
    if not _EMAIL_RE.match(value):
        raise ValidationFailed(f"{field_name}_invalid", field_name)
    return value.lower()


def id_list(payload: Mapping[str, Any], field_name: str) -> list[str] | None:
    """List of ids, de-duplicated in order; None when the field is absent."""

    if field_name not in payload or payload[field_name] is None:
        return None
    raw = payload[field_name]
    if not isinstance(raw, list) or not all(isinstance(item, str) and item.strip() for item in raw):
        raise ValidationFailed(f"{field_name}_invalid", field_name)
    return list(dict.fromkeys(item.strip() for item in raw))


def ensure_unique(
    conn: sqlite3.Connection,
    table: str,
    column: str,
    value: Any,
    *,
    exclude_id: str | None = None,
    nocase: bool = False,
) -> None:
    if value is None:
        return
    target = f"lower({column}) = lower(?)" if nocase else f"{column} = ?"
    sql = f"SELECT 1 FROM {table} WHERE {target}"
    params: list[Any] = [value]
    if exclude_id:
        sql += " AND id != ?"
        params.append(exclude_id)
    if fetch_one(conn, sql, params) is not None:
        raise Duplicate(column)
