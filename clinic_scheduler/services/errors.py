"""Service error types and lightweight error logging for in-app diagnostics."""

from __future__ import annotations

from datetime import datetime, UTC
from pathlib import Path
import traceback

from flask import current_app


class ClinicError(Exception):
    """Base exception for service operations."""

    code = "error"
    status_code = 400

    def to_dict(self) -> dict[str, object]:
        return {"error": str(self) or self.code}


class NotFound(ClinicError):
    """Raised when a referenced id does not resolve."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: str | None) -> None:
        super().__init__(f"{entity}_not_found")
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> dict[str, object]:
        return {"error": str(self), "entity": self.entity, "id": self.entity_id}


class ValidationFailed(ClinicError):
    """Raised when a payload is malformed."""

    code = "invalid"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": str(self)}
        if self.field:
            payload["field"] = self.field
        return payload


class InUse(ClinicError):
    """Raised when deleting a record that other records still reference."""

    code = "in_use"
    status_code = 409


class Duplicate(ClinicError):
    """Raised when a unique field (name, email, username) is already taken."""

    code = "duplicate"
    status_code = 409

    def __init__(self, field: str) -> None:
        super().__init__(f"{field}_taken")
        self.field = field

    def to_dict(self) -> dict[str, object]:
        return {"error": str(self), "field": self.field}


class StorageError(ClinicError):
    """Opaque wrapper around store-layer failures."""

    code = "storage_error"
    status_code = 500

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code}


def record_exception(context: str, exc: BaseException) -> None:
    """Append exception details to data/logs/app_errors.log for offline inspection."""

    current_app.logger.error("%s failed: %s", context, exc)
    try:
        root = Path(current_app.config["DATA_ROOT"]) / "logs"
        root.mkdir(parents=True, exist_ok=True)
        log_path = root / "app_errors.log"
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{datetime.now(UTC).isoformat()}Z] {context}\n")
            handle.write("".join(traceback.format_exception(exc)))
            handle.write("\n")
    except OSError:
        # Logging must not break the request cycle.
        pass
