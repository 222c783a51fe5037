"""Automatically run Alembic migrations when the app starts."""

from __future__ import annotations

import os
from pathlib import Path

from alembic.util.exc import CommandError
from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.services.migrations import run_migrations


def auto_upgrade(app: Flask) -> None:
    """Run `alembic upgrade head` unless CLINIC_AUTO_MIGRATE is not "1"."""

    if os.getenv("CLINIC_AUTO_MIGRATE", "1") != "1":
        return

    repo_root = Path(app.root_path).parent
    if not (repo_root / "alembic.ini").exists() or not (repo_root / "migrations").exists():
        app.logger.warning("Auto migration skipped: alembic.ini or migrations/ not found")
        return

    try:
        run_migrations(app)
    except (CommandError, SQLAlchemyError) as exc:
        app.logger.warning("Auto migration skipped: %s", exc)
