"""Auth blueprint."""

from __future__ import annotations

from clinic_scheduler.blueprints.auth import routes

bp = routes.bp

__all__ = ["bp"]
