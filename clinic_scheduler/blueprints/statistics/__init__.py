"""Statistics blueprint."""

from __future__ import annotations

from clinic_scheduler.blueprints.statistics import routes

bp = routes.bp

__all__ = ["bp"]
