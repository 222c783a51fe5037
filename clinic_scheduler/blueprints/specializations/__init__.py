"""Specializations blueprint."""

from __future__ import annotations

from clinic_scheduler.blueprints.specializations import routes

bp = routes.bp

__all__ = ["bp"]
