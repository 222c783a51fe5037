"""Appointments blueprint."""

from __future__ import annotations

from clinic_scheduler.blueprints.appointments import routes

bp = routes.bp

__all__ = ["bp"]
