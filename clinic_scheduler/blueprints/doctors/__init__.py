"""Doctors blueprint."""

from __future__ import annotations

from clinic_scheduler.blueprints.doctors import routes

bp = routes.bp

__all__ = ["bp"]
