"""Blueprint registration."""

from __future__ import annotations

from flask import Flask

from clinic_scheduler.blueprints.appointments import bp as appointments_bp
from clinic_scheduler.blueprints.auth import bp as auth_bp
from clinic_scheduler.blueprints.core import bp as core_bp
from clinic_scheduler.blueprints.doctors import bp as doctors_bp
from clinic_scheduler.blueprints.patients import bp as patients_bp
from clinic_scheduler.blueprints.rooms import bp as rooms_bp
from clinic_scheduler.blueprints.specializations import bp as specializations_bp
from clinic_scheduler.blueprints.statistics import bp as statistics_bp
from clinic_scheduler.blueprints.treatments import bp as treatments_bp
from clinic_scheduler.blueprints.users import bp as users_bp


def register_blueprints(app: Flask) -> None:
    for bp in (
        core_bp,
        auth_bp,
        appointments_bp,
        doctors_bp,
        patients_bp,
        rooms_bp,
        specializations_bp,
        statistics_bp,
        treatments_bp,
        users_bp,
    ):
        app.register_blueprint(bp)
