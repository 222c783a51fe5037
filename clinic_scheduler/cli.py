"""Flask CLI commands for migrations and seeding."""

from __future__ import annotations

import click
from alembic import command
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from clinic_scheduler.models_rbac import UserRole
from clinic_scheduler.services.errors import ClinicError
from clinic_scheduler.services.migrations import alembic_config
from clinic_scheduler.services.seed import seed_demo
from clinic_scheduler.services.users import create_user, find_by_username


def register_cli(app) -> None:
    db_group = AppGroup("db")

    @db_group.command("upgrade")
    @with_appcontext
    def upgrade() -> None:
        command.upgrade(alembic_config(current_app), "head")
        click.echo("Database upgraded to head.")

    app.cli.add_command(db_group)

    @app.cli.command("seed-admin")
    @click.option("--username", default="admin", show_default=True)
    @click.option("--password", default="ChangeMe!123", show_default=True)
    @with_appcontext
    def seed_admin(username: str, password: str) -> None:
        if find_by_username(username) is not None:
            click.echo(f"User '{username}' already exists.")
            return
        try:
            create_user({"username": username, "password": password, "role": UserRole.ADMIN.value})
        except ClinicError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Admin user '{username}' created with the provided password.")

    @app.cli.command("seed-demo")
    @with_appcontext
    def seed_demo_command() -> None:
        counts = seed_demo()
        if not any(counts.values()):
            click.echo("Doctors already present; demo data skipped.")
            return
        summary = ", ".join(f"{count} {name}" for name, count in counts.items())
        click.echo(f"Demo data inserted: {summary}.")
