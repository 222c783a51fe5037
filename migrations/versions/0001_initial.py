"""Initial schema for the clinic scheduler."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _created_updated() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.Text(), nullable=False, server_default=sa.text("(datetime('now'))")),
        sa.Column("updated_at", sa.Text(), nullable=False, server_default=sa.text("(datetime('now'))")),
    ]


def _create_index_if_not_exists(name: str, table: str, columns: str) -> None:
    op.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table}({columns})")


def upgrade() -> None:
    op.create_table(
        "specializations",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        *_created_updated(),
    )

    op.create_table(
        "doctors",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("phone", sa.Text(), nullable=False),
        sa.Column("working_days_json", sa.Text(), nullable=False),
        sa.Column("working_exceptions_json", sa.Text(), nullable=False, server_default="[]"),
        *_created_updated(),
    )
    _create_index_if_not_exists("idx_doctors_name", "doctors", "last_name, first_name")

    op.create_table(
        "doctor_specializations",
        sa.Column("doctor_id", sa.Text(), nullable=False),
        sa.Column("specialization_id", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("doctor_id", "specialization_id"),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["specialization_id"], ["specializations.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "rooms",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        *_created_updated(),
    )

    op.create_table(
        "room_specializations",
        sa.Column("room_id", sa.Text(), nullable=False),
        sa.Column("specialization_id", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("room_id", "specialization_id"),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["specialization_id"], ["specializations.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "treatments",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("specialization_id", sa.Text(), nullable=False),
        *_created_updated(),
        sa.CheckConstraint("duration_minutes >= 1", name="ck_treatments_duration"),
        sa.CheckConstraint("price_cents >= 0", name="ck_treatments_price"),
        sa.ForeignKeyConstraint(["specialization_id"], ["specializations.id"], ondelete="RESTRICT"),
    )

    op.create_table(
        "patients",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("birth_date", sa.Text(), nullable=False),
        sa.Column("gender", sa.Text(), nullable=False, server_default="not_specified"),
        sa.Column("street", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("postal_code", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        *_created_updated(),
        sa.CheckConstraint("gender IN ('male','female','not_specified')", name="ck_patients_gender"),
    )
    _create_index_if_not_exists("idx_patients_name", "patients", "last_name, first_name")
    _create_index_if_not_exists("idx_patients_phone", "patients", "phone")

    op.create_table(
        "users",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("username", sa.Text(), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True, unique=True),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("doctor_id", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.Text(), nullable=True, server_default=sa.text("(datetime('now'))")),
        sa.Column("last_login_at", sa.Text(), nullable=True),
        sa.CheckConstraint("role IN ('admin','receptionist','doctor')", name="ck_users_role"),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("doctor_id", sa.Text(), nullable=False),
        sa.Column("patient_id", sa.Text(), nullable=False),
        sa.Column("treatment_id", sa.Text(), nullable=False),
        sa.Column("room_id", sa.Text(), nullable=False),
        sa.Column("starts_at", sa.Text(), nullable=False),
        sa.Column("ends_at", sa.Text(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.Text(), nullable=False, server_default="booked"),
        sa.Column("payment_status", sa.Text(), nullable=False, server_default="unpaid"),
        sa.Column("note", sa.Text(), nullable=True),
        *_created_updated(),
        sa.CheckConstraint("ends_at > starts_at", name="ck_appointments_window"),
        sa.CheckConstraint("price_cents >= 0", name="ck_appointments_price"),
        sa.CheckConstraint("status IN ('booked','ongoing','canceled')", name="ck_appointments_status"),
        sa.CheckConstraint("payment_status IN ('paid','unpaid')", name="ck_appointments_payment"),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["treatment_id"], ["treatments.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="RESTRICT"),
    )
    _create_index_if_not_exists("idx_appointments_doctor_start", "appointments", "doctor_id, starts_at")
    _create_index_if_not_exists("idx_appointments_room_start", "appointments", "room_id, starts_at")
    _create_index_if_not_exists("idx_appointments_patient_start", "appointments", "patient_id, starts_at")
    _create_index_if_not_exists("idx_appointments_day", "appointments", "substr(starts_at, 1, 10)")

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_user_id", sa.Text(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity", sa.Text(), nullable=True),
        sa.Column("entity_id", sa.Text(), nullable=True),
        sa.Column("ts", sa.Text(), nullable=False, server_default=sa.text("(datetime('now'))")),
        sa.Column("result", sa.Text(), nullable=False, server_default="ok"),
        sa.Column("meta_json_redacted", sa.Text(), nullable=False, server_default="{}"),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    _create_index_if_not_exists("idx_audit_ts", "audit_log", "ts")
    _create_index_if_not_exists("idx_audit_entity", "audit_log", "entity, entity_id")

    op.execute(
        """
        CREATE TRIGGER IF NOT EXISTS audit_log_no_update
        BEFORE UPDATE OF action, entity, entity_id, ts, result, meta_json_redacted ON audit_log
        BEGIN
            SELECT RAISE(FAIL, 'audit log is append-only');
        END;
        """
    )
    op.execute(
        """
        CREATE TRIGGER IF NOT EXISTS audit_log_no_delete
        BEFORE DELETE ON audit_log
        BEGIN
            SELECT RAISE(FAIL, 'audit log is append-only');
        END;
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS audit_log_no_delete")
    op.execute("DROP TRIGGER IF EXISTS audit_log_no_update")
    op.drop_table("audit_log")
    op.drop_table("appointments")
    op.drop_table("users")
    op.drop_table("patients")
    op.drop_table("treatments")
    op.drop_table("room_specializations")
    op.drop_table("rooms")
    op.drop_table("doctor_specializations")
    op.drop_table("doctors")
    op.drop_table("specializations")
