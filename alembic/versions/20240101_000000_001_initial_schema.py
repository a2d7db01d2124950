"""Initial schema with all core tables.

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _uuid(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=False), nullable=nullable)


def upgrade() -> None:
    """Create initial database schema."""

    # Principals
    op.create_table(
        "users",
        _uuid("id"),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "patients",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(20), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("emergency_contact_name", sa.String(200), nullable=True),
        sa.Column("emergency_contact_phone", sa.String(50), nullable=True),
        sa.Column("blood_type", sa.String(5), nullable=True),
        sa.Column("allergies", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_patients"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_patients_user_id_users", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", name="uq_patients_user_id"),
    )
    op.create_index("ix_patients_created_at", "patients", ["created_at"])

    op.create_table(
        "clinicians",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("specialty", sa.String(100), nullable=False),
        sa.Column("license_number", sa.String(50), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_clinicians"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_clinicians_user_id_users", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", name="uq_clinicians_user_id"),
        sa.UniqueConstraint("license_number", name="uq_clinicians_license_number"),
    )
    op.create_index("ix_clinicians_created_at", "clinicians", ["created_at"])

    op.create_table(
        "staff_members",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("position", sa.String(100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_staff_members"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_staff_members_user_id_users", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", name="uq_staff_members_user_id"),
    )
    op.create_index("ix_staff_members_created_at", "staff_members", ["created_at"])

    # Scheduling
    op.create_table(
        "appointments",
        _uuid("id"),
        _uuid("patient_id"),
        _uuid("clinician_id"),
        sa.Column("service_type", sa.String(100), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(40), nullable=False, server_default="pending"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        _uuid("cancelled_by", nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("original_date", sa.Date(), nullable=True),
        sa.Column("original_time", sa.Time(), nullable=True),
        sa.Column("reschedule_requested_by", sa.String(20), nullable=True),
        sa.Column("reschedule_reason", sa.Text(), nullable=True),
        sa.Column(
            "needs_reconciliation", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"],
            name="fk_appointments_patient_id_patients", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["clinician_id"], ["clinicians.id"],
            name="fk_appointments_clinician_id_clinicians", ondelete="RESTRICT",
        ),
    )
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_clinician_id", "appointments", ["clinician_id"])
    op.create_index("ix_appointments_appointment_date", "appointments", ["appointment_date"])
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index("ix_appointments_created_at", "appointments", ["created_at"])
    # Conflict lookups: clinician + slot among confirmed appointments
    op.create_index(
        "ix_appointments_clinician_slot",
        "appointments",
        ["clinician_id", "appointment_date", "appointment_time", "status"],
    )

    op.create_table(
        "clinician_schedules",
        _uuid("id"),
        _uuid("clinician_id"),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_clinician_schedules"),
        sa.ForeignKeyConstraint(
            ["clinician_id"], ["clinicians.id"],
            name="fk_clinician_schedules_clinician_id_clinicians", ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_clinician_schedules_clinician_id", "clinician_schedules", ["clinician_id"]
    )
    op.create_index(
        "ix_clinician_schedules_created_at", "clinician_schedules", ["created_at"]
    )

    # Clinical documentation
    op.create_table(
        "medical_records",
        _uuid("id"),
        _uuid("patient_id"),
        _uuid("clinician_id"),
        _uuid("appointment_id", nullable=True),
        sa.Column("record_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=True),
        sa.Column("treatment", sa.Text(), nullable=True),
        sa.Column("follow_up_instructions", sa.Text(), nullable=True),
        sa.Column("record_date", sa.Date(), nullable=False),
        sa.Column("is_confidential", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("correction_note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_medical_records"),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"],
            name="fk_medical_records_patient_id_patients", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["clinician_id"], ["clinicians.id"],
            name="fk_medical_records_clinician_id_clinicians", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["appointment_id"], ["appointments.id"],
            name="fk_medical_records_appointment_id_appointments", ondelete="SET NULL",
        ),
    )
    for column in ("patient_id", "clinician_id", "appointment_id", "created_at"):
        op.create_index(f"ix_medical_records_{column}", "medical_records", [column])

    op.create_table(
        "lab_tests",
        _uuid("id"),
        _uuid("patient_id"),
        _uuid("clinician_id"),
        _uuid("appointment_id", nullable=True),
        sa.Column("test_name", sa.String(200), nullable=False),
        sa.Column("test_type", sa.String(50), nullable=False),
        sa.Column("test_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ordered"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="routine"),
        sa.Column("results", sa.Text(), nullable=True),
        sa.Column("normal_ranges", sa.Text(), nullable=True),
        sa.Column("abnormal_findings", sa.Text(), nullable=True),
        sa.Column("resulted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_lab_tests"),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"],
            name="fk_lab_tests_patient_id_patients", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["clinician_id"], ["clinicians.id"],
            name="fk_lab_tests_clinician_id_clinicians", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["appointment_id"], ["appointments.id"],
            name="fk_lab_tests_appointment_id_appointments", ondelete="SET NULL",
        ),
    )
    for column in ("patient_id", "clinician_id", "appointment_id", "created_at"):
        op.create_index(f"ix_lab_tests_{column}", "lab_tests", [column])

    op.create_table(
        "prescriptions",
        _uuid("id"),
        _uuid("patient_id"),
        _uuid("clinician_id"),
        _uuid("appointment_id", nullable=True),
        sa.Column("medication_name", sa.String(200), nullable=False),
        sa.Column("dosage", sa.String(100), nullable=False),
        sa.Column("frequency", sa.String(100), nullable=False),
        sa.Column("duration", sa.String(100), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("refills_allowed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("prescribed_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_prescriptions"),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"],
            name="fk_prescriptions_patient_id_patients", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["clinician_id"], ["clinicians.id"],
            name="fk_prescriptions_clinician_id_clinicians", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["appointment_id"], ["appointments.id"],
            name="fk_prescriptions_appointment_id_appointments", ondelete="SET NULL",
        ),
    )
    for column in ("patient_id", "clinician_id", "appointment_id", "created_at"):
        op.create_index(f"ix_prescriptions_{column}", "prescriptions", [column])

    # Billing
    op.create_table(
        "payments",
        _uuid("id"),
        _uuid("appointment_id"),
        _uuid("patient_id"),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="PHP"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("method", sa.String(50), nullable=True),
        sa.Column("reference", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
        sa.ForeignKeyConstraint(
            ["appointment_id"], ["appointments.id"],
            name="fk_payments_appointment_id_appointments", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"],
            name="fk_payments_patient_id_patients", ondelete="RESTRICT",
        ),
    )
    for column in ("appointment_id", "patient_id", "status", "created_at"):
        op.create_index(f"ix_payments_{column}", "payments", [column])

    # Staff work items
    op.create_table(
        "staff_tasks",
        _uuid("id"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        _uuid("assigned_staff_id", nullable=True),
        _uuid("related_appointment_id", nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_staff_tasks"),
        sa.ForeignKeyConstraint(
            ["assigned_staff_id"], ["staff_members.id"],
            name="fk_staff_tasks_assigned_staff_id_staff_members", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["related_appointment_id"], ["appointments.id"],
            name="fk_staff_tasks_related_appointment_id_appointments", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_staff_tasks_created_at", "staff_tasks", ["created_at"])

    # Notifications
    op.create_table(
        "notifications",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("related_appointment_id", nullable=True),
        _uuid("related_lab_test_id", nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_notifications_user_id_users", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["related_appointment_id"], ["appointments.id"],
            name="fk_notifications_related_appointment_id_appointments", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["related_lab_test_id"], ["lab_tests.id"],
            name="fk_notifications_related_lab_test_id_lab_tests", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("notifications")
    op.drop_table("staff_tasks")
    op.drop_table("payments")
    op.drop_table("prescriptions")
    op.drop_table("lab_tests")
    op.drop_table("medical_records")
    op.drop_table("clinician_schedules")
    op.drop_table("appointments")
    op.drop_table("staff_members")
    op.drop_table("clinicians")
    op.drop_table("patients")
    op.drop_table("users")
