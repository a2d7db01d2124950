"""Escalation cooldown and patient/clinician messaging.

Revision ID: 002
Revises: 001
Create Date: 2024-01-02 00:00:00.000000

Adds:
- appointments.escalated_at for the auto-confirmation escalation cooldown
- One schedule window per clinician and weekday
- message_threads and messages tables
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
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
    """Add escalation tracking and messaging tables."""

    # ========================================================================
    # AUTO-CONFIRMATION ESCALATION
    # ========================================================================

    op.add_column(
        "appointments",
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ========================================================================
    # CLINICIAN SCHEDULES
    # ========================================================================

    op.create_index(
        "ux_clinician_schedules_clinician_day",
        "clinician_schedules",
        ["clinician_id", "day_of_week"],
        unique=True,
    )

    # ========================================================================
    # MESSAGING
    # ========================================================================

    op.create_table(
        "message_threads",
        _uuid("id"),
        _uuid("patient_id"),
        _uuid("clinician_id"),
        _uuid("appointment_id", nullable=True),
        sa.Column("subject", sa.String(255), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_message_threads"),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"],
            name="fk_message_threads_patient_id_patients", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["clinician_id"], ["clinicians.id"],
            name="fk_message_threads_clinician_id_clinicians", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["appointment_id"], ["appointments.id"],
            name="fk_message_threads_appointment_id_appointments", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_message_threads_patient_id", "message_threads", ["patient_id"])
    op.create_index("ix_message_threads_clinician_id", "message_threads", ["clinician_id"])
    op.create_index("ix_message_threads_created_at", "message_threads", ["created_at"])

    op.create_table(
        "messages",
        _uuid("id"),
        _uuid("thread_id"),
        _uuid("sender_user_id"),
        _uuid("recipient_user_id"),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_messages"),
        sa.ForeignKeyConstraint(
            ["thread_id"], ["message_threads.id"],
            name="fk_messages_thread_id_message_threads", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["sender_user_id"], ["users.id"],
            name="fk_messages_sender_user_id_users", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["recipient_user_id"], ["users.id"],
            name="fk_messages_recipient_user_id_users", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_messages_thread_id", "messages", ["thread_id"])
    op.create_index("ix_messages_recipient_user_id", "messages", ["recipient_user_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])


def downgrade() -> None:
    """Remove messaging tables and escalation tracking."""
    op.drop_table("messages")
    op.drop_table("message_threads")
    op.drop_index("ux_clinician_schedules_clinician_day", table_name="clinician_schedules")
    op.drop_column("appointments", "escalated_at")
