"""Scheduling models: appointments and clinician weekly schedules.

The reschedule-tracking columns are part of the fixed schema. They are
nullable and only populated while a reschedule negotiation is open.
"""

from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicops.db.base import Base, TimestampMixin, VersionedMixin


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PENDING_RESCHEDULE_CONFIRMATION = "pending_reschedule_confirmation"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


TERMINAL_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED})


class Appointment(Base, TimestampMixin, VersionedMixin):
    """Appointment between a patient and a clinician.

    Never hard-deleted; closed by transitioning to a terminal state.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        # Conflict lookups: clinician + slot among confirmed appointments
        Index(
            "ix_appointments_clinician_slot",
            "clinician_id",
            "appointment_date",
            "appointment_time",
            "status",
        ),
    )

    patient_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    clinician_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clinicians.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    service_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    appointment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    appointment_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    status: Mapped[AppointmentStatus] = mapped_column(
        String(40),
        default=AppointmentStatus.PENDING,
        nullable=False,
        index=True,
    )
    reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    # Confirmation tracking
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    auto_confirmed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    # Last time staff were asked to review a blocked auto-confirmation
    escalated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Cancellation tracking
    cancellation_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    cancelled_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Reschedule negotiation (open only in pending_reschedule_confirmation)
    original_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )
    original_time: Mapped[time | None] = mapped_column(
        Time,
        nullable=True,
    )
    reschedule_requested_by: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    reschedule_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    # Set when a rejected reschedule had no snapshot to restore
    needs_reconciliation: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    patient: Mapped["Patient"] = relationship("Patient", lazy="raise")
    clinician: Mapped["Clinician"] = relationship("Clinician", lazy="raise")

    def __repr__(self) -> str:
        return (
            f"<Appointment {self.id[:8]}... {self.appointment_date} "
            f"{self.appointment_time} status={self.status}>"
        )


class ClinicianSchedule(Base, TimestampMixin):
    """Recurring weekly availability window for a clinician."""

    __tablename__ = "clinician_schedules"
    __table_args__ = (
        # At most one window per clinician and weekday
        Index("ux_clinician_schedules_clinician_day", "clinician_id", "day_of_week", unique=True),
    )

    clinician_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clinicians.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # 0 = Monday
    day_of_week: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    start_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    end_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ClinicianSchedule {self.day_of_week} {self.start_time}-{self.end_time}>"


from clinicops.models.user import Clinician, Patient  # noqa: E402
