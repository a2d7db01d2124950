"""Clinical documentation models: medical records, lab tests, prescriptions.

Each row is owned by exactly one patient and one clinician, optionally via
the appointment it was produced in.
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from clinicops.db.base import Base, TimestampMixin


class MedicalRecordStatus(str, Enum):
    DRAFT = "draft"
    FINAL = "final"


class LabTestStatus(str, Enum):
    ORDERED = "ordered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LabTestPriority(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"


class PrescriptionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MedicalRecord(Base, TimestampMixin):
    """Consultation note written by a clinician.

    Finalized records change only through corrections by the authoring
    clinician; each correction bumps ``revision``.
    """

    __tablename__ = "medical_records"

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
    appointment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    record_type: Mapped[str] = mapped_column(
        String(50),
        default="consultation",
        nullable=False,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    diagnosis: Mapped[str | None] = mapped_column(Text, nullable=True)
    treatment: Mapped[str | None] = mapped_column(Text, nullable=True)
    follow_up_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    record_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    is_confidential: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    status: Mapped[MedicalRecordStatus] = mapped_column(
        String(20),
        default=MedicalRecordStatus.DRAFT,
        nullable=False,
    )
    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    revision: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )
    correction_note: Mapped[str | None] = mapped_column(Text, nullable=True)


class LabTest(Base, TimestampMixin):
    """Lab test ordered by a clinician; results land later."""

    __tablename__ = "lab_tests"

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
    appointment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    test_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    test_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    test_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    status: Mapped[LabTestStatus] = mapped_column(
        String(20),
        default=LabTestStatus.ORDERED,
        nullable=False,
    )
    priority: Mapped[LabTestPriority] = mapped_column(
        String(20),
        default=LabTestPriority.ROUTINE,
        nullable=False,
    )
    results: Mapped[str | None] = mapped_column(Text, nullable=True)
    normal_ranges: Mapped[str | None] = mapped_column(Text, nullable=True)
    abnormal_findings: Mapped[str | None] = mapped_column(Text, nullable=True)
    resulted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class Prescription(Base, TimestampMixin):
    """Medication prescribed after a completed consultation."""

    __tablename__ = "prescriptions"

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
    appointment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    medication_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    dosage: Mapped[str] = mapped_column(String(100), nullable=False)
    frequency: Mapped[str] = mapped_column(String(100), nullable=False)
    duration: Mapped[str] = mapped_column(String(100), nullable=False)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    refills_allowed: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    status: Mapped[PrescriptionStatus] = mapped_column(
        String(20),
        default=PrescriptionStatus.ACTIVE,
        nullable=False,
    )
    prescribed_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
