"""Principal model and role-specific profiles."""

from datetime import date
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from clinicops.db.base import Base, TimestampMixin


class UserRole(str, Enum):
    """Principal roles. Every user has exactly one."""

    PATIENT = "patient"
    CLINICIAN = "clinician"
    STAFF = "staff"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """Authenticated principal."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )
    phone: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"


class Patient(Base, TimestampMixin):
    """Patient profile, one per patient-role user."""

    __tablename__ = "patients"

    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    date_of_birth: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )
    gender: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    address: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    emergency_contact_name: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )
    emergency_contact_phone: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    blood_type: Mapped[str | None] = mapped_column(
        String(5),
        nullable=True,
    )
    allergies: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Patient {self.id[:8]}...>"


class Clinician(Base, TimestampMixin):
    """Clinician profile, one per clinician-role user."""

    __tablename__ = "clinicians"

    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    specialty: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    license_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Clinician {self.specialty}>"


class StaffMember(Base, TimestampMixin):
    """Front-desk staff profile. Optional; staff are never record-scoped."""

    __tablename__ = "staff_members"

    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    department: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    position: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
