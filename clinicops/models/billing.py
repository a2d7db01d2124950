"""Payment tracking. Checkout itself happens in an external gateway."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicops.db.base import Base, TimestampMixin


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base, TimestampMixin):
    """Payment for an appointment.

    Clinician visibility is derived through the owning appointment.
    """

    __tablename__ = "payments"

    appointment_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("appointments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    patient_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        default="PHP",
        nullable=False,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    method: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    # Gateway reference (checkout session id, receipt number)
    reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    appointment: Mapped["Appointment"] = relationship("Appointment", lazy="raise")


from clinicops.models.scheduling import Appointment  # noqa: E402
