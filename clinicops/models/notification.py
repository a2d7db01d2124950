"""In-app notifications and staff work items."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from clinicops.db.base import Base, TimestampMixin


class NotificationType(str, Enum):
    APPOINTMENT = "appointment"
    PAYMENT = "payment"
    MESSAGE = "message"
    RECORD = "record"
    SYSTEM = "system"
    REMINDER = "reminder"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Base, TimestampMixin):
    """Message addressed to exactly one principal.

    Only the owning principal may mark it read.
    """

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    type: Mapped[NotificationType] = mapped_column(
        String(20),
        nullable=False,
    )
    priority: Mapped[NotificationPriority] = mapped_column(
        String(20),
        default=NotificationPriority.MEDIUM,
        nullable=False,
    )
    is_read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    related_appointment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    )
    related_lab_test_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("lab_tests.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Notification {self.type} to={self.user_id[:8]}... read={self.is_read}>"


class StaffTaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class StaffTask(Base, TimestampMixin):
    """Front-desk work item (follow-ups, reconciliation)."""

    __tablename__ = "staff_tasks"

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    status: Mapped[StaffTaskStatus] = mapped_column(
        String(20),
        default=StaffTaskStatus.OPEN,
        nullable=False,
    )
    assigned_staff_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("staff_members.id", ondelete="SET NULL"),
        nullable=True,
    )
    related_appointment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    )
