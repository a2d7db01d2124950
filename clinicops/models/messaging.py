"""Patient and clinician message threads."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicops.db.base import Base, TimestampMixin


class MessageThread(Base, TimestampMixin):
    """Conversation between one patient and one clinician.

    Optionally tied to an appointment. Only the two participants can read it.
    """

    __tablename__ = "message_threads"

    patient_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    clinician_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clinicians.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    appointment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    )
    subject: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<MessageThread {self.id[:8]}... active={self.is_active}>"


class Message(Base, TimestampMixin):
    """One message in a thread, addressed to the other participant."""

    __tablename__ = "messages"

    thread_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("message_threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    recipient_user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    is_read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    thread: Mapped["MessageThread"] = relationship("MessageThread", lazy="raise")

    def __repr__(self) -> str:
        return f"<Message {self.id[:8]}... read={self.is_read}>"
