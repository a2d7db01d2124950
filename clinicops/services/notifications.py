"""Notification dispatch and in-app inbox.

Notifications are best-effort: a failing notifier is logged and never turns
a completed lifecycle transition into an error.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.config import settings
from clinicops.models.billing import PaymentStatus
from clinicops.models.notification import NotificationPriority, NotificationType
from clinicops.models.user import UserRole
from clinicops.services.records import ScopedRecordService
from clinicops.store.base import RecordStore
from clinicops.store.sqlalchemy import session_store
from clinicops.utils.time import format_time_12h, utc_now

logger = logging.getLogger(__name__)


def _label(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


class NotifierError(Exception):
    """Raised by notifiers when a message could not be delivered."""

    pass


@dataclass(frozen=True)
class NotificationPayload:
    """Content of a single notification."""

    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    related_appointment_id: str | None = None
    related_lab_test_id: str | None = None


@dataclass(frozen=True)
class NotificationAck:
    """Result of a notifier ``send``."""

    delivered: bool
    notification_id: str | None = None
    error: str | None = None


class Notifier(ABC):
    """Abstract delivery channel for notifications."""

    @abstractmethod
    async def send(self, principal_id: str, payload: NotificationPayload) -> NotificationAck:
        """Deliver ``payload`` to ``principal_id``.

        Raises NotifierError on failure.
        """
        pass


class DatabaseNotifier(Notifier):
    """Stores notifications as in-app inbox rows.

    Uses its own session so a failed insert never rolls back the caller's
    transaction. The insert is bounded by ``timeout`` like any other record
    store call.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float | None = None,
    ):
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else settings.record_store_timeout_seconds

    async def send(self, principal_id: str, payload: NotificationPayload) -> NotificationAck:
        async with session_store(self.session_factory, self.timeout) as store:
            row = await store.insert(
                Entity.NOTIFICATION,
                {
                    "user_id": principal_id,
                    "title": payload.title,
                    "message": payload.message,
                    "type": payload.type,
                    "priority": payload.priority,
                    "related_appointment_id": payload.related_appointment_id,
                    "related_lab_test_id": payload.related_lab_test_id,
                },
            )
        return NotificationAck(delivered=True, notification_id=row.id)


@dataclass(frozen=True)
class AppointmentParties:
    """Who an appointment notification is addressed to, with display names."""

    appointment_id: str
    service_type: str
    appointment_date: date
    appointment_time: time
    patient_user_id: str | None
    patient_name: str
    clinician_user_id: str | None
    clinician_name: str

    @property
    def when(self) -> str:
        return f"{self.appointment_date} at {format_time_12h(self.appointment_time)}"


async def load_principal(
    store: RecordStore, entity: Entity, profile_id: str
) -> tuple[str | None, str]:
    """User id and display name behind a patient or clinician profile."""
    profile = await store.find_one(entity, FilterPredicate.where(id=profile_id))
    if profile is None:
        return None, "Unknown"
    user = await store.find_one(Entity.USER, FilterPredicate.where(id=profile.user_id))
    return profile.user_id, user.name if user else "Unknown"


async def load_parties(store: RecordStore, appointment: Any) -> AppointmentParties:
    """Resolve the patient and clinician principals behind an appointment."""
    patient_user_id, patient_name = await load_principal(
        store, Entity.PATIENT, appointment.patient_id
    )
    clinician_user_id, clinician_name = await load_principal(
        store, Entity.CLINICIAN, appointment.clinician_id
    )
    return AppointmentParties(
        appointment_id=appointment.id,
        service_type=appointment.service_type,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time,
        patient_user_id=patient_user_id,
        patient_name=patient_name,
        clinician_user_id=clinician_user_id,
        clinician_name=clinician_name,
    )


class NotificationDispatcher:
    """Addresses lifecycle notifications, one dispatch per affected principal.

    Each ``send`` is bounded by ``send_timeout``; a notifier that hangs is
    abandoned and reported as undelivered.
    """

    def __init__(
        self,
        notifier: Notifier,
        store: RecordStore,
        send_timeout: float | None = None,
    ):
        self.notifier = notifier
        self.store = store
        self.send_timeout = (
            send_timeout if send_timeout is not None else settings.notification_timeout_seconds
        )

    async def notify(
        self,
        principal_id: str | None,
        title: str,
        message: str,
        type: NotificationType = NotificationType.APPOINTMENT,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        related_appointment_id: str | None = None,
        related_lab_test_id: str | None = None,
    ) -> NotificationAck | None:
        """Send one notification. Failures are logged and swallowed."""
        if not principal_id:
            logger.warning(f"Notification '{title}' has no recipient; skipped")
            return None

        payload = NotificationPayload(
            title=title,
            message=message,
            type=type,
            priority=priority,
            related_appointment_id=related_appointment_id,
            related_lab_test_id=related_lab_test_id,
        )
        try:
            return await asyncio.wait_for(
                self.notifier.send(principal_id, payload), timeout=self.send_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Notification '{title}' to {principal_id} timed out after {self.send_timeout}s",
                extra={"user_id": principal_id, "appointment_id": related_appointment_id},
            )
            return NotificationAck(delivered=False, error="timeout")
        except Exception as e:
            logger.error(
                f"Failed to deliver notification '{title}' to {principal_id}: {e}",
                extra={"user_id": principal_id, "appointment_id": related_appointment_id},
            )
            return NotificationAck(delivered=False, error=str(e))

    async def staff_recipients(self) -> list[str]:
        """User ids of all active staff principals."""
        rows = await self.store.find(
            Entity.USER,
            FilterPredicate.where(role=UserRole.STAFF, is_active=True),
        )
        return [row.id for row in rows]

    async def notify_staff(self, title: str, message: str, **kwargs: Any) -> int:
        """Send the same notification to every active staff user.

        Returns:
            Number of notifications delivered
        """
        try:
            recipients = await self.staff_recipients()
        except Exception as e:
            logger.error(f"Could not look up staff recipients for '{title}': {e}")
            return 0

        delivered = 0
        for user_id in recipients:
            ack = await self.notify(user_id, title, message, **kwargs)
            if ack and ack.delivered:
                delivered += 1
        return delivered

    # ------------------------------------------------------------------
    # Appointment events
    # ------------------------------------------------------------------

    async def appointment_booked(self, parties: AppointmentParties) -> None:
        await self.notify(
            parties.clinician_user_id,
            "New Appointment",
            f"New {parties.service_type} appointment requested for {parties.when}. "
            f"Patient: {parties.patient_name}",
            priority=NotificationPriority.MEDIUM,
            related_appointment_id=parties.appointment_id,
        )

    async def appointment_confirmed(self, parties: AppointmentParties) -> None:
        await self.notify(
            parties.patient_user_id,
            "Appointment Confirmed",
            f"Your appointment with Dr. {parties.clinician_name} is confirmed for {parties.when}.",
            priority=NotificationPriority.MEDIUM,
            related_appointment_id=parties.appointment_id,
        )

    async def appointment_auto_confirmed(self, parties: AppointmentParties) -> None:
        await self.notify(
            parties.patient_user_id,
            "Appointment Auto-Confirmed",
            f"Good news! Your {parties.service_type} appointment with Dr. "
            f"{parties.clinician_name} on {parties.when} has been automatically "
            "confirmed. Please arrive 15 minutes early.",
            priority=NotificationPriority.HIGH,
            related_appointment_id=parties.appointment_id,
        )
        await self.notify(
            parties.clinician_user_id,
            "Appointment Auto-Confirmed",
            f"System has automatically confirmed your appointment with "
            f"{parties.patient_name} on {parties.when}. No conflicts detected.",
            priority=NotificationPriority.MEDIUM,
            related_appointment_id=parties.appointment_id,
        )
        await self.notify_staff(
            "Auto-Confirmation Completed",
            f"System auto-confirmed appointment: {parties.patient_name} -> "
            f"Dr. {parties.clinician_name} on {parties.appointment_date}. No conflicts detected.",
            type=NotificationType.SYSTEM,
            priority=NotificationPriority.LOW,
            related_appointment_id=parties.appointment_id,
        )

    async def auto_confirmation_blocked(self, parties: AppointmentParties) -> None:
        await self.notify_staff(
            "Auto-Confirmation Blocked - Conflict Detected",
            f"Cannot auto-confirm appointment for {parties.patient_name} with "
            f"Dr. {parties.clinician_name} on {parties.appointment_date}. "
            "Manual review required due to scheduling conflicts.",
            type=NotificationType.SYSTEM,
            priority=NotificationPriority.HIGH,
            related_appointment_id=parties.appointment_id,
        )

    async def appointment_cancelled(
        self,
        parties: AppointmentParties,
        cancelled_by: str,
        reason: str,
    ) -> None:
        """Tell the party that did not cancel.

        A patient cancellation goes to the clinician; a staff or admin
        cancellation goes to both patient and clinician.
        """
        if cancelled_by != UserRole.PATIENT.value:
            await self.notify(
                parties.patient_user_id,
                "Appointment Cancelled",
                f"Your {parties.service_type} appointment on {parties.when} has been "
                f"cancelled. Reason: {reason}. Please contact us to reschedule.",
                priority=NotificationPriority.URGENT,
                related_appointment_id=parties.appointment_id,
            )
        await self.notify(
            parties.clinician_user_id,
            "Appointment Cancelled",
            f"Appointment with {parties.patient_name} on {parties.when} was cancelled "
            f"by {cancelled_by}. Reason: {reason}",
            priority=NotificationPriority.URGENT,
            related_appointment_id=parties.appointment_id,
        )

    async def reschedule_requested(
        self,
        parties: AppointmentParties,
        original_date: date,
        original_time: time,
        reason: str | None,
    ) -> None:
        message = (
            f"{parties.patient_name} asked to move the appointment on {original_date} "
            f"at {format_time_12h(original_time)} to {parties.when}."
        )
        if reason:
            message += f" Reason: {reason}"
        await self.notify(
            parties.clinician_user_id,
            "Reschedule Requested",
            message,
            priority=NotificationPriority.HIGH,
            related_appointment_id=parties.appointment_id,
        )

    async def reschedule_decided(self, parties: AppointmentParties, approved: bool) -> None:
        if approved:
            title = "Reschedule Approved"
            message = (
                f"Dr. {parties.clinician_name} approved your reschedule request. "
                f"Your appointment is now on {parties.when}."
            )
        else:
            title = "Reschedule Declined"
            message = (
                f"Dr. {parties.clinician_name} could not accept the new time. "
                f"Your appointment remains on {parties.when}."
            )
        await self.notify(
            parties.patient_user_id,
            title,
            message,
            priority=NotificationPriority.HIGH,
            related_appointment_id=parties.appointment_id,
        )

    async def appointment_completed(self, parties: AppointmentParties) -> None:
        await self.notify(
            parties.patient_user_id,
            "Appointment Completed",
            f"Your {parties.service_type} appointment with Dr. {parties.clinician_name} "
            "is complete. Medical records are now available.",
            priority=NotificationPriority.MEDIUM,
            related_appointment_id=parties.appointment_id,
        )

    # ------------------------------------------------------------------
    # Records and billing events
    # ------------------------------------------------------------------

    async def lab_results_available(
        self,
        patient_user_id: str | None,
        lab_test_id: str,
        test_name: str,
    ) -> None:
        await self.notify(
            patient_user_id,
            "Lab Results Available",
            f"Your {test_name} results are now available in your patient portal.",
            type=NotificationType.RECORD,
            priority=NotificationPriority.HIGH,
            related_lab_test_id=lab_test_id,
        )

    async def payment_status_changed(
        self,
        patient_user_id: str | None,
        appointment_id: str,
        status: PaymentStatus,
        amount: Any,
        currency: str,
    ) -> None:
        templates = {
            PaymentStatus.PAID: (
                "Payment Successful",
                f"Your payment of {currency} {amount} has been processed successfully.",
                NotificationPriority.MEDIUM,
            ),
            PaymentStatus.FAILED: (
                "Payment Failed",
                f"Your payment of {currency} {amount} could not be processed. "
                "Please retry or contact billing.",
                NotificationPriority.URGENT,
            ),
            PaymentStatus.PENDING: (
                "Payment Pending",
                f"Your payment of {currency} {amount} is being processed.",
                NotificationPriority.LOW,
            ),
            PaymentStatus.REFUNDED: (
                "Payment Refunded",
                f"Your payment of {currency} {amount} has been refunded.",
                NotificationPriority.MEDIUM,
            ),
        }
        title, message, priority = templates[PaymentStatus(status)]
        await self.notify(
            patient_user_id,
            title,
            message,
            type=NotificationType.PAYMENT,
            priority=priority,
            related_appointment_id=appointment_id,
        )

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def message_received(
        self,
        recipient_user_id: str | None,
        sender_name: str,
        preview: str,
        appointment_id: str | None = None,
    ) -> None:
        if len(preview) > 80:
            preview = f"{preview[:77]}..."
        await self.notify(
            recipient_user_id,
            f"New message from {sender_name}",
            preview,
            type=NotificationType.MESSAGE,
            priority=NotificationPriority.MEDIUM,
            related_appointment_id=appointment_id,
        )


class NotificationService:
    """Inbox operations for the owning principal."""

    def __init__(self, store: RecordStore):
        self.store = store
        self.records = ScopedRecordService(store)

    async def list(
        self,
        ctx: AccessContext,
        unread_only: bool = False,
        limit: int | None = 50,
    ) -> list[Any]:
        where = {"is_read": False} if unread_only else None
        return await self.records.find(
            Entity.NOTIFICATION, ctx, where, order_by="-created_at", limit=limit
        )

    async def mark_read(self, ctx: AccessContext, notification_id: str) -> Any:
        """Mark one notification read.

        Raises:
            NotFoundError: Missing, or owned by another principal
        """
        notification = await self.records.get(Entity.NOTIFICATION, ctx, notification_id)
        if notification.is_read:
            return notification
        return await self.store.update(
            Entity.NOTIFICATION,
            notification.id,
            {"is_read": True, "read_at": utc_now()},
        )

    async def mark_all_read(self, ctx: AccessContext) -> int:
        unread = await self.list(ctx, unread_only=True, limit=None)
        now = utc_now()
        for notification in unread:
            await self.store.update(
                Entity.NOTIFICATION,
                notification.id,
                {"is_read": True, "read_at": now},
            )
        return len(unread)

    async def stats(self, ctx: AccessContext) -> dict[str, Any]:
        rows = await self.list(ctx, limit=None)
        return {
            "total": len(rows),
            "unread": sum(1 for row in rows if not row.is_read),
            "by_type": dict(Counter(_label(row.type) for row in rows)),
            "by_priority": dict(Counter(_label(row.priority) for row in rows)),
        }
