"""Secure messaging between a patient and their clinician.

A thread belongs to exactly one patient and one clinician, optionally tied to
one of their appointments. Only those two principals can read or post in it;
a clinician can only open threads with patients on their roster.
"""

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from typing import Any

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from clinicops.services.notifications import NotificationDispatcher, load_principal
from clinicops.services.records import ScopedRecordService
from clinicops.store.base import RecordStore
from clinicops.utils.time import utc_now

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


class MessagingService:
    """Threads and messages on behalf of a participant."""

    def __init__(
        self,
        store: RecordStore,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.records = ScopedRecordService(store)
        self.clock = clock

    async def _pair(self, ctx: AccessContext, counterpart_id: str) -> tuple[str, str]:
        """(patient_id, clinician_id) for a thread between the caller and counterpart."""
        if ctx.is_patient:
            clinician = await self.store.find_one(
                Entity.CLINICIAN, FilterPredicate.where(id=counterpart_id)
            )
            if clinician is None:
                raise NotFoundError("Clinician not found")
            return ctx.patient_id, clinician.id
        if ctx.is_clinician:
            roster = await self.records.find(Entity.PATIENT, ctx, {"id": counterpart_id}, limit=1)
            if not roster:
                raise NotFoundError("Patient not found")
            return counterpart_id, ctx.clinician_id
        raise AccessDeniedError(f"{ctx.role.value} may not open message threads")

    async def open_thread(
        self,
        ctx: AccessContext,
        counterpart_id: str,
        appointment_id: str | None = None,
        subject: str | None = None,
    ) -> Any:
        """Return the thread with ``counterpart_id``, creating it if needed.

        ``counterpart_id`` is a clinician id for patients and a patient id for
        clinicians.

        Raises:
            NotFoundError: Unknown counterpart, patient outside the roster, or
                an appointment the caller cannot see
            ValidationError: Appointment between a different pair
        """
        patient_id, clinician_id = await self._pair(ctx, counterpart_id)
        if appointment_id:
            appointment = await self.records.get(Entity.APPOINTMENT, ctx, appointment_id)
            if appointment.patient_id != patient_id or appointment.clinician_id != clinician_id:
                raise ValidationError("Appointment does not belong to this conversation")

        existing = await self.records.find(
            Entity.MESSAGE_THREAD,
            ctx,
            {"patient_id": patient_id, "clinician_id": clinician_id, "appointment_id": appointment_id},
            limit=1,
        )
        if existing:
            thread = existing[0]
            if not thread.is_active:
                thread = await self.store.update(
                    Entity.MESSAGE_THREAD, thread.id, {"is_active": True}
                )
            return thread

        thread = await self.store.insert(
            Entity.MESSAGE_THREAD,
            {
                "patient_id": patient_id,
                "clinician_id": clinician_id,
                "appointment_id": appointment_id,
                "subject": (subject or "").strip() or None,
                "is_active": True,
            },
        )
        logger.info(
            f"Message thread {thread.id} opened by {ctx.role.value}",
            extra={"user_id": ctx.user_id},
        )
        return thread

    async def list_threads(self, ctx: AccessContext) -> list[Any]:
        return await self.records.find(
            Entity.MESSAGE_THREAD, ctx, {"is_active": True}, order_by="-last_message_at"
        )

    async def send(self, ctx: AccessContext, thread_id: str, body: str) -> Any:
        """Post a message and notify the other participant.

        Raises:
            ValidationError: Empty or oversized body
            NotFoundError: Thread missing or not the caller's
        """
        thread = await self.records.get(Entity.MESSAGE_THREAD, ctx, thread_id)
        body = (body or "").strip()
        if not body:
            raise ValidationError("Message body is required")
        if len(body) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message body exceeds {MAX_MESSAGE_LENGTH} characters")

        if ctx.is_patient:
            recipient_user_id, _ = await load_principal(
                self.store, Entity.CLINICIAN, thread.clinician_id
            )
            _, sender_name = await load_principal(self.store, Entity.PATIENT, thread.patient_id)
        else:
            recipient_user_id, _ = await load_principal(
                self.store, Entity.PATIENT, thread.patient_id
            )
            _, sender_name = await load_principal(
                self.store, Entity.CLINICIAN, thread.clinician_id
            )
        if recipient_user_id is None:
            raise NotFoundError("Recipient not found")

        now = self.clock()
        message = await self.store.insert(
            Entity.MESSAGE,
            {
                "thread_id": thread.id,
                "sender_user_id": ctx.user_id,
                "recipient_user_id": recipient_user_id,
                "body": body,
                "is_read": False,
            },
        )
        await self.store.update(
            Entity.MESSAGE_THREAD, thread.id, {"last_message_at": now, "is_active": True}
        )
        await self.dispatcher.message_received(
            recipient_user_id, sender_name, body, appointment_id=thread.appointment_id
        )
        return message

    async def messages(
        self, ctx: AccessContext, thread_id: str, limit: int | None = None
    ) -> list[Any]:
        """Messages of one thread, oldest first."""
        thread = await self.records.get(Entity.MESSAGE_THREAD, ctx, thread_id)
        return await self.records.find(
            Entity.MESSAGE, ctx, {"thread_id": thread.id}, order_by="created_at", limit=limit
        )

    async def mark_read(self, ctx: AccessContext, thread_id: str) -> int:
        """Mark every message addressed to the caller in a thread as read."""
        thread = await self.records.get(Entity.MESSAGE_THREAD, ctx, thread_id)
        unread = await self.records.find(
            Entity.MESSAGE,
            ctx,
            {"thread_id": thread.id, "recipient_user_id": ctx.user_id, "is_read": False},
        )
        now = self.clock()
        for message in unread:
            await self.store.update(Entity.MESSAGE, message.id, {"is_read": True, "read_at": now})
        return len(unread)

    async def unread_counts(self, ctx: AccessContext) -> dict[str, int]:
        """Unread messages addressed to the caller, keyed by thread id."""
        unread = await self.records.find(
            Entity.MESSAGE, ctx, {"recipient_user_id": ctx.user_id, "is_read": False}
        )
        return dict(Counter(message.thread_id for message in unread))
