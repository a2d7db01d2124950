"""Appointment lifecycle service.

Applies the transition rules from ``clinicops.booking.transitions`` to stored
appointments. Every operation takes the caller's ``AccessContext`` and loads
the appointment through the scoped read seam, so principals can only act on
appointments they own.

Writes are optimistic: the update only lands if status and version are still
what was read, otherwise StaleStateError is raised and nothing changes.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.booking.transitions import BookingEvent, check_transition
from clinicops.core.exceptions import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clinicops.core.config import settings
from clinicops.core.logging import audit_logger
from clinicops.models.scheduling import AppointmentStatus
from clinicops.services.conflicts import ConflictDetector
from clinicops.services.notifications import NotificationDispatcher, load_parties
from clinicops.services.records import ScopedRecordService
from clinicops.services.schedules import ClinicianScheduleService
from clinicops.services.staff_tasks import StaffTaskService
from clinicops.store.base import RecordStore
from clinicops.utils.time import ensure_utc, format_datetime, parse_date, parse_time, utc_now

logger = logging.getLogger(__name__)

# Reschedule negotiation columns, cleared whenever a negotiation closes
RESCHEDULE_TRACKING_CLEARED = {
    "original_date": None,
    "original_time": None,
    "reschedule_requested_by": None,
    "reschedule_reason": None,
}


class AutoConfirmOutcome(str, Enum):
    """What the scheduler did with one pending appointment."""

    CONFIRMED = "confirmed"
    ESCALATED = "escalated"
    BLOCKED = "blocked"
    SKIPPED = "skipped"


def _append_note(existing: str | None, line: str) -> str:
    if existing:
        return f"{existing}\n{line}"
    return line


class AppointmentLifecycleService:
    """State machine operations on appointments."""

    def __init__(
        self,
        store: RecordStore,
        dispatcher: NotificationDispatcher,
        conflicts: ConflictDetector | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.conflicts = conflicts or ConflictDetector(store)
        self.records = ScopedRecordService(store)
        self.schedules = ClinicianScheduleService(store)
        self.tasks = StaffTaskService(store)
        self.clock = clock

    async def get(self, ctx: AccessContext, appointment_id: str) -> Any:
        """Load an appointment the caller is allowed to see.

        Raises:
            NotFoundError: Missing or outside the caller's scope
        """
        return await self.records.get(Entity.APPOINTMENT, ctx, appointment_id)

    async def list(
        self,
        ctx: AccessContext,
        status: AppointmentStatus | None = None,
        limit: int | None = None,
    ) -> list[Any]:
        where = {"status": status} if status else None
        return await self.records.find(
            Entity.APPOINTMENT, ctx, where, order_by="appointment_date", limit=limit
        )

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def book(
        self,
        ctx: AccessContext,
        clinician_id: str,
        service_type: str,
        appointment_date: date | str,
        appointment_time: time | str,
        reason: str | None = None,
        patient_id: str | None = None,
    ) -> Any:
        """Create a pending appointment.

        Patients book for themselves; staff and admins book for a named
        patient.

        Raises:
            ValidationError: Bad date/time, past date, missing fields, or a slot
                outside the clinician's published schedule
            NotFoundError: Unknown patient or clinician
            ConflictError: Slot already held by a confirmed appointment
            AccessDeniedError: Caller's role cannot book
        """
        if ctx.is_patient:
            if patient_id and patient_id != ctx.patient_id:
                raise NotFoundError("Patient not found")
            patient_id = ctx.patient_id
        elif ctx.is_staff_or_admin:
            if not patient_id:
                raise ValidationError("patient_id is required when booking for a patient")
            patient = await self.store.find_one(
                Entity.PATIENT, FilterPredicate.where(id=patient_id)
            )
            if patient is None:
                raise NotFoundError("Patient not found")
        else:
            raise AccessDeniedError(f"{ctx.role.value} may not book appointments")

        if not service_type or not service_type.strip():
            raise ValidationError("service_type is required")

        slot_date = parse_date(appointment_date)
        slot_time = parse_time(appointment_time)
        if slot_date < self.clock().date():
            raise ValidationError("Appointments cannot be booked in the past")

        clinician = await self.store.find_one(
            Entity.CLINICIAN, FilterPredicate.where(id=clinician_id)
        )
        if clinician is None:
            raise NotFoundError("Clinician not found")
        if not clinician.is_available:
            raise ValidationError("Clinician is not accepting appointments")
        await self._ensure_within_schedule(clinician_id, slot_date, slot_time)

        if await self.conflicts.has_conflict(clinician_id, slot_date, slot_time):
            raise ConflictError("This time slot is already booked")

        appointment = await self.store.insert(
            Entity.APPOINTMENT,
            {
                "patient_id": patient_id,
                "clinician_id": clinician_id,
                "service_type": service_type.strip(),
                "appointment_date": slot_date,
                "appointment_time": slot_time,
                "status": AppointmentStatus.PENDING,
                "reason": reason,
                "version": 1,
            },
        )

        audit_logger.log(
            action="appointment_book",
            actor_type=ctx.actor_type,
            actor_id=ctx.user_id,
            entity_type="appointment",
            entity_id=appointment.id,
            metadata={"to": AppointmentStatus.PENDING.value},
        )
        await self._dispatch(appointment, "appointment_booked")
        return appointment

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def confirm(self, ctx: AccessContext, appointment_id: str) -> Any:
        """Confirm a pending appointment (clinician, staff or admin).

        Raises:
            ConflictError: Another confirmed appointment holds the slot
        """
        appointment = await self.get(ctx, appointment_id)
        target = check_transition(BookingEvent.CONFIRM, appointment.status, ctx.actor_type)
        await self._ensure_slot_free(appointment, appointment.appointment_date, appointment.appointment_time)

        updated = await self._apply(
            ctx,
            appointment,
            BookingEvent.CONFIRM,
            target,
            {"confirmed_at": self.clock()},
        )
        await self._dispatch(updated, "appointment_confirmed")
        return updated

    async def auto_confirm(
        self,
        appointment_id: str,
        escalation_cooldown: timedelta | None = None,
    ) -> AutoConfirmOutcome:
        """Scheduler path: confirm a matured pending appointment if its slot is free.

        Appointments that are no longer pending are skipped, so repeating the
        call is harmless. On a conflict the status is left alone and staff are
        asked to review; ``escalated_at`` is stamped so later calls within
        ``escalation_cooldown`` report BLOCKED without notifying again.
        """
        if escalation_cooldown is None:
            escalation_cooldown = timedelta(
                minutes=settings.auto_confirm_escalation_cooldown_minutes
            )
        ctx = AccessContext.system()
        appointment = await self.get(ctx, appointment_id)
        if appointment.status != AppointmentStatus.PENDING:
            return AutoConfirmOutcome.SKIPPED

        target = check_transition(BookingEvent.AUTO_CONFIRM, appointment.status, ctx.actor_type)

        if await self.conflicts.has_conflict(
            appointment.clinician_id,
            appointment.appointment_date,
            appointment.appointment_time,
            exclude_appointment_id=appointment.id,
        ):
            now = self.clock()
            if (
                appointment.escalated_at is not None
                and ensure_utc(appointment.escalated_at) > now - escalation_cooldown
            ):
                return AutoConfirmOutcome.BLOCKED

            logger.warning(
                f"Auto-confirmation blocked for appointment {appointment.id}: slot conflict",
                extra={"appointment_id": appointment.id},
            )
            escalated = await self.store.update(
                Entity.APPOINTMENT,
                appointment.id,
                {"escalated_at": now},
                expected={"status": AppointmentStatus.PENDING, "version": appointment.version},
            )
            await self._dispatch(escalated, "auto_confirmation_blocked")
            return AutoConfirmOutcome.ESCALATED

        now = self.clock()
        updated = await self._apply(
            ctx,
            appointment,
            BookingEvent.AUTO_CONFIRM,
            target,
            {
                "confirmed_at": now,
                "auto_confirmed": True,
                "notes": _append_note(
                    appointment.notes, f"[Auto-confirmed by system on {format_datetime(now)}]"
                ),
            },
        )
        await self._dispatch(updated, "appointment_auto_confirmed")
        return AutoConfirmOutcome.CONFIRMED

    async def cancel(self, ctx: AccessContext, appointment_id: str, reason: str) -> Any:
        """Cancel a pending or confirmed appointment (patient, staff or admin).

        Raises:
            ValidationError: Reason is empty or whitespace
        """
        appointment = await self.get(ctx, appointment_id)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A cancellation reason is required")

        target = check_transition(BookingEvent.CANCEL, appointment.status, ctx.actor_type)
        updated = await self._apply(
            ctx,
            appointment,
            BookingEvent.CANCEL,
            target,
            {
                "cancellation_reason": reason,
                "cancelled_by": None if ctx.is_system else ctx.user_id,
            },
        )
        await self._dispatch(updated, "appointment_cancelled", ctx.actor_type, reason)
        return updated

    async def request_reschedule(
        self,
        ctx: AccessContext,
        appointment_id: str,
        new_date: date | str,
        new_time: time | str,
        reason: str | None = None,
    ) -> Any:
        """Patient proposes a new slot for a confirmed appointment.

        The current slot is kept in ``original_date``/``original_time`` until
        the clinician decides.

        Raises:
            ValidationError: Bad or past date/time, the same slot, or outside the
                clinician's published schedule
            ConflictError: Proposed slot is already confirmed for someone else
        """
        appointment = await self.get(ctx, appointment_id)
        target = check_transition(
            BookingEvent.REQUEST_RESCHEDULE, appointment.status, ctx.actor_type
        )

        slot_date = parse_date(new_date)
        slot_time = parse_time(new_time)
        if slot_date < self.clock().date():
            raise ValidationError("Cannot reschedule into the past")
        if slot_date == appointment.appointment_date and slot_time == appointment.appointment_time:
            raise ValidationError("The new time matches the current appointment")
        await self._ensure_within_schedule(appointment.clinician_id, slot_date, slot_time)

        await self._ensure_slot_free(appointment, slot_date, slot_time)

        original_date = appointment.appointment_date
        original_time = appointment.appointment_time
        updated = await self._apply(
            ctx,
            appointment,
            BookingEvent.REQUEST_RESCHEDULE,
            target,
            {
                "original_date": original_date,
                "original_time": original_time,
                "appointment_date": slot_date,
                "appointment_time": slot_time,
                "reschedule_requested_by": ctx.role.value,
                "reschedule_reason": (reason or "").strip() or None,
            },
        )
        await self._dispatch(
            updated, "reschedule_requested", original_date, original_time, updated.reschedule_reason
        )
        return updated

    async def confirm_reschedule(
        self,
        ctx: AccessContext,
        appointment_id: str,
        approved: bool,
        notes: str | None = None,
    ) -> Any:
        """Clinician approves or rejects a pending reschedule.

        Approval keeps the proposed slot. Rejection restores the original
        slot. Both close the negotiation and return to ``confirmed``.

        Raises:
            ConflictError: Approval while the proposed slot became taken
        """
        appointment = await self.get(ctx, appointment_id)
        event = BookingEvent.APPROVE_RESCHEDULE if approved else BookingEvent.REJECT_RESCHEDULE
        target = check_transition(event, appointment.status, ctx.actor_type)

        fields: dict[str, Any] = dict(RESCHEDULE_TRACKING_CLEARED)
        if approved:
            await self._ensure_slot_free(
                appointment, appointment.appointment_date, appointment.appointment_time
            )
        elif appointment.original_date is not None and appointment.original_time is not None:
            fields["appointment_date"] = appointment.original_date
            fields["appointment_time"] = appointment.original_time
        else:
            logger.warning(
                f"Reschedule of appointment {appointment.id} rejected without an original "
                "slot to restore; flagged for reconciliation",
                extra={"appointment_id": appointment.id},
            )
            fields["needs_reconciliation"] = True

        decision = "approved" if approved else "declined"
        line = f"Reschedule {decision}"
        if notes and notes.strip():
            line = f"{line}: {notes.strip()}"
        fields["notes"] = _append_note(appointment.notes, line)

        updated = await self._apply(ctx, appointment, event, target, fields)
        if updated.needs_reconciliation:
            await self.tasks.open_reconciliation(updated)
        await self._dispatch(updated, "reschedule_decided", approved)
        return updated

    async def complete(
        self,
        ctx: AccessContext,
        appointment_id: str,
        notes: str | None = None,
    ) -> Any:
        """Clinician marks a confirmed appointment as completed."""
        appointment = await self.get(ctx, appointment_id)
        target = check_transition(BookingEvent.COMPLETE, appointment.status, ctx.actor_type)

        fields: dict[str, Any] = {"completed_at": self.clock()}
        if notes and notes.strip():
            fields["notes"] = _append_note(appointment.notes, notes.strip())

        updated = await self._apply(ctx, appointment, BookingEvent.COMPLETE, target, fields)
        await self._dispatch(updated, "appointment_completed")
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ensure_within_schedule(
        self, clinician_id: str, slot_date: date, slot_time: time
    ) -> None:
        if not await self.schedules.is_bookable(clinician_id, slot_date, slot_time):
            raise ValidationError(
                f"Clinician is not available on {slot_date:%A} at {slot_time:%H:%M}"
            )

    async def _ensure_slot_free(self, appointment: Any, slot_date: date, slot_time: time) -> None:
        if await self.conflicts.has_conflict(
            appointment.clinician_id,
            slot_date,
            slot_time,
            exclude_appointment_id=appointment.id,
        ):
            raise ConflictError(
                f"Clinician already has a confirmed appointment on {slot_date} at {slot_time}"
            )

    async def _apply(
        self,
        ctx: AccessContext,
        appointment: Any,
        event: BookingEvent,
        target: AppointmentStatus,
        fields: dict[str, Any],
    ) -> Any:
        previous = AppointmentStatus(appointment.status)
        updated = await self.store.update(
            Entity.APPOINTMENT,
            appointment.id,
            {**fields, "status": target},
            expected={"status": previous, "version": appointment.version},
        )

        audit_logger.log(
            action=f"appointment_{event.value}",
            actor_type=ctx.actor_type,
            actor_id=ctx.user_id,
            entity_type="appointment",
            entity_id=appointment.id,
            metadata={"from": previous.value, "to": target.value},
        )
        return updated

    async def _dispatch(self, appointment: Any, event_name: str, *args: Any) -> None:
        """Run a dispatcher event after a committed write. Never raises."""
        try:
            parties = await load_parties(self.store, appointment)
            await getattr(self.dispatcher, event_name)(parties, *args)
        except Exception as e:
            logger.error(
                f"Notification '{event_name}' failed for appointment {appointment.id}: {e}",
                extra={"appointment_id": appointment.id},
            )
