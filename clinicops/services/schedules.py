"""Clinician weekly availability.

Each clinician keeps at most one window per weekday. Clinicians edit their
own windows; staff and admins edit any clinician's windows on their behalf.
A clinician with no windows at all has not published a schedule and is
bookable at any time.
"""

from datetime import date, time
from typing import Any

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from clinicops.core.logging import audit_logger
from clinicops.services.records import ScopedRecordService
from clinicops.store.base import RecordStore
from clinicops.utils.time import parse_time

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class ClinicianScheduleService:
    """Reads and writes ``ClinicianSchedule`` windows."""

    def __init__(self, store: RecordStore):
        self.store = store
        self.records = ScopedRecordService(store)

    async def list_windows(
        self, ctx: AccessContext, clinician_id: str | None = None
    ) -> list[Any]:
        where = {"clinician_id": clinician_id} if clinician_id else None
        return await self.records.find(Entity.SCHEDULE, ctx, where, order_by="day_of_week")

    async def _target_clinician(self, ctx: AccessContext, clinician_id: str | None) -> str:
        if ctx.is_clinician:
            if clinician_id and clinician_id != ctx.clinician_id:
                raise NotFoundError("Clinician not found")
            return ctx.clinician_id
        if not ctx.is_staff_or_admin:
            raise AccessDeniedError(f"{ctx.role.value} may not edit schedules")
        if not clinician_id:
            raise ValidationError("clinician_id is required when editing another schedule")
        clinician = await self.store.find_one(
            Entity.CLINICIAN, FilterPredicate.where(id=clinician_id)
        )
        if clinician is None:
            raise NotFoundError("Clinician not found")
        return clinician_id

    async def save_window(
        self,
        ctx: AccessContext,
        day_of_week: int,
        start_time: time | str,
        end_time: time | str,
        is_available: bool = True,
        clinician_id: str | None = None,
    ) -> Any:
        """Create or replace the window for one weekday.

        Raises:
            ValidationError: Day outside 0-6 (0 is Monday) or start not before end
            NotFoundError: Unknown clinician, or another clinician's schedule
            AccessDeniedError: Patients cannot edit schedules
        """
        target = await self._target_clinician(ctx, clinician_id)
        if not 0 <= day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        start = parse_time(start_time)
        end = parse_time(end_time)
        if start >= end:
            raise ValidationError("start_time must be before end_time")

        fields = {"start_time": start, "end_time": end, "is_available": is_available}
        existing = await self.records.find(
            Entity.SCHEDULE, ctx, {"clinician_id": target, "day_of_week": day_of_week}, limit=1
        )
        if existing:
            window = await self.store.update(Entity.SCHEDULE, existing[0].id, fields)
            action = "schedule_update"
        else:
            window = await self.store.insert(
                Entity.SCHEDULE, {**fields, "clinician_id": target, "day_of_week": day_of_week}
            )
            action = "schedule_create"

        self._audit(ctx, action, window.id, day=DAY_NAMES[day_of_week])
        return window

    async def set_availability(self, ctx: AccessContext, window_id: str, is_available: bool) -> Any:
        """Open or close one window without changing its hours."""
        window = await self.records.get(Entity.SCHEDULE, ctx, window_id)
        updated = await self.store.update(
            Entity.SCHEDULE, window.id, {"is_available": is_available}
        )
        self._audit(ctx, "schedule_availability", window.id, is_available=is_available)
        return updated

    async def delete_window(self, ctx: AccessContext, window_id: str) -> None:
        window = await self.records.get(Entity.SCHEDULE, ctx, window_id)
        await self.store.delete(Entity.SCHEDULE, window.id)
        self._audit(ctx, "schedule_delete", window.id)

    async def is_bookable(self, clinician_id: str, slot_date: date, slot_time: time) -> bool:
        """Whether the slot falls inside an open window of the clinician."""
        windows = await self.store.find(
            Entity.SCHEDULE, FilterPredicate.where(clinician_id=clinician_id)
        )
        if not windows:
            return True
        weekday = slot_date.weekday()
        return any(
            window.is_available
            and window.day_of_week == weekday
            and window.start_time <= slot_time < window.end_time
            for window in windows
        )

    def _audit(self, ctx: AccessContext, action: str, window_id: str, **metadata: Any) -> None:
        audit_logger.log(
            action=action,
            actor_type=ctx.actor_type,
            actor_id=ctx.user_id,
            entity_type="clinician_schedule",
            entity_id=window_id,
            metadata=metadata or None,
        )
