"""Appointment slot conflict detection."""

from datetime import date, time

from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.models.scheduling import AppointmentStatus
from clinicops.store.base import RecordStore
from clinicops.utils.time import parse_date, parse_time


class ConflictDetector:
    """Checks whether a clinician slot is already held by a confirmed appointment.

    A conflict is exact equality on clinician, date and time. Pending,
    cancelled and completed appointments never block a slot. The check reads
    across all patients, so it runs on the unscoped store and only ever
    returns a boolean.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    async def has_conflict(
        self,
        clinician_id: str,
        appointment_date: date | str,
        appointment_time: time | str,
        exclude_appointment_id: str | None = None,
    ) -> bool:
        rows = await self.store.find(
            Entity.APPOINTMENT,
            FilterPredicate.where(
                clinician_id=clinician_id,
                appointment_date=parse_date(appointment_date),
                appointment_time=parse_time(appointment_time),
                status=AppointmentStatus.CONFIRMED,
            ),
        )
        return any(row.id != exclude_appointment_id for row in rows)
