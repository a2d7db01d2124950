"""Tests for the SQLAlchemy record store."""

import asyncio
from datetime import timedelta

import pytest

from clinicops.access.predicates import Entity, FilterPredicate, Subselect
from clinicops.core.exceptions import NotFoundError, StaleStateError, ValidationError
from clinicops.models.scheduling import AppointmentStatus
from clinicops.store.base import RecordStoreTimeoutError
from clinicops.store.sqlalchemy import SqlAlchemyRecordStore, session_store
from clinicops.utils.time import utc_now


class TestFind:
    """Predicate compilation."""

    async def test_deny_all_returns_nothing(self, store, patient, clinician, make_appointment) -> None:
        await make_appointment(patient, clinician)

        assert await store.find(Entity.APPOINTMENT, FilterPredicate.deny_all("no")) == []

    async def test_in_clause_with_enums(self, store, patient, clinician, make_appointment) -> None:
        await make_appointment(patient, clinician, status=AppointmentStatus.PENDING)
        await make_appointment(patient, clinician, status=AppointmentStatus.CONFIRMED)
        await make_appointment(patient, clinician, status=AppointmentStatus.CANCELLED)

        rows = await store.find(
            Entity.APPOINTMENT,
            FilterPredicate.where(status=[AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED]),
        )

        assert {row.status for row in rows} == {"pending", "confirmed"}

    async def test_before_clause_and_ordering(
        self, store, patient, clinician, make_appointment
    ) -> None:
        old = await make_appointment(patient, clinician, age=timedelta(hours=5))
        older = await make_appointment(patient, clinician, age=timedelta(hours=9))
        await make_appointment(patient, clinician)

        rows = await store.find(
            Entity.APPOINTMENT,
            FilterPredicate.before("created_at", utc_now() - timedelta(hours=1)),
            order_by="-created_at",
        )

        assert [row.id for row in rows] == [old.id, older.id]

    async def test_subselect(
        self, store, patient, other_patient, clinician, other_clinician, make_appointment
    ) -> None:
        await make_appointment(patient, clinician)
        await make_appointment(other_patient, other_clinician)

        rows = await store.find(
            Entity.PATIENT,
            FilterPredicate.where(
                id=Subselect(
                    entity=Entity.APPOINTMENT,
                    field="patient_id",
                    where=FilterPredicate.where(clinician_id=clinician.id),
                )
            ),
        )

        assert [row.id for row in rows] == [patient.id]

    async def test_none_matches_null(self, store, patient, clinician, make_appointment) -> None:
        appointment = await make_appointment(patient, clinician)

        row = await store.find_one(Entity.APPOINTMENT, FilterPredicate.where(original_date=None))

        assert row.id == appointment.id

    async def test_unknown_field_rejected(self, store) -> None:
        with pytest.raises(ValidationError):
            await store.find(Entity.APPOINTMENT, FilterPredicate.where(favourite_colour="blue"))

    async def test_unknown_relationship_rejected(self, store) -> None:
        with pytest.raises(ValidationError):
            await store.find(Entity.PAYMENT, FilterPredicate.where(**{"invoice.patient_id": "x"}))


class TestWrites:
    """Insert, update and delete."""

    async def test_update_bumps_version(self, store, patient, clinician, make_appointment) -> None:
        appointment = await make_appointment(patient, clinician)

        updated = await store.update(
            Entity.APPOINTMENT,
            appointment.id,
            {"notes": "Call ahead"},
            expected={"status": AppointmentStatus.PENDING, "version": 1},
        )

        assert updated.notes == "Call ahead"
        assert updated.version == 2

    async def test_update_with_wrong_expectation_is_stale(
        self, store, patient, clinician, make_appointment
    ) -> None:
        appointment = await make_appointment(patient, clinician)

        with pytest.raises(StaleStateError):
            await store.update(
                Entity.APPOINTMENT,
                appointment.id,
                {"status": AppointmentStatus.CONFIRMED},
                expected={"status": AppointmentStatus.CONFIRMED},
            )

    async def test_update_missing_row(self, store) -> None:
        with pytest.raises(NotFoundError):
            await store.update(
                Entity.APPOINTMENT, "00000000-0000-0000-0000-000000000000", {"notes": "x"}
            )

    async def test_insert_rejects_unknown_fields(self, store) -> None:
        with pytest.raises(ValidationError):
            await store.insert(Entity.NOTIFICATION, {"recipient": "x"})

    async def test_delete(self, store) -> None:
        task = await store.insert(Entity.TASK, {"title": "Call patient back"})

        await store.delete(Entity.TASK, task.id)

        assert await store.find(Entity.TASK, FilterPredicate.allow_all()) == []
        with pytest.raises(NotFoundError):
            await store.delete(Entity.TASK, task.id)


class TestTimeouts:
    """Bounded store calls."""

    async def test_slow_call_raises_timeout(self, async_session) -> None:
        store = SqlAlchemyRecordStore(async_session, timeout=0.01)

        with pytest.raises(RecordStoreTimeoutError):
            await store._bounded(asyncio.sleep(1))

    async def test_session_store_opens_fresh_session(self, session_factory, patient) -> None:
        async with session_store(session_factory, timeout=5.0) as store:
            row = await store.find_one(Entity.PATIENT, FilterPredicate.where(id=patient.id))

        assert row.id == patient.id
        assert store.timeout == 5.0
