"""Tests for the role-scoped query policy and the scoped read seam.

Covers:
- Soundness: a principal never sees rows outside its scope
- Completeness: a principal sees every row inside its scope
- Fail-closed defaults for unlisted role/entity combinations
"""

from decimal import Decimal

import pytest

from clinicops.access.context import AccessContext
from clinicops.access.policy import ACCESS_RULES, can_read, scope
from clinicops.access.predicates import Entity, FilterPredicate, Op, Subselect
from clinicops.core.exceptions import AccessDeniedError, NotFoundError
from clinicops.models.billing import Payment
from clinicops.models.notification import Notification
from clinicops.models.scheduling import AppointmentStatus
from clinicops.models.user import UserRole
from clinicops.services.records import ScopedRecordService


PATIENT = AccessContext(user_id="u-p", role=UserRole.PATIENT, patient_id="p-1")
CLINICIAN = AccessContext(user_id="u-c", role=UserRole.CLINICIAN, clinician_id="c-1")
STAFF = AccessContext(user_id="u-s", role=UserRole.STAFF)
ADMIN = AccessContext(user_id="u-a", role=UserRole.ADMIN)


class TestScopeTable:
    """Predicates produced by ``scope`` for each role."""

    @pytest.mark.parametrize(
        "entity",
        [Entity.APPOINTMENT, Entity.MEDICAL_RECORD, Entity.LAB_TEST, Entity.PRESCRIPTION],
    )
    def test_clinical_documents(self, entity: Entity) -> None:
        assert scope(entity, PATIENT) == FilterPredicate.where(patient_id="p-1")
        assert scope(entity, CLINICIAN) == FilterPredicate.where(clinician_id="c-1")
        assert scope(entity, STAFF).is_unrestricted
        assert scope(entity, ADMIN).is_unrestricted

    def test_payment_scoped_through_appointment(self) -> None:
        assert scope(Entity.PAYMENT, PATIENT).fields() == {"appointment.patient_id"}
        assert scope(Entity.PAYMENT, CLINICIAN).fields() == {"appointment.clinician_id"}

    def test_clinician_roster_is_subselect(self) -> None:
        predicate = scope(Entity.PATIENT, CLINICIAN)
        (clause,) = predicate.clauses

        assert clause.field == "id"
        assert clause.op == Op.IN
        assert isinstance(clause.value, Subselect)
        assert clause.value.entity == Entity.APPOINTMENT
        assert clause.value.where == FilterPredicate.where(clinician_id="c-1")

    def test_notifications_always_own(self) -> None:
        for ctx in (PATIENT, CLINICIAN, STAFF, ADMIN):
            assert scope(Entity.NOTIFICATION, ctx) == FilterPredicate.where(user_id=ctx.user_id)

    def test_messages_only_for_participants(self) -> None:
        assert scope(Entity.MESSAGE_THREAD, PATIENT) == FilterPredicate.where(patient_id="p-1")
        assert scope(Entity.MESSAGE_THREAD, CLINICIAN) == FilterPredicate.where(clinician_id="c-1")
        assert scope(Entity.MESSAGE, PATIENT).fields() == {"thread.patient_id"}
        assert scope(Entity.MESSAGE, CLINICIAN).fields() == {"thread.clinician_id"}
        for entity in (Entity.MESSAGE_THREAD, Entity.MESSAGE):
            assert scope(entity, STAFF).denied
            assert scope(entity, ADMIN).denied

    def test_patient_roster_denied_for_patients(self) -> None:
        predicate = scope(Entity.PATIENT, PATIENT)

        assert predicate.denied
        assert "patient" in predicate.reason

    def test_unlisted_combinations_fail_closed(self) -> None:
        assert scope(Entity.SCHEDULE, PATIENT).denied
        assert scope(Entity.TASK, PATIENT).denied
        assert scope(Entity.TASK, CLINICIAN).denied
        assert scope(Entity.USER, ADMIN).denied
        assert not can_read(Entity.TASK, CLINICIAN)
        assert can_read(Entity.TASK, STAFF)

    def test_every_scoped_entity_has_a_rule_table(self) -> None:
        assert Entity.USER not in ACCESS_RULES
        assert Entity.APPOINTMENT in ACCESS_RULES


class TestPredicates:
    """Predicates only narrow when combined."""

    def test_intersect_keeps_scope_clauses(self) -> None:
        combined = scope(Entity.APPOINTMENT, PATIENT).intersect({"status": "pending"})

        assert combined.fields() == {"patient_id", "status"}

    def test_caller_cannot_widen_scope(self) -> None:
        combined = scope(Entity.APPOINTMENT, PATIENT).intersect({"patient_id": "p-2"})

        # Both equality clauses survive, so no row can match
        assert len(combined.clauses) == 2

    def test_deny_all_is_sticky(self) -> None:
        denied = FilterPredicate.deny_all("nope")

        assert FilterPredicate.allow_all().intersect(denied).denied
        assert denied.intersect({"id": "x"}).denied

    def test_iterables_become_in_clauses(self) -> None:
        (clause,) = FilterPredicate.where(status=["pending", "confirmed"]).clauses

        assert clause.op == Op.IN
        assert clause.value == ("pending", "confirmed")


class TestScopedReads:
    """Scoped reads against a real store."""

    async def test_patient_sees_exactly_own_appointments(
        self, store, patient, other_patient, clinician, make_appointment, patient_ctx
    ) -> None:
        mine = await make_appointment(patient, clinician)
        await make_appointment(other_patient, clinician)

        rows = await ScopedRecordService(store).find(Entity.APPOINTMENT, patient_ctx)

        assert [row.id for row in rows] == [mine.id]

    async def test_clinician_sees_exactly_own_appointments(
        self,
        store,
        patient,
        clinician,
        other_clinician,
        make_appointment,
        clinician_ctx,
    ) -> None:
        mine = await make_appointment(patient, clinician)
        await make_appointment(patient, other_clinician)

        rows = await ScopedRecordService(store).find(Entity.APPOINTMENT, clinician_ctx)

        assert {row.id for row in rows} == {mine.id}

    async def test_staff_sees_everything(
        self, store, patient, other_patient, clinician, make_appointment, staff_ctx
    ) -> None:
        await make_appointment(patient, clinician)
        await make_appointment(other_patient, clinician)

        rows = await ScopedRecordService(store).find(Entity.APPOINTMENT, staff_ctx)

        assert len(rows) == 2

    async def test_caller_filter_is_intersected(
        self, store, patient, clinician, make_appointment, patient_ctx
    ) -> None:
        await make_appointment(patient, clinician, status=AppointmentStatus.PENDING)
        confirmed = await make_appointment(
            patient, clinician, status=AppointmentStatus.CONFIRMED
        )

        rows = await ScopedRecordService(store).find(
            Entity.APPOINTMENT, patient_ctx, {"status": AppointmentStatus.CONFIRMED}
        )

        assert [row.id for row in rows] == [confirmed.id]

    async def test_get_outside_scope_is_not_found(
        self, store, patient, other_patient, clinician, make_appointment, patient_ctx
    ) -> None:
        theirs = await make_appointment(other_patient, clinician)

        with pytest.raises(NotFoundError):
            await ScopedRecordService(store).get(Entity.APPOINTMENT, patient_ctx, theirs.id)

    async def test_denied_entity_raises_access_denied(self, store, patient_ctx) -> None:
        with pytest.raises(AccessDeniedError):
            await ScopedRecordService(store).find(Entity.TASK, patient_ctx)

    async def test_payment_scope_joins_appointment(
        self,
        async_session,
        store,
        patient,
        clinician,
        other_clinician,
        make_appointment,
        clinician_ctx,
    ) -> None:
        mine = await make_appointment(patient, clinician)
        theirs = await make_appointment(patient, other_clinician)
        async_session.add_all(
            [
                Payment(appointment_id=mine.id, patient_id=patient.id, amount=Decimal("500.00")),
                Payment(appointment_id=theirs.id, patient_id=patient.id, amount=Decimal("750.00")),
            ]
        )
        await async_session.commit()

        rows = await ScopedRecordService(store).find(Entity.PAYMENT, clinician_ctx)

        assert [row.appointment_id for row in rows] == [mine.id]

    async def test_clinician_roster_only_own_patients(
        self,
        store,
        patient,
        other_patient,
        clinician,
        other_clinician,
        make_appointment,
        clinician_ctx,
    ) -> None:
        await make_appointment(patient, clinician)
        await make_appointment(other_patient, other_clinician)

        roster = await ScopedRecordService(store).patient_roster(clinician_ctx)

        assert [p.id for p in roster] == [patient.id]

    async def test_notifications_only_own(
        self, async_session, store, patient_user, other_patient_user, patient_ctx
    ) -> None:
        async_session.add_all(
            [
                Notification(user_id=patient_user.id, title="Mine", message="m", type="system"),
                Notification(user_id=other_patient_user.id, title="Theirs", message="t", type="system"),
            ]
        )
        await async_session.commit()

        rows = await ScopedRecordService(store).find(Entity.NOTIFICATION, patient_ctx)

        assert [row.title for row in rows] == ["Mine"]

    async def test_own_profile(self, store, patient, patient_ctx, admin_ctx) -> None:
        records = ScopedRecordService(store)

        profile = await records.own_profile(patient_ctx)
        assert profile.id == patient.id

        with pytest.raises(NotFoundError):
            await records.own_profile(admin_ctx)
