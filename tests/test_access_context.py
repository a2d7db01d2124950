"""Tests for access context resolution."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from clinicops.access.context import AccessContext, AccessContextResolver
from clinicops.core.exceptions import IncompleteProfileError, NotFoundError
from clinicops.models.user import User, UserRole


class TestResolve:
    """Role and scoped ids always come from the store."""

    async def test_patient_gets_patient_id(self, store, patient_user, patient) -> None:
        ctx = await AccessContextResolver(store).resolve(patient_user.id)

        assert ctx.role == UserRole.PATIENT
        assert ctx.patient_id == patient.id
        assert ctx.clinician_id is None

    async def test_clinician_gets_clinician_id(self, store, clinician_user, clinician) -> None:
        ctx = await AccessContextResolver(store).resolve(clinician_user.id)

        assert ctx.role == UserRole.CLINICIAN
        assert ctx.clinician_id == clinician.id
        assert ctx.patient_id is None

    async def test_staff_carries_optional_staff_id(self, store, staff_user) -> None:
        ctx = await AccessContextResolver(store).resolve(staff_user.id)

        assert ctx.role == UserRole.STAFF
        assert ctx.staff_id is not None
        assert ctx.patient_id is None and ctx.clinician_id is None

    async def test_admin_without_profile_resolves(self, store, admin_user) -> None:
        ctx = await AccessContextResolver(store).resolve(admin_user.id)

        assert ctx.role == UserRole.ADMIN
        assert ctx.staff_id is None

    async def test_unknown_user_not_found(self, store) -> None:
        with pytest.raises(NotFoundError):
            await AccessContextResolver(store).resolve("00000000-0000-0000-0000-000000000000")

    async def test_inactive_user_not_found(
        self, async_session: AsyncSession, store, patient_user: User, patient
    ) -> None:
        patient_user.is_active = False
        await async_session.commit()

        with pytest.raises(NotFoundError):
            await AccessContextResolver(store).resolve(patient_user.id)

    async def test_patient_without_profile_needs_onboarding(self, store, patient_user) -> None:
        with pytest.raises(IncompleteProfileError) as exc_info:
            await AccessContextResolver(store).resolve(patient_user.id)

        assert exc_info.value.role == "patient"

    async def test_clinician_without_profile_needs_onboarding(self, store, clinician_user) -> None:
        with pytest.raises(IncompleteProfileError) as exc_info:
            await AccessContextResolver(store).resolve(clinician_user.id)

        assert exc_info.value.role == "clinician"


class TestAccessContextValue:
    """The context value rejects inconsistent role/id combinations."""

    def test_patient_requires_patient_id(self) -> None:
        with pytest.raises(ValueError):
            AccessContext(user_id="u1", role=UserRole.PATIENT)

    def test_clinician_cannot_carry_patient_id(self) -> None:
        with pytest.raises(ValueError):
            AccessContext(user_id="u1", role=UserRole.CLINICIAN, clinician_id="c1", patient_id="p1")

    def test_staff_cannot_carry_scoped_ids(self) -> None:
        with pytest.raises(ValueError):
            AccessContext(user_id="u1", role=UserRole.STAFF, patient_id="p1")

    def test_system_context_is_admin_scoped(self) -> None:
        ctx = AccessContext.system()

        assert ctx.role == UserRole.ADMIN
        assert ctx.is_system
        assert ctx.actor_type == "system"

    def test_context_is_immutable(self) -> None:
        ctx = AccessContext(user_id="u1", role=UserRole.ADMIN)

        with pytest.raises(Exception):
            ctx.role = UserRole.PATIENT  # type: ignore[misc]
