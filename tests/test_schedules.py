"""Tests for clinician weekly schedules.

Covers:
- One window per weekday, replaced on save
- Clinicians edit only their own windows; staff edit on their behalf
- Availability toggles and deletion go through the scoped read seam
- Bookability rules used by the lifecycle
"""

from datetime import date, time

import pytest

from clinicops.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from clinicops.models.scheduling import ClinicianSchedule
from clinicops.services.schedules import ClinicianScheduleService

# A Monday
MONDAY = date(2030, 1, 7)


@pytest.fixture
def schedules(store) -> ClinicianScheduleService:
    return ClinicianScheduleService(store)


class TestSaveWindow:
    """Upsert by clinician and weekday."""

    async def test_clinician_creates_own_window(self, schedules, clinician, clinician_ctx) -> None:
        window = await schedules.save_window(clinician_ctx, 0, "09:00", "5:00 PM")

        assert window.clinician_id == clinician.id
        assert window.day_of_week == 0
        assert window.start_time == time(9, 0)
        assert window.end_time == time(17, 0)
        assert window.is_available is True

    async def test_second_save_replaces_window(self, schedules, clinician_ctx) -> None:
        first = await schedules.save_window(clinician_ctx, 2, "09:00", "12:00")
        second = await schedules.save_window(clinician_ctx, 2, "13:00", "18:00")

        windows = await schedules.list_windows(clinician_ctx)
        assert second.id == first.id
        assert len(windows) == 1
        assert windows[0].start_time == time(13, 0)

    @pytest.mark.parametrize(
        "day,start,end",
        [(7, "09:00", "10:00"), (-1, "09:00", "10:00"), (1, "10:00", "10:00"), (1, "14:00", "09:00")],
    )
    async def test_invalid_window_rejected(self, schedules, clinician_ctx, day, start, end) -> None:
        with pytest.raises(ValidationError):
            await schedules.save_window(clinician_ctx, day, start, end)

    async def test_clinician_cannot_edit_another_schedule(
        self, schedules, clinician_ctx, other_clinician
    ) -> None:
        with pytest.raises(NotFoundError):
            await schedules.save_window(
                clinician_ctx, 0, "09:00", "10:00", clinician_id=other_clinician.id
            )

    async def test_staff_edits_named_clinician(self, schedules, clinician, staff_ctx) -> None:
        window = await schedules.save_window(
            staff_ctx, 4, "08:00", "12:00", clinician_id=clinician.id
        )

        assert window.clinician_id == clinician.id

    async def test_staff_must_name_clinician(self, schedules, staff_ctx) -> None:
        with pytest.raises(ValidationError):
            await schedules.save_window(staff_ctx, 4, "08:00", "12:00")

    async def test_patient_cannot_edit(self, schedules, clinician, patient_ctx) -> None:
        with pytest.raises(AccessDeniedError):
            await schedules.save_window(
                patient_ctx, 0, "09:00", "10:00", clinician_id=clinician.id
            )


class TestScopedWrites:
    """Toggles and deletes only reach windows the caller can see."""

    async def test_toggle_availability(self, schedules, clinician_ctx) -> None:
        window = await schedules.save_window(clinician_ctx, 1, "09:00", "17:00")

        closed = await schedules.set_availability(clinician_ctx, window.id, False)

        assert closed.is_available is False
        assert closed.start_time == time(9, 0)

    async def test_other_clinician_window_looks_missing(
        self, schedules, clinician_ctx, other_clinician_ctx
    ) -> None:
        window = await schedules.save_window(clinician_ctx, 1, "09:00", "17:00")

        with pytest.raises(NotFoundError):
            await schedules.set_availability(other_clinician_ctx, window.id, False)
        with pytest.raises(NotFoundError):
            await schedules.delete_window(other_clinician_ctx, window.id)

    async def test_delete_window(self, schedules, clinician_ctx) -> None:
        window = await schedules.save_window(clinician_ctx, 3, "09:00", "17:00")

        await schedules.delete_window(clinician_ctx, window.id)

        assert await schedules.list_windows(clinician_ctx) == []

    async def test_list_is_scoped(
        self, schedules, clinician, clinician_ctx, other_clinician_ctx, staff_ctx
    ) -> None:
        await schedules.save_window(clinician_ctx, 0, "09:00", "17:00")
        await schedules.save_window(other_clinician_ctx, 0, "09:00", "17:00")

        own = await schedules.list_windows(clinician_ctx)
        everyone = await schedules.list_windows(staff_ctx)
        filtered = await schedules.list_windows(staff_ctx, clinician_id=clinician.id)

        assert [w.clinician_id for w in own] == [clinician.id]
        assert len(everyone) == 2
        assert [w.clinician_id for w in filtered] == [clinician.id]

    async def test_patient_cannot_list(self, schedules, patient_ctx) -> None:
        with pytest.raises(AccessDeniedError):
            await schedules.list_windows(patient_ctx)


class TestBookable:
    """Slot checks against the published week."""

    async def test_no_schedule_is_always_bookable(self, schedules, clinician) -> None:
        assert await schedules.is_bookable(clinician.id, MONDAY, time(3, 0))

    async def test_inside_and_outside_window(
        self, async_session, schedules, clinician
    ) -> None:
        async_session.add(
            ClinicianSchedule(
                clinician_id=clinician.id,
                day_of_week=0,
                start_time=time(9, 0),
                end_time=time(17, 0),
                is_available=True,
            )
        )
        await async_session.commit()

        assert await schedules.is_bookable(clinician.id, MONDAY, time(9, 0))
        assert await schedules.is_bookable(clinician.id, MONDAY, time(16, 30))
        assert not await schedules.is_bookable(clinician.id, MONDAY, time(17, 0))
        assert not await schedules.is_bookable(clinician.id, MONDAY, time(8, 59))
        # Tuesday has no window
        assert not await schedules.is_bookable(clinician.id, date(2030, 1, 8), time(10, 0))
