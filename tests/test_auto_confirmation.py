"""Tests for the auto-confirmation scheduler.

Covers:
- Matured pending appointments are confirmed and announced
- Conflicts escalate to staff only, once per cooldown, and leave the appointment pending
- Ticks are idempotent and never overlap
- One failing or stalled appointment never blocks the rest of a tick
- A hanging notification channel never stalls a tick
"""

import asyncio
import logging
from datetime import timedelta

import pytest
from sqlalchemy import Update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clinicops.core.exceptions import StaleStateError
from clinicops.db.base import Base
from clinicops.models.notification import NotificationPriority, NotificationType
from clinicops.models.scheduling import Appointment, AppointmentStatus
from clinicops.services.auto_confirmation import AutoConfirmationScheduler
from clinicops.services.lifecycle import AppointmentLifecycleService, AutoConfirmOutcome
from clinicops.services.notifications import NotificationAck, NotificationPayload, Notifier
from clinicops.tasks.auto_confirmation import run_auto_confirmation_task
from clinicops.utils.time import utc_now

MATURED = timedelta(hours=3)


class HangingNotifier(Notifier):
    """Delivery channel that never answers."""

    async def send(self, principal_id: str, payload: NotificationPayload) -> NotificationAck:
        await asyncio.sleep(30)
        return NotificationAck(delivered=True)


@pytest.fixture
def stalling_session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose first UPDATE hangs until cancelled."""
    stalled: list[str] = []

    class StallingSession(AsyncSession):
        async def execute(self, statement, *args, **kwargs):
            if isinstance(statement, Update) and not stalled:
                stalled.append(str(statement))
                await asyncio.sleep(30)
            return await super().execute(statement, *args, **kwargs)

    return async_sessionmaker(
        async_engine, class_=StallingSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
def scheduler(session_factory, notifier) -> AutoConfirmationScheduler:
    return AutoConfirmationScheduler(
        session_factory,
        notifier=notifier,
        maturation=timedelta(hours=2),
        interval=timedelta(minutes=10),
        store_timeout=5.0,
    )


class TestAutoConfirm:
    """Matured appointments with a free slot."""

    async def test_matured_appointment_confirmed(
        self,
        scheduler,
        notifier,
        reload,
        patient,
        patient_user,
        clinician,
        clinician_user,
        staff_user,
        second_staff_user,
        make_appointment,
    ) -> None:
        appointment = await make_appointment(patient, clinician, age=MATURED)

        result = await scheduler.tick()

        assert result.examined == 1
        assert result.confirmed == 1
        fresh = await reload(Appointment, appointment.id)
        assert fresh.status == "confirmed"
        assert fresh.auto_confirmed is True
        assert fresh.confirmed_at is not None
        assert "[Auto-confirmed by system on" in fresh.notes

        (to_patient,) = notifier.to(patient_user.id)
        assert to_patient.priority == NotificationPriority.HIGH
        (to_clinician,) = notifier.to(clinician_user.id)
        assert to_clinician.priority == NotificationPriority.MEDIUM
        for staff in (staff_user, second_staff_user):
            (to_staff,) = notifier.to(staff.id)
            assert to_staff.type == NotificationType.SYSTEM
            assert to_staff.priority == NotificationPriority.LOW

    async def test_fresh_appointment_left_alone(
        self, scheduler, notifier, reload, patient, clinician, make_appointment
    ) -> None:
        appointment = await make_appointment(patient, clinician, age=timedelta(minutes=30))

        result = await scheduler.tick()

        assert result.examined == 0
        assert (await reload(Appointment, appointment.id)).status == "pending"
        assert notifier.sent == []

    async def test_oldest_first(self, scheduler, patient, clinician, make_appointment, slot_date) -> None:
        newer = await make_appointment(patient, clinician, age=MATURED, appointment_date=slot_date)
        older = await make_appointment(
            patient, clinician, age=MATURED + timedelta(hours=1),
            appointment_date=slot_date + timedelta(days=1),
        )

        assert await scheduler.due_appointment_ids() == [older.id, newer.id]


class TestConflictEscalation:
    """A confirmed appointment already holds the slot."""

    async def test_conflict_escalates_to_staff_only(
        self,
        scheduler,
        notifier,
        reload,
        patient,
        patient_user,
        other_patient,
        clinician,
        clinician_user,
        staff_user,
        make_appointment,
        slot_date,
    ) -> None:
        pending = await make_appointment(patient, clinician, age=MATURED, appointment_date=slot_date)
        await make_appointment(
            other_patient, clinician, status=AppointmentStatus.CONFIRMED, appointment_date=slot_date
        )

        result = await scheduler.tick()

        assert result.escalated == 1
        assert result.confirmed == 0
        assert (await reload(Appointment, pending.id)).status == "pending"
        assert len(notifier.sent) == 1
        (escalation,) = notifier.to(staff_user.id)
        assert escalation.priority == NotificationPriority.HIGH
        assert escalation.related_appointment_id == pending.id
        assert notifier.to(patient_user.id) == []
        assert notifier.to(clinician_user.id) == []

    async def test_back_to_back_ticks_escalate_once(
        self,
        scheduler,
        notifier,
        reload,
        patient,
        other_patient,
        clinician,
        staff_user,
        make_appointment,
        slot_date,
    ) -> None:
        pending = await make_appointment(patient, clinician, age=MATURED, appointment_date=slot_date)
        await make_appointment(
            other_patient, clinician, status=AppointmentStatus.CONFIRMED, appointment_date=slot_date
        )

        first = await scheduler.tick()
        second = await scheduler.tick()

        assert first.escalated == 1
        assert second.escalated == 0
        assert second.blocked == 1
        assert len(notifier.to(staff_user.id)) == 1
        fresh = await reload(Appointment, pending.id)
        assert fresh.status == "pending"
        assert fresh.escalated_at is not None

    async def test_escalates_again_after_cooldown(
        self,
        session_factory,
        notifier,
        patient,
        other_patient,
        clinician,
        staff_user,
        make_appointment,
        slot_date,
    ) -> None:
        now = [utc_now()]
        scheduler = AutoConfirmationScheduler(
            session_factory,
            notifier=notifier,
            maturation=timedelta(hours=2),
            escalation_cooldown=timedelta(minutes=60),
            store_timeout=5.0,
            clock=lambda: now[0],
        )
        await make_appointment(patient, clinician, age=MATURED, appointment_date=slot_date)
        await make_appointment(
            other_patient, clinician, status=AppointmentStatus.CONFIRMED, appointment_date=slot_date
        )

        await scheduler.tick()
        now[0] += timedelta(minutes=30)
        within = await scheduler.tick()
        now[0] += timedelta(minutes=31)
        after = await scheduler.tick()

        assert within.blocked == 1
        assert after.escalated == 1
        assert len(notifier.to(staff_user.id)) == 2


class TestIdempotence:
    """Repeating ticks never double-confirm."""

    async def test_second_tick_is_a_no_op(
        self, scheduler, notifier, reload, patient, clinician, staff_user, make_appointment
    ) -> None:
        appointment = await make_appointment(patient, clinician, age=MATURED)

        await scheduler.tick()
        sent_after_first = len(notifier.sent)
        version_after_first = (await reload(Appointment, appointment.id)).version
        second = await scheduler.tick()

        assert second.examined == 0
        assert len(notifier.sent) == sent_after_first
        assert (await reload(Appointment, appointment.id)).version == version_after_first

    async def test_auto_confirm_skips_non_pending(
        self, store, dispatcher, patient, clinician, make_appointment
    ) -> None:
        appointment = await make_appointment(patient, clinician, status=AppointmentStatus.CONFIRMED)

        outcome = await AppointmentLifecycleService(store, dispatcher).auto_confirm(appointment.id)

        assert outcome == AutoConfirmOutcome.SKIPPED

    async def test_busy_tick_is_skipped(self, scheduler) -> None:
        async with scheduler._lock:
            result = await scheduler.tick()

        assert result.skipped_busy is True
        assert result.examined == 0


class TestFailureIsolation:
    """Per-item failures are logged and retried next tick."""

    async def test_stalled_store_call_does_not_block_others(
        self,
        stalling_session_factory,
        notifier,
        reload,
        patient,
        clinician,
        make_appointment,
        slot_date,
        caplog,
    ) -> None:
        slow = await make_appointment(
            patient, clinician, age=MATURED + timedelta(hours=1), appointment_date=slot_date
        )
        ok = await make_appointment(
            patient, clinician, age=MATURED, appointment_date=slot_date + timedelta(days=1)
        )
        scheduler = AutoConfirmationScheduler(
            stalling_session_factory,
            notifier=notifier,
            maturation=timedelta(hours=2),
            store_timeout=0.2,
        )

        with caplog.at_level(logging.ERROR):
            result = await asyncio.wait_for(scheduler.tick(), timeout=5)

        assert result.examined == 2
        assert result.failed == 1
        assert result.confirmed == 1
        assert (await reload(Appointment, slow.id)).status == "pending"
        assert (await reload(Appointment, ok.id)).status == "confirmed"
        assert "Record store failure" in caplog.text
        assert "exceeded 0.2s" in caplog.text

    async def test_stale_state_logged_as_warning(
        self, scheduler, patient, clinician, make_appointment, monkeypatch, caplog
    ) -> None:
        await make_appointment(patient, clinician, age=MATURED)

        async def racing_handle(appointment_id: str):
            raise StaleStateError("changed concurrently")

        monkeypatch.setattr(scheduler, "_handle", racing_handle)

        with caplog.at_level(logging.WARNING):
            result = await scheduler.tick()

        assert result.failed == 1
        assert "will retry next tick" in caplog.text


    async def test_hanging_notifier_does_not_stall_tick(
        self, session_factory, reload, patient, clinician, make_appointment, slot_date, caplog
    ) -> None:
        first = await make_appointment(patient, clinician, age=MATURED, appointment_date=slot_date)
        second = await make_appointment(
            patient, clinician, age=MATURED, appointment_date=slot_date + timedelta(days=1)
        )
        scheduler = AutoConfirmationScheduler(
            session_factory,
            notifier=HangingNotifier(),
            maturation=timedelta(hours=2),
            store_timeout=0.2,
        )

        with caplog.at_level(logging.ERROR):
            result = await asyncio.wait_for(scheduler.tick(), timeout=5)

        assert result.confirmed == 2
        assert result.failed == 0
        assert (await reload(Appointment, first.id)).status == "confirmed"
        assert (await reload(Appointment, second.id)).status == "confirmed"
        assert "timed out after 0.2s" in caplog.text


class TestSchedulerLoop:
    """Supervised in-process loop."""

    async def test_loop_survives_errors_and_stops_on_cancel(self, scheduler, monkeypatch) -> None:
        calls = 0

        async def tick():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")

        monkeypatch.setattr(scheduler, "tick", tick)
        scheduler.interval = timedelta(milliseconds=5)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls >= 2


class TestCronTask:
    """Single-pass cron entry point."""

    async def test_task_runs_one_pass(self, tmp_path) -> None:
        database_url = f"sqlite+aiosqlite:///{tmp_path / 'cron.db'}"
        engine = create_async_engine(database_url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

        result = await run_auto_confirmation_task(database_url=database_url, maturation_minutes=60)

        assert result == {
            "examined": 0,
            "confirmed": 0,
            "escalated": 0,
            "blocked": 0,
            "failed": 0,
            "skipped_busy": False,
        }
