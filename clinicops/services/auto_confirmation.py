"""Auto-confirmation of pending appointments.

Appointments left ``pending`` longer than the maturation window are
confirmed by the system when their slot is still free. When a confirmed
appointment already holds the slot the appointment stays pending and staff
are asked to review it, at most once per escalation cooldown.

Each appointment is handled in its own store session so a slow or failing
item never blocks the rest of the tick; it is simply retried next tick.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.config import settings
from clinicops.core.exceptions import StaleStateError
from clinicops.models.scheduling import AppointmentStatus
from clinicops.services.lifecycle import AppointmentLifecycleService, AutoConfirmOutcome
from clinicops.services.notifications import DatabaseNotifier, NotificationDispatcher, Notifier
from clinicops.services.records import ScopedRecordService
from clinicops.store.base import RecordStoreError
from clinicops.store.sqlalchemy import session_store
from clinicops.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Summary of one scheduler pass."""

    examined: int = 0
    confirmed: int = 0
    escalated: int = 0
    blocked: int = 0
    failed: int = 0
    skipped_busy: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class AutoConfirmationScheduler:
    """Confirms matured pending appointments on a fixed interval."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier | None = None,
        maturation: timedelta | None = None,
        interval: timedelta | None = None,
        store_timeout: float | None = None,
        escalation_cooldown: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.maturation = maturation or timedelta(
            minutes=settings.auto_confirm_maturation_minutes
        )
        self.interval = interval or timedelta(minutes=settings.auto_confirm_interval_minutes)
        self.store_timeout = (
            store_timeout if store_timeout is not None else settings.record_store_timeout_seconds
        )
        self.escalation_cooldown = escalation_cooldown or timedelta(
            minutes=settings.auto_confirm_escalation_cooldown_minutes
        )
        self.notifier = notifier or DatabaseNotifier(session_factory, timeout=self.store_timeout)
        self.clock = clock
        self._lock = asyncio.Lock()

    async def tick(self) -> TickResult:
        """Run one pass. Returns immediately if a pass is already running."""
        if self._lock.locked():
            logger.info("Auto-confirmation tick already running; skipping")
            return TickResult(skipped_busy=True)

        async with self._lock:
            return await self._run_tick()

    async def due_appointment_ids(self) -> list[str]:
        """Ids of pending appointments older than the maturation window, oldest first."""
        cutoff = self.clock() - self.maturation
        async with session_store(self.session_factory, self.store_timeout) as store:
            rows = await ScopedRecordService(store).find(
                Entity.APPOINTMENT,
                AccessContext.system(),
                FilterPredicate.where(status=AppointmentStatus.PENDING).intersect(
                    FilterPredicate.before("created_at", cutoff)
                ),
                order_by="created_at",
            )
            return [row.id for row in rows]

    async def _run_tick(self) -> TickResult:
        result = TickResult()

        try:
            appointment_ids = await self.due_appointment_ids()
        except Exception as e:
            logger.error(f"Could not load pending appointments: {e}")
            return result

        logger.info(f"Found {len(appointment_ids)} pending appointments due for auto-confirmation")

        for appointment_id in appointment_ids:
            result.examined += 1
            try:
                outcome = await self._handle(appointment_id)
            except StaleStateError:
                logger.warning(
                    f"Appointment {appointment_id[:8]} changed during auto-confirmation; "
                    "will retry next tick",
                    extra={"appointment_id": appointment_id},
                )
                result.failed += 1
                continue
            except RecordStoreError as e:
                logger.error(
                    f"Record store failure for appointment {appointment_id[:8]}: {e}",
                    extra={"appointment_id": appointment_id},
                )
                result.failed += 1
                continue
            except Exception as e:
                logger.error(
                    f"Failed to auto-confirm {appointment_id[:8]}: {e}",
                    extra={"appointment_id": appointment_id},
                )
                result.failed += 1
                continue

            if outcome == AutoConfirmOutcome.CONFIRMED:
                result.confirmed += 1
            elif outcome == AutoConfirmOutcome.ESCALATED:
                result.escalated += 1
            elif outcome == AutoConfirmOutcome.BLOCKED:
                result.blocked += 1

        logger.info(f"Auto-confirmation tick complete: {result.as_dict()}")
        return result

    async def _handle(self, appointment_id: str) -> AutoConfirmOutcome:
        async with session_store(self.session_factory, self.store_timeout) as store:
            service = AppointmentLifecycleService(
                store,
                NotificationDispatcher(self.notifier, store, send_timeout=self.store_timeout),
                clock=self.clock,
            )
            return await service.auto_confirm(
                appointment_id, escalation_cooldown=self.escalation_cooldown
            )

    async def run_forever(self) -> None:
        """Tick every interval until cancelled. Unexpected errors never end the loop."""
        logger.info(
            f"Auto-confirmation loop started (interval={self.interval}, "
            f"maturation={self.maturation})"
        )
        try:
            while True:
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Auto-confirmation tick crashed; retrying next interval")
                await asyncio.sleep(self.interval.total_seconds())
        except asyncio.CancelledError:
            logger.info("Auto-confirmation loop stopped")
            raise
