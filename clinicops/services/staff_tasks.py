"""Front-desk work items.

Staff and admins create, assign and close tasks. The lifecycle opens a
reconciliation task on its own when an appointment is flagged for manual
review.
"""

import logging
from typing import Any

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.exceptions import (
    AccessDeniedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from clinicops.core.logging import audit_logger
from clinicops.models.notification import StaffTaskStatus
from clinicops.services.records import ScopedRecordService
from clinicops.store.base import RecordStore

logger = logging.getLogger(__name__)


class StaffTaskService:
    """Task queue for staff principals."""

    def __init__(self, store: RecordStore):
        self.store = store
        self.records = ScopedRecordService(store)

    def _require_staff(self, ctx: AccessContext) -> None:
        if not ctx.is_staff_or_admin:
            raise AccessDeniedError(f"{ctx.role.value} may not manage staff tasks")

    async def _ensure_staff_member(self, staff_id: str) -> None:
        member = await self.store.find_one(Entity.STAFF_MEMBER, FilterPredicate.where(id=staff_id))
        if member is None:
            raise NotFoundError("Staff member not found")

    async def create(
        self,
        ctx: AccessContext,
        title: str,
        description: str | None = None,
        related_appointment_id: str | None = None,
        assigned_staff_id: str | None = None,
    ) -> Any:
        """Open a task.

        Raises:
            ValidationError: Empty title
            NotFoundError: Unknown appointment or staff member
        """
        self._require_staff(ctx)
        if not title or not title.strip():
            raise ValidationError("title is required")
        if related_appointment_id:
            await self.records.get(Entity.APPOINTMENT, ctx, related_appointment_id)
        if assigned_staff_id:
            await self._ensure_staff_member(assigned_staff_id)

        task = await self.store.insert(
            Entity.TASK,
            {
                "title": title.strip(),
                "description": description,
                "status": StaffTaskStatus.OPEN,
                "related_appointment_id": related_appointment_id,
                "assigned_staff_id": assigned_staff_id,
            },
        )
        self._audit(ctx, "staff_task_create", task.id)
        return task

    async def list(
        self,
        ctx: AccessContext,
        status: StaffTaskStatus | None = None,
        assigned_to_me: bool = False,
    ) -> list[Any]:
        where: dict[str, Any] = {}
        if status:
            where["status"] = status
        if assigned_to_me:
            if not ctx.staff_id:
                return []
            where["assigned_staff_id"] = ctx.staff_id
        return await self.records.find(Entity.TASK, ctx, where or None, order_by="created_at")

    async def assign(self, ctx: AccessContext, task_id: str, staff_id: str) -> Any:
        task = await self.records.get(Entity.TASK, ctx, task_id)
        await self._ensure_staff_member(staff_id)
        updated = await self.store.update(Entity.TASK, task.id, {"assigned_staff_id": staff_id})
        self._audit(ctx, "staff_task_assign", task.id, assigned_staff_id=staff_id)
        return updated

    async def update_status(
        self, ctx: AccessContext, task_id: str, status: StaffTaskStatus | str
    ) -> Any:
        """Move a task along; finished tasks stay finished.

        Raises:
            InvalidTransitionError: Task is already done
        """
        task = await self.records.get(Entity.TASK, ctx, task_id)
        current = StaffTaskStatus(task.status)
        target = StaffTaskStatus(status)
        if current == StaffTaskStatus.DONE:
            raise InvalidTransitionError("Task is already done", current_status=current.value)

        updated = await self.store.update(
            Entity.TASK,
            task.id,
            {"status": target},
            expected={"status": current},
        )
        self._audit(ctx, "staff_task_status", task.id, **{"from": current.value, "to": target.value})
        return updated

    async def open_reconciliation(self, appointment: Any) -> Any | None:
        """Queue manual review of an appointment. Never raises."""
        try:
            task = await self.store.insert(
                Entity.TASK,
                {
                    "title": "Reconcile appointment slot",
                    "description": (
                        f"Appointment {appointment.id} closed a reschedule without an "
                        "original slot to restore. Confirm the correct date and time "
                        "with the patient."
                    ),
                    "status": StaffTaskStatus.OPEN,
                    "related_appointment_id": appointment.id,
                },
            )
        except Exception as e:
            logger.error(
                f"Could not open reconciliation task for appointment {appointment.id}: {e}",
                extra={"appointment_id": appointment.id},
            )
            return None

        logger.info(
            f"Reconciliation task {task.id} opened for appointment {appointment.id}",
            extra={"appointment_id": appointment.id},
        )
        return task

    def _audit(self, ctx: AccessContext, action: str, task_id: str, **metadata: Any) -> None:
        audit_logger.log(
            action=action,
            actor_type=ctx.actor_type,
            actor_id=ctx.user_id,
            entity_type="staff_task",
            entity_id=task_id,
            metadata=metadata or None,
        )
