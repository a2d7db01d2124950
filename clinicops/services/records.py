"""Scoped read seam.

Every read of a clinical entity made on behalf of a principal goes through
``ScopedRecordService`` so the role scope is always intersected with the
caller's own filter.
"""

import logging
from collections.abc import Mapping
from typing import Any

from clinicops.access.context import AccessContext
from clinicops.access.policy import scope
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.exceptions import AccessDeniedError, NotFoundError
from clinicops.store.base import RecordStore

logger = logging.getLogger(__name__)


class ScopedRecordService:
    """Reads records through the role-scoped query policy."""

    def __init__(self, store: RecordStore):
        self.store = store

    def scoped(
        self,
        entity: Entity,
        ctx: AccessContext,
        where: FilterPredicate | Mapping[str, Any] | None = None,
    ) -> FilterPredicate:
        """Intersect the caller filter with the role scope.

        Raises:
            AccessDeniedError: If the role may not read the entity at all
        """
        predicate = scope(entity, ctx)
        if predicate.denied:
            logger.info(
                f"Read of {entity.value} denied for {ctx.role.value}: {predicate.reason}",
                extra={"user_id": ctx.user_id},
            )
            raise AccessDeniedError(predicate.reason or "Not available")
        return predicate.intersect(where)

    async def find(
        self,
        entity: Entity,
        ctx: AccessContext,
        where: FilterPredicate | Mapping[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Any]:
        """List rows of ``entity`` visible to ``ctx`` that also match ``where``."""
        return await self.store.find(
            entity, self.scoped(entity, ctx, where), order_by=order_by, limit=limit
        )

    async def get(self, entity: Entity, ctx: AccessContext, record_id: str) -> Any:
        """Fetch one row by id.

        Rows outside the caller's scope are reported exactly like missing
        rows.

        Raises:
            NotFoundError: Missing or out-of-scope record
            AccessDeniedError: If the role may not read the entity at all
        """
        record = await self.store.find_one(
            entity, self.scoped(entity, ctx, {"id": record_id})
        )
        if record is None:
            raise NotFoundError(f"{entity.value} {record_id} not found")
        return record

    async def patient_roster(self, ctx: AccessContext) -> list[Any]:
        """Patients visible to the caller (a clinician's own patients)."""
        return await self.find(Entity.PATIENT, ctx, order_by="created_at")

    async def own_profile(self, ctx: AccessContext) -> Any:
        """Return the caller's own role profile row.

        Raises:
            NotFoundError: If the caller has no profile
        """
        if ctx.patient_id:
            entity, profile_id = Entity.PATIENT, ctx.patient_id
        elif ctx.clinician_id:
            entity, profile_id = Entity.CLINICIAN, ctx.clinician_id
        elif ctx.staff_id:
            entity, profile_id = Entity.STAFF_MEMBER, ctx.staff_id
        else:
            raise NotFoundError("No profile for this principal")

        profile = await self.store.find_one(entity, FilterPredicate.where(id=profile_id))
        if profile is None:
            raise NotFoundError("No profile for this principal")
        return profile
