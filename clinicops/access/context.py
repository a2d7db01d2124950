"""Access context resolution.

An ``AccessContext`` is resolved once per request from the user id and
passed explicitly into every query-policy and lifecycle call. It is never
stored in ambient or global state.
"""

import logging
from dataclasses import dataclass

from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.exceptions import IncompleteProfileError, NotFoundError
from clinicops.models.user import UserRole
from clinicops.store.base import RecordStore

logger = logging.getLogger(__name__)

SYSTEM_PRINCIPAL_ID = "system"


@dataclass(frozen=True)
class AccessContext:
    """Resolved principal with its role-scoped record ids.

    Attributes:
        user_id: Principal (user) id
        role: The principal's single role
        patient_id: Patient record id, set only for patients
        clinician_id: Clinician record id, set only for clinicians
        staff_id: Staff profile id when one exists (informational)
        is_system: True for background jobs acting without a user
    """

    user_id: str
    role: UserRole
    patient_id: str | None = None
    clinician_id: str | None = None
    staff_id: str | None = None
    is_system: bool = False

    def __post_init__(self) -> None:
        if self.role == UserRole.PATIENT:
            if not self.patient_id or self.clinician_id:
                raise ValueError("patient context requires exactly a patient_id")
        elif self.role == UserRole.CLINICIAN:
            if not self.clinician_id or self.patient_id:
                raise ValueError("clinician context requires exactly a clinician_id")
        elif self.patient_id or self.clinician_id:
            raise ValueError(f"{self.role.value} context cannot carry patient/clinician ids")

    @classmethod
    def system(cls) -> "AccessContext":
        """Context used by the scheduler; scoped like an administrator."""
        return cls(user_id=SYSTEM_PRINCIPAL_ID, role=UserRole.ADMIN, is_system=True)

    @property
    def is_patient(self) -> bool:
        return self.role == UserRole.PATIENT

    @property
    def is_clinician(self) -> bool:
        return self.role == UserRole.CLINICIAN

    @property
    def is_staff_or_admin(self) -> bool:
        return self.role in (UserRole.STAFF, UserRole.ADMIN)

    @property
    def actor_type(self) -> str:
        return "system" if self.is_system else self.role.value


class AccessContextResolver:
    """Looks up a principal's role and scoped record id. Never mutates."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def resolve(self, user_id: str) -> AccessContext:
        """Resolve the access context for a user.

        Raises:
            NotFoundError: Unknown or deactivated user
            IncompleteProfileError: Patient/clinician without a profile row
        """
        user = await self.store.find_one(Entity.USER, FilterPredicate.where(id=user_id))
        if user is None or not user.is_active:
            logger.info(f"Access context requested for unknown or inactive user {user_id}")
            raise NotFoundError("Principal not found")

        role = UserRole(user.role)

        if role == UserRole.PATIENT:
            patient = await self.store.find_one(
                Entity.PATIENT, FilterPredicate.where(user_id=user.id)
            )
            if patient is None:
                raise IncompleteProfileError(user.id, role.value)
            return AccessContext(user_id=user.id, role=role, patient_id=patient.id)

        if role == UserRole.CLINICIAN:
            clinician = await self.store.find_one(
                Entity.CLINICIAN, FilterPredicate.where(user_id=user.id)
            )
            if clinician is None:
                raise IncompleteProfileError(user.id, role.value)
            return AccessContext(user_id=user.id, role=role, clinician_id=clinician.id)

        staff = await self.store.find_one(
            Entity.STAFF_MEMBER, FilterPredicate.where(user_id=user.id)
        )
        return AccessContext(
            user_id=user.id,
            role=role,
            staff_id=staff.id if staff else None,
        )
