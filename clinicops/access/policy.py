"""Role-scoped query policy.

Single table deciding, per entity and role, the predicate every read must be
intersected with. Combinations missing from the table deny all rows.
"""

from collections.abc import Callable

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate, Subselect
from clinicops.models.user import UserRole

ScopeRule = Callable[[AccessContext], FilterPredicate]


def _unfiltered(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.allow_all()


def _own_patient_rows(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.where(patient_id=ctx.patient_id)


def _own_clinician_rows(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.where(clinician_id=ctx.clinician_id)


def _own_notifications(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.where(user_id=ctx.user_id)


def _patient_payments(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.where(**{"appointment.patient_id": ctx.patient_id})


def _clinician_payments(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.where(**{"appointment.clinician_id": ctx.clinician_id})


def _patient_messages(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.where(**{"thread.patient_id": ctx.patient_id})


def _clinician_messages(ctx: AccessContext) -> FilterPredicate:
    return FilterPredicate.where(**{"thread.clinician_id": ctx.clinician_id})


def _clinician_roster(ctx: AccessContext) -> FilterPredicate:
    # Patients appearing in the clinician's own appointments
    return FilterPredicate.where(
        id=Subselect(
            entity=Entity.APPOINTMENT,
            field="patient_id",
            where=FilterPredicate.where(clinician_id=ctx.clinician_id),
        )
    )


_CLINICAL_DOCUMENT_RULES: dict[UserRole, ScopeRule] = {
    UserRole.PATIENT: _own_patient_rows,
    UserRole.CLINICIAN: _own_clinician_rows,
    UserRole.STAFF: _unfiltered,
    UserRole.ADMIN: _unfiltered,
}

# Entity -> role -> predicate factory
ACCESS_RULES: dict[Entity, dict[UserRole, ScopeRule]] = {
    Entity.APPOINTMENT: _CLINICAL_DOCUMENT_RULES,
    Entity.MEDICAL_RECORD: _CLINICAL_DOCUMENT_RULES,
    Entity.LAB_TEST: _CLINICAL_DOCUMENT_RULES,
    Entity.PRESCRIPTION: _CLINICAL_DOCUMENT_RULES,
    Entity.PAYMENT: {
        UserRole.PATIENT: _patient_payments,
        UserRole.CLINICIAN: _clinician_payments,
        UserRole.STAFF: _unfiltered,
        UserRole.ADMIN: _unfiltered,
    },
    # Patients read their own record through the profile path instead
    Entity.PATIENT: {
        UserRole.CLINICIAN: _clinician_roster,
        UserRole.STAFF: _unfiltered,
        UserRole.ADMIN: _unfiltered,
    },
    Entity.NOTIFICATION: {
        UserRole.PATIENT: _own_notifications,
        UserRole.CLINICIAN: _own_notifications,
        UserRole.STAFF: _own_notifications,
        UserRole.ADMIN: _own_notifications,
    },
    # Conversations stay between their two participants
    Entity.MESSAGE_THREAD: {
        UserRole.PATIENT: _own_patient_rows,
        UserRole.CLINICIAN: _own_clinician_rows,
    },
    Entity.MESSAGE: {
        UserRole.PATIENT: _patient_messages,
        UserRole.CLINICIAN: _clinician_messages,
    },
    Entity.SCHEDULE: {
        UserRole.CLINICIAN: _own_clinician_rows,
        UserRole.STAFF: _unfiltered,
        UserRole.ADMIN: _unfiltered,
    },
    Entity.TASK: {
        UserRole.STAFF: _unfiltered,
        UserRole.ADMIN: _unfiltered,
    },
}


def scope(entity: Entity, context: AccessContext) -> FilterPredicate:
    """Return the predicate to intersect with any read of ``entity``.

    Args:
        entity: Entity being read
        context: Resolved access context of the caller

    Returns:
        FilterPredicate; deny-all when the combination is not allowed
    """
    rules = ACCESS_RULES.get(entity)
    if rules is None:
        return FilterPredicate.deny_all(f"{entity.value} is not readable through the policy")

    rule = rules.get(context.role)
    if rule is None:
        return FilterPredicate.deny_all(
            f"{context.role.value} may not read {entity.value}"
        )

    return rule(context)


def can_read(entity: Entity, context: AccessContext) -> bool:
    """Check whether the role has any read access to the entity."""
    return not scope(entity, context).denied
