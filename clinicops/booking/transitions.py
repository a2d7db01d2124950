"""Appointment lifecycle transition rules.

Pure table of which events may move an appointment out of which states,
and which actors may trigger them. No I/O happens here; the lifecycle
service consults these rules before writing.
"""

from dataclasses import dataclass
from enum import Enum

from clinicops.core.exceptions import AccessDeniedError, InvalidTransitionError
from clinicops.models.scheduling import AppointmentStatus


class BookingEvent(str, Enum):
    """Events that drive the appointment state machine."""

    CONFIRM = "confirm"
    AUTO_CONFIRM = "auto_confirm"
    CANCEL = "cancel"
    REQUEST_RESCHEDULE = "request_reschedule"
    APPROVE_RESCHEDULE = "approve_reschedule"
    REJECT_RESCHEDULE = "reject_reschedule"
    COMPLETE = "complete"


class Actor(str, Enum):
    """Who triggers an event. Mirrors user roles plus the scheduler."""

    PATIENT = "patient"
    CLINICIAN = "clinician"
    STAFF = "staff"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class TransitionRule:
    """One row of the transition table.

    Attributes:
        sources: States the event may be applied in
        target: Resulting state
        actors: Actors allowed to trigger the event
    """

    sources: frozenset[AppointmentStatus]
    target: AppointmentStatus
    actors: frozenset[Actor]


TRANSITIONS: dict[BookingEvent, TransitionRule] = {
    BookingEvent.CONFIRM: TransitionRule(
        sources=frozenset({AppointmentStatus.PENDING}),
        target=AppointmentStatus.CONFIRMED,
        actors=frozenset({Actor.CLINICIAN, Actor.STAFF, Actor.ADMIN}),
    ),
    BookingEvent.AUTO_CONFIRM: TransitionRule(
        sources=frozenset({AppointmentStatus.PENDING}),
        target=AppointmentStatus.CONFIRMED,
        actors=frozenset({Actor.SYSTEM}),
    ),
    BookingEvent.CANCEL: TransitionRule(
        sources=frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}),
        target=AppointmentStatus.CANCELLED,
        actors=frozenset({Actor.PATIENT, Actor.STAFF, Actor.ADMIN}),
    ),
    BookingEvent.REQUEST_RESCHEDULE: TransitionRule(
        sources=frozenset({AppointmentStatus.CONFIRMED}),
        target=AppointmentStatus.PENDING_RESCHEDULE_CONFIRMATION,
        actors=frozenset({Actor.PATIENT}),
    ),
    BookingEvent.APPROVE_RESCHEDULE: TransitionRule(
        sources=frozenset({AppointmentStatus.PENDING_RESCHEDULE_CONFIRMATION}),
        target=AppointmentStatus.CONFIRMED,
        actors=frozenset({Actor.CLINICIAN}),
    ),
    BookingEvent.REJECT_RESCHEDULE: TransitionRule(
        sources=frozenset({AppointmentStatus.PENDING_RESCHEDULE_CONFIRMATION}),
        target=AppointmentStatus.CONFIRMED,
        actors=frozenset({Actor.CLINICIAN}),
    ),
    BookingEvent.COMPLETE: TransitionRule(
        sources=frozenset({AppointmentStatus.CONFIRMED}),
        target=AppointmentStatus.COMPLETED,
        actors=frozenset({Actor.CLINICIAN}),
    ),
}


def can_transition(
    event: BookingEvent,
    current_status: AppointmentStatus | str,
    actor: Actor | str,
) -> bool:
    """Check whether ``actor`` may apply ``event`` in ``current_status``.

    Examples:
        >>> can_transition(BookingEvent.CONFIRM, "pending", "clinician")
        True
        >>> can_transition(BookingEvent.CONFIRM, "pending", "patient")
        False
        >>> can_transition(BookingEvent.CANCEL, "completed", "staff")
        False
    """
    rule = TRANSITIONS[event]
    return (
        AppointmentStatus(current_status) in rule.sources
        and Actor(actor) in rule.actors
    )


def check_transition(
    event: BookingEvent,
    current_status: AppointmentStatus | str,
    actor: Actor | str,
) -> AppointmentStatus:
    """Validate a transition and return its target state.

    Raises:
        AccessDeniedError: If the actor may never apply the event
        InvalidTransitionError: If the event is not legal from the current state
    """
    rule = TRANSITIONS[event]
    status = AppointmentStatus(current_status)
    actor = Actor(actor)

    if actor not in rule.actors:
        raise AccessDeniedError(f"{actor.value} may not {event.value} an appointment")

    if status not in rule.sources:
        allowed = ", ".join(sorted(s.value for s in rule.sources))
        raise InvalidTransitionError(
            f"Cannot {event.value} an appointment that is {status.value} "
            f"(allowed from: {allowed})",
            current_status=status.value,
        )

    return rule.target
