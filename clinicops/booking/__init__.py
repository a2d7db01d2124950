"""Appointment lifecycle rules."""

from clinicops.booking.transitions import (
    TRANSITIONS,
    Actor,
    BookingEvent,
    TransitionRule,
    can_transition,
    check_transition,
)

__all__ = [
    "TRANSITIONS",
    "Actor",
    "BookingEvent",
    "TransitionRule",
    "can_transition",
    "check_transition",
]
