"""Error taxonomy shared by the access, lifecycle and scheduling layers."""


class ClinicOpsError(Exception):
    """Base class for domain errors surfaced to callers."""

    pass


class NotFoundError(ClinicOpsError):
    """Unknown principal or record, or a record outside the caller's scope."""

    pass


class IncompleteProfileError(ClinicOpsError):
    """Role requires a patient/clinician profile that does not exist yet.

    Callers should route the principal to onboarding. This is not an
    authorization failure.
    """

    def __init__(self, user_id: str, role: str):
        self.user_id = user_id
        self.role = role
        super().__init__(f"User {user_id} has no {role} profile")


class AccessDeniedError(ClinicOpsError):
    """Entity/role combination is not in the access table, or the role may not perform the action."""

    pass


class ValidationError(ClinicOpsError):
    """Missing or malformed input (reason, date, time)."""

    pass


class InvalidTransitionError(ClinicOpsError):
    """Lifecycle event is not legal from the current state."""

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class ConflictError(ClinicOpsError):
    """A confirmed appointment already holds the requested slot."""

    pass


class StaleStateError(ClinicOpsError):
    """Optimistic concurrency check failed; re-fetch and retry."""

    pass
