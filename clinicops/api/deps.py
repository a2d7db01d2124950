"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinicops.access.context import AccessContext, AccessContextResolver
from clinicops.core.config import settings
from clinicops.core.exceptions import NotFoundError
from clinicops.core.security import decode_access_token
from clinicops.db.session import AsyncSessionLocal, get_db
from clinicops.services.clinical import ClinicalRecordService
from clinicops.services.lifecycle import AppointmentLifecycleService
from clinicops.services.messaging import MessagingService
from clinicops.services.notifications import (
    DatabaseNotifier,
    NotificationDispatcher,
    NotificationService,
    Notifier,
)
from clinicops.services.records import ScopedRecordService
from clinicops.services.schedules import ClinicianScheduleService
from clinicops.services.staff_tasks import StaffTaskService
from clinicops.store.base import RecordStore
from clinicops.store.sqlalchemy import SqlAlchemyRecordStore

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> dict | None:
    """Extract and decode the current JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Decoded token payload or None
    """
    if not credentials:
        return None

    payload = decode_access_token(credentials.credentials)
    return payload


async def get_store(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> RecordStore:
    """Request-scoped record store over the request's session."""
    return SqlAlchemyRecordStore(session)


def get_notifier() -> Notifier:
    """Notifier writing in-app notifications in their own session."""
    return DatabaseNotifier(AsyncSessionLocal, timeout=settings.notification_timeout_seconds)


async def get_access_context(
    token: Annotated[dict | None, Depends(get_current_token)],
    store: Annotated[RecordStore, Depends(get_store)],
) -> AccessContext:
    """Resolve the caller's access context from the bearer token.

    The role always comes from the record store, never from token claims.

    Raises:
        HTTPException: If not authenticated or the principal is unknown
        IncompleteProfileError: Handled as 428 onboarding_required
    """
    if not token or not token.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await AccessContextResolver(store).resolve(token["sub"])
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_dispatcher(
    notifier: Annotated[Notifier, Depends(get_notifier)],
    store: Annotated[RecordStore, Depends(get_store)],
) -> NotificationDispatcher:
    return NotificationDispatcher(notifier, store)


def get_lifecycle_service(
    store: Annotated[RecordStore, Depends(get_store)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
) -> AppointmentLifecycleService:
    return AppointmentLifecycleService(store, dispatcher)


def get_clinical_service(
    store: Annotated[RecordStore, Depends(get_store)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
) -> ClinicalRecordService:
    return ClinicalRecordService(store, dispatcher)


def get_records_service(
    store: Annotated[RecordStore, Depends(get_store)],
) -> ScopedRecordService:
    return ScopedRecordService(store)


def get_notification_service(
    store: Annotated[RecordStore, Depends(get_store)],
) -> NotificationService:
    return NotificationService(store)


def get_schedule_service(
    store: Annotated[RecordStore, Depends(get_store)],
) -> ClinicianScheduleService:
    return ClinicianScheduleService(store)


def get_task_service(
    store: Annotated[RecordStore, Depends(get_store)],
) -> StaffTaskService:
    return StaffTaskService(store)


def get_messaging_service(
    store: Annotated[RecordStore, Depends(get_store)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
) -> MessagingService:
    return MessagingService(store, dispatcher)


# Type aliases for cleaner dependency injection
CurrentContext = Annotated[AccessContext, Depends(get_access_context)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Lifecycle = Annotated[AppointmentLifecycleService, Depends(get_lifecycle_service)]
Clinical = Annotated[ClinicalRecordService, Depends(get_clinical_service)]
Records = Annotated[ScopedRecordService, Depends(get_records_service)]
Notifications = Annotated[NotificationService, Depends(get_notification_service)]
Schedules = Annotated[ClinicianScheduleService, Depends(get_schedule_service)]
Tasks = Annotated[StaffTaskService, Depends(get_task_service)]
Messaging = Annotated[MessagingService, Depends(get_messaging_service)]
