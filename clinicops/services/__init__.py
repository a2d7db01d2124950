"""Business logic services."""

from clinicops.services.auto_confirmation import AutoConfirmationScheduler, TickResult
from clinicops.services.clinical import ClinicalRecordService
from clinicops.services.conflicts import ConflictDetector
from clinicops.services.lifecycle import AppointmentLifecycleService, AutoConfirmOutcome
from clinicops.services.messaging import MessagingService
from clinicops.services.notifications import (
    DatabaseNotifier,
    NotificationAck,
    NotificationDispatcher,
    NotificationPayload,
    NotificationService,
    Notifier,
)
from clinicops.services.records import ScopedRecordService
from clinicops.services.schedules import ClinicianScheduleService
from clinicops.services.staff_tasks import StaffTaskService

__all__ = [
    "AppointmentLifecycleService",
    "AutoConfirmOutcome",
    "AutoConfirmationScheduler",
    "ClinicalRecordService",
    "ClinicianScheduleService",
    "ConflictDetector",
    "DatabaseNotifier",
    "MessagingService",
    "NotificationAck",
    "NotificationDispatcher",
    "NotificationPayload",
    "NotificationService",
    "Notifier",
    "ScopedRecordService",
    "StaffTaskService",
    "TickResult",
]
