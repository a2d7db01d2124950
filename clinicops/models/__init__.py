"""Database models for ClinicOps."""

from clinicops.models.billing import Payment, PaymentStatus
from clinicops.models.clinical import (
    LabTest,
    LabTestPriority,
    LabTestStatus,
    MedicalRecord,
    MedicalRecordStatus,
    Prescription,
    PrescriptionStatus,
)
from clinicops.models.messaging import Message, MessageThread
from clinicops.models.notification import (
    Notification,
    NotificationPriority,
    NotificationType,
    StaffTask,
    StaffTaskStatus,
)
from clinicops.models.scheduling import (
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    ClinicianSchedule,
)
from clinicops.models.user import Clinician, Patient, StaffMember, User, UserRole

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Clinician",
    "ClinicianSchedule",
    "LabTest",
    "LabTestPriority",
    "LabTestStatus",
    "MedicalRecord",
    "MedicalRecordStatus",
    "Message",
    "MessageThread",
    "Notification",
    "NotificationPriority",
    "NotificationType",
    "Patient",
    "Payment",
    "PaymentStatus",
    "Prescription",
    "PrescriptionStatus",
    "StaffMember",
    "StaffTask",
    "StaffTaskStatus",
    "TERMINAL_STATUSES",
    "User",
    "UserRole",
]
