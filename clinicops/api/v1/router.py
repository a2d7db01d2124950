"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from clinicops.api.v1 import (
    appointments,
    health,
    messages,
    notifications,
    patients,
    records,
    schedules,
    tasks,
)

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Appointment lifecycle
api_router.include_router(
    appointments.router,
    prefix="/appointments",
    tags=["appointments"],
)

# Clinical records and payments
api_router.include_router(
    records.router,
    prefix="/records",
    tags=["records"],
)

# Patients
api_router.include_router(
    patients.router,
    prefix="/patients",
    tags=["patients"],
)

# Notifications
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["notifications"],
)

# Clinician schedules
api_router.include_router(
    schedules.router,
    prefix="/schedules",
    tags=["schedules"],
)

# Staff tasks
api_router.include_router(
    tasks.router,
    prefix="/tasks",
    tags=["tasks"],
)

# Messaging
api_router.include_router(
    messages.router,
    prefix="/messages",
    tags=["messages"],
)
