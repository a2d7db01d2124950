"""Appointment endpoints.

Thin adapter over ``AppointmentLifecycleService``; domain errors are turned
into responses by the application's exception handlers.
"""

from datetime import date, datetime, time

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from clinicops.api.deps import CurrentContext, Lifecycle
from clinicops.models.scheduling import AppointmentStatus

router = APIRouter()


# ============================================================================
# Request/Response Schemas
# ============================================================================


class AppointmentResponse(BaseModel):
    """Appointment response."""

    id: str
    patient_id: str
    clinician_id: str
    service_type: str
    appointment_date: date
    appointment_time: time
    status: str
    reason: str | None
    notes: str | None
    confirmed_at: datetime | None
    auto_confirmed: bool
    cancellation_reason: str | None
    completed_at: datetime | None
    original_date: date | None
    original_time: time | None
    reschedule_requested_by: str | None
    reschedule_reason: str | None
    needs_reconciliation: bool
    version: int
    created_at: datetime

    class Config:
        from_attributes = True


class BookAppointmentRequest(BaseModel):
    """Request to book an appointment.

    ``patient_id`` is only used when staff book on a patient's behalf.
    """

    clinician_id: str
    service_type: str = Field(min_length=1, max_length=100)
    appointment_date: str = Field(description="YYYY-MM-DD")
    appointment_time: str = Field(description="HH:MM, HH:MM:SS or h:MM AM/PM")
    reason: str | None = Field(None, max_length=2000)
    patient_id: str | None = None


class CancelAppointmentRequest(BaseModel):
    """Request to cancel an appointment."""

    reason: str = Field(max_length=2000)


class RescheduleRequest(BaseModel):
    """Patient request to move a confirmed appointment."""

    new_date: str = Field(description="YYYY-MM-DD")
    new_time: str = Field(description="HH:MM, HH:MM:SS or h:MM AM/PM")
    reason: str | None = Field(None, max_length=2000)


class RescheduleDecisionRequest(BaseModel):
    """Clinician decision on a pending reschedule."""

    approved: bool
    notes: str | None = Field(None, max_length=2000)


class CompleteAppointmentRequest(BaseModel):
    """Request to complete an appointment."""

    notes: str | None = Field(None, max_length=5000)


class ConflictCheckResponse(BaseModel):
    """Slot conflict pre-flight response."""

    conflict: bool


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "",
    response_model=list[AppointmentResponse],
)
async def list_appointments(
    ctx: CurrentContext,
    service: Lifecycle,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
) -> list[AppointmentResponse]:
    """List appointments visible to the caller."""
    appointments = await service.list(ctx, status=status_filter, limit=limit)
    return [AppointmentResponse.model_validate(a) for a in appointments]


@router.get(
    "/conflicts",
    response_model=ConflictCheckResponse,
)
async def check_conflict(
    ctx: CurrentContext,
    service: Lifecycle,
    clinician_id: str = Query(...),
    appointment_date: str = Query(..., alias="date"),
    appointment_time: str = Query(..., alias="time"),
    exclude_appointment_id: str | None = Query(None),
) -> ConflictCheckResponse:
    """Check whether a clinician slot is already confirmed."""
    conflict = await service.conflicts.has_conflict(
        clinician_id,
        appointment_date,
        appointment_time,
        exclude_appointment_id=exclude_appointment_id,
    )
    return ConflictCheckResponse(conflict=conflict)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
)
async def get_appointment(
    appointment_id: str,
    ctx: CurrentContext,
    service: Lifecycle,
) -> AppointmentResponse:
    """Get a single appointment."""
    appointment = await service.get(ctx, appointment_id)
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def book_appointment(
    request: BookAppointmentRequest,
    ctx: CurrentContext,
    service: Lifecycle,
) -> AppointmentResponse:
    """Book a pending appointment."""
    appointment = await service.book(
        ctx,
        clinician_id=request.clinician_id,
        service_type=request.service_type,
        appointment_date=request.appointment_date,
        appointment_time=request.appointment_time,
        reason=request.reason,
        patient_id=request.patient_id,
    )
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
)
async def confirm_appointment(
    appointment_id: str,
    ctx: CurrentContext,
    service: Lifecycle,
) -> AppointmentResponse:
    """Confirm a pending appointment."""
    appointment = await service.confirm(ctx, appointment_id)
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
)
async def cancel_appointment(
    appointment_id: str,
    request: CancelAppointmentRequest,
    ctx: CurrentContext,
    service: Lifecycle,
) -> AppointmentResponse:
    """Cancel an appointment with a reason."""
    appointment = await service.cancel(ctx, appointment_id, request.reason)
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
)
async def request_reschedule(
    appointment_id: str,
    request: RescheduleRequest,
    ctx: CurrentContext,
    service: Lifecycle,
) -> AppointmentResponse:
    """Propose a new slot for a confirmed appointment."""
    appointment = await service.request_reschedule(
        ctx,
        appointment_id,
        new_date=request.new_date,
        new_time=request.new_time,
        reason=request.reason,
    )
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/{appointment_id}/reschedule-decision",
    response_model=AppointmentResponse,
)
async def decide_reschedule(
    appointment_id: str,
    request: RescheduleDecisionRequest,
    ctx: CurrentContext,
    service: Lifecycle,
) -> AppointmentResponse:
    """Approve or reject a pending reschedule."""
    appointment = await service.confirm_reschedule(
        ctx,
        appointment_id,
        approved=request.approved,
        notes=request.notes,
    )
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
)
async def complete_appointment(
    appointment_id: str,
    ctx: CurrentContext,
    service: Lifecycle,
    request: CompleteAppointmentRequest | None = None,
) -> AppointmentResponse:
    """Mark a confirmed appointment as completed."""
    appointment = await service.complete(
        ctx,
        appointment_id,
        notes=request.notes if request else None,
    )
    return AppointmentResponse.model_validate(appointment)
