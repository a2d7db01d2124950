"""Clinician weekly schedule endpoints."""

from datetime import datetime, time

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from clinicops.api.deps import CurrentContext, Schedules

router = APIRouter()


class ScheduleWindowResponse(BaseModel):
    """One weekday availability window."""

    id: str
    clinician_id: str
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SaveWindowRequest(BaseModel):
    """Create or replace the window for a weekday.

    ``clinician_id`` is only used when staff edit a clinician's schedule.
    """

    day_of_week: int = Field(ge=0, le=6, description="0 = Monday")
    start_time: str = Field(description="HH:MM, HH:MM:SS or h:MM AM/PM")
    end_time: str = Field(description="HH:MM, HH:MM:SS or h:MM AM/PM")
    is_available: bool = True
    clinician_id: str | None = None


class AvailabilityRequest(BaseModel):
    is_available: bool


@router.get(
    "",
    response_model=list[ScheduleWindowResponse],
)
async def list_windows(
    ctx: CurrentContext,
    service: Schedules,
    clinician_id: str | None = Query(None),
) -> list[ScheduleWindowResponse]:
    """Windows visible to the caller; clinicians see their own."""
    windows = await service.list_windows(ctx, clinician_id=clinician_id)
    return [ScheduleWindowResponse.model_validate(w) for w in windows]


@router.put(
    "",
    response_model=ScheduleWindowResponse,
)
async def save_window(
    request: SaveWindowRequest,
    ctx: CurrentContext,
    service: Schedules,
) -> ScheduleWindowResponse:
    window = await service.save_window(ctx, **request.model_dump())
    return ScheduleWindowResponse.model_validate(window)


@router.post(
    "/{window_id}/availability",
    response_model=ScheduleWindowResponse,
)
async def set_availability(
    window_id: str,
    request: AvailabilityRequest,
    ctx: CurrentContext,
    service: Schedules,
) -> ScheduleWindowResponse:
    window = await service.set_availability(ctx, window_id, request.is_available)
    return ScheduleWindowResponse.model_validate(window)


@router.delete(
    "/{window_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_window(
    window_id: str,
    ctx: CurrentContext,
    service: Schedules,
) -> None:
    await service.delete_window(ctx, window_id)
