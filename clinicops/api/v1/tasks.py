"""Staff task queue endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from clinicops.api.deps import CurrentContext, Tasks
from clinicops.models.notification import StaffTaskStatus

router = APIRouter()


class StaffTaskResponse(BaseModel):
    """Staff task response."""

    id: str
    title: str
    description: str | None
    status: str
    assigned_staff_id: str | None
    related_appointment_id: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class CreateTaskRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    related_appointment_id: str | None = None
    assigned_staff_id: str | None = None


class AssignTaskRequest(BaseModel):
    staff_id: str


class TaskStatusRequest(BaseModel):
    status: StaffTaskStatus


@router.get(
    "",
    response_model=list[StaffTaskResponse],
)
async def list_tasks(
    ctx: CurrentContext,
    service: Tasks,
    status_filter: StaffTaskStatus | None = Query(None, alias="status"),
    mine: bool = Query(False),
) -> list[StaffTaskResponse]:
    tasks = await service.list(ctx, status=status_filter, assigned_to_me=mine)
    return [StaffTaskResponse.model_validate(t) for t in tasks]


@router.post(
    "",
    response_model=StaffTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_task(
    request: CreateTaskRequest,
    ctx: CurrentContext,
    service: Tasks,
) -> StaffTaskResponse:
    task = await service.create(ctx, **request.model_dump())
    return StaffTaskResponse.model_validate(task)


@router.post(
    "/{task_id}/assign",
    response_model=StaffTaskResponse,
)
async def assign_task(
    task_id: str,
    request: AssignTaskRequest,
    ctx: CurrentContext,
    service: Tasks,
) -> StaffTaskResponse:
    task = await service.assign(ctx, task_id, request.staff_id)
    return StaffTaskResponse.model_validate(task)


@router.post(
    "/{task_id}/status",
    response_model=StaffTaskResponse,
)
async def update_task_status(
    task_id: str,
    request: TaskStatusRequest,
    ctx: CurrentContext,
    service: Tasks,
) -> StaffTaskResponse:
    task = await service.update_status(ctx, task_id, request.status)
    return StaffTaskResponse.model_validate(task)
