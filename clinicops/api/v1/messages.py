"""Patient and clinician messaging endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from clinicops.api.deps import CurrentContext, Messaging
from clinicops.services.messaging import MAX_MESSAGE_LENGTH

router = APIRouter()


class ThreadResponse(BaseModel):
    """Message thread response."""

    id: str
    patient_id: str
    clinician_id: str
    appointment_id: str | None
    subject: str | None
    last_message_at: datetime | None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    """Message response."""

    id: str
    thread_id: str
    sender_user_id: str
    recipient_user_id: str
    body: str
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class OpenThreadRequest(BaseModel):
    """Open a thread with a clinician (patients) or a patient (clinicians)."""

    counterpart_id: str
    appointment_id: str | None = None
    subject: str | None = Field(None, max_length=255)


class SendMessageRequest(BaseModel):
    body: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class MarkReadResponse(BaseModel):
    updated: int


@router.get(
    "/threads",
    response_model=list[ThreadResponse],
)
async def list_threads(
    ctx: CurrentContext,
    service: Messaging,
) -> list[ThreadResponse]:
    """The caller's active threads, most recent activity first."""
    threads = await service.list_threads(ctx)
    return [ThreadResponse.model_validate(t) for t in threads]


@router.post(
    "/threads",
    response_model=ThreadResponse,
)
async def open_thread(
    request: OpenThreadRequest,
    ctx: CurrentContext,
    service: Messaging,
) -> ThreadResponse:
    thread = await service.open_thread(ctx, **request.model_dump())
    return ThreadResponse.model_validate(thread)


@router.get("/unread")
async def unread_counts(
    ctx: CurrentContext,
    service: Messaging,
) -> dict[str, int]:
    """Unread message counts keyed by thread id."""
    return await service.unread_counts(ctx)


@router.get(
    "/threads/{thread_id}/messages",
    response_model=list[MessageResponse],
)
async def list_messages(
    thread_id: str,
    ctx: CurrentContext,
    service: Messaging,
    limit: int | None = Query(None, ge=1, le=500),
) -> list[MessageResponse]:
    messages = await service.messages(ctx, thread_id, limit=limit)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/threads/{thread_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    thread_id: str,
    request: SendMessageRequest,
    ctx: CurrentContext,
    service: Messaging,
) -> MessageResponse:
    message = await service.send(ctx, thread_id, request.body)
    return MessageResponse.model_validate(message)


@router.post(
    "/threads/{thread_id}/read",
    response_model=MarkReadResponse,
)
async def mark_thread_read(
    thread_id: str,
    ctx: CurrentContext,
    service: Messaging,
) -> MarkReadResponse:
    return MarkReadResponse(updated=await service.mark_read(ctx, thread_id))
