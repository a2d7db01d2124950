"""Translation of domain errors into HTTP responses.

Records outside the caller's scope and entities the caller's role may not
read produce the same 404 body, so responses never reveal whether a record
exists.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from clinicops.core.config import settings
from clinicops.core.exceptions import (
    AccessDeniedError,
    ConflictError,
    IncompleteProfileError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "Not available"


async def not_available_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info(
        f"{request.method} {request.url.path} -> 404 ({type(exc).__name__}: {exc})",
        extra={"request_id": request.headers.get("X-Request-ID")},
    )
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": NOT_AVAILABLE},
    )


async def conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    content: dict = {"detail": str(exc)}
    if isinstance(exc, InvalidTransitionError) and exc.current_status:
        content["current_status"] = exc.current_status
    if isinstance(exc, StaleStateError):
        content["retry"] = True
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=content)


async def validation_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


async def onboarding_handler(request: Request, exc: IncompleteProfileError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_428_PRECONDITION_REQUIRED,
        content={"detail": "onboarding_required", "role": exc.role},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(
        f"Unhandled exception: {exc}",
        extra={"request_id": request.headers.get("X-Request-ID")},
    )

    # Don't expose internal errors in production
    if settings.is_prod:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFoundError, not_available_handler)
    app.add_exception_handler(AccessDeniedError, not_available_handler)
    app.add_exception_handler(ConflictError, conflict_handler)
    app.add_exception_handler(StaleStateError, conflict_handler)
    app.add_exception_handler(InvalidTransitionError, conflict_handler)
    app.add_exception_handler(ValidationError, validation_handler)
    app.add_exception_handler(IncompleteProfileError, onboarding_handler)
    app.add_exception_handler(Exception, global_exception_handler)
