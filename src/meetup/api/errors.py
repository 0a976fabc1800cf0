"""Translation of domain errors into HTTP responses.

Every MeetingError carries an ErrorKind; the kind alone decides the status
code. The body is ``{"detail": <message>, "kind": <kind>}``.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.meetup.meetings.errors import ErrorKind, MeetingError

logger = structlog.get_logger(__name__)

STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.GONE: status.HTTP_410_GONE,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.REJECTED_PRECONDITION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PAST_DEADLINE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def meeting_error_handler(request: Request, exc: MeetingError) -> JSONResponse:
    status_code = STATUS_FOR_KIND[exc.kind]
    if exc.kind is ErrorKind.INTERNAL:
        # Store and geocoder internals stay out of the response body
        logger.error("api.internal_error", path=request.url.path, error=str(exc))
        detail = "Internal error"
    else:
        detail = str(exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "kind": exc.kind.value},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the MeetingError handler on ``app``."""
    app.add_exception_handler(MeetingError, meeting_error_handler)
