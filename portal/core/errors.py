"""Translate access errors raised below the routers into HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from portal.core.access import AccessError, Forbidden, InconsistentPrimaryState, InvalidMembership

logger = logging.getLogger(__name__)


async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    """Keep the ``{"detail": ...}`` shape FastAPI uses for HTTPException."""
    if isinstance(exc, Forbidden):
        code, detail = status.HTTP_403_FORBIDDEN, str(exc) or "Permission denied"
    elif isinstance(exc, InvalidMembership):
        code, detail = status.HTTP_404_NOT_FOUND, "Membership not found for this user"
    elif isinstance(exc, InconsistentPrimaryState):
        code, detail = status.HTTP_409_CONFLICT, str(exc)
    else:
        code, detail = status.HTTP_403_FORBIDDEN, "Permission denied"

    logger.info(
        "%s %s rejected with %d: %s",
        request.method,
        request.url.path,
        code,
        type(exc).__name__,
    )
    return JSONResponse(status_code=code, content={"detail": detail})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccessError, access_error_handler)  # type: ignore[arg-type]
