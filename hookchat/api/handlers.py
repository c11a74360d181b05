"""Map service exceptions to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..errors import (
    HookChatError,
    ValidationError,
    NotFoundError,
    AttachmentRejectedError,
    InvalidTransitionError,
    DispatchError,
    DispatchTimeout,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


def status_code_for(error: HookChatError) -> int:
    """HTTP status code for a service exception."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (AttachmentRejectedError, InvalidTransitionError)):
        return 409
    if isinstance(error, DispatchTimeout):
        return 504
    if isinstance(error, DispatchError):
        return 502
    return 500


async def hookchat_error_handler(request: Request, exc: HookChatError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    """Install the service exception handler on ``app``."""
    app.add_exception_handler(HookChatError, hookchat_error_handler)
