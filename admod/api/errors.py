"""Translation of core errors into HTTP responses."""
import logging
from typing import Any, Dict, Optional, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from admod.errors import (
    AuthenticationRequired,
    Forbidden,
    InsufficientPermission,
    InsufficientRole,
    InvalidCredential,
    InvalidTransition,
    ModerationError,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific class first; the first isinstance match wins
STATUS_BY_ERROR: Dict[Type[ModerationError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    AuthenticationRequired: status.HTTP_401_UNAUTHORIZED,
    InvalidCredential: status.HTTP_401_UNAUTHORIZED,
    Forbidden: status.HTTP_403_FORBIDDEN,
    InsufficientRole: status.HTTP_403_FORBIDDEN,
    InsufficientPermission: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: ModerationError) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def error_payload(code: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details}}


async def handle_moderation_error(request: Request, exc: ModerationError) -> JSONResponse:
    status_code = status_for(exc)
    logger.warning("[%s] path=%s message=%s", exc.code, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content=error_payload(exc.code, exc.message, exc.details),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ModerationError, handle_moderation_error)
