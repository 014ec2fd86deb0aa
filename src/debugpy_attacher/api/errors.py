"""Error handlers for API."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from debugpy_attacher.core.exceptions import (
    AttachConnectionRefusedError,
    AttachError,
    AttacherError,
    AttachTimeoutError,
    LaunchConfigError,
    OtherUserProcessError,
    PortLockedError,
    ProcessNotFoundError,
)

logger = logging.getLogger(__name__)

# Subclasses without an entry use their parent's status
EXCEPTION_STATUS_MAP: dict[type[AttacherError], int] = {
    ProcessNotFoundError: 404,
    OtherUserProcessError: 403,
    PortLockedError: 409,
    AttachTimeoutError: 504,
    AttachConnectionRefusedError: 502,
    AttachError: 502,
    LaunchConfigError: 400,
}


def status_for(exc: AttacherError) -> int:
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_MAP:
            return EXCEPTION_STATUS_MAP[cls]
    return 500


def make_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Error envelope shared by every endpoint."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": {"code": code, "message": message, "details": details or {}},
            "meta": {
                "request_id": str(uuid.uuid4()),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        },
    )


async def attacher_error_handler(request: Request, exc: AttacherError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.warning if status_code >= 500 else logger.info
    log(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return make_error_response(exc.code, exc.message, exc.details, status_code)


async def invalid_request_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return make_error_response("INVALID_REQUEST", str(exc), status_code=400)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error in {request.method} {request.url.path}: {exc}")
    return make_error_response(
        "INTERNAL_ERROR",
        "An unexpected error occurred",
        {"error": str(exc)},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all error handlers with the app."""
    app.add_exception_handler(AttacherError, attacher_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, invalid_request_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
