"""Map TaskGate errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskgate.engine.errors import (
    AuthenticationFailure,
    AuthorizationFailure,
    ConflictError,
    NotFound,
    TaskGateError,
    TenantContextMissing,
    ValidationFailure,
)

logger = logging.getLogger("taskgate.api")

STATUS_CODES: list[tuple[type[TaskGateError], int]] = [
    (AuthenticationFailure, 401),
    (AuthorizationFailure, 403),
    (ValidationFailure, 400),
    (TenantContextMissing, 400),
    (NotFound, 404),
    (ConflictError, 409),
]


def status_code_for(exc: TaskGateError) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def taskgate_error_handler(request: Request, exc: TaskGateError) -> JSONResponse:
    status_code = status_code_for(exc)
    content = {"detail": exc.message, "code": exc.code}

    if isinstance(exc, AuthenticationFailure):
        # Reason stays in the logs only
        logger.info(f"{request.method} {request.url.path} -> 401 ({exc.reason.value})")
    elif isinstance(exc, ValidationFailure) and exc.field:
        content["field"] = exc.field
    elif status_code == 500:
        logger.error(f"Unmapped TaskGate error on {request.url.path}: {exc.code}: {exc.message}")

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskGateError, taskgate_error_handler)
