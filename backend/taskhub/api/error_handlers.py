"""Error Handlers — render every failure as the TaskHub error envelope.

Invariants:
    - Every error body has the shape {"error": {code, message, category, severity, ...}}
    - ConflictError bodies carry current_version when the stored version is known,
      so a client can re-read and retry its PATCH
    - 503 responses (store or queue down) carry Retry-After
    - Request validation failures are 400 VALIDATION_ERROR with one detail per field,
      named as the client sent it (no "query"/"body" location prefix)
    - Unhandled exceptions become 500 INTERNAL_ERROR without internal details
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskhub.core.errors import (
    ConflictError, ErrorCategory, ErrorSeverity, TaskHubError, UpstreamError,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5
_LOCATION_PREFIXES = {"query", "body", "path", "header"}


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskHubError, _taskhub_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(Exception, _unhandled_error)


async def _taskhub_error(request: Request, exc: TaskHubError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "task_id": exc.context.task_id,
        },
    )
    body = exc.to_response()
    headers = None
    if isinstance(exc, ConflictError):
        current = (exc.context.debug_info or {}).get("current_version")
        if current is not None:
            body["error"]["current_version"] = current
    if isinstance(exc, UpstreamError):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(status_code=exc.http_status, content=body, headers=headers)


async def _request_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {"field": _field_name(e["loc"]), "message": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]
    logger.warning(
        f"Rejected {request.method} {request.url.path}: "
        f"{', '.join(d['field'] for d in details)}",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": ErrorCategory.VALIDATION.value,
                "severity": ErrorSeverity.ERROR.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "context": {
                    "task_id": request.path_params.get("task_id"),
                    "field": details[0]["field"] if details else None,
                },
                "details": details,
            },
        },
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra={"error_code": "INTERNAL_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": ErrorCategory.INTERNAL.value,
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )


def _field_name(loc) -> str:
    parts = [str(p) for p in loc]
    if len(parts) > 1 and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts)
