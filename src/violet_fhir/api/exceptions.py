"""Exception handlers rendering errors per path family.

Protocol paths answer with a FHIR ``OperationOutcome``; every other path
answers with ``{"error": {"message", "code", "statusCode"}}``.
"""

from typing import Any, Dict, Optional, cast

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from violet_fhir.core.exceptions import (
    UnauthorizedError,
    ValidationError,
    VioletFHIRError,
)
from violet_fhir.utils.logging import get_logger

logger = get_logger(__name__)

GENERIC_SERVER_ERROR = "Internal server error"

# error code -> FHIR IssueType
ISSUE_TYPES = {
    "not_found": "not-found",
    "validation_error": "invalid",
    "conflict": "conflict",
    "unauthorized": "login",
    "forbidden": "forbidden",
    "internal_error": "exception",
}

HTTP_STATUS_CODES = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
}


def is_protocol_path(request: Request) -> bool:
    """Whether the request targets the FHIR path family."""
    prefix = request.app.state.settings.fhir_prefix.rstrip("/")
    path = request.url.path
    return path == prefix or path.startswith(prefix + "/")


def render_error(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the error response for the request's path family."""
    content: Dict[str, Any]
    if is_protocol_path(request):
        content = {
            "resourceType": "OperationOutcome",
            "issue": [
                {
                    "severity": "error" if status_code >= 500 else "warning",
                    "code": ISSUE_TYPES.get(code, "processing"),
                    "diagnostics": message,
                }
            ],
        }
    else:
        content = {
            "error": {"message": message, "code": code, "statusCode": status_code}
        }
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def violet_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle typed errors raised by the core."""
    error = cast(VioletFHIRError, exc)
    if error.status_code >= 500:
        logger.error(
            "request_error",
            path=request.url.path,
            error=error.message,
            exc_info=error,
        )
        return render_error(
            request, error.status_code, error.code, GENERIC_SERVER_ERROR
        )

    headers = None
    if isinstance(error, UnauthorizedError) and error.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return render_error(request, error.status_code, error.code, error.message, headers)


async def request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle malformed request bodies and parameters."""
    messages = [
        f"{'/'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in cast(RequestValidationError, exc).errors()
    ]
    error = ValidationError("Invalid request: " + "; ".join(messages), messages)
    return render_error(request, error.status_code, error.code, error.message)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle routing errors (unknown path, method not allowed)."""
    http_error = cast(StarletteHTTPException, exc)
    code = HTTP_STATUS_CODES.get(http_error.status_code, "http_error")
    return render_error(request, http_error.status_code, code, str(http_error.detail))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unclassified failures in full, answer with a generic message."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return render_error(request, 500, "internal_error", GENERIC_SERVER_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every handler to ``app``."""
    app.add_exception_handler(VioletFHIRError, violet_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
