"""
HERA Universal API - Error Handling

Every error leaves the service as

    {"error": "<human message>", "code": "<machine code>", "request_id": "...", ...}

Local validation failures (request parsing, guardrails, organization
scoping) are 400s. RPC errors carry the Postgres message through
verbatim with the status chosen by the RPC gateway.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .middleware import get_request_id

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Models
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information for debugging."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """Standardized error response format."""

    error: str  # Human-readable message
    code: str  # Machine-readable error code
    request_id: str | None = None
    details: list[ErrorDetail] | None = None


# =============================================================================
# Error Codes
# =============================================================================

# Client errors (4xx)
ERROR_VALIDATION = "validation_error"
ERROR_GUARDRAIL = "guardrail_violation"
ERROR_ORGANIZATION = "organization_error"
ERROR_NOT_FOUND = "not_found"
ERROR_UNAUTHORIZED = "unauthorized"
ERROR_FORBIDDEN = "forbidden"
ERROR_BAD_REQUEST = "bad_request"
ERROR_CONFLICT = "conflict"
ERROR_RPC_REJECTED = "rpc_rejected"

# Server errors (5xx)
ERROR_INTERNAL = "internal_error"
ERROR_DATABASE = "database_error"
ERROR_SERVICE_UNAVAILABLE = "service_unavailable"


# =============================================================================
# Exceptions
# =============================================================================


class HeraError(Exception):
    """
    Base exception for request-level failures.

    ``extra`` is merged into the JSON body (e.g. ``violations`` and
    ``warnings`` for guardrail failures).
    """

    def __init__(
        self,
        message: str,
        code: str = ERROR_INTERNAL,
        status_code: int = 500,
        details: list[ErrorDetail] | None = None,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.extra = extra or {}


class ValidationError(HeraError):
    """Request payload failed validation."""

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(
            message=message,
            code=ERROR_VALIDATION,
            status_code=400,
            details=details,
        )


class OrganizationError(HeraError):
    """Organization id is missing, malformed, or not allowed."""

    def __init__(self, message: str, code: str = ERROR_ORGANIZATION):
        super().__init__(message=message, code=code, status_code=400)


class GuardrailViolationError(HeraError):
    """One or more guardrail checks failed with ERROR severity."""

    def __init__(
        self,
        message: str,
        violations: list[dict[str, Any]],
        warnings: list[dict[str, Any]] | None = None,
    ):
        super().__init__(
            message=message,
            code=ERROR_GUARDRAIL,
            status_code=400,
            extra={"violations": violations, "warnings": warnings or []},
        )
        self.violations = violations
        self.warnings = warnings or []


class NotFoundError(HeraError):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message=message, code=ERROR_NOT_FOUND, status_code=404)


class RpcError(HeraError):
    """
    A stored procedure rejected the call.

    ``message`` is the Postgres error text, passed through unchanged.
    """

    def __init__(
        self,
        message: str,
        rpc: str,
        status_code: int = 500,
        pg_code: str | None = None,
        hint: str | None = None,
    ):
        extra: dict[str, Any] = {"rpc": rpc}
        if pg_code:
            extra["pg_code"] = pg_code
        if hint:
            extra["hint"] = hint
        super().__init__(
            message=message,
            code=ERROR_RPC_REJECTED if status_code < 500 else ERROR_DATABASE,
            status_code=status_code,
            extra=extra,
        )
        self.rpc = rpc
        self.pg_code = pg_code


class UpstreamUnavailableError(HeraError):
    """The database could not be reached after all connection attempts."""

    def __init__(self, message: str = "Database is unavailable, try again later"):
        super().__init__(
            message=message,
            code=ERROR_SERVICE_UNAVAILABLE,
            status_code=503,
        )


# =============================================================================
# Exception Handlers
# =============================================================================


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    details: list[ErrorDetail] | None = None,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    request_id = get_request_id()

    response = ErrorResponse(
        error=message,
        code=code,
        request_id=request_id if request_id else None,
        details=details,
    )
    content = response.model_dump(exclude_none=True)
    if extra:
        content.update(extra)

    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def hera_exception_handler(request: Request, exc: HeraError) -> JSONResponse:
    """Handle HeraError and its subclasses."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code} on {request.url.path}: {exc.message}",
            extra={
                "request_id": get_request_id(),
                "path": request.url.path,
                "status_code": exc.status_code,
                "error_code": exc.code,
            },
        )
    else:
        logger.warning(
            f"{exc.code} on {request.url.path}: {exc.message}",
            extra={
                "request_id": get_request_id(),
                "path": request.url.path,
                "status_code": exc.status_code,
                "error_code": exc.code,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        extra=exc.extra,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Handle FastAPI/Starlette HTTP exceptions.

    Maps standard HTTP errors to our error format.
    """
    error_map = {
        400: ERROR_BAD_REQUEST,
        401: ERROR_UNAUTHORIZED,
        403: ERROR_FORBIDDEN,
        404: ERROR_NOT_FOUND,
        409: ERROR_CONFLICT,
        500: ERROR_INTERNAL,
        503: ERROR_SERVICE_UNAVAILABLE,
    }
    code = error_map.get(exc.status_code, ERROR_INTERNAL)

    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "request_id": get_request_id(),
                "path": request.url.path,
                "status_code": exc.status_code,
            },
        )

    if isinstance(exc.detail, dict):
        message = exc.detail.get("message", str(exc.detail))
    else:
        message = str(exc.detail)

    return create_error_response(
        status_code=exc.status_code,
        code=code,
        message=message,
        headers=getattr(exc, "headers", None),
    )


def _format_loc(loc: Any) -> str | None:
    # Drop the "body"/"query" prefix FastAPI adds
    parts = [str(x) for x in (loc or [])]
    if parts and parts[0] in ("body", "query", "path", "header"):
        parts = parts[1:]
    return ".".join(parts) if parts else None


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request parsing errors as 400s.

    The first problem becomes the top-level message; all problems are
    listed under ``details``.
    """
    details = []
    for error in exc.errors():
        details.append(
            ErrorDetail(
                field=_format_loc(error.get("loc")),
                message=error.get("msg", "Validation error"),
                code=error.get("type", "validation"),
            )
        )

    if details:
        first = details[0]
        message = f"{first.field}: {first.message}" if first.field else first.message
    else:
        message = "Request validation failed"

    logger.warning(
        f"Validation error on {request.url.path}: {len(details)} errors",
        extra={
            "request_id": get_request_id(),
            "path": request.url.path,
            "error_code": ERROR_VALIDATION,
        },
    )

    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ERROR_VALIDATION,
        message=message,
        details=details,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unhandled exceptions.

    Logs the full traceback but returns a generic error to the client.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        extra={
            "request_id": get_request_id(),
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True,
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=ERROR_INTERNAL,
        message="Internal server error",
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register all error handlers with the FastAPI app."""
    app.add_exception_handler(HeraError, hera_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Error handlers registered")
