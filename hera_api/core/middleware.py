"""
HERA Universal API - Middleware

Request logging with correlation IDs. The request ID is taken from the
X-Request-ID header (or generated), bound into the logging context for
downstream records, and echoed on the response.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging import LogContext

logger = logging.getLogger(__name__)

# Context variable for request ID (thread/async safe)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with method, path, status code and duration.

    Successful requests log at INFO, 4xx at WARNING, 5xx at ERROR.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        request_id_var.set(request_id)

        start_time = time.perf_counter()
        with LogContext(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    f"[{request_id}] Unhandled exception: {type(e).__name__}: {e}",
                    extra={
                        "request_id": request_id,
                        "path": request.url.path,
                        "method": request.method,
                    },
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000

            log_level = logging.INFO if response.status_code < 400 else logging.WARNING
            if response.status_code >= 500:
                log_level = logging.ERROR

            logger.log(
                log_level,
                f"[{request_id}] {request.method} {request.url.path} -> "
                f"{response.status_code} ({duration_ms:.1f}ms)",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
