"""
HERA Universal API - Response Envelope

Every successful route returns this envelope so clients can read the
RPC result and any guardrail warnings in one place.

Usage:
    from hera_api.api import api_response

    return api_response(data=result, warnings=check.warning_dicts())
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from ..core.middleware import get_request_id

T = TypeVar("T")


class ResponseMeta(BaseModel):
    """Metadata included in every API response."""

    request_id: str = Field(..., description="Request correlation ID")
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO 8601 response timestamp",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Standardized API response envelope.

    Attributes:
        ok: Always True for successful responses
        data: The response payload (usually the RPC result)
        warnings: Non-blocking guardrail findings
        meta: Response metadata including request_id
    """

    ok: bool = Field(True, description="True if request succeeded")
    data: T | None = Field(None, description="Response payload")
    warnings: list[dict[str, Any]] = Field(
        default_factory=list, description="Non-blocking guardrail warnings"
    )
    meta: ResponseMeta = Field(..., description="Response metadata")

    model_config = {
        "json_schema_extra": {
            "example": {
                "ok": True,
                "data": {"entity_id": "5d7e..."},
                "warnings": [],
                "meta": {"request_id": "abc123", "timestamp": "2025-01-01T00:00:00Z"},
            }
        }
    }


def api_response(
    data: Any = None,
    *,
    warnings: list[dict[str, Any]] | None = None,
) -> ApiResponse[Any]:
    """Create a standard API response envelope for the current request."""
    return ApiResponse(
        ok=True,
        data=data,
        warnings=warnings or [],
        meta=ResponseMeta(request_id=get_request_id() or "unknown"),
    )
