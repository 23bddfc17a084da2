"""Shared router helpers: organization resolution, body parsing, batch limits."""

from __future__ import annotations

from typing import Any, TypeVar
from uuid import UUID

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..config import get_settings
from ..core.errors import ValidationError
from ..services.guardrails import resolve_organization_id

M = TypeVar("M", bound=BaseModel)

ORG_HEADER = "X-Organization-Id"


def resolve_org(body_org: UUID | str | None, header_org: str | None) -> str:
    """Effective organization for the request (body/query first, then header)."""
    return resolve_organization_id(
        str(body_org) if body_org is not None else None,
        header_org,
        platform_org_id=get_settings().platform_organization_id,
    )


def parse_body(model: type[M], data: Any) -> M:
    """Validate ``data`` against ``model``; failures surface as 400 validation errors."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from e


def check_batch_size(count: int, what: str) -> None:
    limit = get_settings().MAX_BATCH_SIZE
    if count > limit:
        raise ValidationError(f"Too many {what} in one request: {count} (limit {limit})")


def extract_entity_id(data: Any) -> str | None:
    """Pull the entity id out of any of the result shapes the RPCs return."""
    if isinstance(data, str):
        return data
    if isinstance(data, list):
        return extract_entity_id(data[0]) if data else None
    if not isinstance(data, dict):
        return None
    if data.get("entity_id"):
        return str(data["entity_id"])
    nested = data.get("data")
    if isinstance(nested, dict) and nested.get("entity_id"):
        return str(nested["entity_id"])
    if data.get("id"):
        return str(data["id"])
    items = data.get("items")
    if isinstance(items, list) and items and isinstance(items[0], dict) and items[0].get("id"):
        return str(items[0]["id"])
    return None
