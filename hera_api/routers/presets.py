"""
HERA Universal API - Presets Router

Read-only access to the entity preset registry, plus a validation
endpoint that checks dynamic field values against a preset.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from ..api.response import ApiResponse, api_response
from ..core.errors import ErrorDetail, ValidationError
from ..core.security import AuthContext, get_current_user
from ..services.presets import (
    apply_defaults,
    build_dynamic_fields,
    fields_for_role,
    get_entity_preset,
    list_presets,
    validate_dynamic_fields,
)

router = APIRouter(prefix="/presets", tags=["Presets"])


@router.get("", response_model=ApiResponse[Any], summary="List entity presets")
async def get_presets(auth: AuthContext = Depends(get_current_user)) -> ApiResponse[Any]:
    return api_response(
        [
            {
                "entity_type": p.entity_type,
                "smart_code": p.smart_code,
                "labels": dict(p.labels),
                "field_count": len(p.dynamic_fields),
            }
            for p in list_presets()
        ]
    )


@router.get("/{entity_type}", response_model=ApiResponse[Any], summary="Get one preset")
async def get_preset(
    entity_type: str,
    role: Optional[str] = Query(None, description="Only include fields visible to this role"),
    auth: AuthContext = Depends(get_current_user),
) -> ApiResponse[Any]:
    preset = get_entity_preset(entity_type)
    data = preset.to_dict()
    if role:
        visible = {f.name for f in fields_for_role(preset, role)}
        data["dynamic_fields"] = [f for f in data["dynamic_fields"] if f["name"] in visible]
    return api_response(data)


@router.post(
    "/{entity_type}/validate",
    response_model=ApiResponse[Any],
    summary="Validate dynamic field values against a preset",
)
async def validate_preset_values(
    entity_type: str,
    values: Dict[str, Any] = Body(...),
    auth: AuthContext = Depends(get_current_user),
) -> ApiResponse[Any]:
    """
    Apply preset defaults, then check required fields and value types.

    Returns the RPC-ready dynamic field payloads when the values are valid.
    """
    preset = get_entity_preset(entity_type)
    merged = apply_defaults(preset, values)
    errors = validate_dynamic_fields(preset, merged)
    if errors:
        raise ValidationError(
            errors[0],
            details=[ErrorDetail(message=e, code="preset_field_invalid") for e in errors],
        )
    return api_response({"entity_type": preset.entity_type, "dynamic_fields": build_dynamic_fields(preset, merged)})
