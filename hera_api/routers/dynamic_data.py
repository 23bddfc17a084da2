"""
HERA Universal API - Dynamic Data Router

Dynamic (EAV) field values attached to entities. One field goes through
``hera_dynamic_data_set_v1``; several fields for the same entity go
through ``hera_dynamic_data_batch_v1`` in a single call.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Path, Query

from .. import db
from ..api.response import ApiResponse, api_response
from ..core.models import DynamicDataSetBody
from ..core.security import AuthContext, get_current_user
from ..services.guardrails import check_dynamic_fields, enforce
from .common import ORG_HEADER, check_batch_size, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dynamic-data", tags=["Dynamic Data"])


@router.post("", response_model=ApiResponse[Any], summary="Set dynamic fields on an entity")
async def set_dynamic_data(
    body: DynamicDataSetBody,
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(body.organization_id, x_organization_id)
    check_batch_size(len(body.fields), "fields")
    warnings = enforce(
        check_dynamic_fields([f.model_dump(mode="json") for f in body.fields]),
        operation="dynamic data set",
    )

    rpc = db.RPC_DYNAMIC_SET if len(body.fields) == 1 else db.RPC_DYNAMIC_BATCH
    data = await db.call_rpc(rpc, body.to_rpc_params(org_id, auth.subject))
    logger.info(
        f"Set {len(body.fields)} dynamic field(s) on entity {body.entity_id}",
        extra={"organization_id": org_id},
    )
    return api_response(data, warnings=warnings)


@router.get("/{entity_id}", response_model=ApiResponse[Any], summary="Read dynamic fields")
async def get_dynamic_data(
    entity_id: UUID,
    organization_id: Optional[str] = Query(None),
    field_name: Optional[str] = Query(None, max_length=100),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_DYNAMIC_GET,
        {
            "p_organization_id": org_id,
            "p_entity_id": str(entity_id),
            "p_field_name": field_name,
        },
    )
    return api_response(data)


@router.delete(
    "/{entity_id}/{field_name}",
    response_model=ApiResponse[Any],
    summary="Delete one dynamic field",
)
async def delete_dynamic_data(
    entity_id: UUID,
    field_name: str = Path(..., min_length=1, max_length=100),
    organization_id: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_DYNAMIC_DELETE,
        {
            "p_organization_id": org_id,
            "p_entity_id": str(entity_id),
            "p_field_name": field_name,
            "p_actor_user_id": auth.subject,
        },
    )
    return api_response(data)
