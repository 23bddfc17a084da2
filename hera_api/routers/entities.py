"""
HERA Universal API - Entities Router

Create, read, list and delete core entities through the v1 entity RPCs.
Dynamic fields are written separately via /dynamic-data (or atomically
through /api/v2/entities).
"""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query

from .. import db
from ..api.response import ApiResponse, api_response
from ..core.models import EntityUpsertBody
from ..core.security import AuthContext, get_current_user
from ..services.guardrails import check_entity_payload, enforce
from .common import ORG_HEADER, extract_entity_id, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entities", tags=["Entities"])


@router.post("", response_model=ApiResponse[Any], summary="Create or update an entity")
async def upsert_entity(
    body: EntityUpsertBody,
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    """
    Upsert an entity via ``hera_entity_upsert_v1``.

    An ``entity_id`` in the body means update; otherwise a new entity is
    created and its id returned.
    """
    org_id = resolve_org(body.organization_id, x_organization_id)
    action = "UPDATE" if body.entity_id else "CREATE"
    warnings = enforce(
        check_entity_payload(body.model_dump(mode="json"), action, organization_id=org_id),
        operation=f"entity {action.lower()}",
    )

    data = await db.call_rpc(db.RPC_ENTITY_UPSERT, body.to_rpc_params(org_id, auth.subject))
    entity_id = extract_entity_id(data)
    logger.info(
        f"Entity {action.lower()} {entity_id} ({body.entity_type})",
        extra={"organization_id": org_id, "smart_code": body.smart_code},
    )
    return api_response({"entity_id": entity_id, "result": data}, warnings=warnings)


@router.get("/{entity_id}", response_model=ApiResponse[Any], summary="Read one entity")
async def read_entity(
    entity_id: UUID,
    organization_id: Optional[str] = Query(None),
    include_dynamic: bool = Query(True),
    include_relationships: bool = Query(False),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_ENTITY_READ,
        {
            "p_organization_id": org_id,
            "p_entity_id": str(entity_id),
            "p_include_dynamic_data": include_dynamic,
            "p_include_relationships": include_relationships,
        },
    )
    return api_response(data)


@router.get("", response_model=ApiResponse[Any], summary="List entities")
async def list_entities(
    organization_id: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    include_dynamic: bool = Query(False),
    include_relationships: bool = Query(False),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_ENTITY_READ,
        {
            "p_organization_id": org_id,
            "p_entity_type": entity_type.upper() if entity_type else None,
            "p_status": status,
            "p_include_dynamic_data": include_dynamic,
            "p_include_relationships": include_relationships,
            "p_limit": limit,
            "p_offset": offset,
        },
    )
    return api_response(data)


@router.delete("/{entity_id}", response_model=ApiResponse[Any], summary="Delete an entity")
async def delete_entity(
    entity_id: UUID,
    organization_id: Optional[str] = Query(None),
    hard_delete: bool = Query(False),
    reason: Optional[str] = Query(None, max_length=500),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_ENTITY_DELETE,
        {
            "p_organization_id": org_id,
            "p_entity_id": str(entity_id),
            "p_hard_delete": hard_delete,
            "p_reason": reason,
            "p_actor_user_id": auth.subject,
        },
    )
    logger.info(
        f"Entity {entity_id} {'hard' if hard_delete else 'soft'}-deleted",
        extra={"organization_id": org_id},
    )
    return api_response(data)
