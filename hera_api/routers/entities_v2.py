"""
HERA Universal API - Entities v2 Router

Entity CRUD through the single ``hera_entities_crud_v2`` RPC. An entity,
its dynamic fields and its relationships are written in one call so the
database applies them atomically. Every call is stamped with the acting
user's id.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status

from .. import db
from ..api.response import ApiResponse, api_response
from ..core.models import EntityCrudV2Body
from ..core.security import get_actor_user_id
from ..services.guardrails import check_entity_payload, check_payload_size, enforce
from .common import ORG_HEADER, check_batch_size, extract_entity_id, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entities", tags=["Entities v2"])


async def _write(action: str, body: EntityCrudV2Body, actor: str, header_org: Optional[str]) -> ApiResponse[Any]:
    org_id = resolve_org(body.organization_id, header_org)
    check_batch_size(len(body.dynamic) + len(body.relationships), "dynamic fields and relationships")

    payload = body.guardrail_payload()
    enforce(check_payload_size(payload), operation=f"entity {action.lower()}")
    warnings = enforce(
        check_entity_payload(payload, action, organization_id=org_id),
        operation=f"entity {action.lower()}",
    )

    data = await db.call_rpc(db.RPC_ENTITIES_CRUD_V2, body.to_rpc_params(action, org_id, actor))
    entity_id = extract_entity_id(data) or (str(body.entity.entity_id) if body.entity.entity_id else None)
    logger.info(
        f"Entity {action} {entity_id} ({body.entity.entity_type or 'type unchanged'}): "
        f"{len(body.dynamic)} dynamic, {len(body.relationships)} relationships",
        extra={"organization_id": org_id, "smart_code": body.entity.smart_code},
    )
    return api_response({"entity_id": entity_id, "result": data}, warnings=warnings)


@router.post(
    "",
    response_model=ApiResponse[Any],
    status_code=status.HTTP_201_CREATED,
    summary="Create an entity with its dynamic fields and relationships",
)
async def create_entity(
    body: EntityCrudV2Body,
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    return await _write("CREATE", body, actor, x_organization_id)


@router.put("", response_model=ApiResponse[Any], summary="Update an entity")
async def update_entity(
    body: EntityCrudV2Body,
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    return await _write("UPDATE", body, actor, x_organization_id)


@router.get("", response_model=ApiResponse[Any], summary="Read or list entities")
async def read_entities(
    organization_id: Optional[str] = Query(None),
    entity_id: Optional[UUID] = Query(None),
    entity_type: Optional[str] = Query(None),
    smart_code: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    include_dynamic: bool = Query(True),
    include_relationships: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    entity = {
        k: v
        for k, v in {
            "entity_id": str(entity_id) if entity_id else None,
            "entity_type": entity_type.upper() if entity_type else None,
            "smart_code": smart_code,
            "status": status_filter,
        }.items()
        if v is not None
    }
    data = await db.call_rpc(
        db.RPC_ENTITIES_CRUD_V2,
        {
            "p_action": "READ",
            "p_actor_user_id": actor,
            "p_organization_id": org_id,
            "p_entity": entity,
            "p_dynamic": {},
            "p_relationships": [],
            "p_options": {
                "include_dynamic": include_dynamic,
                "include_relationships": include_relationships,
                "limit": limit,
                "offset": offset,
            },
        },
    )
    return api_response(data)


@router.delete("", response_model=ApiResponse[Any], summary="Delete an entity")
async def delete_entity(
    entity_id: UUID = Query(...),
    organization_id: Optional[str] = Query(None),
    hard_delete: bool = Query(False),
    cascade: bool = Query(False, description="Also remove dynamic fields and relationships"),
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_ENTITIES_CRUD_V2,
        {
            "p_action": "DELETE",
            "p_actor_user_id": actor,
            "p_organization_id": org_id,
            "p_entity": {"entity_id": str(entity_id)},
            "p_dynamic": {},
            "p_relationships": [],
            "p_options": {"hard_delete": hard_delete, "cascade": cascade},
        },
    )
    logger.info(
        f"Entity DELETE {entity_id} ({'hard' if hard_delete else 'soft'})",
        extra={"organization_id": org_id},
    )
    return api_response(data)
