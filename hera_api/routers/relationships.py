"""
HERA Universal API - Relationships Router

Typed edges between entities. POST accepts either a single relationship
or ``{"relationships": [...]}``; the batch form is written in one
``hera_relationship_upsert_batch_v1`` call.
"""

import logging
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, Query

from .. import db
from ..api.response import ApiResponse, api_response
from ..core.models import RelationshipBatchBody, RelationshipUpsertBody
from ..core.security import AuthContext, get_current_user
from ..services.guardrails import check_payload_size, check_relationship_payload, enforce
from ..services.violations import GuardrailResult, Violation
from .common import ORG_HEADER, check_batch_size, parse_body, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/relationships", tags=["Relationships"])


@router.post("", response_model=ApiResponse[Any], summary="Create or update relationships")
async def upsert_relationships(
    payload: Dict[str, Any] = Body(...),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    enforce(check_payload_size(payload), operation="relationship upsert")

    if "relationships" in payload:
        batch = parse_body(RelationshipBatchBody, payload)
        org_id = resolve_org(batch.organization_id, x_organization_id)
        check_batch_size(len(batch.relationships), "relationships")

        result = GuardrailResult(rules_checked=["relationship"])
        for index, rel in enumerate(batch.relationships):
            sub = check_relationship_payload(rel.model_dump(mode="json"), organization_id=org_id)
            for v in sub.violations:
                result.add(Violation(v.code, f"relationships[{index}]: {v.message}", v.severity, v.context))
        warnings = enforce(result, operation="relationship batch upsert")

        data = await db.call_rpc(db.RPC_RELATIONSHIP_UPSERT_BATCH, batch.to_rpc_params(org_id, auth.subject))
        logger.info(
            f"Upserted {len(batch.relationships)} relationships",
            extra={"organization_id": org_id},
        )
        return api_response(data, warnings=warnings)

    body = parse_body(RelationshipUpsertBody, payload)
    org_id = resolve_org(body.organization_id, x_organization_id)
    warnings = enforce(
        check_relationship_payload(body.model_dump(mode="json"), organization_id=org_id),
        operation="relationship upsert",
    )
    data = await db.call_rpc(db.RPC_RELATIONSHIP_UPSERT, body.to_rpc_params(org_id, auth.subject))
    return api_response(data, warnings=warnings)


@router.get("", response_model=ApiResponse[Any], summary="Query relationships")
async def query_relationships(
    organization_id: Optional[str] = Query(None),
    entity_id: Optional[UUID] = Query(None),
    relationship_type: Optional[str] = Query(None),
    side: Literal["from", "to", "either"] = Query("either"),
    include_inactive: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_RELATIONSHIP_QUERY,
        {
            "p_organization_id": org_id,
            "p_entity_id": str(entity_id) if entity_id else None,
            "p_side": side,
            "p_relationship_type": relationship_type.upper() if relationship_type else None,
            "p_active_only": not include_inactive,
            "p_limit": limit,
            "p_offset": offset,
        },
    )
    return api_response(data)


@router.delete("/{relationship_id}", response_model=ApiResponse[Any], summary="Delete a relationship")
async def delete_relationship(
    relationship_id: UUID,
    organization_id: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_RELATIONSHIP_DELETE,
        {
            "p_organization_id": org_id,
            "p_relationship_id": str(relationship_id),
            "p_actor_user_id": auth.subject,
        },
    )
    return api_response(data)
