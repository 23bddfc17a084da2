"""
HERA Universal API - Transactions v2 Router

Transaction CRUD through the ``hera_txn_crud_v1`` orchestrator RPC,
which takes an action plus a single ``p_payload`` object. CREATE writes
the header and all lines atomically.
"""

import logging
from datetime import date
from typing import Any, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status

from .. import db
from ..api.response import ApiResponse, api_response
from ..core.errors import ValidationError
from ..core.models import TransactionEmitBody, TransactionUpdateV2Body
from ..core.security import get_actor_user_id
from ..services.guardrails import check_payload_size, check_transaction_payload, enforce
from .common import ORG_HEADER, check_batch_size, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["Transactions v2"])


async def _crud(action: str, org_id: str, actor: str, payload: dict[str, Any]) -> Any:
    return await db.call_rpc(
        db.RPC_TXN_CRUD,
        {
            "p_action": action,
            "p_actor_user_id": actor,
            "p_organization_id": org_id,
            "p_payload": payload,
        },
    )


@router.post(
    "",
    response_model=ApiResponse[Any],
    status_code=status.HTTP_201_CREATED,
    summary="Create a transaction with its lines",
)
async def create_transaction(
    body: TransactionEmitBody,
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(body.organization_id, x_organization_id)
    check_batch_size(len(body.lines), "transaction lines")

    guardrail_payload = body.guardrail_payload()
    enforce(check_payload_size(guardrail_payload), operation="transaction create")
    warnings = enforce(
        check_transaction_payload(guardrail_payload, "CREATE", require_date=True),
        operation="transaction create",
    )

    payload = {
        "header": {"organization_id": org_id, **body.header()},
        "lines": body.lines_json(),
    }
    data = await _crud("CREATE", org_id, actor, payload)
    logger.info(
        f"Transaction CREATE {body.transaction_type} with {len(body.lines)} line(s)",
        extra={"organization_id": org_id, "smart_code": body.smart_code},
    )
    return api_response(data, warnings=warnings)


@router.get("", response_model=ApiResponse[Any], summary="Read one transaction or query many")
async def read_transactions(
    organization_id: Optional[str] = Query(None),
    transaction_id: Optional[UUID] = Query(None),
    transaction_type: Optional[str] = Query(None),
    smart_code: Optional[str] = Query(None),
    source_entity_id: Optional[UUID] = Query(None),
    target_entity_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    include_lines: bool = Query(True),
    include_deleted: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    """With ``transaction_id`` this is a READ; otherwise a filtered QUERY."""
    org_id = resolve_org(organization_id, x_organization_id)

    if transaction_id:
        data = await _crud(
            "READ",
            org_id,
            actor,
            {"transaction_id": str(transaction_id), "include_lines": include_lines},
        )
        return api_response(data)

    filters = {
        "transaction_type": transaction_type.upper() if transaction_type else None,
        "smart_code": smart_code,
        "source_entity_id": str(source_entity_id) if source_entity_id else None,
        "target_entity_id": str(target_entity_id) if target_entity_id else None,
        "date_from": date_from.isoformat() if date_from else None,
        "date_to": date_to.isoformat() if date_to else None,
    }
    payload = {k: v for k, v in filters.items() if v is not None}
    payload.update(
        include_lines=include_lines,
        include_deleted=include_deleted,
        limit=limit,
        offset=offset,
    )
    data = await _crud("QUERY", org_id, actor, payload)
    return api_response(data)


@router.put("", response_model=ApiResponse[Any], summary="Update a transaction")
async def update_transaction(
    body: TransactionUpdateV2Body,
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(body.organization_id, x_organization_id)
    payload = body.to_rpc_payload(org_id)
    check_batch_size(len(payload.get("lines") or []), "transaction lines")
    warnings = enforce(
        check_transaction_payload(payload, "UPDATE"),
        operation="transaction update",
    )

    data = await _crud("UPDATE", org_id, actor, payload)
    logger.info(
        f"Transaction UPDATE {body.transaction_id} ({', '.join(sorted(payload['patch'])) or 'lines'})",
        extra={"organization_id": org_id},
    )
    return api_response(data, warnings=warnings)


@router.delete("", response_model=ApiResponse[Any], summary="Delete, void or reverse a transaction")
async def delete_transaction(
    transaction_id: UUID = Query(...),
    organization_id: Optional[str] = Query(None),
    mode: Literal["soft", "hard", "reverse"] = Query("soft"),
    reason: Optional[str] = Query(None, max_length=500),
    actor: str = Depends(get_actor_user_id),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    """
    Remove a transaction.

    ``soft`` marks it deleted, ``hard`` removes the rows, and ``reverse``
    posts an offsetting transaction (a reason is required).
    """
    org_id = resolve_org(organization_id, x_organization_id)

    if mode == "reverse":
        if not reason:
            raise ValidationError("reason is required to reverse a transaction")
        data = await _crud(
            "REVERSE",
            org_id,
            actor,
            {"original_transaction_id": str(transaction_id), "reason": reason},
        )
    else:
        data = await _crud(
            "DELETE",
            org_id,
            actor,
            {
                "transaction_id": str(transaction_id),
                "hard_delete": mode == "hard",
                "reason": reason,
            },
        )
    logger.info(f"Transaction {mode} delete {transaction_id}", extra={"organization_id": org_id})
    return api_response(data)
