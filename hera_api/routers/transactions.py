"""
HERA Universal API - Transactions Router

Transaction headers with their lines, emitted through the v1
transaction RPCs. POST accepts a single transaction or
``{"transactions": [...]}`` for ``hera_txn_emit_batch_v1``.
Reversal creates an offsetting transaction in the database; nothing is
deleted.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, Query

from .. import db
from ..api.response import ApiResponse, api_response
from ..core.models import ReverseTransactionBody, TransactionBatchBody, TransactionEmitBody
from ..core.security import AuthContext, get_current_user
from ..services.guardrails import check_payload_size, check_transaction_payload, enforce
from ..services.violations import GuardrailResult, Violation
from .common import ORG_HEADER, check_batch_size, parse_body, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("", response_model=ApiResponse[Any], summary="Emit one or many transactions")
async def emit_transactions(
    payload: Dict[str, Any] = Body(...),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    enforce(check_payload_size(payload), operation="transaction emit")

    if "transactions" in payload:
        batch = parse_body(TransactionBatchBody, payload)
        org_id = resolve_org(batch.organization_id, x_organization_id)
        check_batch_size(len(batch.transactions), "transactions")

        result = GuardrailResult(rules_checked=["transaction"])
        for index, txn in enumerate(batch.transactions):
            if txn.organization_id is not None:
                # Each transaction must belong to the batch organization
                resolve_org(txn.organization_id, org_id)
            sub = check_transaction_payload(txn.guardrail_payload())
            for v in sub.violations:
                result.add(Violation(v.code, f"transactions[{index}]: {v.message}", v.severity, v.context))
        warnings = enforce(result, operation="transaction batch emit")

        data = await db.call_rpc(db.RPC_TXN_EMIT_BATCH, batch.to_rpc_params(org_id, auth.subject))
        logger.info(
            f"Emitted {len(batch.transactions)} transactions",
            extra={"organization_id": org_id},
        )
        return api_response(data, warnings=warnings)

    body = parse_body(TransactionEmitBody, payload)
    org_id = resolve_org(body.organization_id, x_organization_id)
    warnings = enforce(check_transaction_payload(body.guardrail_payload()), operation="transaction emit")

    data = await db.call_rpc(db.RPC_TXN_EMIT, body.to_rpc_params(org_id, auth.subject))
    logger.info(
        f"Emitted {body.transaction_type} with {len(body.lines)} line(s)",
        extra={"organization_id": org_id, "smart_code": body.smart_code},
    )
    return api_response(data, warnings=warnings)


@router.get("/{transaction_id}", response_model=ApiResponse[Any], summary="Read one transaction")
async def read_transaction(
    transaction_id: UUID,
    organization_id: Optional[str] = Query(None),
    include_lines: bool = Query(True),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_TXN_READ,
        {
            "p_organization_id": org_id,
            "p_transaction_id": str(transaction_id),
            "p_include_lines": include_lines,
        },
    )
    return api_response(data)


@router.get("", response_model=ApiResponse[Any], summary="Query transactions")
async def query_transactions(
    organization_id: Optional[str] = Query(None),
    transaction_type: Optional[str] = Query(None),
    smart_code: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    include_lines: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_TXN_QUERY,
        {
            "p_organization_id": org_id,
            "p_filters": {
                k: v
                for k, v in {
                    "transaction_type": transaction_type.upper() if transaction_type else None,
                    "smart_code": smart_code,
                    "date_from": date_from.isoformat() if date_from else None,
                    "date_to": date_to.isoformat() if date_to else None,
                    "include_lines": include_lines,
                    "limit": limit,
                    "offset": offset,
                }.items()
                if v is not None
            },
        },
    )
    return api_response(data)


@router.post(
    "/{transaction_id}/reverse",
    response_model=ApiResponse[Any],
    summary="Reverse a transaction",
)
async def reverse_transaction(
    transaction_id: UUID,
    body: ReverseTransactionBody,
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(body.organization_id, x_organization_id)
    data = await db.call_rpc(
        db.RPC_TXN_REVERSE,
        {
            "p_organization_id": org_id,
            "p_original_transaction_id": str(transaction_id),
            "p_reason": body.reason,
            "p_reversal_date": body.reversal_date.isoformat() if body.reversal_date else None,
            "p_actor_user_id": auth.subject,
        },
    )
    logger.info(f"Reversed transaction {transaction_id}", extra={"organization_id": org_id})
    return api_response(data)
