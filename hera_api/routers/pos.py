"""
HERA Universal API - Point of Sale Router

Checkout turns a cart into a SALE transaction (items, discount, tax and
payment lines) and emits it through ``hera_txn_emit_v1``.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header

from .. import db
from ..api.response import ApiResponse, api_response
from ..core.models import PosCheckoutBody, TransactionEmitBody
from ..core.security import AuthContext, get_current_user
from ..services.guardrails import check_transaction_payload, enforce
from ..services.pos import build_pos_emit_payload
from .common import ORG_HEADER, check_batch_size, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pos", tags=["Point of Sale"])


@router.post("/checkout", response_model=ApiResponse[Any], summary="Check out a cart")
async def checkout(
    body: PosCheckoutBody,
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    org_id = resolve_org(body.organization_id, x_organization_id)
    check_batch_size(len(body.items), "cart items")

    payload = build_pos_emit_payload(
        [item.model_dump() for item in body.items],
        discount=body.discount,
        tax=body.tax,
        paid=body.paid,
        customer_id=str(body.customer_id) if body.customer_id else None,
        staff_id=str(body.staff_id) if body.staff_id else None,
        branch_id=str(body.branch_id) if body.branch_id else None,
        payment_method=body.payment_method,
        currency=body.currency.upper(),
    )
    warnings = enforce(check_transaction_payload(payload), operation="pos checkout")

    txn = TransactionEmitBody.model_validate(payload)
    data = await db.call_rpc(db.RPC_TXN_EMIT, txn.to_rpc_params(org_id, auth.subject))

    context = payload["business_context"]
    logger.info(
        f"POS checkout: {len(body.items)} item(s), total {payload['total_amount']:.2f} {body.currency.upper()}",
        extra={"organization_id": org_id, "smart_code": payload["smart_code"]},
    )
    return api_response(
        {
            "transaction": data,
            "total_amount": payload["total_amount"],
            "change_due": context["change_due"],
            "balance_due": context["balance_due"],
            "lines": payload["lines"],
        },
        warnings=warnings,
    )
