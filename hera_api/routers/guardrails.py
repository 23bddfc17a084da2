"""
HERA Universal API - Guardrails Router

Dry-run of the pre-RPC guardrail checks. Clients call this to see every
violation and warning a payload would produce without writing anything.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header

from ..api.response import ApiResponse, api_response
from ..core.models import GuardrailValidateBody
from ..core.security import AuthContext, get_current_user
from ..services.guardrails import (
    check_dynamic_fields,
    check_entity_payload,
    check_payload_size,
    check_relationship_payload,
    check_transaction_payload,
)
from .common import ORG_HEADER, resolve_org

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guardrails", tags=["Guardrails"])


@router.post("/validate", response_model=ApiResponse[Any], summary="Validate a payload without writing")
async def validate_payload(
    body: GuardrailValidateBody,
    auth: AuthContext = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None, alias=ORG_HEADER),
) -> ApiResponse[Any]:
    """
    Run the checks for ``kind`` and return the full report.

    A failing payload is not an error here: the response is 200 with
    ``passed: false`` and the violations listed.
    """
    org_id = resolve_org(body.organization_id, x_organization_id)
    payload = body.payload

    if body.kind == "entity":
        result = check_entity_payload(payload, body.action, organization_id=org_id)
    elif body.kind == "transaction":
        result = check_transaction_payload(payload, body.action)
    elif body.kind == "relationship":
        result = check_relationship_payload(payload, organization_id=org_id)
    else:
        result = check_dynamic_fields(payload.get("dynamic_fields") or payload.get("fields") or payload)
    result.merge(check_payload_size(payload))

    logger.info(
        f"Guardrail dry-run ({body.kind} {body.action.upper()}): {'passed' if result.passed else 'failed'}",
        extra={
            "organization_id": org_id,
            "violation_count": len(result.errors),
            "warning_count": len(result.warnings),
        },
    )
    return api_response(
        {
            "passed": result.passed,
            "violations": result.error_dicts(),
            "warnings": result.warning_dicts(),
            "rules_checked": list(result.rules_checked),
            "report": result.report(),
        }
    )
