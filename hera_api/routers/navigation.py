"""HERA Universal API - Navigation Router"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from ..api.response import ApiResponse, api_response
from ..core.security import AuthContext, get_current_user
from ..services.navigation import DEFAULT_NAVIGATION, filter_nav_by_role

router = APIRouter(prefix="/navigation", tags=["Navigation"])


@router.get("", response_model=ApiResponse[Any], summary="Navigation tree for a set of roles")
async def get_navigation(
    roles: Optional[str] = Query(None, description="Comma-separated role names, e.g. owner,sales"),
    auth: AuthContext = Depends(get_current_user),
) -> ApiResponse[Any]:
    role_list = [r.strip() for r in (roles or "").split(",") if r.strip()]
    items = filter_nav_by_role(DEFAULT_NAVIGATION, role_list)
    return api_response([item.model_dump(exclude_none=True) for item in items])
