import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.core.database import get_db
from app.core.exceptions import PolicyAiError
from app.core.role_cache import RoleCache
from app.core.roles import Role, is_administrator, is_board, is_executive
from app.core.security import TokenClaims
from app.schemas.roles import EffectiveRoleResponse, RoleAssignmentRequest, RoleAssignmentResult
from app.services.role_service import assign_user_role

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me/role", response_model=EffectiveRoleResponse)
def read_my_role(
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    """
    Effective role of the caller plus the derived flags the client gates UI on.
    """
    return EffectiveRoleResponse(
        user_id=current_user.sub,
        role=role.value if role else None,
        is_administrator=is_administrator(role),
        is_executive=is_executive(role),
        is_board=is_board(role),
    )


@router.post("/assign-user-role", response_model=RoleAssignmentResult)
def assign_role(
    body: RoleAssignmentRequest,
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
    cache: Optional[RoleCache] = Depends(deps.get_role_cache),
) -> Any:
    try:
        result = assign_user_role(db, role, body, cache)
    except PolicyAiError as e:
        logger.warning(f"Role assignment by {current_user.sub} rejected: {e.message}")
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    if not result.success:
        return JSONResponse(status_code=400, content=result.model_dump(mode="json"))
    return result


@router.post("/logout")
def logout(
    current_user: TokenClaims = Depends(deps.get_current_user),
    cache: Optional[RoleCache] = Depends(deps.get_role_cache),
) -> Any:
    """Drop the caller's cached role; the token itself is revoked by the auth service."""
    if cache is not None:
        cache.invalidate(current_user.sub)
    return {"success": True}
