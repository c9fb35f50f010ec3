"""
Admin-only plan operations router.
Requires X-Admin-Key header for all endpoints.
Handles manual activation, verification and rollback.
"""

import logging
import time
from typing import Optional, List

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from quizzical.core.admin_auth import require_admin, AdminActor
from quizzical.core.errors import InvalidPlanError
from quizzical.features.activation.service import get_activation_service
from quizzical.features.plans.service import is_paid_plan
from quizzical.models.subscription import ActivationParams, USER_KEY_PATTERN

logger = logging.getLogger("quizzical.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])


# ============================================================================
# Pydantic Models
# ============================================================================

class ActivateUserPlanRequest(BaseModel):
    """Request to activate a plan by hand."""
    userId: str = Field(..., min_length=1, pattern=USER_KEY_PATTERN)
    plan: str
    userEmail: Optional[str] = None


class ActivateUserPlanResponse(BaseModel):
    success: bool
    userId: str
    plan: str
    tokensLimit: Optional[int] = None
    quizzesLimit: Optional[int] = None
    activatedNodes: List[str] = []
    verified: bool
    error: Optional[str] = None


class RollbackUserPlanRequest(BaseModel):
    userId: str = Field(..., min_length=1, pattern=USER_KEY_PATTERN)


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/activate-user-plan", response_model=ActivateUserPlanResponse)
def activate_user_plan(request: ActivateUserPlanRequest, actor: AdminActor = Depends(require_admin)):
    """
    Activate a paid plan for a user (support/manual fix path).

    Errors:
        400: Plan is not basic/pro/premium
        403: Invalid or missing X-Admin-Key
    """
    if not is_paid_plan(request.plan):
        raise InvalidPlanError(f"Invalid plan: {request.plan}. Must be basic, pro, or premium")

    service = get_activation_service()
    result = service.activate_plan(ActivationParams(
        user_id=request.userId,
        user_email=request.userEmail or "",
        plan=request.plan,
        subscription_id=f"admin_manual_{int(time.time() * 1000)}",
        source="admin",
        amount=0,
    ))
    verified = service.verify_activation(request.userId) if result.success else False

    logger.info(
        "[admin] manual activation",
        extra={"user_id": request.userId, "plan": request.plan, "source": "admin"},
    )
    return ActivateUserPlanResponse(
        success=result.success,
        userId=request.userId,
        plan=request.plan,
        tokensLimit=result.tokens_limit,
        quizzesLimit=result.quizzes_limit,
        activatedNodes=result.activated_nodes,
        verified=verified,
        error=result.error,
    )


@router.post("/rollback-user-plan")
def rollback_user_plan(request: RollbackUserPlanRequest, actor: AdminActor = Depends(require_admin)):
    """Reset a user to the free plan. Store failures surface as 500."""
    service = get_activation_service()
    service.rollback_activation(request.userId)
    logger.info("[admin] rollback", extra={"user_id": request.userId, "source": "admin"})
    return {"success": True, "userId": request.userId, "plan": "free"}


@router.get("/verify-user-plan/{user_id}")
def verify_user_plan(user_id: str = Path(..., pattern=USER_KEY_PATTERN), actor: AdminActor = Depends(require_admin)):
    return {"userId": user_id, "verified": get_activation_service().verify_activation(user_id)}
