"""
Subscription status route.

GET /api/subscription/status/{user_id} is polled by the checkout success page
until the plan shows up as active (or the auto-fix job kicks in).
"""
from typing import Optional

from fastapi import APIRouter, Path
from pydantic import BaseModel

from quizzical.features.activation.service import get_activation_service
from quizzical.features.store.service import subscription_path, pending_purchase_path
from quizzical.models.subscription import USER_KEY_PATTERN


router = APIRouter(prefix="/api/subscription", tags=["subscription"])


class SubscriptionStatusResponse(BaseModel):
    userId: str
    plan: str
    status: Optional[str] = None
    tokensLimit: Optional[int] = None
    quizzesLimit: Optional[int] = None
    billingCycleEnd: Optional[str] = None
    pendingPurchaseStatus: Optional[str] = None
    verified: bool


@router.get("/status/{user_id}", response_model=SubscriptionStatusResponse)
def get_subscription_status(user_id: str = Path(..., pattern=USER_KEY_PATTERN)):
    """Current plan, limits and pending purchase state for a user."""
    service = get_activation_service()
    subscription = service.store.get(subscription_path(user_id)) or {}
    purchase = service.store.get(pending_purchase_path(user_id)) or {}

    return SubscriptionStatusResponse(
        userId=user_id,
        plan=subscription.get("plan") or "free",
        status=subscription.get("subscription_status"),
        tokensLimit=subscription.get("tokens_limit"),
        quizzesLimit=subscription.get("quizzes_limit"),
        billingCycleEnd=subscription.get("billing_cycle_end"),
        pendingPurchaseStatus=purchase.get("status"),
        verified=service.verify_activation(user_id) if subscription else False,
    )
