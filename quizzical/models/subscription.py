"""
quizzical/models/subscription.py

Activation inputs/outputs and the shapes of the records the activation
service writes (subscription, usage, metadata).

Records are stored as plain JSON documents; the models below document the
fields and are used to build those documents.
"""

from typing import Literal, Optional, List
from pydantic import BaseModel, ConfigDict, Field


SubscriptionStatus = Literal["active", "cancelled", "expired"]
SubscriptionSource = Literal["whop", "promo_code", "admin"]
PurchaseStatus = Literal["processing", "completed", "failed"]

# Store keys: no path separators or characters Firebase rejects in keys
USER_KEY_PATTERN = r"^[^/.#$\[\]]+$"


class ActivationParams(BaseModel):
    """
    Input to PlanActivationService.activate_plan.

    `plan` is a plain string so unknown tiers reach the service and get a
    descriptive failure result instead of a validation error.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1, pattern=USER_KEY_PATTERN)
    user_email: str = ""
    plan: str
    subscription_id: str = Field(min_length=1)
    source: SubscriptionSource
    amount: Optional[float] = None


class ActivationResult(BaseModel):
    """Outcome of an activation call (never raised, always returned)."""
    success: bool
    user_id: Optional[str] = None
    plan: Optional[str] = None
    tokens_limit: Optional[int] = None
    quizzes_limit: Optional[int] = None
    error: Optional[str] = None
    activated_nodes: List[str] = Field(default_factory=list)


class SubscriptionRecord(BaseModel):
    """users/{uid}/subscription"""
    plan: str
    subscription_id: Optional[str] = None
    subscription_status: SubscriptionStatus = "active"
    subscription_source: Optional[SubscriptionSource] = None
    tokens_used: int = 0
    tokens_limit: int
    quizzes_used: int = 0
    quizzes_limit: int
    billing_cycle_start: str
    billing_cycle_end: str
    created_at: str
    updated_at: str
    activation_attempts: int = 0
    last_activation_error: Optional[str] = None


class UsageRecord(BaseModel):
    """usage/{uid}/{year}/{month}"""
    plan: str
    tokens_limit: int
    quizzes_limit: int
    tokens_used: int = 0
    quizzes_created: int = 0
    month: int
    year: int
    created_at: str
    updated_at: str


class MetadataRecord(BaseModel):
    """users/{uid}/metadata (denormalized plan copy)"""
    subscription_id: Optional[str] = None
    plan: str
    updated_at: str
