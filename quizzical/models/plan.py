"""
quizzical/models/plan.py

Plan limits model.

A plan is a subscription tier (free, basic, pro, premium) carrying the
monthly token and quiz quotas granted on activation.
"""

from typing import Literal, Tuple
from pydantic import BaseModel, ConfigDict


PlanId = Literal["free", "basic", "pro", "premium"]
PaidPlanId = Literal["basic", "pro", "premium"]


class PlanLimits(BaseModel):
    """
    Quotas and list price of a single tier.

    `tokens` and `quizzes` are per billing cycle; `price_usd` is the
    monthly list price shown on the pricing page (0 for free).
    """
    model_config = ConfigDict(frozen=True)

    plan: PlanId
    tokens: int
    quizzes: int
    price_usd: float
    features: Tuple[str, ...]
