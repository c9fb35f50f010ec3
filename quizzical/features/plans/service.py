"""
quizzical/features/plans/service.py

Static plan-limits table.

Every component that grants or checks entitlements reads limits from here;
nothing else hardcodes token or quiz quotas.
"""

from typing import Dict, Tuple

from quizzical.core.errors import InvalidPlanError
from quizzical.models.plan import PlanLimits


PAID_PLANS: Tuple[str, ...] = ("basic", "pro", "premium")
FREE_PLAN = "free"

PLAN_LIMITS: Dict[str, PlanLimits] = {
    "free": PlanLimits(
        plan="free",
        tokens=100_000,
        quizzes=20,
        price_usd=0.0,
        features=("Custom quizzes", "Study guides"),
    ),
    "basic": PlanLimits(
        plan="basic",
        tokens=250_000,
        quizzes=50,
        price_usd=1.05,
        features=("Custom quizzes", "Study guides", "Flashcards", "Exam papers"),
    ),
    "pro": PlanLimits(
        plan="pro",
        tokens=500_000,
        quizzes=100,
        price_usd=2.10,
        features=(
            "Custom quizzes",
            "Study guides",
            "Flashcards",
            "Exam papers",
            "Quizzes from documents",
            "Performance analytics",
        ),
    ),
    "premium": PlanLimits(
        plan="premium",
        tokens=1_000_000,
        quizzes=200,
        price_usd=3.86,
        features=(
            "Custom quizzes",
            "Study guides",
            "Flashcards",
            "Exam papers",
            "Quizzes from documents",
            "Performance analytics",
            "Priority generation",
        ),
    ),
}


def is_paid_plan(plan: object) -> bool:
    """True for basic/pro/premium only."""
    return isinstance(plan, str) and plan in PAID_PLANS


def get_plan_limits(plan: str) -> PlanLimits:
    """
    Look up the limits for a plan.

    Raises:
        InvalidPlanError: If the plan is not in the table
    """
    limits = PLAN_LIMITS.get(plan)
    if limits is None:
        raise InvalidPlanError(f"Invalid plan: {plan}")
    return limits
