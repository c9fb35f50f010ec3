"""
Scheduled billing jobs.

- auto_fix_stuck_payments: activate users whose checkout left a
  pending_plan_change behind for longer than STUCK_PAYMENT_MINUTES
  (the webhook never arrived or never succeeded).
- reset_monthly_usage: start a new billing cycle for subscriptions whose
  billing_cycle_end has passed.

Both are safe to run repeatedly; activation is idempotent and a reset only
touches subscriptions that are due.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from quizzical.core.config import settings
from quizzical.features.activation.service import (
    PlanActivationService,
    add_months,
    get_activation_service,
)
from quizzical.features.plans.service import get_plan_limits, is_paid_plan
from quizzical.features.store.service import (
    USERS_PATH,
    pending_purchase_path,
    subscription_path,
    usage_path,
)
from quizzical.models.subscription import ActivationParams


logger = logging.getLogger("quizzical.jobs")

DEFAULT_FIX_PLAN = "pro"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string or epoch milliseconds → aware UTC datetime (None if unparseable)."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def auto_fix_stuck_payments(now: datetime, service: Optional[PlanActivationService] = None) -> Dict[str, Any]:
    """
    Activate every user stuck with a pending plan change.

    Target plan: pending purchase requested_plan, else pending change
    requested_plan, else pro.
    """
    service = service or get_activation_service()
    threshold = timedelta(minutes=settings.STUCK_PAYMENT_MINUTES)
    results = {"checked": 0, "fixed": 0, "failed": 0, "users": []}

    users = service.store.children(USERS_PATH)
    for user_id, user in users.items():
        pending_change = user.get("pending_plan_change")
        if not isinstance(pending_change, dict):
            continue
        results["checked"] += 1

        requested_at = parse_timestamp(pending_change.get("requested_at"))
        if requested_at is None:
            logger.warning("[jobs] pending change without requested_at, skipping", extra={"user_id": user_id})
            continue
        if now - requested_at < threshold:
            continue

        age_minutes = round((now - requested_at).total_seconds() / 60, 1)
        email = user.get("email") or ""
        logger.info(f"[jobs] stuck payment detected ({age_minutes} min)", extra={"user_id": user_id})

        try:
            purchase = service.store.get(pending_purchase_path(user_id)) or {}
        except Exception as e:
            logger.error("[jobs] pending purchase read failed", exc_info=True, extra={"user_id": user_id})
            results["failed"] += 1
            results["users"].append({"user_id": user_id, "status": "failed", "error": str(e)})
            continue

        plan = purchase.get("requested_plan") or pending_change.get("requested_plan") or DEFAULT_FIX_PLAN
        if not is_paid_plan(plan):
            logger.error("[jobs] invalid plan on stuck payment", extra={"user_id": user_id, "plan": plan})
            results["failed"] += 1
            results["users"].append({"user_id": user_id, "email": email, "status": "failed", "error": "Invalid plan", "plan": plan})
            continue

        result = service.activate_plan(ActivationParams(
            user_id=user_id,
            user_email=email,
            plan=plan,
            subscription_id=f"auto_fix_{int(now.timestamp() * 1000)}",
            source="admin",
            amount=0,
        ))
        if result.success:
            results["fixed"] += 1
            results["users"].append({
                "user_id": user_id,
                "email": email,
                "status": "fixed",
                "plan": plan,
                "tokens_limit": result.tokens_limit,
                "age_minutes": age_minutes,
            })
        else:
            results["failed"] += 1
            results["users"].append({"user_id": user_id, "email": email, "status": "failed", "error": result.error, "plan": plan})

    logger.info(
        f"[jobs] auto-fix complete: {results['fixed']} fixed, {results['failed']} failed, {results['checked']} checked"
    )
    return results


def _reset_user(service: PlanActivationService, user_id: str, subscription: Dict[str, Any], now: datetime) -> None:
    stamp = now.isoformat()
    limits = get_plan_limits(subscription.get("plan") or "free")

    service.store.update(subscription_path(user_id), {
        "tokens_used": 0,
        "quizzes_used": 0,
        "billing_cycle_start": stamp,
        "billing_cycle_end": add_months(now).isoformat(),
        "updated_at": stamp,
    })

    u_path = usage_path(user_id, now.year, now.month)
    existing = service.store.get(u_path) or {}
    service.store.set(u_path, {
        "plan": limits.plan,
        "tokens_limit": limits.tokens,
        "quizzes_limit": limits.quizzes,
        "tokens_used": 0,
        "quizzes_created": 0,
        "month": now.month,
        "year": now.year,
        "created_at": existing.get("created_at") or stamp,
        "updated_at": stamp,
    })


def reset_monthly_usage(now: datetime, service: Optional[PlanActivationService] = None) -> Dict[str, int]:
    """Start a new cycle for every subscription whose billing_cycle_end <= now."""
    service = service or get_activation_service()
    processed = 0
    errors = 0

    users = service.store.children(USERS_PATH)
    for user_id, user in users.items():
        subscription = user.get("subscription")
        if not isinstance(subscription, dict):
            continue
        cycle_end = parse_timestamp(subscription.get("billing_cycle_end"))
        if cycle_end is None or now < cycle_end:
            continue
        try:
            _reset_user(service, user_id, subscription, now)
            processed += 1
        except Exception:
            logger.error("[jobs] usage reset failed", exc_info=True, extra={"user_id": user_id})
            errors += 1

    logger.info(f"[jobs] usage reset complete: {processed} processed, {errors} errors")
    return {"processed": processed, "errors": errors}
