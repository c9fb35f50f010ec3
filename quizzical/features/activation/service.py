"""
Plan activation service.

Applies a paid plan across the three denormalized records the rest of the
app reads:

    users/{uid}/subscription   (entitlements + billing cycle)
    usage/{uid}/{year}/{month} (current month counters)
    users/{uid}/metadata       (plan copy for fast lookups)

The store has no cross-path transactions. Writes happen in a fixed order
(subscription → usage → metadata → cleanup) and always set counters to fixed
values, so re-running an activation converges to the same state instead of
double-crediting. verify_activation() detects the window where a crash left
the records disagreeing.
"""
import calendar
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Dict, Any

from quizzical.core.errors import SubscriptionNotFoundError
from quizzical.features.plans.service import FREE_PLAN, get_plan_limits, is_paid_plan
from quizzical.features.store.provider import DocumentStore
from quizzical.features.store.service import (
    get_store,
    subscription_path,
    usage_path,
    metadata_path,
    pending_plan_change_path,
    pending_purchase_path,
)
from quizzical.models.subscription import (
    ActivationParams,
    ActivationResult,
    SubscriptionRecord,
    UsageRecord,
    MetadataRecord,
)


logger = logging.getLogger("quizzical.activation")

ROLLBACK_ERROR = "Activation rolled back"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def add_months(dt: datetime, months: int = 1) -> datetime:
    """Same day-of-month `months` later, clamped to the target month's length."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


class PlanActivationService:
    """
    Activate / verify / roll back plan entitlements for a user.

    Args:
        store: Document store holding the user records
        now: Clock returning an aware UTC datetime (injectable for tests)
    """

    def __init__(self, store: DocumentStore, now: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.now = now or utc_now

    def _usage_path_for(self, user_id: str, when: datetime) -> str:
        return usage_path(user_id, when.year, when.month)

    def activate_plan(self, params: ActivationParams) -> ActivationResult:
        """
        Write plan entitlements for params.user_id.

        Never raises: failures come back as success=False with the error
        message and the nodes written before the failure.
        """
        user_id = params.user_id
        plan = params.plan

        if not is_paid_plan(plan):
            logger.warning(
                "[activation] rejected invalid plan",
                extra={"user_id": user_id, "plan": plan, "source": params.source},
            )
            return ActivationResult(success=False, user_id=user_id, plan=plan, error=f"Invalid plan: {plan}")

        limits = get_plan_limits(plan)
        now = self.now()
        stamp = now.isoformat()
        activated = []

        logger.info(
            "[activation] activating plan",
            extra={"user_id": user_id, "plan": plan, "source": params.source},
        )
        if params.amount == 0:
            logger.info("[activation] zero-dollar grant", extra={"user_id": user_id, "plan": plan})

        try:
            sub_path = subscription_path(user_id)
            existing = self.store.get(sub_path) or {}
            subscription = SubscriptionRecord(
                plan=plan,
                subscription_id=params.subscription_id,
                subscription_status="active",
                subscription_source=params.source,
                tokens_used=0,
                tokens_limit=limits.tokens,
                quizzes_used=0,
                quizzes_limit=limits.quizzes,
                billing_cycle_start=stamp,
                billing_cycle_end=add_months(now).isoformat(),
                created_at=existing.get("created_at") or stamp,
                updated_at=stamp,
                activation_attempts=int(existing.get("activation_attempts") or 0) + 1,
            )
            self.store.set(sub_path, subscription.model_dump(exclude_none=True))
            activated.append("subscription")

            u_path = self._usage_path_for(user_id, now)
            existing_usage = self.store.get(u_path) or {}
            usage = UsageRecord(
                plan=plan,
                tokens_limit=limits.tokens,
                quizzes_limit=limits.quizzes,
                tokens_used=0,
                quizzes_created=0,
                month=now.month,
                year=now.year,
                created_at=existing_usage.get("created_at") or stamp,
                updated_at=stamp,
            )
            self.store.set(u_path, usage.model_dump())
            activated.append("usage")

            metadata = MetadataRecord(subscription_id=params.subscription_id, plan=plan, updated_at=stamp)
            self.store.update(metadata_path(user_id), metadata.model_dump())
            activated.append("metadata")

            self.store.delete(pending_plan_change_path(user_id))

            purchase_path = pending_purchase_path(user_id)
            if self.store.get(purchase_path) is not None:
                self.store.update(purchase_path, {
                    "status": "completed",
                    "activation_completed_at": stamp,
                    "updated_at": stamp,
                })
        except Exception as e:
            logger.error(
                "[activation] activation failed",
                exc_info=True,
                extra={"user_id": user_id, "plan": plan, "source": params.source},
            )
            self._record_error(user_id, str(e))
            return ActivationResult(
                success=False,
                user_id=user_id,
                plan=plan,
                error=str(e),
                activated_nodes=activated,
            )

        logger.info("[activation] plan activated", extra={"user_id": user_id, "plan": plan})
        return ActivationResult(
            success=True,
            user_id=user_id,
            plan=plan,
            tokens_limit=limits.tokens,
            quizzes_limit=limits.quizzes,
            activated_nodes=activated,
        )

    def _record_error(self, user_id: str, message: str) -> None:
        try:
            self.store.update(subscription_path(user_id), {
                "last_activation_error": message,
                "updated_at": self.now().isoformat(),
            })
        except Exception:
            logger.warning("[activation] could not record activation error", exc_info=True, extra={"user_id": user_id})

    def verify_activation(self, user_id: str) -> bool:
        """True iff subscription, current usage and metadata agree on an active plan."""
        try:
            subscription = self.store.get(subscription_path(user_id))
            usage = self.store.get(self._usage_path_for(user_id, self.now()))
            metadata = self.store.get(metadata_path(user_id))
        except Exception:
            logger.error("[activation] verification read failed", exc_info=True, extra={"user_id": user_id})
            return False

        if not subscription:
            logger.warning("[activation] verify: subscription missing", extra={"user_id": user_id})
            return False
        if subscription.get("subscription_status") != "active":
            logger.warning("[activation] verify: subscription not active", extra={"user_id": user_id})
            return False
        if not usage:
            logger.warning("[activation] verify: usage missing", extra={"user_id": user_id})
            return False
        if usage.get("plan") != subscription.get("plan"):
            logger.warning("[activation] verify: usage plan mismatch", extra={"user_id": user_id})
            return False
        if usage.get("tokens_limit") != subscription.get("tokens_limit"):
            logger.warning("[activation] verify: usage limit mismatch", extra={"user_id": user_id})
            return False
        if not metadata:
            logger.warning("[activation] verify: metadata missing", extra={"user_id": user_id})
            return False
        if metadata.get("plan") != subscription.get("plan"):
            logger.warning("[activation] verify: metadata plan mismatch", extra={"user_id": user_id})
            return False
        return True

    def rollback_activation(self, user_id: str) -> None:
        """
        Reset subscription, usage and metadata to the free plan.

        Raises:
            DocumentStoreError: If any write fails (the rollback is incomplete)
        """
        limits = get_plan_limits(FREE_PLAN)
        now = self.now()
        stamp = now.isoformat()

        self.store.update(subscription_path(user_id), {
            "plan": FREE_PLAN,
            "subscription_status": "active",
            "tokens_limit": limits.tokens,
            "quizzes_limit": limits.quizzes,
            "billing_cycle_start": stamp,
            "billing_cycle_end": add_months(now).isoformat(),
            "updated_at": stamp,
        })
        self.store.update(self._usage_path_for(user_id, now), {
            "plan": FREE_PLAN,
            "tokens_limit": limits.tokens,
            "quizzes_limit": limits.quizzes,
            "updated_at": stamp,
        })
        self.store.update(metadata_path(user_id), {"plan": FREE_PLAN, "updated_at": stamp})

        purchase_path = pending_purchase_path(user_id)
        if self.store.get(purchase_path) is not None:
            self.store.update(purchase_path, {
                "status": "failed",
                "error": ROLLBACK_ERROR,
                "updated_at": stamp,
            })
        logger.info("[activation] rolled back to free", extra={"user_id": user_id, "plan": FREE_PLAN})

    def _existing_subscription(self, user_id: str) -> Dict[str, Any]:
        subscription = self.store.get(subscription_path(user_id))
        if not subscription:
            raise SubscriptionNotFoundError(f"No subscription for user {user_id}")
        return subscription

    def update_subscription_status(self, user_id: str, status: str, subscription_id: Optional[str] = None) -> None:
        """Flip subscription_status (active/cancelled/expired); records are kept."""
        self._existing_subscription(user_id)
        values = {"subscription_status": status, "updated_at": self.now().isoformat()}
        if subscription_id:
            values["subscription_id"] = subscription_id
        self.store.update(subscription_path(user_id), values)
        logger.info("[activation] subscription status changed", extra={"user_id": user_id, "status": status})

    def renew_subscription(self, user_id: str, subscription_id: Optional[str] = None) -> None:
        """Mark active and start a new billing cycle (usage counters untouched)."""
        self._existing_subscription(user_id)
        now = self.now()
        values = {
            "subscription_status": "active",
            "billing_cycle_start": now.isoformat(),
            "billing_cycle_end": add_months(now).isoformat(),
            "updated_at": now.isoformat(),
        }
        if subscription_id:
            values["subscription_id"] = subscription_id
        self.store.update(subscription_path(user_id), values)
        logger.info("[activation] subscription renewed", extra={"user_id": user_id})


def get_activation_service() -> PlanActivationService:
    """Service bound to the process-wide document store."""
    return PlanActivationService(get_store())
