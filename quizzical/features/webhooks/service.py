"""
Whop webhook processing.

State machine over membership events:

    membership_created / membership_activated → activate_plan (with retry)
    membership_cancelled / membership_expired → subscription status flip
    membership_renewed                       → new billing cycle
    anything else                            → logged, acknowledged

Activation is retried in-process with exponential backoff (base * 2**k) on
every error except USER_NOT_FOUND. A user that has not registered yet is left
to Whop's own redelivery: the endpoint answers 500 and Whop sends the event
again later. Every failed attempt lands in webhook_errors/{autoId}.
"""
import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Mapping, Dict, Any, List, Union

from quizzical.core.config import settings
from quizzical.core.errors import SubscriptionNotFoundError
from quizzical.features.activation.service import PlanActivationService
from quizzical.features.store.provider import DocumentStore, DocumentStoreError
from quizzical.features.store.service import get_store, USERS_PATH, WEBHOOK_ERRORS_PATH
from quizzical.features.webhooks.errors import (
    WebhookError,
    InvalidPayloadError,
    UserNotFoundError,
    ActivationFailedError,
    DatabaseError,
)
from quizzical.features.webhooks.whop import (
    ACTIVATION_EVENTS,
    STATUS_EVENTS,
    RENEWAL_EVENT,
    WhopWebhookEvent,
    parse_event,
    require_valid_signature,
    resolve_plan,
)
from quizzical.models.subscription import ActivationParams, USER_KEY_PATTERN


logger = logging.getLogger("quizzical.webhooks")

MAX_LOGGED_PAYLOAD_CHARS = 4000


def compute_retry_delays(max_retries: int, base_seconds: float) -> List[float]:
    """Delay before each retry: base, 2*base, 4*base, ..."""
    return [base_seconds * (2 ** k) for k in range(max(0, max_retries))]


class WhopWebhookHandler:
    """
    Verify, parse and apply a Whop webhook delivery.

    Args:
        store: Document store (users, error log)
        activation: Activation service (defaults to one bound to `store`)
        sleep: Called with the backoff delay in seconds between retries
        max_retries: Retries after the first attempt (defaults to WEBHOOK_MAX_RETRIES)
        base_delay: First backoff delay in seconds (defaults to WEBHOOK_RETRY_BASE_SECONDS)
        secret: Signing secret (defaults to WHOP_WEBHOOK_SECRET)
    """

    def __init__(
        self,
        store: DocumentStore,
        activation: Optional[PlanActivationService] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        secret: Optional[str] = None,
    ):
        self.store = store
        self.activation = activation or PlanActivationService(store)
        self.sleep = sleep
        self.max_retries = settings.WEBHOOK_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = settings.WEBHOOK_RETRY_BASE_SECONDS if base_delay is None else base_delay
        self.secret = secret

    def handle(self, body: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        """
        Process one delivery end to end.

        Returns:
            {"event", "action", "user_id"} describing what was applied

        Raises:
            WebhookError: Taxonomy error; the caller maps it to an HTTP status
        """
        try:
            require_valid_signature(body, headers, self.secret)
            event = parse_event(body)
        except WebhookError as e:
            logger.warning("[webhooks] rejected delivery", extra={"error_code": e.error_type})
            self.log_error(e, payload=_raw_payload(body))
            raise
        return self.process_event(event)

    def process_event(self, event: WhopWebhookEvent) -> Dict[str, Any]:
        logger.info("[webhooks] processing event", extra={"event_type": event.event})

        if event.event in ACTIVATION_EVENTS:
            user_id = self._activate_with_retry(event)
            return {"event": event.event, "action": "activated", "user_id": user_id}

        if event.event in STATUS_EVENTS:
            status = STATUS_EVENTS[event.event]
            user_id = self._apply(event, lambda uid: self.activation.update_subscription_status(uid, status))
            return {"event": event.event, "action": status, "user_id": user_id}

        if event.event == RENEWAL_EVENT:
            user_id = self._apply(
                event, lambda uid: self.activation.renew_subscription(uid, event.subscriptionId)
            )
            return {"event": event.event, "action": "renewed", "user_id": user_id}

        logger.info("[webhooks] unhandled event", extra={"event_type": event.event})
        return {"event": event.event, "action": "ignored", "user_id": None}

    def resolve_user_id(self, email: str) -> str:
        """
        Internal user id for a Whop email (first match wins).

        Raises:
            UserNotFoundError: No user registered with that email
            DatabaseError: The lookup itself failed
        """
        try:
            matches = self.store.find_by_child(USERS_PATH, "email", email)
        except DocumentStoreError as e:
            raise DatabaseError(str(e))
        if not matches:
            raise UserNotFoundError(f"No user found for email {email}")
        return next(iter(matches))

    def _resolve_for_status_event(self, event: WhopWebhookEvent) -> str:
        if event.userEmail:
            return self.resolve_user_id(event.userEmail)
        if event.userId:
            if not re.fullmatch(USER_KEY_PATTERN, event.userId):
                raise InvalidPayloadError("Invalid userId")
            return event.userId
        raise InvalidPayloadError("Missing userEmail")

    def _apply(self, event: WhopWebhookEvent, action: Callable[[str], None]) -> Optional[str]:
        try:
            user_id = self._resolve_for_status_event(event)
            try:
                action(user_id)
            except DocumentStoreError as e:
                raise DatabaseError(str(e))
            except SubscriptionNotFoundError:
                logger.warning(
                    "[webhooks] no subscription to update",
                    extra={"event_type": event.event, "user_id": user_id},
                )
        except WebhookError as e:
            self.log_error(e, event=event)
            raise
        return user_id

    def _activate_with_retry(self, event: WhopWebhookEvent) -> str:
        try:
            if not event.userEmail:
                raise InvalidPayloadError("Missing userEmail")
            if not event.subscriptionId:
                raise InvalidPayloadError("Missing subscriptionId")
            plan = resolve_plan(event.planId)
        except InvalidPayloadError as e:
            self.log_error(e, event=event)
            raise

        delays = compute_retry_delays(self.max_retries, self.base_delay)
        attempt = 0
        while True:
            try:
                return self._attempt_activation(event, plan)
            except WebhookError as e:
                self.log_error(e, event=event, retry_count=attempt)
                if not e.retry_in_process or attempt >= len(delays):
                    logger.error(
                        "[webhooks] activation gave up",
                        extra={"event_type": event.event, "error_code": e.error_type, "attempt": attempt},
                    )
                    raise
                delay = delays[attempt]
                logger.warning(
                    f"[webhooks] activation failed, retrying in {delay}s",
                    extra={"event_type": event.event, "error_code": e.error_type, "attempt": attempt},
                )
                self.sleep(delay)
                attempt += 1

    def _attempt_activation(self, event: WhopWebhookEvent, plan: str) -> str:
        user_id = self.resolve_user_id(event.userEmail)

        if event.amount == 0:
            logger.info("[webhooks] zero-dollar grant", extra={"user_id": user_id, "plan": plan})

        result = self.activation.activate_plan(ActivationParams(
            user_id=user_id,
            user_email=event.userEmail,
            plan=plan,
            subscription_id=event.subscriptionId,
            source="whop",
            amount=event.amount,
        ))
        if not result.success:
            raise ActivationFailedError(result.error or "Plan activation failed")
        return user_id

    def log_error(
        self,
        error: WebhookError,
        *,
        event: Optional[WhopWebhookEvent] = None,
        payload: Union[Dict[str, Any], str, None] = None,
        retry_count: int = 0,
    ) -> Optional[str]:
        """Append an entry to webhook_errors. Write failures are logged, not raised."""
        entry = {
            "error_type": error.error_type,
            "message": error.message,
            "retryable": error.retryable,
            "retry_count": retry_count,
            "payload": event.model_dump(exclude_none=True) if event is not None else payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event.event if event is not None else None,
            "user_email": event.userEmail if event is not None else None,
        }
        entry = {k: v for k, v in entry.items() if v is not None}
        try:
            return self.store.push(WEBHOOK_ERRORS_PATH, entry)
        except Exception:
            logger.error(
                "[webhooks] could not write error log entry",
                exc_info=True,
                extra={"error_code": error.error_type},
            )
            return None


def _raw_payload(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")[:MAX_LOGGED_PAYLOAD_CHARS]


def get_webhook_handler() -> WhopWebhookHandler:
    return WhopWebhookHandler(get_store())
