"""
Whop webhook payload handling.

Signature check (HMAC-SHA256 hex over the raw body), payload parsing and
product id → plan resolution. No network calls.
"""
import hmac
import hashlib
import json
from typing import Optional, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from quizzical.core.config import settings
from quizzical.features.plans.service import PAID_PLANS
from quizzical.features.webhooks.errors import InvalidPayloadError, SignatureInvalidError


SIGNATURE_HEADERS = ("x-whop-signature", "whop-signature")

ACTIVATION_EVENTS = ("membership_created", "membership_activated")
STATUS_EVENTS = {"membership_cancelled": "cancelled", "membership_expired": "expired"}
RENEWAL_EVENT = "membership_renewed"


class WhopWebhookEvent(BaseModel):
    """Normalized Whop webhook body."""
    model_config = ConfigDict(extra="ignore")

    event: str
    userId: Optional[str] = None
    userEmail: Optional[str] = None
    planId: Optional[str] = None
    subscriptionId: Optional[str] = None
    amount: Optional[float] = None


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time check of the hex HMAC-SHA256 of body. No secret never verifies."""
    if not secret or not signature:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected, signature.strip())


def signature_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def require_valid_signature(body: bytes, headers: Mapping[str, str], secret: Optional[str] = None) -> None:
    """
    Raises:
        SignatureInvalidError: Missing header, missing secret or mismatch
    """
    secret = secret if secret is not None else settings.WHOP_WEBHOOK_SECRET
    if not secret:
        raise SignatureInvalidError("Webhook secret not configured")
    signature = signature_from_headers(headers)
    if not signature:
        raise SignatureInvalidError("Missing webhook signature")
    if not verify_signature(body, signature, secret):
        raise SignatureInvalidError("Invalid signature")


def parse_event(body: bytes) -> WhopWebhookEvent:
    """
    Raises:
        InvalidPayloadError: Body is not JSON or does not match the event schema
    """
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidPayloadError(f"Invalid JSON payload: {e}")
    if not isinstance(data, dict):
        raise InvalidPayloadError("Payload must be a JSON object")
    try:
        return WhopWebhookEvent.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidPayloadError(f"Invalid webhook payload: {e.errors()[0].get('msg', 'invalid')}")


def _product_map():
    return {
        settings.WHOP_BASIC_PRODUCT_ID: "basic",
        settings.WHOP_PRO_PRODUCT_ID: "pro",
        settings.WHOP_PREMIUM_PRODUCT_ID: "premium",
    }


def resolve_plan(plan_id: Optional[str]) -> str:
    """
    Map a Whop product id (or a literal tier name) to a paid plan.

    Raises:
        InvalidPayloadError: Unknown or missing plan id
    """
    if not plan_id:
        raise InvalidPayloadError("Missing planId")
    for product_id, plan in _product_map().items():
        if product_id and plan_id == product_id:
            return plan
    if plan_id in PAID_PLANS:
        return plan_id
    raise InvalidPayloadError(f"Unknown planId: {plan_id}")
