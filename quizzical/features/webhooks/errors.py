"""
Webhook error taxonomy.

Every failure the receiver can hit maps to one error type with a fixed HTTP
status and a retryable flag. The flag is what gets written to the error log;
whether the in-process retry loop retries is decided by `retry_in_process`.
"""
from typing import Optional


class WebhookError(Exception):
    """Base class for webhook processing failures."""
    error_type = "PLAN_ACTIVATION_FAILED"
    retryable = True
    retry_in_process = True
    status_code = 500

    def __init__(self, message: str, *, error_type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error_type:
            self.error_type = error_type


class SignatureInvalidError(WebhookError):
    error_type = "SIGNATURE_INVALID"
    retryable = False
    retry_in_process = False
    status_code = 401


class InvalidPayloadError(WebhookError):
    error_type = "INVALID_PAYLOAD"
    retryable = False
    retry_in_process = False
    status_code = 400


class UserNotFoundError(WebhookError):
    # The user may not have registered yet: Whop redelivers on a 5xx
    error_type = "USER_NOT_FOUND"
    retryable = True
    retry_in_process = False
    status_code = 500


class ActivationFailedError(WebhookError):
    error_type = "PLAN_ACTIVATION_FAILED"


class DatabaseError(WebhookError):
    error_type = "DATABASE_ERROR"
