"""
Whop webhook routes.

- POST /api/webhooks/whop: signed membership events
- GET  /api/webhooks/whop: endpoint verification (echoes ?challenge=)

Status codes follow the webhook error taxonomy so Whop redelivers on 5xx.
"""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Request, Query
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from quizzical.core.logging import log_event
from quizzical.features.webhooks.errors import DatabaseError, WebhookError
from quizzical.features.webhooks.service import get_webhook_handler


logger = logging.getLogger("quizzical.webhooks")

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/whop")
async def receive_whop_webhook(request: Request):
    """
    Handle a Whop webhook delivery.

    Returns:
        {"success": true, "processingTime": <ms>}

    Errors:
        401: SIGNATURE_INVALID
        400: INVALID_PAYLOAD
        500: USER_NOT_FOUND, PLAN_ACTIVATION_FAILED, DATABASE_ERROR
    """
    start = time.perf_counter()
    # Raw body is required for signature verification
    body = await request.body()

    try:
        handler = get_webhook_handler()
        # Retries sleep between attempts; keep them off the event loop
        result = await run_in_threadpool(handler.handle, body, request.headers)
    except WebhookError as e:
        logger.warning(
            f"[webhooks] delivery failed: {e.message}",
            extra={"error_code": e.error_type, "status": e.status_code},
        )
        return JSONResponse(
            status_code=e.status_code,
            content={"success": False, "error": e.message, "errorType": e.error_type},
        )
    except Exception:
        logger.error("[webhooks] unexpected error while processing delivery", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "errorType": DatabaseError.error_type},
        )

    processing_ms = int((time.perf_counter() - start) * 1000)
    log_event(
        "info",
        "webhook.processed",
        user_id=result.get("user_id"),
        event_type=result["event"],
        extra={"action": result["action"], "processing_ms": processing_ms},
    )
    return {"success": True, "processingTime": processing_ms}


@router.get("/whop")
def verify_whop_webhook(challenge: Optional[str] = Query(None)):
    """Webhook verification / health check."""
    if challenge:
        return {"challenge": challenge}
    return {"success": True, "message": "Whop webhook endpoint is active"}
