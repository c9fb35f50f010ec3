"""
Health endpoints.

Lightweight liveness/readiness probes; no secrets in responses.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from quizzical.features.store.provider import DocumentStoreError
from quizzical.features.store.service import get_store

logger = logging.getLogger("quizzical")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: the document store answers a read."""
    try:
        get_store().get("health")
    except DocumentStoreError as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "store unreachable"})
    return {"status": "ok"}
