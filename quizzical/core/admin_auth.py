"""
Shared-secret authentication for admin and cron routes.

- Admin routes: X-Admin-Key header compared to ADMIN_KEY (403 otherwise)
- Cron routes: Authorization: Bearer <CRON_SECRET> (401 otherwise)

A missing secret in configuration rejects every request.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from quizzical.core.config import settings
from quizzical.core.errors import PermissionError, UnauthorizedError


logger = logging.getLogger("quizzical.auth")


@dataclass
class AdminActor:
    """Represents an authenticated admin caller."""
    actor_id: str  # "admin_key:<hash>" or "cron"
    auth_mechanism: str = "x_admin_key"


def _matches(provided: Optional[str], expected: Optional[str]) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: require a valid X-Admin-Key header.

    Usage:
        @router.post("/api/admin/endpoint")
        def endpoint(actor: AdminActor = Depends(require_admin)):
            ...
    """
    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not _matches(header_key, settings.ADMIN_KEY):
        logger.warning("[auth] invalid admin key attempt", extra={"path": request.url.path})
        raise PermissionError("Invalid or missing X-Admin-Key header")
    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"admin_key:{key_hash}")


def require_cron(request: Request) -> AdminActor:
    """FastAPI dependency: require Authorization: Bearer <CRON_SECRET>."""
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
    if not _matches(token, settings.CRON_SECRET):
        logger.warning("[auth] unauthorized cron call", extra={"path": request.url.path})
        raise UnauthorizedError("Unauthorized")
    return AdminActor(actor_id="cron", auth_mechanism="bearer")
