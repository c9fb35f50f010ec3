"""
Document store selection and path layout.

get_store() picks the backend once per process:
Firebase (FIREBASE_DATABASE_URL) → SQL (DATABASE_URL) → in-memory.
set_store() overrides the choice (tests, scripts).
"""
import logging
import os
from typing import Optional

from quizzical.core.config import settings
from quizzical.features.store.provider import DocumentStore
from quizzical.features.store.memory_store import InMemoryDocumentStore


logger = logging.getLogger("quizzical.store")

USERS_PATH = "users"
WEBHOOK_ERRORS_PATH = "webhook_errors"
PENDING_PURCHASES_PATH = "pending_purchases"

_store: Optional[DocumentStore] = None


def subscription_path(user_id: str) -> str:
    return f"{USERS_PATH}/{user_id}/subscription"


def usage_path(user_id: str, year: int, month: int) -> str:
    return f"usage/{user_id}/{year}/{month}"


def metadata_path(user_id: str) -> str:
    return f"{USERS_PATH}/{user_id}/metadata"


def pending_plan_change_path(user_id: str) -> str:
    return f"{USERS_PATH}/{user_id}/pending_plan_change"


def pending_purchase_path(user_id: str) -> str:
    return f"{PENDING_PURCHASES_PATH}/{user_id}"


def _build_store() -> DocumentStore:
    firebase_url = os.getenv("FIREBASE_DATABASE_URL") or settings.FIREBASE_DATABASE_URL
    if firebase_url:
        from quizzical.features.store.firebase_store import FirebaseDocumentStore
        logger.info("[store] using Firebase Realtime Database")
        return FirebaseDocumentStore(
            database_url=firebase_url,
            credentials_raw=os.getenv("FIREBASE_CREDENTIALS") or settings.FIREBASE_CREDENTIALS,
        )

    if os.getenv("DATABASE_URL") or settings.DATABASE_URL:
        from quizzical.core.database import create_all_tables
        from quizzical.features.store.sql_store import SqlDocumentStore
        create_all_tables()
        logger.info("[store] using SQL document store")
        return SqlDocumentStore()

    logger.warning("[store] no FIREBASE_DATABASE_URL or DATABASE_URL; using in-memory store")
    return InMemoryDocumentStore()


def get_store() -> DocumentStore:
    """Get the process-wide document store."""
    global _store
    if _store is None:
        _store = _build_store()
    return _store


def set_store(store: Optional[DocumentStore]) -> None:
    """Override the process-wide store (None resets to auto-selection)."""
    global _store
    _store = store
