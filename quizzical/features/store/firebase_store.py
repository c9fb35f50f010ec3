"""
Firebase Realtime Database store.

Implements DocumentStore protocol on top of firebase_admin.db references.
This is the production backend; the app's other services read the same
`users/...`, `usage/...` and `pending_purchases/...` nodes.
"""
import json
import logging
import os
from typing import Dict, Any, Optional

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError

from quizzical.features.store.provider import DocumentStoreError, split_path


logger = logging.getLogger("quizzical.store")

APP_NAME = "quizzical-activation"


def _load_credentials(raw: Optional[str]):
    """Service account from inline JSON, a file path, or application default."""
    if not raw:
        return credentials.ApplicationDefault()
    raw = raw.strip()
    if raw.startswith("{"):
        return credentials.Certificate(json.loads(raw))
    if not os.path.exists(raw):
        raise DocumentStoreError(f"Firebase credentials file not found: {raw}")
    return credentials.Certificate(raw)


def init_firebase_app(database_url: str, credentials_raw: Optional[str] = None):
    """Initialize (or reuse) the named firebase_admin app."""
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass
    try:
        cred = _load_credentials(credentials_raw)
        app = firebase_admin.initialize_app(cred, {"databaseURL": database_url}, name=APP_NAME)
    except (ValueError, IOError) as e:
        raise DocumentStoreError(f"Firebase initialization failed: {e}")
    logger.info("[store] Firebase app initialized")
    return app


class FirebaseDocumentStore:
    """Firebase implementation of DocumentStore protocol."""

    def __init__(self, database_url: Optional[str] = None, credentials_raw: Optional[str] = None, app=None):
        """
        Initialize Firebase store.

        Args:
            database_url: Realtime Database URL (defaults to FIREBASE_DATABASE_URL env var)
            credentials_raw: Service account JSON or path (defaults to FIREBASE_CREDENTIALS env var)
            app: Pre-initialized firebase_admin app (tests, custom setups)
        """
        if app is None:
            url = database_url or os.getenv("FIREBASE_DATABASE_URL")
            if not url:
                raise DocumentStoreError("FIREBASE_DATABASE_URL not configured")
            app = init_firebase_app(url, credentials_raw or os.getenv("FIREBASE_CREDENTIALS"))
        self.app = app

    def _ref(self, path: str):
        return db.reference("/".join(split_path(path)), app=self.app)

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            return self._ref(path).get()
        except (FirebaseError, ValueError) as e:
            raise DocumentStoreError(f"Read failed for {path}: {e}")

    def set(self, path: str, value: Dict[str, Any]) -> None:
        try:
            self._ref(path).set(value)
        except (FirebaseError, ValueError, TypeError) as e:
            raise DocumentStoreError(f"Write failed for {path}: {e}")

    def update(self, path: str, values: Dict[str, Any]) -> None:
        try:
            self._ref(path).update(values)
        except (FirebaseError, ValueError, TypeError) as e:
            raise DocumentStoreError(f"Update failed for {path}: {e}")

    def delete(self, path: str) -> None:
        try:
            self._ref(path).delete()
        except (FirebaseError, ValueError) as e:
            raise DocumentStoreError(f"Delete failed for {path}: {e}")

    def push(self, path: str, value: Dict[str, Any]) -> str:
        try:
            return self._ref(path).push(value).key
        except (FirebaseError, ValueError, TypeError) as e:
            raise DocumentStoreError(f"Push failed for {path}: {e}")

    def children(self, path: str) -> Dict[str, Dict[str, Any]]:
        node = self.get(path)
        if not isinstance(node, dict):
            return {}
        return {k: v for k, v in node.items() if isinstance(v, dict)}

    def find_by_child(self, path: str, child: str, value: Any) -> Dict[str, Dict[str, Any]]:
        # Requires an ".indexOn" rule for `child` under `path`
        try:
            result = self._ref(path).order_by_child(child).equal_to(value).get()
        except (FirebaseError, ValueError) as e:
            raise DocumentStoreError(f"Query failed for {path} by {child}: {e}")
        return dict(result or {})
