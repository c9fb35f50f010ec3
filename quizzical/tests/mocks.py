"""Shared test doubles and constants."""
import hashlib
import hmac
from datetime import datetime, timezone

from quizzical.features.store.memory_store import InMemoryDocumentStore
from quizzical.features.store.provider import DocumentStoreError


FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)

TEST_WEBHOOK_SECRET = "whsec_test_secret"
TEST_ADMIN_KEY = "admin-test-key"
TEST_CRON_SECRET = "cron-test-secret"


def sign(body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class FailingStore(InMemoryDocumentStore):
    """
    In-memory store that raises DocumentStoreError on writes under chosen prefixes.

    `fail_times` limits how many calls fail before the store recovers
    (None fails forever). Reads fail too when `fail_reads` is set.
    """

    def __init__(self, fail_prefixes=(), fail_times=None, fail_reads=False, initial=None):
        super().__init__(initial)
        self.fail_prefixes = tuple(fail_prefixes)
        self.fail_times = fail_times
        self.fail_reads = fail_reads
        self.failures = 0

    def _maybe_fail(self, path):
        if not any(path.startswith(p) for p in self.fail_prefixes):
            return
        if self.fail_times is not None and self.failures >= self.fail_times:
            return
        self.failures += 1
        raise DocumentStoreError(f"write refused for {path}")

    def get(self, path):
        if self.fail_reads:
            self._maybe_fail(path)
        return super().get(path)

    def set(self, path, value):
        self._maybe_fail(path)
        super().set(path, value)

    def update(self, path, values):
        self._maybe_fail(path)
        super().update(path, values)

    def delete(self, path):
        self._maybe_fail(path)
        super().delete(path)

    def push(self, path, value):
        self._maybe_fail(path)
        return super().push(path, value)

    def find_by_child(self, path, child, value):
        if self.fail_reads:
            self._maybe_fail(path)
        return super().find_by_child(path, child, value)
