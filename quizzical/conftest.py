# quizzical/conftest.py
import os

# Must be set before quizzical.main is imported by any test module
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")

import pytest

from quizzical.core.config import settings
from quizzical.features.activation.service import PlanActivationService
from quizzical.features.store.memory_store import InMemoryDocumentStore
from quizzical.features.store.service import set_store
from quizzical.tests.mocks import (
    FIXED_NOW,
    TEST_ADMIN_KEY,
    TEST_CRON_SECRET,
    TEST_WEBHOOK_SECRET,
)


@pytest.fixture(autouse=True)
def memory_store():
    """Fresh in-memory document store installed as the process-wide store."""
    store = InMemoryDocumentStore()
    set_store(store)
    yield store
    set_store(None)


@pytest.fixture
def activation_service(memory_store):
    return PlanActivationService(memory_store, now=lambda: FIXED_NOW)


@pytest.fixture
def configured_settings(monkeypatch):
    """Secrets and Whop product ids for webhook/admin/cron tests."""
    monkeypatch.setattr(settings, "WHOP_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "ADMIN_KEY", TEST_ADMIN_KEY)
    monkeypatch.setattr(settings, "CRON_SECRET", TEST_CRON_SECRET)
    monkeypatch.setattr(settings, "WHOP_BASIC_PRODUCT_ID", "prod_basic_123")
    monkeypatch.setattr(settings, "WHOP_PRO_PRODUCT_ID", "prod_pro_456")
    monkeypatch.setattr(settings, "WHOP_PREMIUM_PRODUCT_ID", "prod_premium_789")
    return settings
