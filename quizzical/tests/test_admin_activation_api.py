"""Admin plan routes and the subscription status polling route."""
import pytest
from fastapi.testclient import TestClient

from quizzical.main import app
from quizzical.tests.mocks import TEST_ADMIN_KEY

client = TestClient(app)

ADMIN_HEADERS = {"X-Admin-Key": TEST_ADMIN_KEY}


def test_activate_user_plan(configured_settings, memory_store):
    resp = client.post(
        "/api/admin/activate-user-plan",
        json={"userId": "u1", "plan": "basic", "userEmail": "a@example.com"},
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["verified"] is True
    assert data["tokensLimit"] == 250_000
    assert data["quizzesLimit"] == 50
    assert data["activatedNodes"] == ["subscription", "usage", "metadata"]

    sub = memory_store.get("users/u1/subscription")
    assert sub["subscription_source"] == "admin"
    assert sub["subscription_id"].startswith("admin_manual_")


def test_activate_rejects_invalid_plan(configured_settings, memory_store):
    resp = client.post(
        "/api/admin/activate-user-plan",
        json={"userId": "u1", "plan": "enterprise"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "invalid_plan"
    assert body["error"]["request_id"] == resp.headers["x-request-id"]
    assert memory_store.dump() == {}


@pytest.mark.parametrize("headers", [{}, {"X-Admin-Key": "wrong"}])
def test_admin_routes_require_key(headers, configured_settings):
    resp = client.post(
        "/api/admin/activate-user-plan",
        json={"userId": "u1", "plan": "pro"},
        headers=headers,
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_admin_key_unconfigured_rejects(monkeypatch, configured_settings):
    monkeypatch.setattr(configured_settings, "ADMIN_KEY", None)
    resp = client.get("/api/admin/verify-user-plan/u1", headers={"X-Admin-Key": ""})
    assert resp.status_code == 403


def test_verify_and_rollback(configured_settings, memory_store):
    client.post(
        "/api/admin/activate-user-plan",
        json={"userId": "u1", "plan": "premium"},
        headers=ADMIN_HEADERS,
    )
    assert client.get("/api/admin/verify-user-plan/u1", headers=ADMIN_HEADERS).json()["verified"] is True

    resp = client.post("/api/admin/rollback-user-plan", json={"userId": "u1"}, headers=ADMIN_HEADERS)

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "userId": "u1", "plan": "free"}
    assert memory_store.get("users/u1/subscription")["plan"] == "free"
    assert memory_store.get("users/u1/metadata")["plan"] == "free"


def test_verify_unknown_user(configured_settings):
    resp = client.get("/api/admin/verify-user-plan/nobody", headers=ADMIN_HEADERS)
    assert resp.json() == {"userId": "nobody", "verified": False}


def test_subscription_status_for_new_user():
    resp = client.get("/api/subscription/status/u1")
    assert resp.status_code == 200
    data = resp.json()
    assert data["plan"] == "free"
    assert data["status"] is None
    assert data["verified"] is False


def test_subscription_status_after_activation(configured_settings, memory_store):
    memory_store.set("pending_purchases/u1", {"status": "processing", "requested_plan": "pro"})
    client.post("/api/admin/activate-user-plan", json={"userId": "u1", "plan": "pro"}, headers=ADMIN_HEADERS)

    data = client.get("/api/subscription/status/u1").json()

    assert data["plan"] == "pro"
    assert data["status"] == "active"
    assert data["tokensLimit"] == 500_000
    assert data["quizzesLimit"] == 100
    assert data["pendingPurchaseStatus"] == "completed"
    assert data["verified"] is True


@pytest.mark.parametrize("user_id", ["victim/subscription", "u.1", "u[1]"])
def test_admin_rejects_user_ids_that_are_not_single_keys(user_id, configured_settings, memory_store):
    activate = client.post(
        "/api/admin/activate-user-plan",
        json={"userId": user_id, "plan": "pro"},
        headers=ADMIN_HEADERS,
    )
    rollback = client.post(
        "/api/admin/rollback-user-plan",
        json={"userId": user_id},
        headers=ADMIN_HEADERS,
    )

    assert activate.status_code == 422
    assert rollback.status_code == 422
    assert memory_store.dump() == {}


def test_verify_and_status_reject_dotted_user_id(configured_settings):
    assert client.get("/api/admin/verify-user-plan/u.1", headers=ADMIN_HEADERS).status_code == 422
    assert client.get("/api/subscription/status/u.1").status_code == 422
