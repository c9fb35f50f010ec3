"""Stuck-payment auto-fix, monthly usage reset, cron routes and worker CLI."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from quizzical.features.activation.jobs import (
    auto_fix_stuck_payments,
    parse_timestamp,
    reset_monthly_usage,
)
from quizzical.features.activation.service import PlanActivationService
from quizzical.main import app
from quizzical.tests.mocks import FIXED_NOW, TEST_CRON_SECRET
from quizzical.workers import billing_jobs

client = TestClient(app)

CRON_HEADERS = {"Authorization": f"Bearer {TEST_CRON_SECRET}"}


def minutes_ago(minutes, now=FIXED_NOW):
    return (now - timedelta(minutes=minutes)).isoformat()


@pytest.fixture
def stuck_users(memory_store):
    memory_store.set("users/u1", {
        "email": "u1@example.com",
        "pending_plan_change": {"requested_plan": "basic", "requested_at": minutes_ago(10)},
    })
    memory_store.set("pending_purchases/u1", {"status": "processing", "requested_plan": "premium"})
    memory_store.set("users/u2", {
        "email": "u2@example.com",
        "pending_plan_change": {"requested_plan": "pro", "requested_at": minutes_ago(2)},
    })
    memory_store.set("users/u3", {"email": "u3@example.com"})
    memory_store.set("users/u4", {
        "email": "u4@example.com",
        "pending_plan_change": {"requested_plan": "enterprise", "requested_at": minutes_ago(30)},
    })
    epoch_ms = int((FIXED_NOW - timedelta(hours=1)).timestamp() * 1000)
    memory_store.set("users/u5", {
        "email": "u5@example.com",
        "pending_plan_change": {"requested_at": epoch_ms},
    })
    return memory_store


def test_auto_fix_stuck_payments(stuck_users, activation_service):
    results = auto_fix_stuck_payments(FIXED_NOW, activation_service)

    assert results["checked"] == 4
    assert results["fixed"] == 2
    assert results["failed"] == 1
    by_user = {u["user_id"]: u for u in results["users"]}
    assert by_user["u1"]["plan"] == "premium"
    assert by_user["u5"]["plan"] == "pro"
    assert by_user["u4"]["error"] == "Invalid plan"
    assert "u2" not in by_user

    sub = stuck_users.get("users/u1/subscription")
    assert sub["plan"] == "premium"
    assert sub["subscription_source"] == "admin"
    assert sub["subscription_id"].startswith("auto_fix_")
    assert stuck_users.get("users/u1/pending_plan_change") is None
    assert stuck_users.get("pending_purchases/u1")["status"] == "completed"
    assert activation_service.verify_activation("u1") is True

    # Not old enough yet
    assert stuck_users.get("users/u2/pending_plan_change") is not None
    assert stuck_users.get("users/u2/subscription") is None


def test_auto_fix_is_rerunnable(stuck_users, activation_service):
    auto_fix_stuck_payments(FIXED_NOW, activation_service)
    second = auto_fix_stuck_payments(FIXED_NOW, activation_service)
    # u2 still waiting, u4 still invalid; fixed users no longer have a pending change
    assert second["checked"] == 2
    assert second["fixed"] == 0


def test_auto_fix_with_no_users(activation_service):
    assert auto_fix_stuck_payments(FIXED_NOW, activation_service) == {
        "checked": 0, "fixed": 0, "failed": 0, "users": [],
    }


@pytest.fixture
def subscribers(memory_store):
    memory_store.set("users/u1/subscription", {
        "plan": "pro",
        "subscription_status": "active",
        "tokens_used": 400_000,
        "quizzes_used": 80,
        "tokens_limit": 500_000,
        "quizzes_limit": 100,
        "billing_cycle_start": "2025-02-14T12:00:00+00:00",
        "billing_cycle_end": "2025-03-14T12:00:00+00:00",
    })
    memory_store.set("users/u2/subscription", {
        "plan": "basic",
        "tokens_used": 10,
        "billing_cycle_end": "2025-04-01T00:00:00+00:00",
    })
    memory_store.set("users/u3", {"email": "u3@example.com"})
    memory_store.set("users/u4/subscription", {
        "plan": "enterprise",
        "billing_cycle_end": "2025-03-01T00:00:00Z",
    })
    return memory_store


def test_reset_monthly_usage(subscribers, activation_service):
    results = reset_monthly_usage(FIXED_NOW, activation_service)

    assert results == {"processed": 1, "errors": 1}

    sub = subscribers.get("users/u1/subscription")
    assert sub["tokens_used"] == 0
    assert sub["quizzes_used"] == 0
    assert sub["billing_cycle_start"] == FIXED_NOW.isoformat()
    assert sub["billing_cycle_end"] == "2025-04-15T12:00:00+00:00"
    assert sub["plan"] == "pro"

    usage = subscribers.get("usage/u1/2025/3")
    assert usage["plan"] == "pro"
    assert usage["tokens_limit"] == 500_000
    assert usage["tokens_used"] == 0

    assert subscribers.get("users/u2/subscription")["tokens_used"] == 10


def test_auto_fix_skips_unreadable_timestamp(memory_store, activation_service):
    memory_store.set("users/bad", {
        "email": "bad@example.com",
        "pending_plan_change": {"requested_plan": "pro", "requested_at": 10**20},
    })
    memory_store.set("users/good", {
        "email": "good@example.com",
        "pending_plan_change": {"requested_plan": "basic", "requested_at": minutes_ago(10)},
    })

    results = auto_fix_stuck_payments(FIXED_NOW, activation_service)

    assert results["checked"] == 2
    assert results["fixed"] == 1
    assert [u["user_id"] for u in results["users"]] == ["good"]
    assert memory_store.get("users/good/subscription")["plan"] == "basic"
    assert memory_store.get("users/bad/subscription") is None


def test_reset_skips_unreadable_cycle_end(memory_store, activation_service):
    memory_store.set("users/bad/subscription", {"plan": "pro", "tokens_used": 7, "billing_cycle_end": float("nan")})
    memory_store.set("users/good/subscription", {
        "plan": "basic",
        "tokens_used": 9,
        "billing_cycle_end": "2025-03-01T00:00:00+00:00",
    })

    assert reset_monthly_usage(FIXED_NOW, activation_service) == {"processed": 1, "errors": 0}
    assert memory_store.get("users/good/subscription")["tokens_used"] == 0
    assert memory_store.get("users/bad/subscription")["tokens_used"] == 7


def test_reset_is_noop_before_cycle_end(subscribers, activation_service):
    reset_monthly_usage(FIXED_NOW, activation_service)
    assert reset_monthly_usage(FIXED_NOW, activation_service)["processed"] == 0


@pytest.mark.parametrize("value,expected", [
    ("2025-03-15T12:00:00+00:00", FIXED_NOW),
    ("2025-03-15T12:00:00Z", FIXED_NOW),
    ("2025-03-15T12:00:00", FIXED_NOW),
    (int(FIXED_NOW.timestamp() * 1000), FIXED_NOW),
    ("yesterday", None),
    (None, None),
    (10**20, None),
    (float("nan"), None),
    (float("inf"), None),
])
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == expected


# ---------------------------------------------------------------------------
# Cron routes
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("path", ["/api/cron/auto-fix-stuck-payments", "/api/cron/reset-usage"])
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": TEST_CRON_SECRET}])
def test_cron_routes_require_bearer_secret(path, headers, configured_settings):
    resp = client.get(path, headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_cron_auto_fix_route(configured_settings, memory_store):
    now = datetime.now(timezone.utc)
    memory_store.set("users/u1", {
        "email": "u1@example.com",
        "pending_plan_change": {"requested_plan": "pro", "requested_at": minutes_ago(15, now)},
    })

    resp = client.get("/api/cron/auto-fix-stuck-payments", headers=CRON_HEADERS)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["results"]["fixed"] == 1
    assert memory_store.get("users/u1/subscription")["plan"] == "pro"


def test_cron_reset_usage_route_accepts_post(configured_settings, memory_store):
    memory_store.set("users/u1/subscription", {
        "plan": "basic",
        "tokens_used": 5,
        "billing_cycle_end": "2000-01-01T00:00:00+00:00",
    })

    resp = client.post("/api/cron/reset-usage", headers=CRON_HEADERS)

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "processed": 1, "errors": 0}
    assert memory_store.get("users/u1/subscription")["tokens_used"] == 0


# ---------------------------------------------------------------------------
# Worker CLI
# ---------------------------------------------------------------------------

def test_worker_runs_job_once(memory_store, capsys):
    memory_store.set("users/u1/subscription", {
        "plan": "premium",
        "billing_cycle_end": "2000-01-01T00:00:00+00:00",
    })

    billing_jobs.main(["--job", "reset-usage"])

    out = capsys.readouterr().out
    assert "[billing-jobs] reset-usage" in out
    assert '"processed": 1' in out


def test_worker_rejects_unknown_job():
    with pytest.raises(SystemExit):
        billing_jobs.main(["--job", "send-reminders"])
