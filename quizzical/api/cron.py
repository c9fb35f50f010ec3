"""
Cron routes (Authorization: Bearer <CRON_SECRET>).

- /api/cron/auto-fix-stuck-payments
- /api/cron/reset-usage

Both accept GET (schedulers) and POST (manual triggers).
"""
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from quizzical.core.admin_auth import require_cron, AdminActor
from quizzical.features.activation.jobs import auto_fix_stuck_payments, reset_monthly_usage


logger = logging.getLogger("quizzical.jobs")

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.api_route("/auto-fix-stuck-payments", methods=["GET", "POST"])
def run_auto_fix(actor: AdminActor = Depends(require_cron)):
    start = time.perf_counter()
    results = auto_fix_stuck_payments(datetime.now(timezone.utc))
    duration_ms = int((time.perf_counter() - start) * 1000)
    return {
        "success": True,
        "message": f"Auto-fix complete: {results['fixed']} users fixed",
        "results": results,
        "duration": f"{duration_ms}ms",
    }


@router.api_route("/reset-usage", methods=["GET", "POST"])
def run_reset_usage(actor: AdminActor = Depends(require_cron)):
    results = reset_monthly_usage(datetime.now(timezone.utc))
    return {"success": True, **results}
