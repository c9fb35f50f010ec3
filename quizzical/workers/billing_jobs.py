"""
Billing jobs worker.

Runs the stuck-payment auto-fix or the monthly usage reset outside the HTTP
cron routes (system cron, container schedulers).

Usage:
    python -m quizzical.workers.billing_jobs --job auto-fix
    python -m quizzical.workers.billing_jobs --job reset-usage --loop --sleep 300
"""

import argparse
import json
import time
from datetime import datetime, timezone

from dotenv import load_dotenv

from quizzical.core.config import settings
from quizzical.core.logging import configure_logging
from quizzical.features.activation.jobs import auto_fix_stuck_payments, reset_monthly_usage


DEFAULT_LOOP_SECONDS = 300

JOBS = {
    "auto-fix": auto_fix_stuck_payments,
    "reset-usage": reset_monthly_usage,
}


def run_job(name: str) -> dict:
    return JOBS[name](datetime.now(timezone.utc))


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Billing jobs worker")
    parser.add_argument("--job", required=True, choices=sorted(JOBS), help="Job to run")
    parser.add_argument("--loop", action="store_true", help="Run in continuous loop")
    parser.add_argument(
        "--sleep",
        type=int,
        default=DEFAULT_LOOP_SECONDS,
        help="Seconds to sleep between loops (when --loop)",
    )
    args = parser.parse_args(argv)

    load_dotenv()
    configure_logging(settings.ENV)

    if not args.loop:
        print(f"[billing-jobs] {args.job}: {json.dumps(run_job(args.job), default=str)}")
        return

    print(f"[billing-jobs] Starting {args.job} loop (sleep={args.sleep}s). CTRL+C to stop.")
    try:
        while True:
            print(f"[billing-jobs] {args.job}: {json.dumps(run_job(args.job), default=str)}")
            time.sleep(args.sleep)
    except KeyboardInterrupt:
        print("[billing-jobs] Stopped")


if __name__ == "__main__":
    main()
