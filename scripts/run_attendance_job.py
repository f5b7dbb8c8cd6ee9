#!/usr/bin/env python3
"""Run one attendance automation job once, outside the in-process scheduler.

For cron-driven deployments (SCHEDULER_ENABLED=false) and for operators
catching up after an outage.

Usage:
    python scripts/run_attendance_job.py --job auto-close
    python scripts/run_attendance_job.py --job auto-open
    python scripts/run_attendance_job.py --job auto-close --json

Exit codes:
    0 = job ran, every item succeeded or was skipped
    1 = job ran, some items failed
    2 = job could not run at all (store unreachable, input unreadable)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Load .env from project root before settings are read
env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("attendance_job")

from laborhub.automation.jobs import JobReport, run_job  # noqa: E402
from laborhub.database import engine  # noqa: E402

JOB_NAMES = {
    "auto-close": "auto_close",
    "auto-open": "auto_open",
}


def _report_dict(report: JobReport) -> dict:
    return {
        "job": report.job,
        "started_at": report.started_at.isoformat(),
        "skipped_reason": report.skipped_reason,
        "summary": {
            "succeeded": report.succeeded,
            "skipped": report.count("skipped"),
            "failed": report.failed,
        },
        "outcomes": [
            {
                "worker_id": str(o.worker_id),
                "record_id": str(o.record_id) if o.record_id else None,
                "outcome": o.outcome,
                "detail": o.detail,
            }
            for o in report.outcomes
        ],
    }


async def _run(job_name: str):
    try:
        return await run_job(job_name)
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="LaborHub attendance automation — run a job once",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--job", required=True, choices=sorted(JOB_NAMES),
                        help="Which job to run")
    parser.add_argument("--json", dest="output_json", action="store_true",
                        help="Print the job report as JSON")
    args = parser.parse_args()

    report = asyncio.run(_run(JOB_NAMES[args.job]))
    if report is None:
        logger.error("Job %s did not complete", args.job)
        return 2

    if args.output_json:
        print(json.dumps(_report_dict(report), indent=2))
    elif report.skipped_reason:
        logger.info("Nothing to do: %s", report.skipped_reason)
    else:
        logger.info(
            "%s finished: %d succeeded, %d skipped, %d failed",
            args.job, report.succeeded, report.count("skipped"), report.failed,
        )

    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
