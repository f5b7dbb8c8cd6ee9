"""Unattended attendance transitions — auto step-out and auto step-in.

Both jobs are partial-failure tolerant: every worker or record is processed
inside its own SAVEPOINT, a failure is logged with its ids and recorded in
the ``JobReport``, and the batch moves on.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from laborhub.attendance.models import AttendanceRecord
from laborhub.attendance.service import ENTITY_TYPE, snapshot
from laborhub.attendance.shifts import ensure_aware, shift_for_start_hour, to_local, utc_now
from laborhub.attendance.store import AttendanceStore
from laborhub.common.audit import create_audit_entry
from laborhub.common.constants import (
    AUTO_CLOSE_MAX_SESSION_HOURS,
    AUTO_CLOSE_NOTE,
    AUTO_OPEN_LOCATIONS,
    AUTO_OPEN_NOTE,
    CreatorType,
    RecordOrigin,
)
from laborhub.common.exceptions import ConflictError, PartialBatchError
from laborhub.database import async_session_factory
from laborhub.workers.service import WorkerDirectory

logger = logging.getLogger(__name__)

CLOSED = "closed"
STEPPED_IN = "stepped_in"
SKIPPED = "skipped"
FAILED = "failed"


# ═════════════════════════════════════════════════════════════════════
# Batch report
# ═════════════════════════════════════════════════════════════════════


@dataclass
class JobOutcome:
    worker_id: uuid.UUID
    record_id: Optional[uuid.UUID]
    outcome: str
    detail: Optional[str] = None


@dataclass
class JobReport:
    """Per-item outcomes of one job run."""

    job: str
    started_at: datetime
    outcomes: list[JobOutcome] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    def add(
        self,
        worker_id: uuid.UUID,
        record_id: Optional[uuid.UUID],
        outcome: str,
        detail: Optional[str] = None,
    ) -> None:
        self.outcomes.append(JobOutcome(worker_id, record_id, outcome, detail))

    def count(self, outcome: str) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self.count(CLOSED) + self.count(STEPPED_IN)

    @property
    def failed(self) -> int:
        return self.count(FAILED)

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialBatchError(self.job, self.succeeded, self.failed, report=self)


# ═════════════════════════════════════════════════════════════════════
# Auto step-out
# ═════════════════════════════════════════════════════════════════════


async def auto_close(db: AsyncSession, *, now: Optional[datetime] = None) -> JobReport:
    """Close every record open for at least ``AUTO_CLOSE_MAX_SESSION_HOURS``.

    Only open records match, so a repeated run with nothing new to close
    writes nothing.
    """
    now = ensure_aware(now or utc_now())
    cutoff = now - timedelta(hours=AUTO_CLOSE_MAX_SESSION_HOURS)
    report = JobReport(job="auto_close", started_at=now)

    records = await AttendanceStore.list_open_older_than(db, cutoff)
    pending = [(r.id, r.worker_id, r.note) for r in records]

    for record_id, worker_id, note in pending:
        try:
            async with db.begin_nested():
                fields = {} if note else {"note": AUTO_CLOSE_NOTE}
                record = await AttendanceStore.close_record(db, record_id, now, fields)
                await WorkerDirectory.sync_working(db, worker_id)
                await create_audit_entry(
                    db,
                    action="auto_step_out",
                    entity_type=ENTITY_TYPE,
                    entity_id=record_id,
                    actor_type=CreatorType.system,
                    new_values={
                        "step_out": now.isoformat(),
                        "total_minutes": record.total_minutes,
                    },
                )
            report.add(worker_id, record_id, CLOSED, f"{record.total_minutes} min")
        except Exception as exc:
            logger.exception("Auto step-out failed for record %s (worker %s)", record_id, worker_id)
            report.add(worker_id, record_id, FAILED, str(exc))

    logger.info(
        "Auto step-out at %s: %d open past cutoff, %d closed, %d failed",
        now.isoformat(), len(pending), report.count(CLOSED), report.failed,
    )
    return report


# ═════════════════════════════════════════════════════════════════════
# Auto step-in
# ═════════════════════════════════════════════════════════════════════


async def auto_open(db: AsyncSession, *, now: Optional[datetime] = None) -> JobReport:
    """At a shift-start hour, step in every idle worker assigned to that shift.

    A worker is opened at most once per shift and local day by automation.
    """
    now = ensure_aware(now or utc_now())
    local = to_local(now)
    report = JobReport(job="auto_open", started_at=now)

    shift = shift_for_start_hour(local.hour)
    if shift is None:
        report.skipped_reason = f"{local:%H}:00 is not a shift start hour"
        logger.debug("Auto step-in skipped: %s", report.skipped_reason)
        return report

    day = local.date()
    note = AUTO_OPEN_NOTE.format(shift=shift.value)
    workers = await WorkerDirectory.list_by_shift(db, shift, not_working_only=True)
    roster = [(w.id, w.manager_id) for w in workers]

    for index, (worker_id, manager_id) in enumerate(roster):
        address = AUTO_OPEN_LOCATIONS[index % len(AUTO_OPEN_LOCATIONS)]
        try:
            if await AttendanceStore.find_open_for(db, worker_id) is not None:
                report.add(worker_id, None, SKIPPED, "already open")
                continue
            if await AttendanceStore.has_auto_record(db, worker_id, shift, day):
                report.add(worker_id, None, SKIPPED, "already auto stepped in today")
                continue

            async with db.begin_nested():
                record = AttendanceRecord(
                    worker_id=worker_id,
                    manager_id=manager_id,
                    step_in=now,
                    shift=shift,
                    origin=RecordOrigin.auto,
                    note=note,
                    step_in_latitude=0.0,
                    step_in_longitude=0.0,
                    step_in_address=address,
                    created_by_type=CreatorType.system,
                )
                await AttendanceStore.create(db, record)
                await WorkerDirectory.sync_working(db, worker_id)
                await create_audit_entry(
                    db,
                    action="auto_step_in",
                    entity_type=ENTITY_TYPE,
                    entity_id=record.id,
                    actor_type=CreatorType.system,
                    new_values=snapshot(record),
                )
            report.add(worker_id, record.id, STEPPED_IN, address)
        except ConflictError as exc:
            logger.info("Auto step-in skipped for worker %s: %s", worker_id, exc.detail)
            report.add(worker_id, None, SKIPPED, exc.detail)
        except Exception as exc:
            logger.exception("Auto step-in failed for worker %s", worker_id)
            report.add(worker_id, None, FAILED, str(exc))

    logger.info(
        "Auto step-in for %s shift on %s: %d stepped in, %d skipped, %d failed",
        shift.value, day, report.count(STEPPED_IN), report.count(SKIPPED), report.failed,
    )
    return report


# ═════════════════════════════════════════════════════════════════════
# Runner
# ═════════════════════════════════════════════════════════════════════

JOBS: dict[str, Callable[..., Awaitable[JobReport]]] = {
    "auto_close": auto_close,
    "auto_open": auto_open,
}


async def run_job(
    name: str,
    *,
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> Optional[JobReport]:
    """Run one job in its own session and commit.

    Job failures never propagate: a fatal one is logged and ``None`` returned so the
    host process survives and the next scheduled run retries.
    """
    try:
        job = JOBS[name]
    except KeyError:
        raise ValueError(f"Unknown attendance job {name!r}; expected one of {sorted(JOBS)}") from None

    factory = session_factory or async_session_factory
    try:
        async with factory() as db:
            report = await job(db, now=now)
            await db.commit()
    except Exception:
        logger.exception("Attendance job %s failed; the next run will retry", name)
        return None

    try:
        report.raise_for_failures()
    except PartialBatchError as exc:
        logger.warning("Attendance job finished with failures — %s", exc.detail)
    return report
