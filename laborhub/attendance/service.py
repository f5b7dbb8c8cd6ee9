"""Attendance service layer — manual step in/out, corrections, reads.

Business logic:
  - Step in with shift override or detection from the current time
  - Step out with floored total minutes
  - Administrative corrections and deletion, keeping ``is_working`` in step
  - Read operations: open record, filtered listing, per-shift presence summary
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from laborhub.attendance.models import AttendanceRecord
from laborhub.attendance.schemas import (
    AttendanceListResponse,
    AttendanceRecordResponse,
    AttendanceSummaryResponse,
    CaptureMetadata,
    DeleteResponse,
    StepInResponse,
)
from laborhub.attendance.shifts import detect_shift, ensure_aware, local_now, shift_end, utc_now
from laborhub.attendance.store import AttendanceStore, step_order_error
from laborhub.auth.dependencies import Actor
from laborhub.common.audit import create_audit_entry
from laborhub.common.constants import (
    MAX_DATE_RANGE_DAYS,
    CreatorType,
    RecordOrigin,
    ShiftLabel,
)
from laborhub.common.exceptions import AlreadyOpenError, ValidationException
from laborhub.common.pagination import PaginationParams
from laborhub.workers.models import Worker
from laborhub.workers.service import WorkerDirectory

logger = logging.getLogger(__name__)

ENTITY_TYPE = "attendance_record"


def snapshot(record: AttendanceRecord) -> dict[str, Any]:
    """JSON-safe view of a record for the audit trail."""
    return AttendanceRecordResponse.model_validate(record).model_dump(mode="json")


def actor_tag(actor: Optional[Actor]) -> tuple[CreatorType, Optional[uuid.UUID]]:
    if actor is None:
        return CreatorType.system, None
    return actor.creator_type, actor.id


# ═════════════════════════════════════════════════════════════════════
# AttendanceService
# ═════════════════════════════════════════════════════════════════════


class AttendanceService:
    """Async attendance operations: step in/out, correct, read."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _validate_boundaries(step_in: Optional[datetime], step_out: Optional[datetime]) -> None:
        if step_in is not None and step_out is not None and ensure_aware(step_out) < ensure_aware(step_in):
            raise step_order_error()

    @staticmethod
    def _validate_date_range(start_date: Optional[date], end_date: Optional[date]) -> None:
        """Ensure date range is valid and within MAX_DATE_RANGE_DAYS."""
        if start_date is None or end_date is None:
            return
        if start_date > end_date:
            raise ValidationException(
                {"date_range": ["start_date must be before or equal to end_date."]}
            )
        if (end_date - start_date).days > MAX_DATE_RANGE_DAYS:
            raise ValidationException(
                {"date_range": [f"Date range cannot exceed {MAX_DATE_RANGE_DAYS} days."]}
            )

    # ── Step in ─────────────────────────────────────────────────────

    @staticmethod
    async def step_in(
        db: AsyncSession,
        worker_id: uuid.UUID,
        *,
        manager_id: Optional[uuid.UUID] = None,
        shift: Optional[ShiftLabel] = None,
        capture: Optional[CaptureMetadata] = None,
        note: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> StepInResponse:
        """Open a record for *worker_id*. Fails if one is already open."""

        now = ensure_aware(now or utc_now())
        worker = await WorkerDirectory.get(db, worker_id)

        existing = await AttendanceStore.find_open_for(db, worker_id)
        if existing is not None:
            raise AlreadyOpenError(worker_id, existing.id)

        effective_shift = shift if shift is not None else detect_shift(now)
        created_by_type, created_by_id = actor_tag(actor)

        record = AttendanceRecord(
            worker_id=worker_id,
            manager_id=manager_id or worker.manager_id,
            step_in=now,
            shift=effective_shift,
            origin=RecordOrigin.manual,
            note=note,
            created_by_type=created_by_type,
            created_by_id=created_by_id,
            **(capture.as_columns("step_in") if capture else {}),
        )
        await AttendanceStore.create(db, record)
        await WorkerDirectory.sync_working(db, worker_id)

        await create_audit_entry(
            db,
            action="step_in",
            entity_type=ENTITY_TYPE,
            entity_id=record.id,
            actor_type=created_by_type,
            actor_id=created_by_id,
            new_values=snapshot(record),
        )
        logger.info(
            "Worker %s stepped in (record %s, shift %s)",
            worker_id, record.id, effective_shift.value,
        )

        return StepInResponse(
            record=AttendanceRecordResponse.model_validate(record),
            detected_shift=effective_shift,
            shift_source="supplied" if shift is not None else "detected",
            shift_end=shift_end(now, effective_shift),
        )

    # ── Step out ────────────────────────────────────────────────────

    @staticmethod
    async def step_out(
        db: AsyncSession,
        record_id: uuid.UUID,
        *,
        capture: Optional[CaptureMetadata] = None,
        note: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> AttendanceRecordResponse:
        """Close an open record. The existing note is kept unless a new one is given."""

        now = ensure_aware(now or utc_now())
        record = await AttendanceStore.get(db, record_id)
        if not record.is_open:
            raise ValidationException(
                {"record_id": ["Attendance record is already stepped out."]}
            )
        AttendanceService._validate_boundaries(record.step_in, now)

        fields: dict[str, Any] = capture.as_columns("step_out") if capture else {}
        if note is not None:
            fields["note"] = note

        record = await AttendanceStore.close_record(db, record_id, now, fields)
        await WorkerDirectory.sync_working(db, record.worker_id)

        actor_type, actor_id = actor_tag(actor)
        await create_audit_entry(
            db,
            action="step_out",
            entity_type=ENTITY_TYPE,
            entity_id=record.id,
            actor_type=actor_type,
            actor_id=actor_id,
            new_values={
                "step_out": now.isoformat(),
                "total_minutes": record.total_minutes,
            },
        )
        logger.info(
            "Worker %s stepped out (record %s, %s min)",
            record.worker_id, record.id, record.total_minutes,
        )
        return AttendanceRecordResponse.model_validate(record)

    # ── Correction update ───────────────────────────────────────────

    @staticmethod
    async def update_record(
        db: AsyncSession,
        record_id: uuid.UUID,
        changes: dict[str, Any],
        *,
        actor: Optional[Actor] = None,
    ) -> AttendanceRecordResponse:
        """Apply an administrative correction.

        Only keys present in *changes* are touched; pass
        ``model_dump(exclude_unset=True)`` from the request body.
        """

        record = await AttendanceStore.get(db, record_id)
        if not changes:
            return AttendanceRecordResponse.model_validate(record)

        old_values = snapshot(record)
        previous_worker_id = record.worker_id

        new_worker_id = changes.get("worker_id")
        if new_worker_id is not None and new_worker_id != previous_worker_id:
            await WorkerDirectory.get(db, new_worker_id)

        AttendanceService._validate_boundaries(
            changes.get("step_in", record.step_in),
            changes.get("step_out", record.step_out),
        )

        record = await AttendanceStore.apply_changes(db, record, changes)
        await WorkerDirectory.sync_many(db, [previous_worker_id, record.worker_id])

        actor_type, actor_id = actor_tag(actor)
        await create_audit_entry(
            db,
            action="update",
            entity_type=ENTITY_TYPE,
            entity_id=record.id,
            actor_type=actor_type,
            actor_id=actor_id,
            old_values=old_values,
            new_values=snapshot(record),
        )
        logger.info("Attendance record %s corrected: %s", record.id, sorted(changes))
        return AttendanceRecordResponse.model_validate(record)

    # ── Delete ──────────────────────────────────────────────────────

    @staticmethod
    async def delete_record(
        db: AsyncSession,
        record_id: uuid.UUID,
        *,
        actor: Optional[Actor] = None,
    ) -> DeleteResponse:
        """Delete a record and re-evaluate its worker's ``is_working`` flag."""

        record = await AttendanceStore.get(db, record_id)
        old_values = snapshot(record)
        worker_id = record.worker_id

        await AttendanceStore.delete(db, record_id)
        is_working = await WorkerDirectory.sync_working(db, worker_id)

        actor_type, actor_id = actor_tag(actor)
        await create_audit_entry(
            db,
            action="delete",
            entity_type=ENTITY_TYPE,
            entity_id=record_id,
            actor_type=actor_type,
            actor_id=actor_id,
            old_values=old_values,
        )
        logger.info("Attendance record %s deleted (worker %s)", record_id, worker_id)
        return DeleteResponse(id=record_id, worker_id=worker_id, worker_is_working=is_working)

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_open_record(
        db: AsyncSession,
        worker_id: uuid.UUID,
    ) -> Optional[AttendanceRecordResponse]:
        await WorkerDirectory.get(db, worker_id)
        record = await AttendanceStore.find_open_for(db, worker_id)
        if record is None:
            return None
        return AttendanceRecordResponse.model_validate(record)

    @staticmethod
    async def list_records(
        db: AsyncSession,
        params: PaginationParams,
        *,
        manager_id: Optional[uuid.UUID] = None,
        worker_id: Optional[uuid.UUID] = None,
        shift: Optional[ShiftLabel] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        newest_first: bool = True,
    ) -> AttendanceListResponse:
        AttendanceService._validate_date_range(start_date, end_date)
        rows, meta = await AttendanceStore.query(
            db,
            params,
            manager_id=manager_id,
            worker_id=worker_id,
            shift=shift,
            start_date=start_date,
            end_date=end_date,
            newest_first=newest_first,
        )
        return AttendanceListResponse(
            data=[AttendanceRecordResponse.model_validate(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def get_summary(
        db: AsyncSession,
        day: Optional[date],
        shift: ShiftLabel,
        *,
        manager_id: Optional[uuid.UUID] = None,
    ) -> AttendanceSummaryResponse:
        """Presence for one shift on one local day, as ``"<present>P/<total>"``.

        *day* defaults to today in the operational timezone. For a manager both
        counts go through the worker's own manager.
        """
        day = day or local_now().date()

        total_q = select(func.count(Worker.id)).where(
            Worker.shift == shift,
            Worker.is_active.is_(True),
        )
        present_q = (
            select(func.count(func.distinct(AttendanceRecord.worker_id)))
            .select_from(AttendanceRecord)
            .join(Worker, Worker.id == AttendanceRecord.worker_id)
            .where(
                AttendanceRecord.shift == shift,
                AttendanceRecord.work_date == day,
            )
        )
        if manager_id is not None:
            total_q = total_q.where(Worker.manager_id == manager_id)
            present_q = present_q.where(Worker.manager_id == manager_id)

        total = (await db.execute(total_q)).scalar_one()
        present = (await db.execute(present_q)).scalar_one()

        return AttendanceSummaryResponse(
            date=day,
            shift=shift,
            total_workers=total,
            present_workers=present,
            summary=f"{present}P/{total}",
        )
