"""Attendance record store — persistence of AttendanceRecord with its invariants.

The open-record and auto-open uniqueness guarantees live in partial unique
indexes; every write that can collide runs inside a SAVEPOINT so a losing
writer gets a ``ConflictError`` while the caller's transaction stays usable.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any, Optional, Sequence

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from laborhub.attendance.models import STEP_ORDER_CONSTRAINT, AttendanceRecord
from laborhub.attendance.shifts import ensure_aware, local_date
from laborhub.common.constants import RecordOrigin, ShiftLabel
from laborhub.common.exceptions import (
    AppException,
    ConflictError,
    NotFoundException,
    ValidationException,
)
from laborhub.common.pagination import PaginationMeta, PaginationParams, paginate

logger = logging.getLogger(__name__)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from *start* to *end*, floored."""
    seconds = (ensure_aware(end) - ensure_aware(start)).total_seconds()
    return int(seconds // 60)


def resolve_total_minutes(fields: dict[str, Any], step_in: Optional[datetime], step_out: Optional[datetime]) -> None:
    """Fill ``total_minutes`` in *fields* from the resulting boundaries.

    An explicit ``step_out=None`` clears it; an explicit ``total_minutes``
    is left alone; otherwise it is recomputed when both boundaries exist.
    """
    if "step_out" in fields and fields["step_out"] is None:
        fields["total_minutes"] = None
    elif "total_minutes" not in fields and step_in is not None and step_out is not None:
        fields["total_minutes"] = minutes_between(step_in, step_out)


def step_order_error() -> ValidationException:
    return ValidationException({"step_out": ["step_out must not be before step_in."]})


def translate_integrity_error(exc: IntegrityError, field: str, value: Any) -> AppException:
    """Map a rejected write to the problem it represents."""
    if STEP_ORDER_CONSTRAINT in str(exc.orig):
        return step_order_error()
    return ConflictError(field, value)


class AttendanceStore:
    """Static async accessors over ``attendance_records``."""

    @staticmethod
    async def get(db: AsyncSession, record_id: uuid.UUID) -> AttendanceRecord:
        record = await db.get(AttendanceRecord, record_id)
        if record is None:
            raise NotFoundException("AttendanceRecord", record_id)
        return record

    @staticmethod
    async def find_open_for(db: AsyncSession, worker_id: uuid.UUID) -> Optional[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.worker_id == worker_id,
                AttendanceRecord.step_out.is_(None),
            )
            .order_by(AttendanceRecord.step_in.desc())
            .limit(1)
        )
        return result.scalars().first()

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create(db: AsyncSession, record: AttendanceRecord) -> AttendanceRecord:
        """Insert *record*; the store is the final guard against a second open record."""
        worker_id = record.worker_id
        if record.step_out is None:
            existing = await AttendanceStore.find_open_for(db, worker_id)
            if existing is not None:
                raise ConflictError("worker_id", worker_id)

        record.work_date = local_date(record.step_in)
        try:
            async with db.begin_nested():
                db.add(record)
                await db.flush()
        except IntegrityError as exc:
            logger.warning("Rejected attendance insert for worker %s: %s", worker_id, exc.orig)
            raise ConflictError("worker_id", worker_id) from exc
        return record

    # ── Close ───────────────────────────────────────────────────────

    @staticmethod
    async def close_record(
        db: AsyncSession,
        record_id: uuid.UUID,
        step_out: datetime,
        fields: Optional[dict[str, Any]] = None,
    ) -> AttendanceRecord:
        """Set ``step_out``, recompute ``total_minutes`` and merge side-fields."""
        record = await AttendanceStore.get(db, record_id)
        for key, value in (fields or {}).items():
            setattr(record, key, value)
        record.step_out = step_out
        record.total_minutes = minutes_between(record.step_in, step_out)
        await db.flush()
        return record

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def apply_changes(
        db: AsyncSession,
        record: AttendanceRecord,
        changes: dict[str, Any],
    ) -> AttendanceRecord:
        """Apply a correction change set to one record, guarded by a savepoint."""
        changes = dict(changes)
        step_in = changes.get("step_in", record.step_in)
        step_out = changes.get("step_out", record.step_out)
        resolve_total_minutes(changes, step_in, step_out)
        if "step_in" in changes:
            changes["work_date"] = local_date(changes["step_in"])

        try:
            async with db.begin_nested():
                for key, value in changes.items():
                    setattr(record, key, value)
                await db.flush()
        except IntegrityError as exc:
            await db.refresh(record)
            raise translate_integrity_error(exc, "worker_id", record.worker_id) from exc
        return record

    @staticmethod
    async def bulk_update(
        db: AsyncSession,
        record_ids: Sequence[uuid.UUID],
        fields: dict[str, Any],
    ) -> Sequence[AttendanceRecord]:
        """Apply the same *fields* to every record in *record_ids*.

        When both boundaries are supplied ``total_minutes`` is computed once and
        every matched record receives the same value; a lone boundary is
        recomputed per record. No record may end up with step_out before
        step_in.
        """
        fields = dict(fields)
        resolve_total_minutes(fields, fields.get("step_in"), fields.get("step_out"))
        if fields.get("step_in") is not None:
            fields["work_date"] = local_date(fields["step_in"])

        result = await db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.id.in_(list(record_ids)))
            .order_by(AttendanceRecord.step_in)
        )
        records = result.scalars().all()
        if not records:
            return records

        # A lone step_in or step_out still has to leave total_minutes consistent
        per_record_total = (
            "total_minutes" not in fields
            and ("step_in" in fields or "step_out" in fields)
        )
        for record in records:
            step_in = fields.get("step_in", record.step_in)
            step_out = fields.get("step_out", record.step_out)
            if step_out is not None and ensure_aware(step_out) < ensure_aware(step_in):
                logger.warning("Bulk update would put step_out before step_in on record %s", record.id)
                raise step_order_error()

        try:
            async with db.begin_nested():
                for record in records:
                    for key, value in fields.items():
                        setattr(record, key, value)
                    if per_record_total and record.step_out is not None:
                        record.total_minutes = minutes_between(record.step_in, record.step_out)
                await db.flush()
        except IntegrityError as exc:
            for record in records:
                await db.refresh(record)
            raise translate_integrity_error(exc, "step_out", "null") from exc
        return records

    @staticmethod
    async def worker_ids_for(db: AsyncSession, record_ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
        """Distinct owners of the given records."""
        result = await db.execute(
            select(AttendanceRecord.worker_id)
            .where(AttendanceRecord.id.in_(list(record_ids)))
            .distinct()
        )
        return list(result.scalars().all())

    # ── Delete ──────────────────────────────────────────────────────

    @staticmethod
    async def delete(db: AsyncSession, record_id: uuid.UUID) -> AttendanceRecord:
        """Delete and return the record so callers can react to its state."""
        record = await AttendanceStore.get(db, record_id)
        await db.delete(record)
        await db.flush()
        return record

    # ── Automation queries ──────────────────────────────────────────

    @staticmethod
    async def has_auto_record(
        db: AsyncSession,
        worker_id: uuid.UUID,
        shift: ShiftLabel,
        day: date,
    ) -> bool:
        """Whether automation already opened *worker_id* for *shift* on local *day*."""
        result = await db.execute(
            select(
                exists().where(
                    AttendanceRecord.worker_id == worker_id,
                    AttendanceRecord.shift == shift,
                    AttendanceRecord.work_date == day,
                    AttendanceRecord.origin == RecordOrigin.auto,
                )
            )
        )
        return bool(result.scalar_one())

    @staticmethod
    async def list_open_older_than(db: AsyncSession, cutoff: datetime) -> Sequence[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.step_out.is_(None),
                AttendanceRecord.step_in <= cutoff,
            )
            .order_by(AttendanceRecord.step_in)
        )
        return result.scalars().all()

    # ── Listing ─────────────────────────────────────────────────────

    @staticmethod
    async def query(
        db: AsyncSession,
        params: PaginationParams,
        *,
        manager_id: Optional[uuid.UUID] = None,
        worker_id: Optional[uuid.UUID] = None,
        shift: Optional[ShiftLabel] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        newest_first: bool = True,
    ) -> tuple[Sequence[AttendanceRecord], PaginationMeta]:
        """Filtered, paginated listing; date bounds are inclusive local days."""
        query = select(AttendanceRecord)
        if manager_id is not None:
            query = query.where(AttendanceRecord.manager_id == manager_id)
        if worker_id is not None:
            query = query.where(AttendanceRecord.worker_id == worker_id)
        if shift is not None:
            query = query.where(AttendanceRecord.shift == shift)
        if start_date is not None:
            query = query.where(AttendanceRecord.work_date >= start_date)
        if end_date is not None:
            query = query.where(AttendanceRecord.work_date <= end_date)

        if newest_first:
            query = query.order_by(AttendanceRecord.step_in.desc(), AttendanceRecord.id)
        else:
            query = query.order_by(AttendanceRecord.step_in.asc(), AttendanceRecord.id)

        return await paginate(db, query, params)
