"""Bulk attendance operations — shift-wide step-in and multi-record updates."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from laborhub.attendance.models import AttendanceRecord
from laborhub.attendance.schemas import (
    BulkStepInItem,
    BulkStepInResponse,
    BulkStepInSummary,
    BulkUpdateResponse,
    CaptureMetadata,
)
from laborhub.attendance.service import ENTITY_TYPE, AttendanceService, actor_tag, snapshot
from laborhub.attendance.shifts import ensure_aware, utc_now
from laborhub.attendance.store import AttendanceStore
from laborhub.auth.dependencies import Actor
from laborhub.common.audit import create_audit_entry
from laborhub.common.constants import BULK_STEP_IN_ADDRESS, RecordOrigin, ShiftLabel
from laborhub.common.exceptions import NotFoundException, ValidationException
from laborhub.workers.service import WorkerDirectory

logger = logging.getLogger(__name__)


class BulkAttendanceService:

    # ── Bulk step in ────────────────────────────────────────────────

    @staticmethod
    async def bulk_step_in(
        db: AsyncSession,
        shift: ShiftLabel,
        *,
        actor: Actor,
        capture: Optional[CaptureMetadata] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BulkStepInResponse:
        """Open a record for every active worker on *shift* that is not already open.

        One worker failing does not abort the batch; each worker lands in
        exactly one of the three result buckets.
        """

        now = ensure_aware(now or utc_now())
        workers = await WorkerDirectory.list_by_shift(db, shift)
        if not workers:
            raise NotFoundException("Workers on shift", shift.value)

        capture = capture or CaptureMetadata()
        note = note or f"Bulk step-in by {actor.role.value}"
        created_by_type, created_by_id = actor_tag(actor)
        shared_fields: dict[str, Any] = {
            "step_in_image": capture.image,
            "step_in_latitude": capture.latitude if capture.latitude is not None else 0.0,
            "step_in_longitude": capture.longitude if capture.longitude is not None else 0.0,
            "step_in_address": capture.address or BULK_STEP_IN_ADDRESS,
        }

        response = BulkStepInResponse(
            shift=shift,
            summary=BulkStepInSummary(total_workers=len(workers), successful=0, failed=0, already_working=0),
        )

        # Plain values up front; a rolled-back savepoint expires ORM state
        roster = [(w.id, w.name, w.manager_id) for w in workers]

        for worker_id, worker_name, manager_id in roster:
            item = BulkStepInItem(worker_id=worker_id, worker_name=worker_name)
            try:
                if await AttendanceStore.find_open_for(db, worker_id) is not None:
                    response.already_working.append(item)
                    continue

                async with db.begin_nested():
                    record = AttendanceRecord(
                        worker_id=worker_id,
                        manager_id=manager_id,
                        step_in=now,
                        shift=shift,
                        origin=RecordOrigin.bulk,
                        note=note,
                        created_by_type=created_by_type,
                        created_by_id=created_by_id,
                        **shared_fields,
                    )
                    await AttendanceStore.create(db, record)
                    await WorkerDirectory.sync_working(db, worker_id)
                    await create_audit_entry(
                        db,
                        action="bulk_step_in",
                        entity_type=ENTITY_TYPE,
                        entity_id=record.id,
                        actor_type=created_by_type,
                        actor_id=created_by_id,
                        new_values=snapshot(record),
                    )
                item.record_id = record.id
                response.successful.append(item)
            except Exception as exc:
                logger.exception("Bulk step-in failed for worker %s", worker_id)
                item.error = str(exc)
                response.failed.append(item)

        response.summary = BulkStepInSummary(
            total_workers=len(roster),
            successful=len(response.successful),
            failed=len(response.failed),
            already_working=len(response.already_working),
        )
        logger.info(
            "Bulk step-in for %s shift: %d stepped in, %d failed, %d already working",
            shift.value,
            response.summary.successful,
            response.summary.failed,
            response.summary.already_working,
        )
        return response

    # ── Bulk update ─────────────────────────────────────────────────

    @staticmethod
    async def bulk_update(
        db: AsyncSession,
        record_ids: Sequence[uuid.UUID],
        changes: dict[str, Any],
        *,
        actor: Optional[Actor] = None,
    ) -> BulkUpdateResponse:
        """Apply one change set to many records and re-sync every affected worker."""

        if not record_ids:
            raise ValidationException({"record_ids": ["At least one record id is required."]})
        if not changes:
            raise ValidationException({"changes": ["No fields to update."]})

        if changes.get("step_in") is not None and changes.get("step_out") is not None:
            AttendanceService._validate_boundaries(changes["step_in"], changes["step_out"])

        record_ids = list(dict.fromkeys(record_ids))
        previous_workers = await AttendanceStore.worker_ids_for(db, record_ids)
        records = await AttendanceStore.bulk_update(db, record_ids, changes)

        worker_ids = list(dict.fromkeys(r.worker_id for r in records))
        if "step_out" in changes or "worker_id" in changes:
            await WorkerDirectory.sync_many(db, [*previous_workers, *worker_ids])

        actor_type, actor_id = actor_tag(actor)
        for record in records:
            await create_audit_entry(
                db,
                action="bulk_update",
                entity_type=ENTITY_TYPE,
                entity_id=record.id,
                actor_type=actor_type,
                actor_id=actor_id,
                new_values=snapshot(record),
            )

        logger.info(
            "Bulk update touched %d of %d records (%d workers)",
            len(records), len(record_ids), len(worker_ids),
        )
        return BulkUpdateResponse(matched_count=len(records), worker_ids=worker_ids)
