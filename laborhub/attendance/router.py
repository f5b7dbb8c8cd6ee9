"""Attendance router — step in/out, corrections, bulk operations, reads.

All endpoints require a bearer token. Managers only see their own records;
bulk step-in is admin-only.
"""


import uuid
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from laborhub.attendance.bulk import BulkAttendanceService
from laborhub.attendance.schemas import (
    AttendanceListResponse,
    AttendanceRecordResponse,
    AttendanceSummaryResponse,
    AttendanceUpdateRequest,
    BulkStepInRequest,
    BulkStepInResponse,
    BulkUpdateRequest,
    BulkUpdateResponse,
    DeleteResponse,
    StepInRequest,
    StepInResponse,
    StepOutRequest,
)
from laborhub.attendance.service import AttendanceService
from laborhub.auth.dependencies import Actor, require_role
from laborhub.common.constants import ActorRole, ShiftLabel
from laborhub.common.exceptions import ForbiddenException
from laborhub.common.pagination import PaginationParams
from laborhub.common.rate_limit import limiter
from laborhub.database import get_db

router = APIRouter(prefix="", tags=["attendance"])

_staff = require_role(ActorRole.manager, ActorRole.admin)


def _scope(actor: Actor) -> Optional[uuid.UUID]:
    """Manager id to filter on, or None for admins."""
    return None if actor.is_admin else actor.id


# ── POST /step-in ───────────────────────────────────────────────────

@router.post("/step-in", response_model=StepInResponse, status_code=201)
async def step_in(
    body: StepInRequest,
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """Open an attendance record for a worker."""
    return await AttendanceService.step_in(
        db,
        body.worker_id,
        manager_id=body.manager_id,
        shift=body.shift,
        capture=body.capture,
        note=body.note,
        actor=actor,
    )


# ── POST /step-out ──────────────────────────────────────────────────

@router.post("/step-out", response_model=AttendanceRecordResponse)
async def step_out(
    body: StepOutRequest,
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """Close an open attendance record."""
    return await AttendanceService.step_out(
        db,
        body.record_id,
        capture=body.capture,
        note=body.note,
        actor=actor,
    )


# ── POST /bulk-step-in ──────────────────────────────────────────────

@router.post("/bulk-step-in", response_model=BulkStepInResponse)
@limiter.limit("10/minute")
async def bulk_step_in(
    request: Request,
    body: BulkStepInRequest,
    actor: Actor = Depends(require_role(ActorRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Step in every idle worker on a shift (admin only)."""
    return await BulkAttendanceService.bulk_step_in(
        db,
        body.shift,
        actor=actor,
        capture=body.capture,
        note=body.note,
    )


# ── POST /bulk-update ───────────────────────────────────────────────

@router.post("/bulk-update", response_model=BulkUpdateResponse)
async def bulk_update(
    body: BulkUpdateRequest,
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """Apply one correction to many records."""
    return await BulkAttendanceService.bulk_update(
        db,
        body.record_ids,
        body.changes.model_dump(exclude_unset=True),
        actor=actor,
    )


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=AttendanceListResponse)
async def list_attendance(
    worker_id: Optional[uuid.UUID] = Query(None),
    manager_id: Optional[uuid.UUID] = Query(None),
    shift: Optional[ShiftLabel] = Query(None),
    start_date: Optional[date] = Query(None, description="Local calendar day (inclusive)"),
    end_date: Optional[date] = Query(None, description="Local calendar day (inclusive)"),
    order: Literal["asc", "desc"] = Query("desc"),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """List attendance records with filters. Managers are scoped to their own."""
    return await AttendanceService.list_records(
        db,
        pagination,
        manager_id=_scope(actor) or manager_id,
        worker_id=worker_id,
        shift=shift,
        start_date=start_date,
        end_date=end_date,
        newest_first=order == "desc",
    )


# ── GET /summary ────────────────────────────────────────────────────

@router.get("/summary", response_model=AttendanceSummaryResponse)
async def attendance_summary(
    day: Optional[date] = Query(None, alias="date", description="Local calendar day; defaults to today"),
    shift: ShiftLabel = Query(...),
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """Presence summary for one shift on one day."""
    return await AttendanceService.get_summary(db, day, shift, manager_id=_scope(actor))


# ── GET /workers/{worker_id} ────────────────────────────────────────

@router.get("/workers/{worker_id}", response_model=AttendanceListResponse)
async def worker_attendance(
    worker_id: uuid.UUID,
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """Records for one worker, newest first."""
    return await AttendanceService.list_records(
        db,
        pagination,
        worker_id=worker_id,
        manager_id=_scope(actor),
    )


# ── GET /workers/{worker_id}/open ───────────────────────────────────

@router.get("/workers/{worker_id}/open", response_model=Optional[AttendanceRecordResponse])
async def worker_open_record(
    worker_id: uuid.UUID,
    actor: Actor = Depends(require_role(ActorRole.worker)),
    db: AsyncSession = Depends(get_db),
):
    """The worker's open record, or null. Workers may only ask about themselves."""
    if actor.role == ActorRole.worker and actor.id != worker_id:
        raise ForbiddenException(detail="Workers can only view their own attendance.")
    return await AttendanceService.get_open_record(db, worker_id)


# ── PUT /{record_id} ────────────────────────────────────────────────

@router.put("/{record_id}", response_model=AttendanceRecordResponse)
async def update_attendance(
    record_id: uuid.UUID,
    body: AttendanceUpdateRequest,
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """Correct an attendance record. Only fields present in the body change."""
    return await AttendanceService.update_record(
        db,
        record_id,
        body.model_dump(exclude_unset=True),
        actor=actor,
    )


# ── DELETE /{record_id} ─────────────────────────────────────────────

@router.delete("/{record_id}", response_model=DeleteResponse)
async def delete_attendance(
    record_id: uuid.UUID,
    actor: Actor = Depends(_staff),
    db: AsyncSession = Depends(get_db),
):
    """Delete a record and re-sync the worker's working flag."""
    return await AttendanceService.delete_record(db, record_id, actor=actor)
