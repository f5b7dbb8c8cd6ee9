"""Bulk attendance tests — shift-wide step-in buckets and multi-record updates."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from laborhub.attendance.bulk import BulkAttendanceService
from laborhub.attendance.models import AttendanceRecord
from laborhub.attendance.schemas import CaptureMetadata
from laborhub.attendance.service import AttendanceService
from laborhub.auth.dependencies import Actor
from laborhub.common.constants import (
    BULK_STEP_IN_ADDRESS,
    ActorRole,
    CreatorType,
    RecordOrigin,
    ShiftLabel,
)
from laborhub.common.exceptions import NotFoundException, ValidationException
from laborhub.workers.models import Worker
from laborhub.workers.service import WorkerDirectory
from tests.conftest import _create_worker, local_instant

ADMIN = Actor(id=uuid.uuid4(), role=ActorRole.admin)


async def _flags(db, worker_ids) -> dict:
    rows = await db.execute(
        select(Worker.id, Worker.is_working).where(Worker.id.in_(worker_ids))
    )
    return {worker_id: is_working for worker_id, is_working in rows.all()}


async def _records_for(db, worker_id):
    result = await db.execute(
        select(AttendanceRecord).where(AttendanceRecord.worker_id == worker_id)
    )
    return result.scalars().all()


# ═════════════════════════════════════════════════════════════════════
# 1. BULK STEP IN
# ═════════════════════════════════════════════════════════════════════


async def test_bulk_step_in_three_eligible_one_already_working(db, test_manager):
    eligible = [
        await _create_worker(db, test_manager["id"], name=f"E{i}", shift=ShiftLabel.evening)
        for i in range(3)
    ]
    busy = await _create_worker(db, test_manager["id"], name="Busy", shift=ShiftLabel.evening)
    await AttendanceService.step_in(db, busy["id"], now=local_instant(2026, 3, 10, 14, 50))

    result = await BulkAttendanceService.bulk_step_in(
        db, ShiftLabel.evening, actor=ADMIN, now=local_instant(2026, 3, 10, 15),
    )

    assert result.summary.total_workers == 4
    assert result.summary.successful == 3
    assert result.summary.failed == 0
    assert result.summary.already_working == 1
    assert {i.worker_id for i in result.successful} == {w["id"] for w in eligible}
    assert [i.worker_id for i in result.already_working] == [busy["id"]]
    assert all(i.record_id is not None for i in result.successful)

    flags = await _flags(db, [w["id"] for w in eligible] + [busy["id"]])
    assert all(flags.values())
    # The already-working worker kept its single original record
    assert len(await _records_for(db, busy["id"])) == 1


async def test_bulk_step_in_applies_defaults(db, test_manager):
    worker = await _create_worker(db, test_manager["id"], shift=ShiftLabel.night)

    result = await BulkAttendanceService.bulk_step_in(
        db, ShiftLabel.night, actor=ADMIN, now=local_instant(2026, 3, 10, 23),
    )

    (record,) = await _records_for(db, worker["id"])
    assert record.id == result.successful[0].record_id
    assert record.origin == RecordOrigin.bulk
    assert record.shift == ShiftLabel.night
    assert record.manager_id == test_manager["id"]
    assert record.created_by_type == CreatorType.admin
    assert record.created_by_id == ADMIN.id
    assert record.step_in_address == BULK_STEP_IN_ADDRESS
    assert record.step_in_latitude == 0.0
    assert record.step_in_longitude == 0.0
    assert record.note == "Bulk step-in by admin"


async def test_bulk_step_in_uses_shared_capture(db, test_manager):
    first = await _create_worker(db, test_manager["id"], name="A")
    second = await _create_worker(db, test_manager["id"], name="B")
    capture = CaptureMetadata(latitude=21.2, longitude=72.8, address="Khodiyar nagar parking")

    await BulkAttendanceService.bulk_step_in(
        db, ShiftLabel.morning, actor=ADMIN, capture=capture, note="Site opening",
        now=local_instant(2026, 3, 10, 7),
    )

    for worker in (first, second):
        (record,) = await _records_for(db, worker["id"])
        assert record.step_in_address == "Khodiyar nagar parking"
        assert record.step_in_latitude == pytest.approx(21.2)
        assert record.note == "Site opening"


async def test_bulk_step_in_isolates_per_worker_failure(db, test_manager, monkeypatch):
    good = await _create_worker(db, test_manager["id"], name="Good", shift=ShiftLabel.evening)
    bad = await _create_worker(db, test_manager["id"], name="Bad", shift=ShiftLabel.evening)

    original = WorkerDirectory.sync_working

    async def _flaky(db, worker_id):
        if worker_id == bad["id"]:
            raise RuntimeError("directory unavailable")
        return await original(db, worker_id)

    monkeypatch.setattr(WorkerDirectory, "sync_working", _flaky)

    result = await BulkAttendanceService.bulk_step_in(
        db, ShiftLabel.evening, actor=ADMIN, now=local_instant(2026, 3, 10, 15),
    )

    assert result.summary.successful == 1
    assert result.summary.failed == 1
    assert result.failed[0].worker_id == bad["id"]
    assert "directory unavailable" in result.failed[0].error
    # The failed worker's insert was rolled back with its savepoint
    assert await _records_for(db, bad["id"]) == []
    assert len(await _records_for(db, good["id"])) == 1


async def test_bulk_step_in_skips_inactive_workers(db, test_manager):
    await _create_worker(db, test_manager["id"], name="Active")
    await _create_worker(db, test_manager["id"], name="Gone", is_active=False)

    result = await BulkAttendanceService.bulk_step_in(
        db, ShiftLabel.morning, actor=ADMIN, now=local_instant(2026, 3, 10, 7),
    )
    assert result.summary.total_workers == 1


async def test_bulk_step_in_without_workers_raises_not_found(db, test_manager):
    await _create_worker(db, test_manager["id"], shift=ShiftLabel.morning)

    with pytest.raises(NotFoundException):
        await BulkAttendanceService.bulk_step_in(
            db, ShiftLabel.night, actor=ADMIN, now=local_instant(2026, 3, 10, 23),
        )


# ═════════════════════════════════════════════════════════════════════
# 2. BULK UPDATE
# ═════════════════════════════════════════════════════════════════════


async def _open_for_workers(db, manager_id, count=2):
    workers, record_ids = [], []
    for i in range(count):
        worker = await _create_worker(db, manager_id, name=f"W{i}")
        resp = await AttendanceService.step_in(
            db, worker["id"], now=local_instant(2026, 3, 10, 8, i),
        )
        workers.append(worker)
        record_ids.append(resp.record.id)
    return workers, record_ids


async def test_bulk_update_both_boundaries_share_one_total(db, test_manager):
    workers, record_ids = await _open_for_workers(db, test_manager["id"])

    result = await BulkAttendanceService.bulk_update(
        db,
        record_ids,
        {
            "step_in": local_instant(2026, 3, 10, 7),
            "step_out": local_instant(2026, 3, 10, 15),
        },
        actor=ADMIN,
    )

    assert result.matched_count == 2
    assert set(result.worker_ids) == {w["id"] for w in workers}
    totals = (
        await db.execute(
            select(AttendanceRecord.total_minutes).where(AttendanceRecord.id.in_(record_ids))
        )
    ).scalars().all()
    assert totals == [480, 480]
    flags = await _flags(db, [w["id"] for w in workers])
    assert not any(flags.values())


async def test_bulk_update_step_out_only_computes_per_record(db, test_manager):
    _, record_ids = await _open_for_workers(db, test_manager["id"])

    await BulkAttendanceService.bulk_update(
        db, record_ids, {"step_out": local_instant(2026, 3, 10, 9)},
    )

    rows = (
        await db.execute(
            select(AttendanceRecord.step_in, AttendanceRecord.total_minutes)
            .where(AttendanceRecord.id.in_(record_ids))
            .order_by(AttendanceRecord.step_in)
        )
    ).all()
    assert [total for _, total in rows] == [60, 59]


async def test_bulk_update_clearing_step_out_reopens(db, test_manager):
    workers, record_ids = await _open_for_workers(db, test_manager["id"])
    await BulkAttendanceService.bulk_update(
        db, record_ids, {"step_out": local_instant(2026, 3, 10, 12)},
    )

    await BulkAttendanceService.bulk_update(db, record_ids, {"step_out": None})

    totals = (
        await db.execute(
            select(func.count()).select_from(AttendanceRecord).where(
                AttendanceRecord.id.in_(record_ids),
                AttendanceRecord.total_minutes.is_(None),
                AttendanceRecord.step_out.is_(None),
            )
        )
    ).scalar_one()
    assert totals == 2
    flags = await _flags(db, [w["id"] for w in workers])
    assert all(flags.values())


async def test_bulk_update_ignores_unknown_ids(db, test_manager):
    _, record_ids = await _open_for_workers(db, test_manager["id"], count=1)

    result = await BulkAttendanceService.bulk_update(
        db, [*record_ids, uuid.uuid4()], {"note": "checked"},
    )
    assert result.matched_count == 1


async def test_bulk_update_requires_ids(db):
    with pytest.raises(ValidationException):
        await BulkAttendanceService.bulk_update(db, [], {"note": "x"})


async def test_bulk_update_rejects_inverted_boundaries(db, test_manager):
    _, record_ids = await _open_for_workers(db, test_manager["id"], count=1)

    with pytest.raises(ValidationException):
        await BulkAttendanceService.bulk_update(
            db,
            record_ids,
            {
                "step_in": local_instant(2026, 3, 10, 15),
                "step_out": local_instant(2026, 3, 10, 7),
            },
        )


async def test_bulk_update_lone_step_out_before_step_in_is_rejected(db, test_manager):
    worker = await _create_worker(db, test_manager["id"])
    resp = await AttendanceService.step_in(db, worker["id"], now=local_instant(2026, 3, 10, 9))

    with pytest.raises(ValidationException):
        await BulkAttendanceService.bulk_update(
            db, [resp.record.id], {"step_out": local_instant(2026, 3, 10, 8)},
        )

    row = (
        await db.execute(
            select(AttendanceRecord.step_out, AttendanceRecord.total_minutes)
            .where(AttendanceRecord.id == resp.record.id)
        )
    ).one()
    assert row.step_out is None
    assert row.total_minutes is None


async def test_bulk_update_lone_step_in_after_step_out_is_rejected(db, test_manager):
    workers, record_ids = await _open_for_workers(db, test_manager["id"])
    await BulkAttendanceService.bulk_update(
        db, record_ids, {"step_out": local_instant(2026, 3, 10, 16)},
    )

    # Valid for neither record, so nothing is written
    with pytest.raises(ValidationException):
        await BulkAttendanceService.bulk_update(
            db, record_ids, {"step_in": local_instant(2026, 3, 10, 17)},
        )

    totals = (
        await db.execute(
            select(AttendanceRecord.total_minutes).where(AttendanceRecord.id.in_(record_ids))
        )
    ).scalars().all()
    assert sorted(totals) == [479, 480]
