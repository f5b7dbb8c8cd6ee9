"""Attendance ORM model: AttendanceRecord.

A record is *open* while ``step_out`` is NULL. Two partial unique indexes
carry the invariants the database must guarantee under concurrency:

  - ``uq_attendance_open_per_worker``  — at most one open record per worker
  - ``uq_attendance_auto_per_shift_day`` — at most one automated step-in per
    worker, shift and local calendar day

``ck_attendance_step_order`` keeps a closed record's step_out at or after
its step_in.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from laborhub.common.constants import CreatorType, RecordOrigin, ShiftLabel
from laborhub.database import Base, UTCDateTime

if TYPE_CHECKING:
    from laborhub.workers.models import Manager, Worker

OPEN_RECORD_CLAUSE = sa.text("step_out IS NULL")
AUTO_RECORD_CLAUSE = sa.text("origin = 'auto'")
STEP_ORDER_CONSTRAINT = "ck_attendance_step_order"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.CheckConstraint(
            "step_out IS NULL OR step_out >= step_in",
            name=STEP_ORDER_CONSTRAINT,
        ),
        sa.Index("ix_attendance_worker_id", "worker_id"),
        sa.Index("ix_attendance_manager_id", "manager_id"),
        sa.Index("ix_attendance_shift_step_in", "shift", "step_in"),
        sa.Index("ix_attendance_step_in", "step_in"),
        sa.Index("ix_attendance_shift_work_date", "shift", "work_date"),
        sa.Index(
            "uq_attendance_open_per_worker",
            "worker_id",
            unique=True,
            postgresql_where=OPEN_RECORD_CLAUSE,
            sqlite_where=OPEN_RECORD_CLAUSE,
        ),
        sa.Index(
            "uq_attendance_auto_per_shift_day",
            "worker_id",
            "shift",
            "work_date",
            unique=True,
            postgresql_where=AUTO_RECORD_CLAUSE,
            sqlite_where=AUTO_RECORD_CLAUSE,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    worker_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("workers.id"), nullable=False
    )
    manager_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("managers.id"), nullable=False
    )
    step_in: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    step_out: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    total_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)
    shift: Mapped[ShiftLabel] = mapped_column(
        sa.Enum(ShiftLabel, name="shift_label"),
        nullable=False,
    )
    # Local calendar day of step_in, kept in sync with it
    work_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    origin: Mapped[RecordOrigin] = mapped_column(
        sa.Enum(RecordOrigin, name="record_origin"),
        nullable=False,
        default=RecordOrigin.manual,
    )
    note: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Capture metadata, stored verbatim and never interpreted
    step_in_image: Mapped[Optional[str]] = mapped_column(sa.String(500))
    step_in_latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    step_in_longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    step_in_address: Mapped[Optional[str]] = mapped_column(sa.Text)
    step_out_image: Mapped[Optional[str]] = mapped_column(sa.String(500))
    step_out_latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    step_out_longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    step_out_address: Mapped[Optional[str]] = mapped_column(sa.Text)

    created_by_type: Mapped[CreatorType] = mapped_column(
        sa.Enum(CreatorType, name="creator_type"),
        nullable=False,
        default=CreatorType.system,
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    worker: Mapped[Worker] = relationship(back_populates="attendance_records")
    manager: Mapped[Manager] = relationship()

    @property
    def is_open(self) -> bool:
        return self.step_out is None

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<AttendanceRecord {self.id} worker={self.worker_id} {self.shift.value} {state}>"
