"""Worker directory ORM models: Manager, Worker.

Both tables are owned by the account-management subsystem; the attendance
core only reads them and flips ``Worker.is_working``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from laborhub.common.constants import ShiftLabel
from laborhub.database import Base, UTCDateTime

if TYPE_CHECKING:
    from laborhub.attendance.models import AttendanceRecord


class Manager(Base):
    """Site supervisor owning a group of workers."""

    __tablename__ = "managers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(sa.String(255), unique=True)
    mobile: Mapped[Optional[str]] = mapped_column(sa.String(20))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(timezone.utc)
    )

    # ── Relationships ───────────────────────────────────────────────
    workers: Mapped[list[Worker]] = relationship(back_populates="manager")

    def __repr__(self) -> str:
        return f"<Manager {self.name!r}>"


class Worker(Base):
    """A labourer assigned to one of the three daily shifts."""

    __tablename__ = "workers"
    __table_args__ = (
        sa.Index("ix_workers_shift_is_working", "shift", "is_working"),
        sa.Index("ix_workers_manager_id", "manager_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    mobile: Mapped[Optional[str]] = mapped_column(sa.String(20))
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    manager_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("managers.id"), nullable=False
    )
    shift: Mapped[ShiftLabel] = mapped_column(
        sa.Enum(ShiftLabel, name="shift_label"), nullable=False
    )
    # Denormalised view of "has an open attendance record"
    is_working: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships ───────────────────────────────────────────────
    manager: Mapped[Manager] = relationship(back_populates="workers")
    attendance_records: Mapped[list[AttendanceRecord]] = relationship(
        back_populates="worker"
    )

    def __repr__(self) -> str:
        return f"<Worker {self.name!r} ({self.shift.value})>"
