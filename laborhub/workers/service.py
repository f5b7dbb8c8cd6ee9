"""Worker directory — the read side of the worker registry plus the
``is_working`` flag the attendance core keeps in step with its records."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from laborhub.attendance.models import AttendanceRecord
from laborhub.common.constants import ShiftLabel
from laborhub.common.exceptions import NotFoundException
from laborhub.workers.models import Worker

logger = logging.getLogger(__name__)


class WorkerDirectory:
    """Async worker lookups and flag maintenance."""

    @staticmethod
    async def get(db: AsyncSession, worker_id: uuid.UUID) -> Worker:
        """Return the worker or raise 404."""
        worker = await db.get(Worker, worker_id)
        if worker is None:
            raise NotFoundException("Worker", worker_id)
        return worker

    @staticmethod
    async def list_by_shift(
        db: AsyncSession,
        shift: ShiftLabel,
        *,
        not_working_only: bool = False,
        manager_id: Optional[uuid.UUID] = None,
    ) -> Sequence[Worker]:
        """Active workers assigned to *shift*, ordered by name."""
        query = select(Worker).where(
            Worker.shift == shift,
            Worker.is_active.is_(True),
        )
        if not_working_only:
            query = query.where(Worker.is_working.is_(False))
        if manager_id is not None:
            query = query.where(Worker.manager_id == manager_id)

        result = await db.execute(query.order_by(Worker.name, Worker.id))
        return result.scalars().all()

    @staticmethod
    async def sync_working(db: AsyncSession, worker_id: uuid.UUID) -> bool:
        """Set ``is_working`` from the record store and return the new value.

        Runs in the caller's transaction so the flag is written together
        with the record change that moved it.
        """
        await db.flush()
        has_open = bool((
            await db.execute(
                select(
                    exists().where(
                        AttendanceRecord.worker_id == worker_id,
                        AttendanceRecord.step_out.is_(None),
                    )
                )
            )
        ).scalar_one())

        result = await db.execute(
            update(Worker)
            .where(Worker.id == worker_id, Worker.is_working != has_open)
            .values(is_working=has_open)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount:
            logger.info("Worker %s is_working → %s", worker_id, has_open)
        return has_open

    @staticmethod
    async def sync_many(db: AsyncSession, worker_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, bool]:
        """Re-sync several workers; duplicates are collapsed."""
        states: dict[uuid.UUID, bool] = {}
        for worker_id in dict.fromkeys(worker_ids):
            states[worker_id] = await WorkerDirectory.sync_working(db, worker_id)
        return states
