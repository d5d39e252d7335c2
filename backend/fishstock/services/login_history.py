"""Bounded login history for workers.

Each worker owns a ring of ``capacity`` slots in ``worker_login_history``.
Recording a login bumps the worker's ``login_count`` with one atomic
``UPDATE … RETURNING`` and writes the event into slot
``(login_count - 1) % capacity``, overwriting the oldest entry once the ring
is full.  The counter update takes the worker row's write lock, so
concurrent logins for the same worker are serialised and every committed
login gets its own sequence number; different workers never contend.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.db.models import LoginEvent, Worker
from fishstock.errors import NotFound
from fishstock.utils.clock import as_utc

logger = logging.getLogger("fishstock.login_history")

DEFAULT_CAPACITY = 10


async def record(
    db: AsyncSession,
    worker_id: str,
    timestamp: datetime,
    capacity: int = DEFAULT_CAPACITY,
) -> int:
    """Append one login event; returns its sequence number."""
    if capacity < 1:
        raise ValueError("capacity must be >= 1")

    result = await db.execute(
        update(Worker)
        .where(Worker.worker_id == worker_id)
        .values(login_count=Worker.login_count + 1, updated_at=Worker.updated_at)
        .returning(Worker.login_count)
        .execution_options(synchronize_session=False)
    )
    seq = result.scalar_one_or_none()
    if seq is None:
        raise NotFound("Worker not found")

    slot = (seq - 1) % capacity
    overwritten = await db.execute(
        update(LoginEvent)
        .where(LoginEvent.worker_id == worker_id, LoginEvent.slot == slot)
        .values(seq=seq, logged_in_at=timestamp)
        .execution_options(synchronize_session=False)
    )
    if overwritten.rowcount == 0:
        db.add(LoginEvent(worker_id=worker_id, slot=slot, seq=seq, logged_in_at=timestamp))
    await db.flush()
    logger.debug("Recorded login #%d for worker %s (slot %d)", seq, worker_id, slot)
    return seq


async def recent(
    db: AsyncSession,
    worker_id: str,
    capacity: int = DEFAULT_CAPACITY,
) -> list[datetime]:
    """Return at most *capacity* login timestamps, oldest first."""
    result = await db.execute(
        select(LoginEvent)
        .where(LoginEvent.worker_id == worker_id)
        .order_by(LoginEvent.seq.desc())
        .limit(capacity)
    )
    events = sorted(result.scalars().all(), key=lambda e: (as_utc(e.logged_in_at), e.seq))
    return [as_utc(e.logged_in_at) for e in events]
