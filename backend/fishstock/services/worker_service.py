"""Worker credential store — CRUD with bcrypt password hashing.

Emails are stored lower-cased and are unique.  The password hash never
leaves this module's callers through an API schema; see
:class:`fishstock.schemas.workers.WorkerOut`.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.passwords import hash_password, validate_password_strength
from fishstock.db.models import Worker
from fishstock.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger("fishstock.workers")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_password(password: str) -> None:
    problems = validate_password_strength(password)
    if problems:
        raise ValidationError("; ".join(problems))


async def _hash(password: str, rounds: int) -> str:
    # bcrypt is CPU-bound; keep it off the event loop.
    return await asyncio.to_thread(hash_password, password, rounds)


# ── Reads ─────────────────────────────────────────────────────


async def get_worker_by_email(db: AsyncSession, email: str) -> Worker | None:
    result = await db.execute(select(Worker).where(Worker.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_worker_by_id(db: AsyncSession, worker_id: str) -> Worker | None:
    return await db.get(Worker, worker_id)


async def require_worker(db: AsyncSession, worker_id: str) -> Worker:
    worker = await get_worker_by_id(db, worker_id)
    if worker is None:
        raise NotFound("Worker not found")
    return worker


async def list_workers(db: AsyncSession, business_id: str, include_inactive: bool = True) -> list[Worker]:
    stmt = select(Worker).where(Worker.business_id == business_id).order_by(Worker.created_at)
    if not include_inactive:
        stmt = stmt.where(Worker.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ── Writes ────────────────────────────────────────────────────


async def create_worker(
    db: AsyncSession,
    *,
    business_id: str,
    full_name: str,
    email: str,
    password: str,
    phone_number: str | None = None,
    monthly_salary: Decimal = Decimal("0"),
    created_by: str | None = None,
    bcrypt_rounds: int = 12,
) -> Worker:
    _check_password(password)
    email = normalize_email(email)
    if await get_worker_by_email(db, email) is not None:
        raise Conflict(f"A worker with email '{email}' already exists")

    worker = Worker(
        business_id=business_id,
        full_name=full_name.strip(),
        email=email,
        phone_number=phone_number,
        password_hash=await _hash(password, bcrypt_rounds),
        monthly_salary=monthly_salary,
        created_by=created_by,
    )
    try:
        async with db.begin_nested():
            db.add(worker)
            await db.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent create for the same email.
        raise Conflict(f"A worker with email '{email}' already exists") from exc
    await db.refresh(worker)
    logger.info("Created worker '%s' (%s)", email, worker.worker_id)
    return worker


async def update_worker(
    db: AsyncSession,
    worker: Worker,
    *,
    full_name: str | None = None,
    email: str | None = None,
    phone_number: str | None = None,
    monthly_salary: Decimal | None = None,
    is_active: bool | None = None,
    password: str | None = None,
    bcrypt_rounds: int = 12,
) -> Worker:
    if email is not None:
        email = normalize_email(email)
        if email != worker.email:
            existing = await get_worker_by_email(db, email)
            if existing is not None:
                raise Conflict(f"A worker with email '{email}' already exists")
            worker.email = email
    if full_name is not None:
        worker.full_name = full_name.strip()
    if phone_number is not None:
        worker.phone_number = phone_number
    if monthly_salary is not None:
        worker.monthly_salary = monthly_salary
    if is_active is not None:
        worker.is_active = is_active
    if password is not None:
        _check_password(password)
        worker.password_hash = await _hash(password, bcrypt_rounds)
    await db.flush()
    await db.refresh(worker)
    return worker


async def delete_worker(db: AsyncSession, worker: Worker) -> None:
    await db.delete(worker)
    await db.flush()
    logger.info("Deleted worker '%s'", worker.email)
