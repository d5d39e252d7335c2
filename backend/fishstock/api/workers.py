"""Workers API router — admin-managed worker accounts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.deps import get_identity
from fishstock.auth.identity import Identity, describe
from fishstock.auth.rbac import Operation, Resource, require
from fishstock.config import settings
from fishstock.db.engine import get_db
from fishstock.db.models import Worker
from fishstock.schemas.workers import LoginHistoryOut, WorkerCreate, WorkerOut, WorkerUpdate
from fishstock.services import login_history, worker_service
from fishstock.services.activity_service import emit_audit

router = APIRouter()


def _worker_resource(worker_id: str, business_id: str | None = None) -> Resource:
    return Resource("worker", worker_id, owner_id=worker_id, business_id=business_id)


async def _load_worker(db: AsyncSession, identity: Identity, operation: Operation, worker_id: str) -> Worker:
    """Fetch a worker the caller may act on; other businesses' workers are denied."""
    require(identity, operation, _worker_resource(worker_id))
    worker = await worker_service.require_worker(db, worker_id)
    require(identity, operation, _worker_resource(worker_id, worker.business_id))
    return worker


@router.get("", response_model=list[WorkerOut])
async def list_workers(
    include_inactive: bool = True,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require(identity, Operation.WORKER_LIST)
    return await worker_service.list_workers(db, identity.business_id, include_inactive=include_inactive)


@router.post("", response_model=WorkerOut, status_code=status.HTTP_201_CREATED)
async def create_worker(
    body: WorkerCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require(identity, Operation.WORKER_CREATE)
    worker = await worker_service.create_worker(
        db,
        business_id=identity.business_id,
        full_name=body.full_name,
        email=body.email,
        password=body.password,
        phone_number=body.phone_number,
        monthly_salary=body.monthly_salary,
        created_by=describe(identity),
        bcrypt_rounds=settings.BCRYPT_ROUNDS,
    )
    await emit_audit(
        db,
        category="worker",
        action="create",
        actor=describe(identity),
        business_id=identity.business_id,
        description=f"Created worker '{worker.email}'",
        resource_type="worker",
        resource_id=worker.worker_id,
    )
    return WorkerOut.from_worker(worker, [])


@router.get("/{worker_id}", response_model=WorkerOut)
async def get_worker(
    worker_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    worker = await _load_worker(db, identity, Operation.WORKER_READ, worker_id)
    history = await login_history.recent(db, worker_id, settings.LOGIN_HISTORY_CAPACITY)
    return WorkerOut.from_worker(worker, history)


@router.patch("/{worker_id}", response_model=WorkerOut)
async def update_worker(
    worker_id: str,
    body: WorkerUpdate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    worker = await _load_worker(db, identity, Operation.WORKER_UPDATE, worker_id)
    changes = body.model_dump(exclude_unset=True)
    worker = await worker_service.update_worker(db, worker, bcrypt_rounds=settings.BCRYPT_ROUNDS, **changes)
    await emit_audit(
        db,
        category="worker",
        action="update",
        actor=describe(identity),
        business_id=identity.business_id,
        description=f"Updated worker '{worker.email}'",
        resource_type="worker",
        resource_id=worker_id,
        meta={"fields": sorted(k for k in changes if k != "password"), "password_changed": "password" in changes},
    )
    history = await login_history.recent(db, worker_id, settings.LOGIN_HISTORY_CAPACITY)
    return WorkerOut.from_worker(worker, history)


@router.delete("/{worker_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_worker(
    worker_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    worker = await _load_worker(db, identity, Operation.WORKER_DELETE, worker_id)
    await worker_service.delete_worker(db, worker)
    await emit_audit(
        db,
        category="worker",
        action="delete",
        actor=describe(identity),
        business_id=identity.business_id,
        description=f"Deleted worker '{worker.email}'",
        resource_type="worker",
        resource_id=worker_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{worker_id}/login-history", response_model=LoginHistoryOut)
async def get_login_history(
    worker_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    await _load_worker(db, identity, Operation.WORKER_LOGIN_HISTORY, worker_id)
    logins = await login_history.recent(db, worker_id, settings.LOGIN_HISTORY_CAPACITY)
    return LoginHistoryOut(worker_id=worker_id, capacity=settings.LOGIN_HISTORY_CAPACITY, logins=logins)
