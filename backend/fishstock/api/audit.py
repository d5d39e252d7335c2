"""Audit API router — approval workflow entries and the activity log."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.deps import get_identity
from fishstock.auth.identity import Identity
from fishstock.auth.rbac import Operation, require
from fishstock.db.engine import get_db
from fishstock.schemas.audit import AuditEntryOut, AuditEventOut, RejectRequest
from fishstock.services import activity_service, audit_service

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("/entries", response_model=list[AuditEntryOut])
async def list_entries(
    status: str | None = Query(None, description="pending | approved | rejected"),
    target_type: str | None = None,
    target_id: str | None = None,
    mutation: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await audit_service.list_entries(
        db,
        identity,
        status=status,
        target_type=target_type,
        target_id=target_id,
        mutation=mutation,
        limit=limit,
        offset=offset,
    )


@router.get("/entries/{entry_id}", response_model=AuditEntryOut)
async def get_entry(
    entry_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await audit_service.get_entry(db, entry_id, identity)


@router.post("/entries/{entry_id}/approve", response_model=AuditEntryOut)
async def approve_entry(
    entry_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await audit_service.approve(db, entry_id, identity)


@router.post("/entries/{entry_id}/reject", response_model=AuditEntryOut)
async def reject_entry(
    entry_id: str,
    body: RejectRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await audit_service.reject(db, entry_id, identity, body.reason)


@router.get("/events", response_model=list[AuditEventOut])
async def list_events(
    category: str | None = Query(None, description="Filter by category (auth, worker, product, audit_entry)"),
    action: str | None = Query(None, description="Filter by action (login, propose, approve, ...)"),
    actor: str | None = Query(None, description="Filter by actor label"),
    since: datetime | None = Query(None, description="Only events at or after this time"),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require(identity, Operation.AUDIT_EVENTS_READ)
    return await activity_service.list_events(
        db,
        business_id=identity.business_id,
        category=category,
        action=action,
        actor=actor,
        since=since,
        limit=limit,
        offset=offset,
    )
