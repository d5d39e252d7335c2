"""Approval workflow — propose, approve and reject auditable mutations.

An entry moves ``pending -> approved`` or ``pending -> rejected`` exactly
once.  Both transitions are a compare-and-set ``UPDATE … WHERE status =
'pending'``; on approve the mutation is applied in the same transaction, so
the status change and the business change commit together or not at all.

At most one pending entry may exist per (target, mutation key).  The
``pending_key`` column carries a unique constraint while the entry is
pending and is cleared on resolution.

Entries belong to the business that owns their target; only principals of
that business can see or resolve them.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.identity import Identity, describe, same_principal
from fishstock.auth.rbac import Allow, Operation, Resource, authorize, require
from fishstock.db.models import AuditEntry
from fishstock.errors import Conflict, InvalidState, NotFound, PermissionDenied, ValidationError
from fishstock.services import product_service
from fishstock.services.activity_service import emit_audit
from fishstock.services.mutations import get_mutation
from fishstock.utils.clock import utcnow

logger = logging.getLogger("fishstock.audit")

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

AUTO_REJECT_REASON = "target resource deleted"


def entry_payload(entry: AuditEntry) -> dict[str, Any]:
    return json.loads(entry.payload_json) if entry.payload_json else {}


def _pending_key(target_type: str, target_id: str, mutation_key: str) -> str:
    return f"{target_type}:{target_id}:{mutation_key}"


async def _target_business(db: AsyncSession, target_type: str, target_id: str) -> str:
    """Business that owns the target; raises NotFound if it does not exist."""
    if target_type == "product":
        return (await product_service.require_product(db, target_id)).business_id
    raise ValidationError(f"Unknown target type '{target_type}'")


async def _find_pending(db: AsyncSession, pending_key: str) -> AuditEntry | None:
    result = await db.execute(select(AuditEntry).where(AuditEntry.pending_key == pending_key))
    return result.scalar_one_or_none()


# ── Propose ────────────────────────────────────────────────────


async def propose(
    db: AsyncSession,
    requester: Identity,
    target_type: str,
    target_id: str,
    mutation: str,
    payload: dict[str, Any],
) -> AuditEntry:
    """Record a pending entry for *mutation*; nothing is changed yet."""
    handler = get_mutation(mutation)
    if handler.target_type != target_type:
        raise ValidationError(f"Mutation '{mutation}' does not apply to '{target_type}'")
    require(requester, handler.propose_operation, Resource(target_type, target_id))

    parsed = handler.parse(payload)
    business_id = await _target_business(db, target_type, target_id)
    require(requester, handler.propose_operation, Resource(target_type, target_id, business_id=business_id))

    mutation_key = handler.key(parsed)
    pending_key = _pending_key(target_type, target_id, mutation_key)
    existing = await _find_pending(db, pending_key)
    if existing is not None:
        raise Conflict(
            f"{target_type} {target_id} already has a pending '{mutation_key}' change "
            f"(entry {existing.entry_id})"
        )

    entry = AuditEntry(
        business_id=business_id,
        target_type=target_type,
        target_id=target_id,
        mutation=mutation,
        mutation_key=mutation_key,
        payload_json=json.dumps(parsed.model_dump(mode="json")),
        requester_kind=requester.kind,
        requester_id=requester.principal_id,
        requester_email=requester.email,
        status=STATUS_PENDING,
        pending_key=pending_key,
    )
    try:
        async with db.begin_nested():
            db.add(entry)
            await db.flush()
    except IntegrityError as exc:
        # A concurrent proposal took the same pending key first.
        raise Conflict(f"{target_type} {target_id} already has a pending '{mutation_key}' change") from exc

    await emit_audit(
        db,
        category="audit_entry",
        action="propose",
        actor=describe(requester),
        business_id=business_id,
        description=f"Proposed {mutation} on {target_type} {target_id}",
        resource_type=target_type,
        resource_id=target_id,
        meta={"entry_id": entry.entry_id, "payload": entry_payload(entry)},
    )
    await db.flush()
    await db.refresh(entry)
    logger.info("%s proposed %s on %s %s (entry %s)", describe(requester), mutation, target_type, target_id, entry.entry_id)
    return entry


# ── Resolve ────────────────────────────────────────────────────


async def _load_for_decision(
    db: AsyncSession, entry_id: str, approver: Identity, operation: Operation
) -> AuditEntry:
    entry = await db.get(AuditEntry, entry_id)
    if entry is None:
        raise NotFound("Audit entry not found")
    require(approver, operation, Resource("audit_entry", entry_id, business_id=entry.business_id))
    if operation is Operation.AUDIT_APPROVE and same_principal(approver, entry.requester_kind, entry.requester_id):
        raise PermissionDenied("You cannot approve your own request")
    if entry.status != STATUS_PENDING:
        raise InvalidState(f"audit entry is already {entry.status}")
    return entry


async def _transition(
    db: AsyncSession,
    entry: AuditEntry,
    status: str,
    approver: Identity,
    reason: str | None = None,
) -> None:
    result = await db.execute(
        update(AuditEntry)
        .where(AuditEntry.entry_id == entry.entry_id, AuditEntry.status == STATUS_PENDING)
        .values(
            status=status,
            approver_kind=approver.kind,
            approver_id=approver.principal_id,
            rejection_reason=reason,
            pending_key=None,
            resolved_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Someone else resolved it between our read and this write.
        await db.refresh(entry)
        raise InvalidState(f"audit entry is already {entry.status}")


async def _auto_reject_siblings(db: AsyncSession, entry: AuditEntry) -> list[str]:
    result = await db.execute(
        update(AuditEntry)
        .where(
            AuditEntry.target_type == entry.target_type,
            AuditEntry.target_id == entry.target_id,
            AuditEntry.status == STATUS_PENDING,
            AuditEntry.entry_id != entry.entry_id,
        )
        .values(
            status=STATUS_REJECTED,
            approver_kind="system",
            approver_id="system",
            rejection_reason=AUTO_REJECT_REASON,
            pending_key=None,
            resolved_at=utcnow(),
        )
        .returning(AuditEntry.entry_id)
        .execution_options(synchronize_session=False)
    )
    return list(result.scalars().all())


async def approve(db: AsyncSession, entry_id: str, approver: Identity) -> AuditEntry:
    """Approve a pending entry and apply its mutation in the same transaction.

    If applying the mutation fails the caller's transaction must be rolled
    back; the entry then stays pending.
    """
    require(approver, Operation.AUDIT_APPROVE, Resource("audit_entry", entry_id))
    entry = await _load_for_decision(db, entry_id, approver, Operation.AUDIT_APPROVE)

    handler = get_mutation(entry.mutation)
    parsed = handler.parse(entry_payload(entry))

    await _transition(db, entry, STATUS_APPROVED, approver)
    outcome = await handler.apply(db, entry.target_id, parsed)

    auto_rejected: list[str] = []
    if handler.removes_target:
        auto_rejected = await _auto_reject_siblings(db, entry)
        for sibling_id in auto_rejected:
            await emit_audit(
                db,
                category="audit_entry",
                action="auto_reject",
                actor="system",
                business_id=entry.business_id,
                description=f"Rejected entry {sibling_id}: {AUTO_REJECT_REASON}",
                resource_type=entry.target_type,
                resource_id=entry.target_id,
                meta={"entry_id": sibling_id, "deleted_by_entry": entry.entry_id},
            )

    await emit_audit(
        db,
        category="audit_entry",
        action="approve",
        actor=describe(approver),
        business_id=entry.business_id,
        description=f"Approved {entry.mutation} on {entry.target_type} {entry.target_id}",
        resource_type=entry.target_type,
        resource_id=entry.target_id,
        meta={"entry_id": entry.entry_id, "outcome": outcome, "auto_rejected": auto_rejected or None},
    )
    await db.flush()
    await db.refresh(entry)
    logger.info(
        "%s approved entry %s (%s on %s %s)",
        describe(approver),
        entry.entry_id,
        entry.mutation,
        entry.target_type,
        entry.target_id,
    )
    return entry


async def reject(db: AsyncSession, entry_id: str, approver: Identity, reason: str) -> AuditEntry:
    """Reject a pending entry; the proposed mutation is never applied."""
    require(approver, Operation.AUDIT_REJECT, Resource("audit_entry", entry_id))
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required")
    entry = await _load_for_decision(db, entry_id, approver, Operation.AUDIT_REJECT)

    await _transition(db, entry, STATUS_REJECTED, approver, reason=reason)
    await emit_audit(
        db,
        category="audit_entry",
        action="reject",
        actor=describe(approver),
        business_id=entry.business_id,
        description=f"Rejected {entry.mutation} on {entry.target_type} {entry.target_id}",
        resource_type=entry.target_type,
        resource_id=entry.target_id,
        meta={"entry_id": entry.entry_id, "reason": reason},
    )
    await db.flush()
    await db.refresh(entry)
    logger.info("%s rejected entry %s: %s", describe(approver), entry.entry_id, reason)
    return entry


# ── Reads ──────────────────────────────────────────────────────


def _owner_of(entry: AuditEntry) -> str | None:
    return entry.requester_id if entry.requester_kind == "worker" else None


async def get_entry(db: AsyncSession, entry_id: str, viewer: Identity) -> AuditEntry:
    entry = await db.get(AuditEntry, entry_id)
    if entry is None:
        raise NotFound("Audit entry not found")
    resource = Resource("audit_entry", entry_id, owner_id=_owner_of(entry), business_id=entry.business_id)
    require(viewer, Operation.AUDIT_READ, resource)
    return entry


async def list_entries(
    db: AsyncSession,
    viewer: Identity,
    *,
    status: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    mutation: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AuditEntry]:
    """List the viewer's business entries newest first.

    Callers without ``audit:list`` only see their own.
    """
    if status is not None and status not in STATUSES:
        raise ValidationError(f"Unknown status '{status}'")

    stmt = (
        select(AuditEntry)
        .where(AuditEntry.business_id == viewer.business_id)
        .order_by(desc(AuditEntry.created_at), desc(AuditEntry.entry_id))
    )
    if not isinstance(authorize(viewer, Operation.AUDIT_LIST), Allow):
        require(viewer, Operation.AUDIT_READ, Resource("audit_entry", owner_id=viewer.principal_id))
        stmt = stmt.where(
            AuditEntry.requester_kind == viewer.kind,
            AuditEntry.requester_id == viewer.principal_id,
        )
    if status:
        stmt = stmt.where(AuditEntry.status == status)
    if target_type:
        stmt = stmt.where(AuditEntry.target_type == target_type)
    if target_id:
        stmt = stmt.where(AuditEntry.target_id == target_id)
    if mutation:
        stmt = stmt.where(AuditEntry.mutation == mutation)
    result = await db.execute(stmt.limit(limit).offset(offset))
    return list(result.scalars().all())
