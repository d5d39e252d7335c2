"""Activity log — append-only record of security-relevant actions."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.db.models import AuditEvent


async def emit_audit(
    db: AsyncSession,
    *,
    category: str,
    action: str,
    actor: str = "system",
    business_id: str | None = None,
    description: str = "",
    resource_type: str | None = None,
    resource_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """Insert an activity row.

    Caller is responsible for committing; the row rides in the same
    transaction as the action being logged.
    """
    db.add(
        AuditEvent(
            category=category,
            action=action,
            actor=actor,
            business_id=business_id,
            description=description,
            resource_type=resource_type,
            resource_id=resource_id,
            meta_json=json.dumps(meta, default=str) if meta else None,
        )
    )


async def list_events(
    db: AsyncSession,
    *,
    business_id: str,
    category: str | None = None,
    action: str | None = None,
    actor: str | None = None,
    since: datetime | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[AuditEvent]:
    stmt = (
        select(AuditEvent)
        .where(AuditEvent.business_id == business_id)
        .order_by(desc(AuditEvent.ts), desc(AuditEvent.event_id))
    )
    if category:
        stmt = stmt.where(AuditEvent.category == category)
    if action:
        stmt = stmt.where(AuditEvent.action == action)
    if actor:
        stmt = stmt.where(AuditEvent.actor == actor)
    if since:
        stmt = stmt.where(AuditEvent.ts >= since)
    result = await db.execute(stmt.limit(limit).offset(offset))
    return list(result.scalars().all())
