"""ORM models — credential store, login history, products and the audit tables."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


# ── Workers (self-hosted credentials) ──────────────────────────


class Worker(Base):
    __tablename__ = "workers"

    worker_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    # Owning business (the admin tenant the worker was created under).
    business_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    monthly_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_revenue_generated: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Monotonic count of recorded logins; drives the login-history ring slots.
    login_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class LoginEvent(Base):
    """One slot of a worker's fixed-capacity login-history ring."""

    __tablename__ = "worker_login_history"

    worker_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("workers.worker_id", ondelete="CASCADE"), primary_key=True
    )
    slot: Mapped[int] = mapped_column(Integer, primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    logged_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ── Admins (identity provider references) ──────────────────────


class AdminAccount(Base):
    """Reference to an admin identity owned by the external provider.

    No credential material is stored here.
    """

    __tablename__ = "admin_accounts"

    subject: Mapped[str] = mapped_column(String(256), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ── Products (business rows mutated by approved audit entries) ─


class Product(Base):
    __tablename__ = "products"

    product_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    business_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    quantity_box: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    box_to_kg_ratio: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_per_box: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_per_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_per_box: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_per_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# ── Approval workflow ──────────────────────────────────────────


class AuditEntry(Base):
    """A proposed sensitive mutation and its approval outcome."""

    __tablename__ = "audit_entries"
    __table_args__ = (
        Index("ix_audit_entries_target", "target_type", "target_id"),
        Index("ix_audit_entries_status", "status"),
        Index("ix_audit_entries_business", "business_id"),
    )

    entry_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    # Copied from the target at proposal time.
    business_id: Mapped[str] = mapped_column(String(256), nullable=False)
    target_type: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    mutation: Mapped[str] = mapped_column(String(64), nullable=False)
    mutation_key: Mapped[str] = mapped_column(String(128), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    requester_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    requester_id: Mapped[str] = mapped_column(String(256), nullable=False)
    requester_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    approver_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    approver_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "<target_type>:<target_id>:<mutation_key>" while pending, NULL once resolved.
    # The unique constraint is what makes "one pending proposal per target" atomic.
    pending_key: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AuditEvent(Base):
    """Append-only activity log (logins, proposals, decisions, worker management)."""

    __tablename__ = "audit_events"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
    # NULL for events that cannot be tied to a business (e.g. a login for an
    # unknown email).
    business_id: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    actor: Mapped[str] = mapped_column(String(256), nullable=False, default="system")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    resource_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    meta_json: Mapped[str | None] = mapped_column(Text, nullable=True)
