"""Pydantic models for workers."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, EmailStr, Field


class WorkerCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=256)
    email: EmailStr
    password: str
    phone_number: str | None = Field(None, max_length=32)
    monthly_salary: Decimal = Field(Decimal("0"), ge=0)


class WorkerUpdate(BaseModel):
    full_name: str | None = Field(None, min_length=1, max_length=256)
    email: EmailStr | None = None
    phone_number: str | None = Field(None, max_length=32)
    monthly_salary: Decimal | None = Field(None, ge=0)
    is_active: bool | None = None
    password: str | None = None


class WorkerOut(BaseModel):
    # password_hash is deliberately absent.
    worker_id: str
    business_id: str
    full_name: str
    email: str
    phone_number: str | None = None
    monthly_salary: Decimal
    total_revenue_generated: Decimal
    is_active: bool
    login_count: int
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    recent_login_history: list[datetime] = []

    model_config = {"from_attributes": True}

    @classmethod
    def from_worker(cls, worker: Any, history: list[datetime]) -> "WorkerOut":
        out = cls.model_validate(worker)
        out.recent_login_history = list(history)
        return out


class LoginHistoryOut(BaseModel):
    worker_id: str
    capacity: int
    logins: list[datetime]
