"""Pydantic models for audit entries and the activity log."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class AuditEntryOut(BaseModel):
    entry_id: str
    business_id: str
    target_type: str
    target_id: str
    mutation: str
    mutation_key: str
    payload: dict[str, Any] = Field(validation_alias="payload_json")
    requester_kind: str
    requester_id: str
    requester_email: str
    status: str
    approver_kind: str | None = None
    approver_id: str | None = None
    rejection_reason: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        return value


class RejectRequest(BaseModel):
    reason: str


class AuditEventOut(BaseModel):
    event_id: int
    ts: datetime
    category: str
    action: str
    actor: str
    description: str
    resource_type: str | None = None
    resource_id: str | None = None
    meta: dict[str, Any] | None = Field(None, validation_alias="meta_json")

    model_config = {"from_attributes": True}

    @field_validator("meta", mode="before")
    @classmethod
    def _decode_meta(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        return value
