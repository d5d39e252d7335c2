"""Pydantic models for authentication endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from fishstock.schemas.workers import WorkerOut


class WorkerLoginRequest(BaseModel):
    email: str
    password: str


class TokenBody(BaseModel):
    token: str


class WorkerLoginResponse(BaseModel):
    worker: WorkerOut
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: datetime


class VerifyResponse(BaseModel):
    valid: bool = True
    worker_id: str
    email: str
    business_id: str
    role: str
    expires_at: datetime


class MeResponse(BaseModel):
    kind: Literal["admin", "worker"]
    principal_id: str
    email: str
    business_id: str
    role: str
