"""Authentication API — worker login, token refresh/verify and identity.

Endpoints
---------
POST /api/auth/worker/login     email + password -> worker session token
POST /api/auth/worker/refresh   still-valid token -> token with later expiry
POST /api/auth/worker/verify    token -> worker claims
GET  /api/auth/me               identity behind the Bearer token (admin or worker)

Admins never log in here; they present the identity provider's token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.deps import client_key, get_identity, get_login_limiter, get_session_issuer
from fishstock.auth.identity import Identity
from fishstock.auth.rate_limit import SlidingWindowRateLimiter
from fishstock.auth.sessions import SessionIssuer
from fishstock.config import settings
from fishstock.db.engine import get_db
from fishstock.schemas.auth import (
    MeResponse,
    TokenBody,
    TokenResponse,
    VerifyResponse,
    WorkerLoginRequest,
    WorkerLoginResponse,
)
from fishstock.schemas.workers import WorkerOut
from fishstock.services import auth_service, login_history

router = APIRouter()


@router.post("/worker/login", response_model=WorkerLoginResponse, summary="Worker email + password login")
async def worker_login(
    body: WorkerLoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    issuer: SessionIssuer = Depends(get_session_issuer),
    limiter: SlidingWindowRateLimiter = Depends(get_login_limiter),
) -> WorkerLoginResponse:
    result = await auth_service.login(
        db,
        email=body.email,
        password=body.password,
        client_key=client_key(request),
        issuer=issuer,
        limiter=limiter,
        history_capacity=settings.LOGIN_HISTORY_CAPACITY,
    )
    history = await login_history.recent(db, result.worker.worker_id, settings.LOGIN_HISTORY_CAPACITY)
    return WorkerLoginResponse(
        worker=WorkerOut.from_worker(result.worker, history),
        access_token=result.access_token,
        expires_in=result.expires_in,
    )


@router.post("/worker/refresh", response_model=TokenResponse, summary="Refresh a worker session token")
async def worker_refresh(
    body: TokenBody,
    request: Request,
    db: AsyncSession = Depends(get_db),
    issuer: SessionIssuer = Depends(get_session_issuer),
    limiter: SlidingWindowRateLimiter = Depends(get_login_limiter),
) -> TokenResponse:
    token = await auth_service.refresh(
        db,
        token=body.token,
        client_key=client_key(request),
        issuer=issuer,
        limiter=limiter,
    )
    return TokenResponse(access_token=token, expires_in=issuer.expires_in, expires_at=issuer.expires_at(token))


@router.post("/worker/verify", response_model=VerifyResponse, summary="Verify a worker session token")
async def worker_verify(
    body: TokenBody,
    db: AsyncSession = Depends(get_db),
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> VerifyResponse:
    identity = await auth_service.verify_token(db, body.token, issuer)
    return VerifyResponse(
        worker_id=identity.worker_id,
        email=identity.email,
        business_id=identity.business_id,
        role=identity.role.value,
        expires_at=issuer.expires_at(body.token),
    )


@router.get("/me", response_model=MeResponse, summary="Return the current identity")
async def me(identity: Identity = Depends(get_identity)) -> MeResponse:
    return MeResponse(
        kind=identity.kind,
        principal_id=identity.principal_id,
        email=identity.email,
        business_id=identity.business_id,
        role=identity.role.value,
    )
