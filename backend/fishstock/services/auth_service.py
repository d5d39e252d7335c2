"""Worker authentication flows — login, token refresh and token verification.

Every entry point that accepts a credential is rate limited per client before
any hashing happens.  Failures surface as one uniform
:class:`~fishstock.errors.InvalidCredentials` so callers cannot tell an
unknown email from a wrong password or a deactivated account.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.identity import WorkerIdentity
from fishstock.auth.passwords import burn_verification, verify_password
from fishstock.auth.rate_limit import SlidingWindowRateLimiter
from fishstock.auth.sessions import SessionIssuer
from fishstock.db.models import Worker
from fishstock.errors import InvalidCredentials, RateLimited, TokenMalformed
from fishstock.services import login_history, worker_service
from fishstock.services.activity_service import emit_audit
from fishstock.utils.clock import utcnow

logger = logging.getLogger("fishstock.auth")


@dataclass
class LoginResult:
    worker: Worker
    access_token: str
    expires_in: int


async def _throttle(limiter: SlidingWindowRateLimiter, client_key: str) -> None:
    if not await limiter.allow(client_key):
        raise RateLimited(retry_after=await limiter.retry_after(client_key))


async def _login_failed(
    db: AsyncSession, email: str, client_key: str, reason: str, business_id: str | None = None
) -> None:
    logger.warning("Worker login failed for '%s' from %s (%s)", email, client_key, reason)
    await emit_audit(
        db,
        category="auth",
        action="login_failed",
        actor=f"worker:{email}",
        business_id=business_id,
        description="Worker login failed",
        meta={"client": client_key, "reason": reason},
    )
    # The request is about to fail; keep the activity row regardless.
    await db.commit()


async def login(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    client_key: str,
    issuer: SessionIssuer,
    limiter: SlidingWindowRateLimiter,
    history_capacity: int = login_history.DEFAULT_CAPACITY,
    now: datetime | None = None,
) -> LoginResult:
    """Check credentials, record the login and mint a session token."""
    await _throttle(limiter, client_key)
    email = worker_service.normalize_email(email)

    worker = await worker_service.get_worker_by_email(db, email)
    if worker is None:
        await asyncio.to_thread(burn_verification, password)
        await _login_failed(db, email, client_key, "unknown_email")
        raise InvalidCredentials()

    if not await asyncio.to_thread(verify_password, password, worker.password_hash):
        await _login_failed(db, email, client_key, "bad_password", worker.business_id)
        raise InvalidCredentials()
    if not worker.is_active:
        await _login_failed(db, email, client_key, "inactive", worker.business_id)
        raise InvalidCredentials()

    seq = await login_history.record(db, worker.worker_id, now or utcnow(), history_capacity)
    token = issuer.issue(
        WorkerIdentity(worker_id=worker.worker_id, email=worker.email, business_id=worker.business_id)
    )
    await emit_audit(
        db,
        category="auth",
        action="login",
        actor=f"worker:{worker.email}",
        business_id=worker.business_id,
        description="Worker logged in",
        resource_type="worker",
        resource_id=worker.worker_id,
        meta={"client": client_key, "login_number": seq},
    )
    await db.refresh(worker)
    logger.info("Worker '%s' logged in (login #%d)", worker.email, seq)
    return LoginResult(worker=worker, access_token=token, expires_in=issuer.expires_in)


async def verify_token(db: AsyncSession, token: str, issuer: SessionIssuer) -> WorkerIdentity:
    """Verify a worker token and confirm the worker still exists and is active."""
    identity = issuer.verify(token)
    worker = await worker_service.get_worker_by_id(db, identity.worker_id)
    if (
        worker is None
        or not worker.is_active
        or worker.email != identity.email
        or worker.business_id != identity.business_id
    ):
        # Deleted, deactivated or re-addressed since the token was minted.
        raise TokenMalformed()
    return identity


async def refresh(
    db: AsyncSession,
    *,
    token: str,
    client_key: str,
    issuer: SessionIssuer,
    limiter: SlidingWindowRateLimiter,
) -> str:
    """Exchange a still-valid token for one with a later expiry."""
    await _throttle(limiter, client_key)
    identity = await verify_token(db, token, issuer)
    new_token = issuer.refresh(token)
    await emit_audit(
        db,
        category="auth",
        action="refresh",
        actor=f"worker:{identity.email}",
        business_id=identity.business_id,
        description="Worker token refreshed",
        resource_type="worker",
        resource_id=identity.worker_id,
    )
    return new_token
