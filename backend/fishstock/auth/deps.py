"""FastAPI dependencies: ``get_identity`` and the shared auth components.

Every request that touches protected data carries ``Authorization: Bearer
<token>``.  Two token families are accepted:

- worker session tokens minted by :class:`~fishstock.auth.sessions.SessionIssuer`
  (``typ == "worker_access"``);
- admin tokens minted by the external identity provider, checked by
  :class:`~fishstock.auth.external.ExternalTokenVerifier`.

The issuer, the admin verifier and the login limiter are process-wide
singletons built from settings; tests replace them through
``app.dependency_overrides``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from functools import lru_cache

import jwt
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.external import ExternalTokenVerifier, build_admin_verifier
from fishstock.auth.identity import Identity, describe
from fishstock.auth.rate_limit import SlidingWindowRateLimiter
from fishstock.auth.sessions import TOKEN_TYPE, SessionIssuer
from fishstock.config import settings
from fishstock.db.engine import get_db
from fishstock.errors import AuthError, TokenMalformed, TokenSignatureInvalid
from fishstock.services import admin_service, auth_service
from fishstock.utils.logger import ctx_actor

logger = logging.getLogger("fishstock.auth")


# ── Shared components ──────────────────────────────────────────


@lru_cache
def get_session_issuer() -> SessionIssuer:
    return SessionIssuer(
        settings.WORKER_JWT_SECRET,
        ttl=timedelta(minutes=settings.WORKER_TOKEN_EXPIRE_MINUTES),
    )


@lru_cache
def get_admin_verifier() -> ExternalTokenVerifier | None:
    verifier = build_admin_verifier(settings)
    if verifier is None:
        logger.warning("No ADMIN_JWT_SECRET or ADMIN_JWKS_URL configured; admin tokens will be rejected")
    return verifier


@lru_cache
def get_login_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        settings.LOGIN_RATE_LIMIT_ATTEMPTS,
        settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    )


def client_key(request: Request) -> str:
    """Rate-limit key for the caller: its IP address."""
    return request.client.host if request.client else "unknown"


# ── Bearer token resolution ────────────────────────────────────


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise TokenMalformed()
    return token.strip()


def _is_worker_token(token: str) -> bool:
    """Route the token to its verifier; the signature is checked there."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise TokenMalformed() from exc
    return claims.get("typ") == TOKEN_TYPE


async def get_identity(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
    issuer: SessionIssuer = Depends(get_session_issuer),
    admin_verifier: ExternalTokenVerifier | None = Depends(get_admin_verifier),
) -> Identity:
    """Return the verified :data:`Identity` for this request."""
    token = _bearer_token(authorization)

    identity: Identity
    if _is_worker_token(token):
        identity = await auth_service.verify_token(db, token, issuer)
    else:
        if admin_verifier is None:
            raise TokenSignatureInvalid()
        # A JWKS lookup may hit the network.
        identity = await asyncio.to_thread(admin_verifier.verify_external, token)
        await admin_service.remember_admin(db, identity)

    ctx_actor.set(describe(identity))
    return identity

