"""Worker session tokens.

HS256-signed JWTs minted by this service after a successful email/password
login.  Claims::

    sub       worker id
    email     worker email
    business  id of the business the worker belongs to
    role      "worker"
    typ       "worker_access"
    iat       issued-at (epoch seconds)
    exp       expires-at (epoch seconds)

Expiry is checked against the issuer's clock rather than PyJWT's so the
boundary (a token is expired *at* ``exp``) is explicit and testable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt

from fishstock.auth.identity import Role, WorkerIdentity
from fishstock.errors import TokenExpired, TokenMalformed, TokenSignatureInvalid

logger = logging.getLogger("fishstock.auth")

TOKEN_TYPE = "worker_access"
_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "email", "business", "role", "typ", "iat", "exp")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionIssuer:
    """Mint, verify and refresh worker session tokens."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta = timedelta(minutes=60),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise ValueError("worker session secret must not be empty")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock

    @property
    def expires_in(self) -> int:
        """Token lifetime in seconds."""
        return int(self._ttl.total_seconds())

    def issue(self, worker: WorkerIdentity) -> str:
        now = int(self._clock().timestamp())
        return self._encode(worker, issued_at=now, expires_at=now + self.expires_in)

    def verify(self, token: str) -> WorkerIdentity:
        """Return the identity asserted by *token*.

        Raises :class:`TokenMalformed`, :class:`TokenSignatureInvalid` or
        :class:`TokenExpired`.
        """
        payload = self._decode(token)
        if int(self._clock().timestamp()) >= payload["exp"]:
            raise TokenExpired()
        return WorkerIdentity(worker_id=payload["sub"], email=payload["email"], business_id=payload["business"])

    def refresh(self, token: str) -> str:
        """Re-issue a still-valid token with a renewed expiry and the same claims."""
        worker = self.verify(token)
        old_exp = self._decode(token)["exp"]
        now = int(self._clock().timestamp())
        # exp has one-second resolution; never hand back the same expiry.
        expires_at = max(now + self.expires_in, old_exp + 1)
        return self._encode(worker, issued_at=now, expires_at=expires_at)

    def expires_at(self, token: str) -> datetime:
        """Expiry of a token this issuer signed (signature checked, expiry not)."""
        return datetime.fromtimestamp(self._decode(token)["exp"], tz=timezone.utc)

    # ── Internals ───────────────────────────────────────────────

    def _encode(self, worker: WorkerIdentity, *, issued_at: int, expires_at: int) -> str:
        payload = {
            "sub": worker.worker_id,
            "email": worker.email,
            "business": worker.business_id,
            "role": Role.WORKER.value,
            "typ": TOKEN_TYPE,
            "iat": issued_at,
            "exp": expires_at,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def _decode(self, token: str) -> dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenMalformed()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": list(_REQUIRED_CLAIMS)},
            )
        except jwt.InvalidSignatureError as exc:
            logger.debug("Worker token signature rejected: %s", exc)
            raise TokenSignatureInvalid() from exc
        except jwt.InvalidTokenError as exc:
            logger.debug("Worker token rejected: %s", exc)
            raise TokenMalformed() from exc

        if payload.get("typ") != TOKEN_TYPE or payload.get("role") != Role.WORKER.value:
            raise TokenMalformed()
        if not isinstance(payload.get("exp"), int) or not isinstance(payload.get("sub"), str):
            raise TokenMalformed()
        if not isinstance(payload.get("business"), str) or not payload["business"]:
            raise TokenMalformed()
        return payload
