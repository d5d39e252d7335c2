"""Error taxonomy shared by the auth core, the approval workflow and the API.

Every error is recoverable by the caller.  ``status_code`` and ``code`` are
rendered by the exception handler in :mod:`fishstock.main`; ``detail`` is the
only human-readable text that ever leaves the process.
"""

from __future__ import annotations


class FishstockError(Exception):
    status_code: int = 400
    code: str = "error"
    default_detail: str = "Request failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


# ── Authentication (uniform, non-leaking messages) ─────────────


class AuthError(FishstockError):
    status_code = 401
    code = "unauthenticated"
    default_detail = "Authentication required"


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    default_detail = "Invalid email or password"


class TokenMalformed(AuthError):
    code = "token_malformed"
    default_detail = "Invalid or expired token"


class TokenExpired(AuthError):
    code = "token_expired"
    default_detail = "Invalid or expired token"


class TokenSignatureInvalid(AuthError):
    code = "token_signature_invalid"
    default_detail = "Invalid or expired token"


class RateLimited(FishstockError):
    status_code = 429
    code = "rate_limited"
    default_detail = "Too many authentication attempts, try again later"

    def __init__(self, detail: str | None = None, retry_after: float = 0.0) -> None:
        super().__init__(detail)
        self.retry_after = retry_after


# ── Authorization and workflow (actionable messages) ───────────


class PermissionDenied(FishstockError):
    status_code = 403
    code = "permission_denied"
    default_detail = "You do not have permission to perform this action"


class NotFound(FishstockError):
    status_code = 404
    code = "not_found"
    default_detail = "Resource not found"


class InvalidState(FishstockError):
    status_code = 409
    code = "invalid_state"
    default_detail = "Resource is not in a state that allows this action"


class Conflict(FishstockError):
    status_code = 409
    code = "conflict"
    default_detail = "A conflicting request is already pending"


class ValidationError(FishstockError):
    status_code = 422
    code = "validation_error"
    default_detail = "Invalid input"

    @classmethod
    def from_errors(cls, errors: list[dict], prefix: str = "") -> "ValidationError":
        """Summarise pydantic error dicts as ``loc: msg`` pairs, leaving out the rejected input."""
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in errors
        )
        return cls(f"{prefix}{messages}")
