"""Verification of admin session tokens minted by the external identity provider.

The service never issues or stores admin credentials.  An admin request
carries the provider's access token; it is accepted only when

* the signature checks out against the provider key (a shared HS256 project
  secret, or the provider's published JWKS),
* it is not expired and carries a subject,
* the configured role claim (a dotted path, e.g. ``app_metadata.role``) equals
  the required admin role.


The admin's business is read from a second dotted claim
(``app_metadata.business_id`` by default).  When the token carries none, the
admin's own subject is the business id.

A missing or mismatching role claim is reported exactly like a forged
signature; there is no partial trust.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import jwt

from fishstock.auth.identity import AdminIdentity
from fishstock.errors import TokenExpired, TokenMalformed, TokenSignatureInvalid

logger = logging.getLogger("fishstock.auth")

KeyResolver = Callable[[str], Any]


class SecretKeyResolver:
    """Resolve every token to one shared provider secret (HS256 projects)."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("provider secret must not be empty")
        self._secret = secret

    def __call__(self, token: str) -> str:
        return self._secret


class JWKSKeyResolver:
    """Resolve the signing key by ``kid`` from the provider's JWKS endpoint."""

    def __init__(self, jwks_url: str, timeout: int = 5) -> None:
        self._client = jwt.PyJWKClient(jwks_url, cache_keys=True, lifespan=300, timeout=timeout)

    def __call__(self, token: str) -> Any:
        return self._client.get_signing_key_from_jwt(token).key


def _claim_at(payload: dict[str, Any], path: str) -> Any:
    node: Any = payload
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


class ExternalTokenVerifier:
    def __init__(
        self,
        key_resolver: KeyResolver,
        *,
        algorithms: list[str],
        audience: str | None = None,
        issuer: str | None = None,
        role_claim: str = "app_metadata.role",
        required_role: str = "admin",
        business_claim: str = "app_metadata.business_id",
        leeway: int = 0,
    ) -> None:
        self._resolve_key = key_resolver
        self._algorithms = algorithms
        self._audience = audience
        self._issuer = issuer
        self._role_claim = role_claim
        self._required_role = required_role
        self._business_claim = business_claim
        self._leeway = leeway

    def verify_external(self, token: str) -> AdminIdentity:
        if not token or not isinstance(token, str):
            raise TokenMalformed()

        try:
            key = self._resolve_key(token)
        except jwt.PyJWKClientError as exc:
            logger.warning("Admin token key lookup failed: %s", exc)
            raise TokenSignatureInvalid() from exc
        except jwt.DecodeError as exc:
            raise TokenMalformed() from exc

        options: dict[str, Any] = {"require": ["exp", "sub"]}
        if self._audience is None:
            options["verify_aud"] = False
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=self._issuer,
                leeway=self._leeway,
                options=options,
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError, jwt.InvalidKeyError) as exc:
            logger.warning("Admin token signature rejected: %s", exc)
            raise TokenSignatureInvalid() from exc
        except (jwt.InvalidAudienceError, jwt.InvalidIssuerError) as exc:
            logger.warning("Admin token issued for another audience/issuer: %s", exc)
            raise TokenSignatureInvalid() from exc
        except jwt.InvalidTokenError as exc:
            logger.debug("Admin token rejected: %s", exc)
            raise TokenMalformed() from exc

        role = _claim_at(payload, self._role_claim)
        if role != self._required_role:
            logger.warning(
                "Admin token for subject '%s' rejected: role claim %r != %r",
                payload.get("sub"),
                role,
                self._required_role,
            )
            raise TokenSignatureInvalid()

        business = _claim_at(payload, self._business_claim)
        return AdminIdentity(
            subject=str(payload["sub"]),
            email=str(payload.get("email") or ""),
            business_id=str(business) if business else "",
        )


def build_admin_verifier(settings: Any) -> ExternalTokenVerifier | None:
    """Build the verifier described by *settings*; None when no provider is configured."""
    resolver: KeyResolver
    if settings.ADMIN_JWKS_URL:
        resolver = JWKSKeyResolver(settings.ADMIN_JWKS_URL, timeout=settings.ADMIN_JWKS_TIMEOUT_SECONDS)
    elif settings.ADMIN_JWT_SECRET:
        resolver = SecretKeyResolver(settings.ADMIN_JWT_SECRET)
    else:
        return None
    return ExternalTokenVerifier(
        resolver,
        algorithms=settings.ADMIN_JWT_ALGORITHMS,
        audience=settings.ADMIN_JWT_AUDIENCE,
        issuer=settings.ADMIN_JWT_ISSUER,
        role_claim=settings.ADMIN_ROLE_CLAIM,
        required_role=settings.ADMIN_REQUIRED_ROLE,
        business_claim=settings.ADMIN_BUSINESS_CLAIM,
    )
