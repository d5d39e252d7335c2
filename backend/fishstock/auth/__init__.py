"""Authentication and authorization for fishstock.

Two credential domains share one permission surface:

1. Admins — ``Authorization: Bearer <jwt>`` minted by the external identity
   provider; verified by :class:`~fishstock.auth.external.ExternalTokenVerifier`
   against a shared secret or a JWKS endpoint.  The provider token must carry
   ``app_metadata.role == "admin"`` (configurable).

2. Workers — email + password login against the local credential store,
   answered with an HS256 session token from
   :class:`~fishstock.auth.sessions.SessionIssuer`.

Authorization is decided in one place, :func:`fishstock.auth.rbac.authorize`.
"""

from fishstock.auth.identity import AdminIdentity, Identity, Role, WorkerIdentity
from fishstock.auth.rbac import Operation, authorize, require

__all__ = [
    "AdminIdentity",
    "Identity",
    "Operation",
    "Role",
    "WorkerIdentity",
    "authorize",
    "require",
]
