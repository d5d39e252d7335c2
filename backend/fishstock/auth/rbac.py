"""Role-based access control — the single authorization decision point.

``authorize`` is a pure function of (identity, operation, resource).  The
policy table below is total over ``Operation x Role``; a pair that is missing
from it is denied.

Rules
-----
``allow``  the role may perform the operation on any resource.
``owner``  allowed only when the resource's owner is the caller.
``deny``   never allowed.

Independently of the rule, a resource that belongs to a business is only
reachable by identities of that same business.

Admins may do everything except ``mutation:commit``: auditable mutations are
only ever committed by the approval workflow after a second principal signs
off, never by a direct request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from fishstock.auth.identity import Identity, Role, describe
from fishstock.errors import PermissionDenied

logger = logging.getLogger("fishstock.auth")


class Operation(str, Enum):
    WORKER_READ = "worker:read"
    WORKER_LIST = "worker:list"
    WORKER_CREATE = "worker:create"
    WORKER_UPDATE = "worker:update"
    WORKER_DELETE = "worker:delete"
    WORKER_LOGIN_HISTORY = "worker:login_history"
    PRODUCT_READ = "product:read"
    PRODUCT_CREATE = "product:create"
    STOCK_PROPOSE = "stock:propose"
    PRODUCT_PROPOSE_CHANGE = "product:propose_change"
    AUDIT_READ = "audit:read"
    AUDIT_LIST = "audit:list"
    AUDIT_APPROVE = "audit:approve"
    AUDIT_REJECT = "audit:reject"
    AUDIT_EVENTS_READ = "audit_events:read"
    MUTATION_COMMIT = "mutation:commit"


class Rule(str, Enum):
    ALLOW = "allow"
    OWNER = "owner"
    DENY = "deny"


@dataclass(frozen=True)
class Resource:
    """What the operation touches.

    ``owner_id`` is the owning worker id and ``business_id`` the owning
    business, when known.
    """

    kind: str
    resource_id: str | None = None
    owner_id: str | None = None
    business_id: str | None = None


@dataclass(frozen=True)
class Allow:
    allowed: bool = True


@dataclass(frozen=True)
class Deny:
    reason: str
    allowed: bool = False


Decision = Union[Allow, Deny]


_A, _O, _D = Rule.ALLOW, Rule.OWNER, Rule.DENY

POLICY: dict[Operation, dict[Role, Rule]] = {
    Operation.WORKER_READ:            {Role.ADMIN: _A, Role.WORKER: _O},
    Operation.WORKER_LIST:            {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.WORKER_CREATE:          {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.WORKER_UPDATE:          {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.WORKER_DELETE:          {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.WORKER_LOGIN_HISTORY:   {Role.ADMIN: _A, Role.WORKER: _O},
    Operation.PRODUCT_READ:           {Role.ADMIN: _A, Role.WORKER: _A},
    Operation.PRODUCT_CREATE:         {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.STOCK_PROPOSE:          {Role.ADMIN: _A, Role.WORKER: _A},
    Operation.PRODUCT_PROPOSE_CHANGE: {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.AUDIT_READ:             {Role.ADMIN: _A, Role.WORKER: _O},
    Operation.AUDIT_LIST:             {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.AUDIT_APPROVE:          {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.AUDIT_REJECT:           {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.AUDIT_EVENTS_READ:      {Role.ADMIN: _A, Role.WORKER: _D},
    Operation.MUTATION_COMMIT:        {Role.ADMIN: _D, Role.WORKER: _D},
}


def authorize(identity: Identity, operation: Operation, resource: Resource | None = None) -> Decision:
    rule = POLICY.get(operation, {}).get(identity.role, Rule.DENY)

    if rule is not Rule.DENY and resource is not None and resource.business_id is not None:
        if resource.business_id != identity.business_id:
            return Deny(f"this {resource.kind} belongs to another business")

    if rule is Rule.ALLOW:
        return Allow()
    if rule is Rule.OWNER:
        if resource is None or resource.owner_id is None:
            return Deny(f"'{operation.value}' requires a resource owned by the caller")
        if resource.owner_id != identity.principal_id:
            return Deny(f"'{operation.value}' is limited to your own {resource.kind}")
        return Allow()
    if operation is Operation.MUTATION_COMMIT:
        return Deny("this change must go through the approval workflow")
    return Deny(f"role '{identity.role.value}' may not perform '{operation.value}'")


def require(identity: Identity, operation: Operation, resource: Resource | None = None) -> None:
    """Raise :class:`PermissionDenied` unless *identity* may perform *operation*."""
    decision = authorize(identity, operation, resource)
    if isinstance(decision, Deny):
        logger.warning(
            "Access denied — %s needs '%s': %s",
            describe(identity),
            operation.value,
            decision.reason,
        )
        raise PermissionDenied(decision.reason)
