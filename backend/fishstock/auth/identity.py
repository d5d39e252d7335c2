"""Verified identities.

Two credential domains feed the same permission surface:

* :class:`AdminIdentity` — built from a token minted by the external identity
  provider.
* :class:`WorkerIdentity` — built from a worker session token minted by
  :class:`fishstock.auth.sessions.SessionIssuer`.

``Identity`` is a plain union of the two; consumers dispatch on ``kind``.
Both carry the ``business_id`` of the tenant whose data they may touch.
Identities are passed explicitly to every core operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Union


class Role(str, Enum):
    ADMIN = "admin"
    WORKER = "worker"


@dataclass(frozen=True)
class AdminIdentity:
    subject: str
    email: str
    # Defaults to the subject: an admin without a business claim owns a
    # business of their own.
    business_id: str = ""
    role: Role = Role.ADMIN
    kind: Literal["admin"] = "admin"

    def __post_init__(self) -> None:
        if not self.business_id:
            object.__setattr__(self, "business_id", self.subject)

    @property
    def principal_id(self) -> str:
        return self.subject


@dataclass(frozen=True)
class WorkerIdentity:
    worker_id: str
    email: str
    business_id: str
    role: Role = Role.WORKER
    kind: Literal["worker"] = "worker"

    @property
    def principal_id(self) -> str:
        return self.worker_id


Identity = Union[AdminIdentity, WorkerIdentity]


def same_principal(a: Identity, b_kind: str, b_id: str) -> bool:
    """Return True if *a* is the principal recorded as (*b_kind*, *b_id*)."""
    return a.kind == b_kind and a.principal_id == b_id


def describe(identity: Identity) -> str:
    """Short actor label for logs and the activity log."""
    return f"{identity.kind}:{identity.email or identity.principal_id}"
