"""
Domain models — immutable value objects for keys, permissions and credentials.

Every entity here is a frozen dataclass: created once, shared read-only
afterwards. That is what lets the matcher, issuer, verifier and enforcer run
concurrently without locks.

Private key material (the seed) only ever lives in KeyPair and is excluded
from repr so it cannot end up in a log line by accident.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum, unique

type Identity = str
"""Opaque subject name, unique within an issuer's namespace (e.g. "john-doe")."""


@unique
class KeyKind(Enum):
    """Role of a key pair: ISSUER signs credentials, SUBJECT authenticates a session."""

    ISSUER = "issuer"
    SUBJECT = "subject"


@unique
class Operation(Enum):
    PUBLISH = "publish"
    SUBSCRIBE = "subscribe"


@dataclass(frozen=True, slots=True)
class KeyPair:
    """
    A public identifier plus the private seed it was derived from.

    `public_id` is safe to share; `seed` is owned exclusively by whoever
    generated the pair and never crosses the verifier boundary.
    """

    kind: KeyKind
    public_id: str
    seed: str = field(repr=False)


def _as_tuple(patterns: Iterable[str]) -> tuple[str, ...]:
    if isinstance(patterns, str):
        return (patterns,)
    return tuple(patterns)


@dataclass(frozen=True, slots=True)
class Permission:
    """Allow/deny pattern lists for one operation kind. Order is preserved."""

    allow: tuple[str, ...] = ()
    deny: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "allow", _as_tuple(self.allow))
        object.__setattr__(self, "deny", _as_tuple(self.deny))


@dataclass(frozen=True, slots=True)
class PermissionSet:
    """
    Publish and subscribe permissions granted to one identity.

    Deny overrides allow; a topic absent from both lists is implicitly denied.
    """

    publish: Permission = field(default_factory=Permission)
    subscribe: Permission = field(default_factory=Permission)

    @classmethod
    def scoped_to(cls, *patterns: str) -> PermissionSet:
        """Same allow list for publish and subscribe, no denies."""
        permission = Permission(allow=patterns)
        return cls(publish=permission, subscribe=permission)

    def for_operation(self, operation: Operation) -> Permission:
        if operation is Operation.PUBLISH:
            return self.publish
        return self.subscribe

    def patterns(self) -> Iterator[str]:
        """Every pattern in the set, publish lists first."""
        yield from self.publish.allow
        yield from self.publish.deny
        yield from self.subscribe.allow
        yield from self.subscribe.deny


@dataclass(frozen=True, slots=True)
class Credential:
    """
    A signed, time-bounded claim binding a subject to a PermissionSet.

    `signature` covers the canonical serialization of every other field
    (see topic_scope.codec.canonical_claims). Times are epoch seconds and
    `expires_at > issued_at` always holds for issued credentials.
    """

    subject: Identity
    subject_public_id: str
    issuer_public_id: str
    permissions: PermissionSet
    issued_at: int
    expires_at: int
    credential_id: str
    signature: bytes = field(repr=False)

    @property
    def ttl_seconds(self) -> int:
        return self.expires_at - self.issued_at


@dataclass(frozen=True, slots=True)
class VerifiedCredential:
    """What a successful verification hands to the enforcement point."""

    subject: Identity
    subject_public_id: str
    permissions: PermissionSet
    expires_at: int


@dataclass(frozen=True, slots=True)
class EnforcementDecision:
    """
    Outcome of one authorization check.

    `matched_rule` is the deny or allow pattern that decided the outcome, or
    None when nothing matched (implicit deny).
    """

    operation: Operation
    topic: str
    allowed: bool
    matched_rule: str | None = None


@dataclass(frozen=True, slots=True)
class Message:
    """A message delivered by a transport subscription."""

    topic: str
    data: bytes = b""
