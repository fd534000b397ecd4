"""
Ports — Protocol-based interfaces for the engine's external collaborators.

The engine never imports a crypto library or a broker client directly.
It depends on these contracts, and adapters satisfy them structurally:

  Domain ← Ports (protocols) ← Adapters (implementations)

  KeyProvider  → generate/sign/verify            (adapters.ed25519_keys)
  Transport    → connect(creds) → TransportSession (adapters.memory_broker)

Transport adapters report problems by raising the TransportError family
defined here; the session harness turns exactly these into Result failures
and lets anything else propagate.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from topic_scope.domain.models import KeyKind, KeyPair, Message

# ─────────────────────── Transport errors ───────────────────────


class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportConnectionError(TransportError):
    """The transport could not establish or maintain a connection."""


class TransportTimeout(TransportError):
    """No message arrived within the requested timeout."""


class TransportClosed(TransportError):
    """Operation attempted on a session that is already closed."""


class AuthenticationRejected(TransportError):
    """The broker refused the presented credential or nonce signature."""


class PermissionViolation(TransportError):
    """The broker refused a publish or subscribe under its own enforcement."""


# ─────────────────────── Key handling ───────────────────────


@runtime_checkable
class Signer(Protocol):
    """Port: produce a signature with private seed material."""

    def sign(self, seed: str, payload: bytes) -> bytes: ...


@runtime_checkable
class SignatureVerifier(Protocol):
    """
    Port: check a signature against a public id.

    Must return False (never raise) for malformed ids or signatures.
    """

    def verify(self, public_id: str, payload: bytes, signature: bytes) -> bool: ...


@runtime_checkable
class KeyProvider(Signer, SignatureVerifier, Protocol):
    """Port: full key capability — generation plus sign and verify."""

    def generate_key_pair(self, kind: KeyKind) -> KeyPair: ...

    def public_id_kind(self, public_id: str) -> KeyKind | None: ...


# ─────────────────────── Transport ───────────────────────


@runtime_checkable
class Subscription(Protocol):
    """
    Port: a lazy, non-restartable sequence of messages.

    With a timeout, iteration raises TransportTimeout when the first message
    does not arrive in time and ends after an idle gap of the same length.
    Without one it runs until the subscription or its session is closed.
    """

    def __iter__(self) -> Iterator[Message]: ...

    def unsubscribe(self) -> None: ...


@runtime_checkable
class TransportSession(Protocol):
    """Port: an authenticated connection to a broker."""

    def publish(self, topic: str, data: bytes) -> None: ...

    def subscribe(self, pattern: str, timeout: float | None = None) -> Subscription: ...

    def close(self) -> None: ...


@runtime_checkable
class Transport(Protocol):
    """
    Port: open a session authenticated by a credentials envelope.

    `authenticator` is the text produced by codec.render_creds (claim token
    plus subject seed); the transport's client side is the only party that
    ever reads the seed.
    """

    def connect(self, authenticator: str) -> TransportSession: ...
