"""
In-memory broker — a Transport adapter that enforces scoped credentials itself.

Adapter layer — implements the Transport / TransportSession / Subscription
ports without any network. It plays both halves of a connection:

  InMemoryTransport (client side)
    parse creds envelope → ask broker for a nonce → sign nonce with the seed
  InMemoryBroker (server side)
    verify token against the trusted issuer → verify nonce signature against
    the credential's subject id → enforce every publish/subscribe/delivery

The seed stays on the client side; the broker only sees the token, the nonce
and the nonce signature. Broker refusals surface as the port's
TransportError family (AuthenticationRejected, PermissionViolation, ...),
just like a remote broker's protocol errors would.
"""

from __future__ import annotations

import itertools
import queue
import secrets
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field

import structlog

from topic_scope.codec import parse_creds
from topic_scope.domain.models import Message, Operation, VerifiedCredential
from topic_scope.domain.ports import (
    AuthenticationRejected,
    KeyProvider,
    PermissionViolation,
    TransportClosed,
    TransportTimeout,
)
from topic_scope.domain.topics import matches
from topic_scope.enforcer import authorize
from topic_scope.issuer import Clock, epoch_seconds
from topic_scope.verifier import CredentialVerifier

log = structlog.get_logger()

_CLOSED = object()
_NONCE_SIZE = 16
_NONCE_TTL_SECONDS = 60


@dataclass(eq=False)
class _Registration:
    """Server-side record of one live subscription."""

    client_id: int
    pattern: str
    grant: VerifiedCredential
    inbox: queue.SimpleQueue = field(default_factory=queue.SimpleQueue)


class InMemoryBroker:
    """
    Server half: authenticates clients and routes messages between them.

    Thread-safe; all registry mutations happen under one lock, and message
    hand-off uses SimpleQueue.
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        trusted_issuer_public_id: str,
        clock: Clock = epoch_seconds,
    ) -> None:
        self._keys = key_provider
        self._verifier = CredentialVerifier(key_provider)
        self._issuer_public_id = trusted_issuer_public_id
        self._clock = clock
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._nonces: dict[bytes, int] = {}
        self._registrations: list[_Registration] = []
        self._clients: dict[int, VerifiedCredential] = {}

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    @property
    def pending_challenges(self) -> int:
        """Outstanding nonces, including expired ones not yet pruned."""
        with self._lock:
            return len(self._nonces)

    def challenge(self) -> bytes:
        """
        Issue a single-use nonce for the next authentication attempt.

        A nonce is valid for _NONCE_TTL_SECONDS of broker clock time.
        """
        nonce = secrets.token_bytes(_NONCE_SIZE)
        now = self._clock()
        with self._lock:
            self._nonces = {n: t for n, t in self._nonces.items() if now - t < _NONCE_TTL_SECONDS}
            self._nonces[nonce] = now
        return nonce

    def withdraw(self, nonce: bytes) -> None:
        """Forget a nonce whose authentication attempt was abandoned."""
        with self._lock:
            self._nonces.pop(nonce, None)

    def authenticate(self, token: str, nonce: bytes, nonce_signature: bytes) -> int:
        """Admit a client; returns its client id or raises AuthenticationRejected."""
        with self._lock:
            issued_at = self._nonces.pop(nonce, None)
        if issued_at is None:
            raise AuthenticationRejected("Authorization Violation: unknown or reused nonce")
        if self._clock() - issued_at >= _NONCE_TTL_SECONDS:
            raise AuthenticationRejected("Authorization Violation: nonce expired")

        verified = self._verifier.verify_token(token, self._issuer_public_id, self._clock())
        if verified.is_failure():
            raise AuthenticationRejected(f"Authorization Violation: {verified.error()}")
        grant = verified.value()
        if not self._keys.verify(grant.subject_public_id, nonce, nonce_signature):
            raise AuthenticationRejected("Authorization Violation: nonce signature does not match subject")

        with self._lock:
            client_id = next(self._ids)
            self._clients[client_id] = grant
        log.info("broker.client_admitted", client_id=client_id, subject=grant.subject)
        return client_id

    def _grant(self, client_id: int) -> VerifiedCredential:
        with self._lock:
            grant = self._clients.get(client_id)
        if grant is None:
            raise TransportClosed(f"client {client_id} is not connected")
        return grant

    def publish(self, client_id: int, topic: str, data: bytes) -> None:
        grant = self._grant(client_id)
        decision = authorize(grant.permissions, Operation.PUBLISH, topic)
        if not decision.allowed:
            raise PermissionViolation(f'Permissions Violation for Publish to "{topic}"')

        with self._lock:
            targets = [r for r in self._registrations if matches(r.pattern, topic)]
        for registration in targets:
            # Each receiver's own grant is checked against the concrete topic.
            if authorize(registration.grant.permissions, Operation.SUBSCRIBE, topic).allowed:
                registration.inbox.put(Message(topic=topic, data=data))

    def subscribe(self, client_id: int, pattern: str) -> _Registration:
        grant = self._grant(client_id)
        decision = authorize(grant.permissions, Operation.SUBSCRIBE, pattern)
        if not decision.allowed:
            raise PermissionViolation(f'Permissions Violation for Subscription to "{pattern}"')
        registration = _Registration(client_id=client_id, pattern=pattern, grant=grant)
        with self._lock:
            self._registrations.append(registration)
        return registration

    def unsubscribe(self, registration: _Registration) -> None:
        with self._lock:
            if registration in self._registrations:
                self._registrations.remove(registration)
        registration.inbox.put(_CLOSED)

    def disconnect(self, client_id: int) -> None:
        with self._lock:
            self._clients.pop(client_id, None)
            leaving = [r for r in self._registrations if r.client_id == client_id]
            self._registrations = [r for r in self._registrations if r.client_id != client_id]
        for registration in leaving:
            registration.inbox.put(_CLOSED)
        log.info("broker.client_disconnected", client_id=client_id)


class InMemorySubscription:
    """Implements the Subscription port over a registration inbox."""

    def __init__(self, broker: InMemoryBroker, registration: _Registration, timeout: float | None) -> None:
        self._broker = broker
        self._registration = registration
        self._timeout = timeout
        self._started = False

    def __iter__(self) -> Iterator[Message]:
        if self._started:
            raise TransportClosed("subscriptions cannot be restarted")
        self._started = True
        return self._messages()

    def _messages(self) -> Iterator[Message]:
        received = 0
        while True:
            try:
                item = self._registration.inbox.get(timeout=self._timeout)
            except queue.Empty:
                if received == 0:
                    raise TransportTimeout(
                        f"no message on {self._registration.pattern!r} within {self._timeout}s"
                    ) from None
                return
            if item is _CLOSED:
                return
            received += 1
            yield item

    def unsubscribe(self) -> None:
        self._broker.unsubscribe(self._registration)


class InMemorySession:
    """Implements the TransportSession port for one admitted client."""

    def __init__(self, broker: InMemoryBroker, client_id: int) -> None:
        self._broker = broker
        self._client_id = client_id
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportClosed("session is closed")

    def publish(self, topic: str, data: bytes) -> None:
        self._ensure_open()
        self._broker.publish(self._client_id, topic, data)

    def subscribe(self, pattern: str, timeout: float | None = None) -> InMemorySubscription:
        self._ensure_open()
        registration = self._broker.subscribe(self._client_id, pattern)
        return InMemorySubscription(self._broker, registration, timeout)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._broker.disconnect(self._client_id)


class InMemoryTransport:
    """
    Implements the Transport port: client-side authenticator for InMemoryBroker.

    connect() raises AuthenticationRejected for an unusable creds envelope or
    a credential the broker refuses.
    """

    def __init__(self, broker: InMemoryBroker, key_provider: KeyProvider) -> None:
        self._broker = broker
        self._keys = key_provider

    def connect(self, authenticator: str) -> InMemorySession:
        parsed = parse_creds(authenticator)
        if parsed.is_failure():
            raise AuthenticationRejected(str(parsed.error()))
        token, seed = parsed.value()

        nonce = self._broker.challenge()
        try:
            nonce_signature = self._keys.sign(seed, nonce)
        except ValueError as e:
            self._broker.withdraw(nonce)
            raise AuthenticationRejected(f"subject seed is unusable: {e}") from e

        client_id = self._broker.authenticate(token, nonce, nonce_signature)
        return InMemorySession(self._broker, client_id)
