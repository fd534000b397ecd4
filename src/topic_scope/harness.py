"""
Session harness — drive one credential-scoped session end to end.

Lifecycle:

  IDLE ──issue_credential──▶ CREDENTIAL_ISSUED ──connect──▶ SESSION_ESTABLISHED
                                                               │  ▲
                                    publish / subscribe ───────┘  │ reconnect
                                                               ▼  │
                                       OPERATION_ALLOWED / OPERATION_DENIED
  any state ──close / unrecoverable transport failure──▶ CLOSED

Every operation is first decided locally by the enforcer. The local verdict is
then reconciled with the broker's own enforcement:

  local deny, probing off      → PERMISSION_VIOLATION, nothing forwarded
  local deny, broker deny      → PERMISSION_VIOLATION (the expected denial)
  local and broker disagree    → ENFORCEMENT_MISMATCH
  no message before timeout    → OPERATION_TIMEOUT, session stays usable
  other TransportError         → TRANSPORT_FAILURE, session CLOSED

Exceptions outside the TransportError family are not converted and propagate.
State checks, decisions and transitions happen under one lock, so decisions
are recorded in the order operations were attempted. Subscription messages
are collected outside the lock; a close() during collection ends it and the
harness stays CLOSED.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, unique
from typing import TypeVar

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from topic_scope.codec import encode_token, render_creds
from topic_scope.domain.models import (
    Credential,
    EnforcementDecision,
    Identity,
    KeyKind,
    KeyPair,
    Message,
    Operation,
    PermissionSet,
)
from topic_scope.domain.ports import (
    AuthenticationRejected,
    KeyProvider,
    PermissionViolation,
    Subscription,
    Transport,
    TransportConnectionError,
    TransportError,
    TransportSession,
    TransportTimeout,
)
from topic_scope.enforcer import authorize
from topic_scope.issuer import Clock, CredentialIssuer, epoch_seconds
from topic_scope.railway import ErrorCode, LoggingExecutionContext, Result
from topic_scope.verifier import CredentialVerifier

log = structlog.get_logger()

T = TypeVar("T")


@unique
class SessionState(Enum):
    IDLE = "idle"
    CREDENTIAL_ISSUED = "credential_issued"
    SESSION_ESTABLISHED = "session_established"
    OPERATION_ALLOWED = "operation_allowed"
    OPERATION_DENIED = "operation_denied"
    CLOSED = "closed"


_CONNECTED = frozenset(
    {
        SessionState.SESSION_ESTABLISHED,
        SessionState.OPERATION_ALLOWED,
        SessionState.OPERATION_DENIED,
    }
)


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    """
    Explicit configuration record for one harness.

    probe_broker: forward locally denied operations anyway, to observe that
    the broker rejects them too.
    """

    issuer_key_pair: KeyPair
    ttl_seconds: int = 1800
    probe_broker: bool = True
    connect_attempts: int = 3
    connect_backoff_seconds: float = 0.1


@dataclass(frozen=True, slots=True)
class OperationOutcome:
    """Successful result of one forwarded operation."""

    decision: EnforcementDecision
    messages: tuple[Message, ...] = ()


@dataclass(frozen=True, slots=True)
class _Opened:
    session: TransportSession
    decision: EnforcementDecision


@dataclass(frozen=True, slots=True)
class _Subscribed:
    decision: EnforcementDecision
    subscription: Subscription


class SessionHarness:
    """Issue a credential, open an authenticated session, and probe it."""

    def __init__(
        self,
        config: HarnessConfig,
        key_provider: KeyProvider,
        transport: Transport,
        clock: Clock = epoch_seconds,
    ) -> None:
        self._config = config
        self._keys = key_provider
        self._transport = transport
        self._clock = clock
        self._issuer = CredentialIssuer(key_provider, clock)
        self._verifier = CredentialVerifier(key_provider)
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._subject_key_pair: KeyPair | None = None
        self._credential: Credential | None = None
        self._session: TransportSession | None = None
        self._decisions: list[EnforcementDecision] = []

    # ──────────────────────── Introspection ────────────────────────

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def credential(self) -> Credential | None:
        with self._lock:
            return self._credential

    @property
    def decisions(self) -> tuple[EnforcementDecision, ...]:
        """Every local decision so far, in the order operations were attempted."""
        with self._lock:
            return tuple(self._decisions)

    # ──────────────────────── Lifecycle ────────────────────────

    def issue_credential(self, subject: Identity, permissions: PermissionSet) -> Result[Credential]:
        """Generate a subject key pair and issue its credential (IDLE only)."""
        return self._run("session.issue_credential", lambda: self._issue(subject, permissions))

    def connect(self) -> Result[SessionState]:
        """Verify the credential and open the transport session."""
        return self._run("session.connect", self._connect)

    def reconnect(self) -> Result[SessionState]:
        """
        Drop the transport session and establish a new one with the same credential.

        Re-verifies first, so an expired credential fails with EXPIRED and the
        harness ends up CLOSED.
        """
        return self._run("session.reconnect", self._reconnect)

    def close(self) -> Result[SessionState]:
        """Close the session. Idempotent; allowed from any state."""
        return self._run("session.close", self._close)

    # ──────────────────────── Operations ────────────────────────

    def publish(self, topic: str, data: bytes = b"") -> Result[OperationOutcome]:
        def send(session: TransportSession) -> tuple[Message, ...]:
            session.publish(topic, data)
            return ()

        def attempt() -> Result[OperationOutcome]:
            with self._lock:
                return self._begin(Operation.PUBLISH, topic).flat_map(
                    lambda opened: self._forward(opened.decision, lambda: send(opened.session)).flat_map(
                        lambda messages: self._conclude(opened.decision, messages)
                    )
                )

        return LoggingExecutionContext(operation="session.publish").execute(attempt)

    def subscribe(
        self,
        pattern: str,
        timeout: float | None = None,
        max_messages: int | None = None,
    ) -> Result[OperationOutcome]:
        """
        Subscribe and collect messages.

        Collection stops after `max_messages`, after an idle gap of `timeout`
        following the first message, or when the session closes. No message
        at all within `timeout` fails with OPERATION_TIMEOUT.

        Messages are collected without holding the harness lock, so close()
        from another thread ends an untimed subscription.
        """

        def attempt() -> Result[OperationOutcome]:
            with self._lock:
                subscribed = self._begin(Operation.SUBSCRIBE, pattern).flat_map(
                    lambda opened: self._forward(
                        opened.decision,
                        lambda: _Subscribed(opened.decision, opened.session.subscribe(pattern, timeout=timeout)),
                    )
                )
            return subscribed.flat_map(lambda s: self._collect(s, max_messages))

        return LoggingExecutionContext(operation="session.subscribe").execute(attempt)

    # ──────────────────────── Internals ────────────────────────

    def _run(self, operation: str, computation: Callable[[], Result]) -> Result:
        with self._lock:
            return LoggingExecutionContext(operation=operation).execute(computation)

    def _invalid_state(self, action: str) -> Result:
        return Result.failure(
            ErrorCode.INVALID_SESSION_STATE,
            f"Cannot {action} in state {self._state.value}",
        )

    def _issue(self, subject: Identity, permissions: PermissionSet) -> Result[Credential]:
        if self._state is not SessionState.IDLE:
            return self._invalid_state("issue a credential")
        subject_key_pair = self._keys.generate_key_pair(KeyKind.SUBJECT)

        def remember(credential: Credential) -> None:
            self._subject_key_pair = subject_key_pair
            self._credential = credential
            self._state = SessionState.CREDENTIAL_ISSUED

        return self._issuer.issue(
            subject,
            self._config.issuer_key_pair,
            subject_key_pair.public_id,
            permissions,
            self._config.ttl_seconds,
        ).peek(remember)

    def _connect(self) -> Result[SessionState]:
        if self._state is not SessionState.CREDENTIAL_ISSUED:
            return self._invalid_state("connect")
        return self._establish()

    def _reconnect(self) -> Result[SessionState]:
        if self._state not in _CONNECTED:
            return self._invalid_state("reconnect")
        self._drop_session()
        result = self._establish()
        if result.is_failure():
            self._state = SessionState.CLOSED
        return result

    def _establish(self) -> Result[SessionState]:
        assert self._credential is not None and self._subject_key_pair is not None
        credential = self._credential

        verified = self._verifier.verify(credential, self._config.issuer_key_pair.public_id, self._clock())
        if verified.is_failure():
            return Result.failure_from(verified.error())

        creds = render_creds(encode_token(credential), self._subject_key_pair.seed)
        try:
            self._session = self._open(creds)
        except AuthenticationRejected as e:
            self._state = SessionState.CLOSED
            return Result.failure(ErrorCode.PERMISSION_VIOLATION, f"Broker refused credential: {e}", e)
        except TransportError as e:
            self._state = SessionState.CLOSED
            return Result.failure(ErrorCode.TRANSPORT_FAILURE, f"Could not connect: {e}", e)

        self._state = SessionState.SESSION_ESTABLISHED
        log.info(
            "session.connected",
            subject=credential.subject,
            credential_id=credential.credential_id,
            expires_at=credential.expires_at,
        )
        return Result.success(self._state)

    def _open(self, creds: str) -> TransportSession:
        retrying = Retrying(
            stop=stop_after_attempt(self._config.connect_attempts),
            wait=wait_exponential(multiplier=self._config.connect_backoff_seconds, max=5),
            retry=retry_if_exception_type(TransportConnectionError),
            reraise=True,
        )
        return retrying(self._transport.connect, creds)

    def _close(self) -> Result[SessionState]:
        self._drop_session()
        if self._state is not SessionState.CLOSED:
            self._state = SessionState.CLOSED
            log.info("session.closed", decisions=len(self._decisions))
        return Result.success(self._state)

    def _drop_session(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            session.close()
        except TransportError as e:
            log.warning("session.close_failed", error=str(e))

    def _transition(self, state: SessionState) -> None:
        # A concurrent close() wins over the outcome of an in-flight operation.
        if self._state is not SessionState.CLOSED:
            self._state = state

    def _begin(self, operation: Operation, topic: str) -> Result[_Opened]:
        """Check the state, decide locally and record the decision. Caller holds the lock."""
        if self._state not in _CONNECTED or self._session is None or self._credential is None:
            return self._invalid_state(f"{operation.value} to {topic!r}")

        decision = authorize(self._credential.permissions, operation, topic)
        self._decisions.append(decision)
        log.info(
            "session.decision",
            operation=operation.value,
            topic=topic,
            allowed=decision.allowed,
            matched_rule=decision.matched_rule,
        )

        if not decision.allowed and not self._config.probe_broker:
            self._transition(SessionState.OPERATION_DENIED)
            return Result.failure(
                ErrorCode.PERMISSION_VIOLATION,
                f"{operation.value} to {topic!r} denied locally",
            )
        return Result.success(_Opened(session=self._session, decision=decision))

    def _forward(self, decision: EnforcementDecision, action: Callable[[], T]) -> Result[T]:
        """Run a transport call, turning the TransportError family into failures."""
        try:
            return Result.success(action())
        except TransportError as e:
            with self._lock:
                return self._reconcile_error(decision, e)

    def _collect(self, subscribed: _Subscribed, max_messages: int | None) -> Result[OperationOutcome]:
        decision, subscription = subscribed.decision, subscribed.subscription

        def drain() -> tuple[Message, ...]:
            received: list[Message] = []
            try:
                # A probe of a denied pattern only checks that the broker refuses it.
                if decision.allowed:
                    for message in subscription:
                        received.append(message)
                        if max_messages is not None and len(received) >= max_messages:
                            break
            finally:
                subscription.unsubscribe()
            return tuple(received)

        collected = self._forward(decision, drain)
        with self._lock:
            return collected.flat_map(lambda messages: self._conclude(decision, messages))

    def _reconcile_error(self, decision: EnforcementDecision, error: TransportError) -> Result:
        verb = decision.operation.value
        if isinstance(error, PermissionViolation):
            self._transition(SessionState.OPERATION_DENIED)
            if decision.allowed:
                return Result.failure(
                    ErrorCode.ENFORCEMENT_MISMATCH,
                    f"Broker denied {verb} to {decision.topic!r} that was allowed by {decision.matched_rule!r}",
                    error,
                )
            return Result.failure(ErrorCode.PERMISSION_VIOLATION, str(error), error)
        if isinstance(error, TransportTimeout):
            self._transition(SessionState.OPERATION_ALLOWED if decision.allowed else SessionState.OPERATION_DENIED)
            return Result.failure(ErrorCode.OPERATION_TIMEOUT, str(error), error)
        self._drop_session()
        self._state = SessionState.CLOSED
        return Result.failure(ErrorCode.TRANSPORT_FAILURE, f"{verb} failed: {error}", error)

    def _conclude(self, decision: EnforcementDecision, messages: tuple[Message, ...]) -> Result[OperationOutcome]:
        if not decision.allowed:
            self._transition(SessionState.OPERATION_DENIED)
            return Result.failure(
                ErrorCode.ENFORCEMENT_MISMATCH,
                f"Broker accepted {decision.operation.value} to {decision.topic!r} that is denied locally",
            )
        self._transition(SessionState.OPERATION_ALLOWED)
        return Result.success(OperationOutcome(decision=decision, messages=messages))
