"""
Integration test fixtures — one in-memory broker shared by several sessions.

Unlike the unit fixtures, these run on the wall clock: sessions block on
real queues and threads, so credentials must be valid right now.
"""

from __future__ import annotations

import pytest

from topic_scope.adapters.ed25519_keys import Ed25519KeyProvider
from topic_scope.adapters.memory_broker import InMemoryBroker, InMemoryTransport
from topic_scope.domain.models import KeyPair
from topic_scope.harness import HarnessConfig, SessionHarness


@pytest.fixture()
def shared_broker(key_provider: Ed25519KeyProvider, issuer_key_pair: KeyPair) -> InMemoryBroker:
    return InMemoryBroker(key_provider, trusted_issuer_public_id=issuer_key_pair.public_id)


@pytest.fixture()
def new_harness(key_provider: Ed25519KeyProvider, issuer_key_pair: KeyPair, shared_broker: InMemoryBroker):
    """Factory: a fresh harness on the shared broker. All are closed at teardown."""
    created: list[SessionHarness] = []

    def factory(**config: object) -> SessionHarness:
        harness = SessionHarness(
            HarnessConfig(issuer_key_pair=issuer_key_pair, connect_backoff_seconds=0, **config),
            key_provider,
            InMemoryTransport(shared_broker, key_provider),
        )
        created.append(harness)
        return harness

    yield factory
    for harness in created:
        harness.close()
