"""
Shared test fixtures for the topic-scope test suite.

Keys are real Ed25519 keys (generation is fast and needs no I/O); time is a
fixed epoch value so validity windows are deterministic.
"""

from __future__ import annotations

import pytest

from topic_scope.adapters.ed25519_keys import Ed25519KeyProvider
from topic_scope.domain.models import KeyKind, KeyPair, Permission, PermissionSet
from topic_scope.issuer import CredentialIssuer
from topic_scope.verifier import CredentialVerifier

NOW = 1_700_000_000
TTL = 30 * 60


class FakeClock:
    """Settable clock returning epoch seconds."""

    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def key_provider() -> Ed25519KeyProvider:
    return Ed25519KeyProvider()


@pytest.fixture(scope="session")
def issuer_key_pair(key_provider: Ed25519KeyProvider) -> KeyPair:
    return key_provider.generate_key_pair(KeyKind.ISSUER)


@pytest.fixture()
def subject_key_pair(key_provider: Ed25519KeyProvider) -> KeyPair:
    return key_provider.generate_key_pair(KeyKind.SUBJECT)


@pytest.fixture()
def issuer(key_provider: Ed25519KeyProvider, clock: FakeClock) -> CredentialIssuer:
    return CredentialIssuer(key_provider, clock)


@pytest.fixture()
def verifier(key_provider: Ed25519KeyProvider) -> CredentialVerifier:
    return CredentialVerifier(key_provider)


@pytest.fixture()
def john_doe_permissions() -> PermissionSet:
    """Publish and subscribe confined to users.john-doe.>"""
    return PermissionSet(
        publish=Permission(allow=["users.john-doe.>"]),
        subscribe=Permission(allow=["users.john-doe.>"]),
    )
