"""
Credential issuer — build and sign a time-bounded, topic-scoped Credential.

Domain service: the only collaborator is the injected Signer port; the clock
is injected too, so issuance is deterministic under test.

Validation runs as a railway before anything is signed:

  validate identity → validate issuer/subject keys → validate ttl
    → validate every pattern → stamp times + id → sign

Any failing step short-circuits; a partial Credential is never returned.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable

import structlog

from topic_scope.codec import canonical_claims, compute_credential_id
from topic_scope.domain.models import Credential, Identity, KeyKind, KeyPair, PermissionSet
from topic_scope.domain.ports import KeyProvider
from topic_scope.domain.topics import is_well_formed
from topic_scope.railway import ErrorCode, Result

log = structlog.get_logger()

type Clock = Callable[[], int]


def epoch_seconds() -> int:
    return int(time.time())


def _validate_identity(subject: Identity) -> Result[Identity]:
    if not isinstance(subject, str) or not subject or any(ch.isspace() for ch in subject):
        return Result.failure(
            ErrorCode.INVALID_IDENTITY,
            f"Subject identity must be a non-empty name without whitespace: {subject!r}",
        )
    return Result.success(subject)


def validate_permissions(permissions: PermissionSet) -> Result[PermissionSet]:
    """Fail with INVALID_PERMISSION_PATTERN naming the first malformed pattern."""
    for pattern in permissions.patterns():
        if not is_well_formed(pattern):
            return Result.failure(
                ErrorCode.INVALID_PERMISSION_PATTERN,
                f"Permission pattern is not well-formed: {pattern!r}",
            )
    return Result.success(permissions)


class CredentialIssuer:
    """
    Issue signed credentials on behalf of an issuer key pair.

    Stateless apart from its injected collaborators: safe to share between
    threads and sessions.
    """

    def __init__(self, key_provider: KeyProvider, clock: Clock = epoch_seconds) -> None:
        self._keys = key_provider
        self._clock = clock

    def issue(
        self,
        subject: Identity,
        issuer_key_pair: KeyPair,
        subject_public_id: str,
        permissions: PermissionSet,
        ttl_seconds: int,
    ) -> Result[Credential]:
        """
        Build, canonicalize and sign a Credential.

        issued_at is the injected clock's current time and
        expires_at = issued_at + ttl_seconds.

        Fails with INVALID_IDENTITY, INVALID_TTL or INVALID_PERMISSION_PATTERN.
        """
        return (
            _validate_identity(subject)
            .flat_map(lambda _: self._validate_keys(issuer_key_pair, subject_public_id))
            .flat_map(lambda _: self._validate_ttl(ttl_seconds))
            .flat_map(lambda _: validate_permissions(permissions))
            .flat_map(
                lambda perms: Result.from_computation(
                    lambda: self._sign(
                        self._unsigned(subject, subject_public_id, issuer_key_pair, perms, ttl_seconds),
                        issuer_key_pair,
                    ),
                    ErrorCode.INVALID_IDENTITY,
                    "Issuer seed could not sign the credential",
                    catch=(ValueError,),
                )
            )
            .peek(
                lambda credential: log.info(
                    "credential.issued",
                    subject=credential.subject,
                    credential_id=credential.credential_id,
                    issuer=credential.issuer_public_id,
                    expires_at=credential.expires_at,
                )
            )
        )

    def _validate_keys(self, issuer_key_pair: KeyPair, subject_public_id: str) -> Result[str]:
        if issuer_key_pair.kind is not KeyKind.ISSUER:
            return Result.failure(
                ErrorCode.INVALID_IDENTITY,
                f"Credentials must be signed by an issuer key, got {issuer_key_pair.kind.value}",
            )
        if self._keys.public_id_kind(subject_public_id) is not KeyKind.SUBJECT:
            return Result.failure(
                ErrorCode.INVALID_IDENTITY,
                f"Not a subject public id: {subject_public_id!r}",
            )
        return Result.success(subject_public_id)

    @staticmethod
    def _validate_ttl(ttl_seconds: int) -> Result[int]:
        return Result.success(ttl_seconds).ensure(
            lambda ttl: isinstance(ttl, int) and not isinstance(ttl, bool) and ttl > 0,
            ErrorCode.INVALID_TTL,
            f"ttl_seconds must be a positive integer, got {ttl_seconds!r}",
        )

    def _unsigned(
        self,
        subject: Identity,
        subject_public_id: str,
        issuer_key_pair: KeyPair,
        permissions: PermissionSet,
        ttl_seconds: int,
    ) -> Credential:
        issued_at = self._clock()
        return Credential(
            subject=subject,
            subject_public_id=subject_public_id,
            issuer_public_id=issuer_key_pair.public_id,
            permissions=permissions,
            issued_at=issued_at,
            expires_at=issued_at + ttl_seconds,
            credential_id="",
            signature=b"",
        )

    def _sign(self, unsigned: Credential, issuer_key_pair: KeyPair) -> Credential:
        identified = dataclasses.replace(unsigned, credential_id=compute_credential_id(unsigned))
        signature = self._keys.sign(issuer_key_pair.seed, canonical_claims(identified))
        return dataclasses.replace(identified, signature=signature)
