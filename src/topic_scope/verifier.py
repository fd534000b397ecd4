"""
Credential verifier — signature, validity window and structure checks.

Domain service with a single injected collaborator: the SignatureVerifier
port, which only ever sees public ids. Nothing is cached; every call
rebuilds the canonical claims and re-checks from scratch, so verifying the
same credential twice (e.g. on reconnect) is idempotent.

Check order:

  structure       → MALFORMED_CREDENTIAL
  issuer + sig    → SIGNATURE_INVALID
  now < iat       → NOT_YET_VALID
  now >= exp      → EXPIRED
  patterns + jti  → MALFORMED_CREDENTIAL

Signature comes before the pattern check so that tampering with permission
data always reports SIGNATURE_INVALID, even if the altered pattern is also
malformed.
"""

from __future__ import annotations

import structlog

from topic_scope.codec import canonical_claims, compute_credential_id, decode_token
from topic_scope.domain.models import Credential, Permission, PermissionSet, VerifiedCredential
from topic_scope.domain.ports import SignatureVerifier
from topic_scope.issuer import validate_permissions
from topic_scope.railway import ErrorCode, FailureDescription, Result

log = structlog.get_logger()


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_text(value: object) -> bool:
    return isinstance(value, str) and bool(value)


def _is_permission(value: object) -> bool:
    return (
        isinstance(value, Permission)
        and all(isinstance(p, str) for p in value.allow)
        and all(isinstance(p, str) for p in value.deny)
    )


def _check_structure(credential: Credential) -> Result[Credential]:
    problems = [
        name
        for name, ok in (
            ("subject", _is_text(credential.subject)),
            ("subject_public_id", _is_text(credential.subject_public_id)),
            ("issuer_public_id", _is_text(credential.issuer_public_id)),
            ("credential_id", _is_text(credential.credential_id)),
            ("issued_at", _is_int(credential.issued_at)),
            ("expires_at", _is_int(credential.expires_at)),
            ("signature", isinstance(credential.signature, bytes) and bool(credential.signature)),
            (
                "permissions",
                isinstance(credential.permissions, PermissionSet)
                and _is_permission(credential.permissions.publish)
                and _is_permission(credential.permissions.subscribe),
            ),
        )
        if not ok
    ]
    if problems:
        return Result.failure(
            ErrorCode.MALFORMED_CREDENTIAL,
            f"Credential fields missing or invalid: {', '.join(problems)}",
        )
    if credential.expires_at <= credential.issued_at:
        return Result.failure(
            ErrorCode.MALFORMED_CREDENTIAL,
            "Credential expires_at must be later than issued_at",
        )
    return Result.success(credential)


class CredentialVerifier:
    """Verify credentials against a trusted issuer public id."""

    def __init__(self, signature_verifier: SignatureVerifier) -> None:
        self._signatures = signature_verifier

    def verify(
        self,
        credential: Credential,
        issuer_public_id: str,
        now: int,
    ) -> Result[VerifiedCredential]:
        """
        Verify a credential at time `now` (epoch seconds).

        Valid for issued_at <= now < expires_at. Returns the subject and its
        PermissionSet on success; never returns a partially checked result.
        """
        result = (
            _check_structure(credential)
            .flat_map(lambda c: self._check_signature(c, issuer_public_id))
            .flat_map(lambda c: self._check_window(c, now))
            .flat_map(self._check_contents)
            .map(
                lambda c: VerifiedCredential(
                    subject=c.subject,
                    subject_public_id=c.subject_public_id,
                    permissions=c.permissions,
                    expires_at=c.expires_at,
                )
            )
        )
        return result.peek_failure(
            lambda err: log.info(
                "credential.rejected",
                subject=getattr(credential, "subject", None),
                code=err.code.value,
                reason=err.message,
            )
        )

    def verify_token(self, token: str, issuer_public_id: str, now: int) -> Result[VerifiedCredential]:
        """Decode a transmitted token, then verify it."""
        return decode_token(token).flat_map(lambda c: self.verify(c, issuer_public_id, now))

    def _check_signature(self, credential: Credential, issuer_public_id: str) -> Result[Credential]:
        if credential.issuer_public_id != issuer_public_id:
            return Result.failure(
                ErrorCode.SIGNATURE_INVALID,
                f"Credential issued by {credential.issuer_public_id}, expected {issuer_public_id}",
            )
        if not self._signatures.verify(issuer_public_id, canonical_claims(credential), credential.signature):
            return Result.failure(ErrorCode.SIGNATURE_INVALID, "Credential signature does not verify")
        return Result.success(credential)

    @staticmethod
    def _check_window(credential: Credential, now: int) -> Result[Credential]:
        if now < credential.issued_at:
            return Result.failure(
                ErrorCode.NOT_YET_VALID,
                f"Credential not valid before {credential.issued_at} (now {now})",
            )
        if now >= credential.expires_at:
            return Result.failure(
                ErrorCode.EXPIRED,
                f"Credential expired at {credential.expires_at} (now {now})",
            )
        return Result.success(credential)

    @staticmethod
    def _check_contents(credential: Credential) -> Result[Credential]:
        if compute_credential_id(credential) != credential.credential_id:
            return Result.failure(ErrorCode.MALFORMED_CREDENTIAL, "Credential id does not match its claims")
        return (
            validate_permissions(credential.permissions)
            .map(lambda _: credential)
            .map_failure(lambda err: FailureDescription(ErrorCode.MALFORMED_CREDENTIAL, err.message))
        )
