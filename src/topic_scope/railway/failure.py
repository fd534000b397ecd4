"""
Failure description — structured error information for the failure track.

Every failure carries an ErrorCode from the scoped-credential taxonomy, a
human-readable message, and optionally the exception that caused it (for
transport failures this is the opaque exception raised by the adapter).
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """
    Error taxonomy for issuing, verifying and enforcing scoped credentials.

    Grouped by the component that produces them:
    - Issuance: INVALID_PERMISSION_PATTERN, INVALID_TTL, INVALID_IDENTITY
    - Verification: SIGNATURE_INVALID, EXPIRED, NOT_YET_VALID, MALFORMED_CREDENTIAL
    - Session: PERMISSION_VIOLATION, ENFORCEMENT_MISMATCH, OPERATION_TIMEOUT,
      TRANSPORT_FAILURE, INVALID_SESSION_STATE
    - Wiring: CONFIGURATION_ERROR
    """

    INVALID_PERMISSION_PATTERN = "INVALID_PERMISSION_PATTERN"
    """A permission pattern is empty, has an empty segment or an inner `>`."""

    INVALID_TTL = "INVALID_TTL"
    """Credential lifetime is not strictly positive."""

    INVALID_IDENTITY = "INVALID_IDENTITY"
    """Identity name or key material is unusable for the requested role."""

    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    """Signature does not verify under the expected issuer key."""

    EXPIRED = "EXPIRED"
    """Credential lifetime has ended (now >= expires_at)."""

    NOT_YET_VALID = "NOT_YET_VALID"
    """Credential was issued in the future relative to the verifier clock."""

    MALFORMED_CREDENTIAL = "MALFORMED_CREDENTIAL"
    """Required fields missing, wrong types, or undecodable token."""

    PERMISSION_VIOLATION = "PERMISSION_VIOLATION"
    """Operation rejected at the enforcement boundary (local or broker)."""

    ENFORCEMENT_MISMATCH = "ENFORCEMENT_MISMATCH"
    """Local decision and broker verdict disagree for the same operation."""

    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"
    """No message arrived within the caller-specified timeout."""

    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    """Opaque failure passed through from the transport adapter."""

    INVALID_SESSION_STATE = "INVALID_SESSION_STATE"
    """Lifecycle call not permitted from the current session state."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Settings are inconsistent (e.g. issuer seed and public id differ)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.EXPIRED, "credential expired")
    >>> desc.code
    <ErrorCode.EXPIRED: 'EXPIRED'>
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(type(self.exception), self.exception, self.exception.__traceback__)
        )
        return f"{self.message}\n{tb}"

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
