"""
Scope probe — the end-to-end check that a broker enforces a credential's scope.

Chains the harness steps via flat_map; every step returns Result:

  issue_credential(subject, users.<subject>.>)
    → connect()
      → subscribe(prohibited)           expected: PERMISSION_VIOLATION
        → subscribe(allowed, timeout)   expected: OPERATION_TIMEOUT
          → close()

The two expected failures are turned into successes that record what was
observed. Any other outcome, including an unexpected success, short-circuits
the railway with a failure describing it.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from topic_scope.domain.models import EnforcementDecision, Identity, PermissionSet
from topic_scope.harness import SessionHarness
from topic_scope.railway import ErrorCode, Result

log = structlog.get_logger()

USERS_ROOT = "users"


def subject_scope(subject: Identity) -> str:
    """The topic subtree a subject is confined to: users.<subject>.>"""
    return f"{USERS_ROOT}.{subject}.>"


@dataclass(frozen=True, slots=True)
class ProbeReport:
    subject: Identity
    credential_id: str
    prohibited_denied: bool
    allowed_timed_out: bool
    decisions: tuple[EnforcementDecision, ...]


def _expect(result: Result, code: ErrorCode, description: str) -> Result[bool]:
    """Success(True) when `result` failed with `code`; otherwise a failure explaining why not."""
    if result.has_code(code):
        log.info("probe.expected_outcome", check=description, code=code.value)
        return Result.success(True)
    if result.is_failure():
        return Result.failure_from(result.error())
    return Result.failure(
        ErrorCode.ENFORCEMENT_MISMATCH,
        f"{description}: expected {code.value} but the operation succeeded",
    )


def run_scope_probe(
    harness: SessionHarness,
    subject: Identity,
    prohibited_pattern: str = f"{USERS_ROOT}.>",
    timeout_seconds: float = 1.0,
) -> Result[ProbeReport]:
    """
    Probe that `subject` is confined to users.<subject>.>.

    The harness is always closed before returning, whatever the outcome.
    """
    allowed_topic = f"{USERS_ROOT}.{subject}.notifications"
    scope = subject_scope(subject)

    result = (
        harness.issue_credential(subject, PermissionSet.scoped_to(scope))
        .flat_map(lambda _: harness.connect())
        .flat_map(
            lambda _: _expect(
                harness.subscribe(prohibited_pattern, timeout=timeout_seconds),
                ErrorCode.PERMISSION_VIOLATION,
                f"subscribe {prohibited_pattern}",
            )
        )
        .flat_map(
            lambda _: _expect(
                harness.subscribe(allowed_topic, timeout=timeout_seconds),
                ErrorCode.OPERATION_TIMEOUT,
                f"subscribe {allowed_topic}",
            )
        )
        .map(
            lambda _: ProbeReport(
                subject=subject,
                credential_id=harness.credential.credential_id if harness.credential else "",
                prohibited_denied=True,
                allowed_timed_out=True,
                decisions=harness.decisions,
            )
        )
    )
    harness.close()
    return result
