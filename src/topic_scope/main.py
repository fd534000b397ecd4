"""
Application entry point — wires dependencies and runs the scope probe.

Composition root: loads settings, creates the concrete key provider and
broker adapters, hands them to a SessionHarness, and runs the probe.

This is the ONLY place where settings are read and concrete adapters are
instantiated. Everything else depends on the Protocol ports.

Responsibilities:
  1. Configure structlog
  2. Load and validate configuration from environment
  3. Load the issuer key pair from its seed and check it against the public id
  4. Create the in-memory broker trusting that issuer, and its transport
  5. Run the scope probe and map the outcome to an exit code
"""

from __future__ import annotations

import logging
import sys

import structlog

from topic_scope import __version__
from topic_scope.adapters.ed25519_keys import Ed25519KeyProvider
from topic_scope.adapters.memory_broker import InMemoryBroker, InMemoryTransport
from topic_scope.config import AppSettings
from topic_scope.domain.models import KeyKind, KeyPair
from topic_scope.harness import HarnessConfig, SessionHarness
from topic_scope.probe import ProbeReport, run_scope_probe
from topic_scope.railway import ErrorCode, FailureDescription, Result


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog for human-readable console output at `log_level`."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_issuer(key_provider: Ed25519KeyProvider, settings: AppSettings) -> Result[KeyPair]:
    """Decode the configured issuer seed and make sure it belongs to the configured public id."""
    return (
        key_provider.key_pair_from_seed(settings.issuer.seed.get_secret_value())
        .map_failure(lambda err: FailureDescription(ErrorCode.CONFIGURATION_ERROR, err.message, err.exception))
        .ensure(
            lambda kp: kp.kind is KeyKind.ISSUER,
            ErrorCode.CONFIGURATION_ERROR,
            "Configured seed is not an issuer seed",
        )
        .ensure(
            lambda kp: kp.public_id == settings.issuer.public_id,
            ErrorCode.CONFIGURATION_ERROR,
            "Issuer seed does not match ISSUER__PUBLIC_ID",
        )
    )


def build_harness(settings: AppSettings, key_provider: Ed25519KeyProvider, issuer: KeyPair) -> SessionHarness:
    broker = InMemoryBroker(key_provider, trusted_issuer_public_id=issuer.public_id)
    transport = InMemoryTransport(broker, key_provider)
    config = HarnessConfig(
        issuer_key_pair=issuer,
        ttl_seconds=settings.credential.ttl_seconds,
        probe_broker=settings.probe.probe_broker,
    )
    return SessionHarness(config, key_provider, transport)


def run(settings: AppSettings) -> Result[ProbeReport]:
    """Run the scope probe against an in-process broker."""
    key_provider = Ed25519KeyProvider()
    return load_issuer(key_provider, settings).flat_map(
        lambda issuer: run_scope_probe(
            build_harness(settings, key_provider, issuer),
            subject=settings.credential.subject,
            prohibited_pattern=settings.probe.prohibited_pattern,
            timeout_seconds=settings.probe.timeout_seconds,
        )
    )


def main() -> None:
    """Load settings, run the probe, exit non-zero on any unexpected outcome."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        print("Did you run scripts/generate_issuer_keys.py?", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.info(
        "app.starting",
        version=__version__,
        subject=settings.credential.subject,
        issuer=settings.issuer.public_id,
        ttl_seconds=settings.credential.ttl_seconds,
    )

    result = run(settings)
    if result.is_failure():
        log.error("app.probe_failed", failure=str(result.error()))
        sys.exit(1)

    report = result.value()
    log.info(
        "app.probe_succeeded",
        subject=report.subject,
        credential_id=report.credential_id,
        decisions=[(d.operation.value, d.topic, d.allowed) for d in report.decisions],
    )


if __name__ == "__main__":
    main()
