"""
Execution contexts — separate WHAT (pure logic) from HOW (observability).

The session harness runs every lifecycle step and operation through an
ExecutionContext, so timing and outcome logging never leak into the
enforcement logic itself.

Unlike a catch-all wrapper, contexts here never turn exceptions into
failures: an exception that is not part of the Result taxonomy is logged and
re-raised unchanged.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, TypeVar, runtime_checkable

import structlog

from topic_scope.railway.result import Result

T = TypeVar("T")
log = structlog.get_logger()


@runtime_checkable
class ExecutionContext(Protocol):
    """Any class implementing execute(computation) satisfies this protocol."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]: ...


class NoOpExecutionContext:
    """Passthrough execution context — runs computation without any wrapper."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Execution context that logs duration and result state of a computation.

    Wraps another context (decorator pattern) to add observability.

        ctx = LoggingExecutionContext(operation="session.subscribe")
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation

    @property
    def operation(self) -> str:
        return self._operation

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        start = time.monotonic()
        try:
            result = self._inner.execute(computation)
        except Exception as e:
            log.error(
                "execution.raised",
                operation=self._operation,
                elapsed_ms=round((time.monotonic() - start) * 1000, 3),
                error=repr(e),
            )
            raise

        elapsed_ms = round((time.monotonic() - start) * 1000, 3)
        if result.is_success():
            log.debug("execution.completed", operation=self._operation, elapsed_ms=elapsed_ms)
        else:
            log.info(
                "execution.failed",
                operation=self._operation,
                elapsed_ms=elapsed_ms,
                code=result.error().code.value,
                reason=result.error().message,
            )
        return result
