"""
Tests for the Result railway used across issuer, verifier and harness.

Tests cover:
  - Success/Failure creation and introspection
  - map, map_failure, flat_map, ensure
  - Side effects (peek, peek_failure) and get_or_else
  - from_computation with a narrowed catch tuple
  - Pattern matching, equality and FailureDescription rendering
  - Execution contexts
"""

from __future__ import annotations

import pytest

from topic_scope.railway import (
    ErrorCode,
    Failure,
    FailureDescription,
    LoggingExecutionContext,
    NoOpExecutionContext,
    Result,
    ResultAssertions,
    Success,
)


# ═══════════════════════════════════════════════════════════════
# 1. Creation & Introspection
# ═══════════════════════════════════════════════════════════════


class TestCreation:
    def test_success_wraps_value(self):
        result = Result.success(42)
        assert result.is_success()
        assert not result.is_failure()
        assert result.value() == 42

    def test_success_rejects_none(self):
        with pytest.raises(TypeError, match="must not be None"):
            Success(None)

    def test_failure_carries_code_message_and_exception(self):
        ex = ValueError("bad")
        result = Result.failure(ErrorCode.EXPIRED, "too late", ex)
        assert result.is_failure()
        assert result.error().code is ErrorCode.EXPIRED
        assert result.error().message == "too late"
        assert result.error().exception is ex

    def test_value_of_failure_raises(self):
        with pytest.raises(ValueError, match="too late"):
            Result.failure(ErrorCode.EXPIRED, "too late").value()

    def test_error_of_success_raises(self):
        with pytest.raises(ValueError):
            Result.success(1).error()

    def test_has_code(self):
        assert Result.failure(ErrorCode.EXPIRED, "x").has_code(ErrorCode.EXPIRED)
        assert not Result.failure(ErrorCode.EXPIRED, "x").has_code(ErrorCode.NOT_YET_VALID)
        assert not Result.success(1).has_code(ErrorCode.EXPIRED)

    def test_truthiness(self):
        assert Result.success(0)
        assert not Result.failure(ErrorCode.INVALID_TTL, "x")


# ═══════════════════════════════════════════════════════════════
# 2. Transformations
# ═══════════════════════════════════════════════════════════════


class TestTransformations:
    def test_map_and_flat_map_chain(self):
        result = Result.success(2).map(lambda x: x * 3).flat_map(lambda x: Result.success(x + 1))
        assert result.value() == 7

    def test_failure_short_circuits(self):
        calls = []
        result = Result.failure(ErrorCode.SIGNATURE_INVALID, "bad sig").map(calls.append).flat_map(calls.append)
        assert calls == []
        assert result.has_code(ErrorCode.SIGNATURE_INVALID)

    def test_map_failure_rewrites_code(self):
        result = Result.failure(ErrorCode.INVALID_PERMISSION_PATTERN, "a..b").map_failure(
            lambda err: FailureDescription(ErrorCode.MALFORMED_CREDENTIAL, err.message)
        )
        assert result.error().code is ErrorCode.MALFORMED_CREDENTIAL
        assert result.error().message == "a..b"

    def test_map_failure_leaves_success(self):
        assert Result.success(1).map_failure(lambda err: err).value() == 1

    def test_ensure(self):
        assert Result.success(5).ensure(lambda t: t > 0, ErrorCode.INVALID_TTL, "positive").value() == 5
        ResultAssertions.assert_failure(
            Result.success(0).ensure(lambda t: t > 0, ErrorCode.INVALID_TTL, "positive"),
            ErrorCode.INVALID_TTL,
        )

    def test_either(self):
        assert Result.success(1).either(lambda v: "ok", lambda e: "ko") == "ok"
        assert Result.failure(ErrorCode.EXPIRED, "x").either(lambda v: "ok", lambda e: e.code.value) == "EXPIRED"


# ═══════════════════════════════════════════════════════════════
# 3. Side effects & recovery
# ═══════════════════════════════════════════════════════════════


class TestSideEffects:
    def test_peek_runs_only_on_success(self):
        seen = []
        Result.success(1).peek(seen.append)
        Result.failure(ErrorCode.EXPIRED, "x").peek(seen.append)
        assert seen == [1]

    def test_peek_failure_runs_only_on_failure(self):
        seen = []
        Result.success(1).peek_failure(seen.append)
        Result.failure(ErrorCode.EXPIRED, "x").peek_failure(lambda err: seen.append(err.code))
        assert seen == [ErrorCode.EXPIRED]

    def test_get_or_else(self):
        assert Result.success(1).get_or_else(9) == 1
        assert Result.failure(ErrorCode.EXPIRED, "x").get_or_else(9) == 9


# ═══════════════════════════════════════════════════════════════
# 4. from_computation
# ═══════════════════════════════════════════════════════════════


class TestFromComputation:
    def test_success(self):
        assert Result.from_computation(lambda: 3, ErrorCode.INVALID_IDENTITY, "load").value() == 3

    def test_caught_exception_becomes_failure(self):
        def boom():
            raise ValueError("checksum mismatch")

        error = ResultAssertions.assert_failure(
            Result.from_computation(boom, ErrorCode.INVALID_IDENTITY, "Seed could not be decoded", catch=(ValueError,)),
            ErrorCode.INVALID_IDENTITY,
        )
        assert error.message == "Seed could not be decoded: checksum mismatch"
        assert isinstance(error.exception, ValueError)

    def test_uncaught_exception_propagates(self):
        def boom():
            raise KeyError("not in catch")

        with pytest.raises(KeyError):
            Result.from_computation(boom, ErrorCode.INVALID_IDENTITY, "x", catch=(ValueError,))


# ═══════════════════════════════════════════════════════════════
# 5. Pattern matching, equality, rendering
# ═══════════════════════════════════════════════════════════════


class TestMatchingAndEquality:
    def test_match_case(self):
        match Result.failure(ErrorCode.EXPIRED, "x"):
            case Success(_):
                outcome = "success"
            case Failure(err):
                outcome = err.code.value
        assert outcome == "EXPIRED"

    def test_equality_ignores_exception(self):
        assert Result.failure(ErrorCode.EXPIRED, "x", ValueError()) == Result.failure(ErrorCode.EXPIRED, "x")
        assert Result.success(1) == Result.success(1)
        assert Result.success(1) != Result.failure(ErrorCode.EXPIRED, "x")

    def test_failure_description_str(self):
        assert str(FailureDescription(ErrorCode.EXPIRED, "Credential expired")) == "EXPIRED: Credential expired"

    def test_full_stack_trace_of_exception(self):
        try:
            raise ValueError("inner")
        except ValueError as e:
            description = FailureDescription(ErrorCode.TRANSPORT_FAILURE, "wrapped", e)
        assert "ValueError: inner" in description.full_stack_trace()


# ═══════════════════════════════════════════════════════════════
# 6. Execution contexts
# ═══════════════════════════════════════════════════════════════


class TestExecutionContexts:
    def test_noop_passthrough(self):
        assert NoOpExecutionContext().execute(lambda: Result.success(42)).value() == 42

    def test_logging_context_returns_result_unchanged(self):
        ctx = LoggingExecutionContext(operation="session.publish")
        assert ctx.operation == "session.publish"
        assert ctx.execute(lambda: Result.success("ok")).value() == "ok"
        assert ctx.execute(lambda: Result.failure(ErrorCode.OPERATION_TIMEOUT, "slow")).has_code(
            ErrorCode.OPERATION_TIMEOUT
        )

    def test_logging_context_reraises(self):
        def failing():
            raise RuntimeError("exploded")

        with pytest.raises(RuntimeError, match="exploded"):
            LoggingExecutionContext(operation="boom").execute(failing)

    def test_logging_context_wraps_inner(self):
        class Counting:
            calls = 0

            def execute(self, computation):
                Counting.calls += 1
                return computation()

        LoggingExecutionContext(inner=Counting(), operation="wrapped").execute(lambda: Result.success(1))
        assert Counting.calls == 1
