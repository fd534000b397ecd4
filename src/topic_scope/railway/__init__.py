"""
Railway-Oriented Programming primitives for topic_scope.

    from topic_scope.railway import Result, ErrorCode

    def validate_ttl(ttl: int) -> Result[int]:
        if ttl <= 0:
            return Result.failure(ErrorCode.INVALID_TTL, "ttl must be positive")
        return Result.success(ttl)
"""

from topic_scope.railway.assertions import ResultAssertions
from topic_scope.railway.execution import (
    ExecutionContext,
    LoggingExecutionContext,
    NoOpExecutionContext,
)
from topic_scope.railway.failure import ErrorCode, FailureDescription
from topic_scope.railway.result import Failure, Result, Success

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]
