"""Retry executor with pluggable backoff strategies and retry predicates.

Wraps a zero-argument coroutine function, re-invoking it on failure
according to a ``RetryPolicy``. The outcome is always returned as a value:
``Success`` with the operation's result, or ``Failure`` carrying the
classified last error. Only cancellation propagates.

Example usage:
    from gutsafe.execution.retry import API_CALL_POLICY, RetryExecutor

    executor = RetryExecutor()
    result = await executor.run(fetch_food_facts, API_CALL_POLICY)
    if result.ok:
        render(result.value)
    else:
        logger.warning("lookup_failed", code=result.error.code)

Backoff for attempt n (1-indexed), capped at ``max_delay``:
    exponential: base_delay * backoff_multiplier ** (n - 1)
    linear:      base_delay * n
    fixed:       base_delay
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, TypeVar

from gutsafe.core.config import RetryPolicyConfig
from gutsafe.core.errors import (
    ErrorClassifier,
    ErrorCode,
    ErrorContext,
    Failure,
    Result,
    Success,
)
from gutsafe.core.logging import GutsafeLogger, get_logger

T = TypeVar("T")

RetryCondition = Callable[[BaseException], bool]
"""Predicate deciding whether a raised error is worth another attempt."""

SleepFunc = Callable[[float], Awaitable[Any]]

_logger = get_logger("retry")

# Shared, stateless classifier for the module-level retry conditions
_code_extractor = ErrorClassifier()


class RetryStrategy(str, Enum):
    """How the delay grows between attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry policy, safe to share between concurrent callers.

    Attributes:
        max_attempts: Total invocations allowed (1 = never retry).
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound on any single delay, in seconds.
        backoff_multiplier: Growth factor for exponential backoff.
        strategy: Backoff strategy.
        retryable: Allow-list of error codes, or a predicate over the raised
            error.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    retryable: Collection[str] | RetryCondition = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_delay < 0:
            raise ValueError(f"max_delay must be >= 0, got {self.max_delay}")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )
        if not isinstance(self.strategy, RetryStrategy):
            object.__setattr__(self, "strategy", RetryStrategy(self.strategy))
        if isinstance(self.retryable, str):
            object.__setattr__(self, "retryable", frozenset({self.retryable}))
        elif not callable(self.retryable):
            object.__setattr__(self, "retryable", frozenset(self.retryable))

    def with_overrides(self, **changes: Any) -> RetryPolicy:
        """Copy of this policy with the given fields replaced."""
        return replace(self, **changes)

    def is_retryable(self, error: BaseException, code: str) -> bool:
        """Apply the policy's predicate or allow-list to one failure."""
        if callable(self.retryable):
            try:
                return bool(self.retryable(error))
            except Exception as exc:  # noqa: BLE001
                _logger.warning(
                    "retry_condition_failed",
                    code=code,
                    error=repr(exc),
                )
                return False
        return code in self.retryable

    @classmethod
    def from_config(
        cls,
        config: RetryPolicyConfig,
        base: RetryPolicy | None = None,
    ) -> RetryPolicy:
        """Build a policy from its YAML form, inheriting unset fields from ``base``."""
        base = base or cls()
        changes: dict[str, Any] = {}
        if config.max_attempts is not None:
            changes["max_attempts"] = config.max_attempts
        if config.base_delay_seconds is not None:
            changes["base_delay"] = config.base_delay_seconds
        if config.max_delay_seconds is not None:
            changes["max_delay"] = config.max_delay_seconds
        if config.backoff_multiplier is not None:
            changes["backoff_multiplier"] = config.backoff_multiplier
        if config.strategy is not None:
            changes["strategy"] = RetryStrategy(config.strategy)
        if config.retryable_codes is not None:
            changes["retryable"] = frozenset(config.retryable_codes)
        return base.with_overrides(**changes)


def compute_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay in seconds after failed attempt ``attempt`` (1-indexed)."""
    if policy.strategy == RetryStrategy.LINEAR:
        delay = policy.base_delay * attempt
    elif policy.strategy == RetryStrategy.FIXED:
        delay = policy.base_delay
    else:
        delay = policy.base_delay * policy.backoff_multiplier ** (attempt - 1)
    return min(delay, policy.max_delay)


# =============================================================================
# Presets
# =============================================================================

_TRANSIENT_CODES = frozenset({
    ErrorCode.NETWORK_ERROR.value,
    ErrorCode.TIMEOUT_ERROR.value,
    ErrorCode.CONNECTION_ERROR.value,
})

API_CALL_POLICY = RetryPolicy(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    backoff_multiplier=2.0,
    retryable=_TRANSIENT_CODES
    | {ErrorCode.RATE_LIMIT_ERROR.value, ErrorCode.SERVICE_ERROR.value},
)

DATABASE_OPERATION_POLICY = RetryPolicy(
    max_attempts=2,
    base_delay=2.0,
    max_delay=8.0,
    backoff_multiplier=2.0,
    retryable=frozenset({ErrorCode.DATABASE_ERROR.value, ErrorCode.CONNECTION_ERROR.value}),
)

FILE_UPLOAD_POLICY = RetryPolicy(
    max_attempts=5,
    base_delay=0.5,
    max_delay=5.0,
    backoff_multiplier=1.5,
    retryable=_TRANSIENT_CODES,
)

CRITICAL_OPERATION_POLICY = RetryPolicy(
    max_attempts=5,
    base_delay=2.0,
    max_delay=30.0,
    backoff_multiplier=2.0,
    retryable=frozenset({
        ErrorCode.NETWORK_ERROR.value,
        ErrorCode.SERVICE_ERROR.value,
        ErrorCode.DATABASE_ERROR.value,
    }),
)

DEFAULT_POLICIES: Mapping[str, RetryPolicy] = {
    "api_call": API_CALL_POLICY,
    "database_operation": DATABASE_OPERATION_POLICY,
    "file_upload": FILE_UPLOAD_POLICY,
    "critical_operation": CRITICAL_OPERATION_POLICY,
}


# =============================================================================
# Retry conditions
# =============================================================================


def error_code_condition(codes: Iterable[str]) -> RetryCondition:
    """Retry when the error's code is one of ``codes``."""
    allowed = frozenset(codes)

    def condition(error: BaseException) -> bool:
        return _code_extractor.extract_code(error) in allowed

    return condition


def http_status_condition(statuses: Iterable[int]) -> RetryCondition:
    """Retry when the error carries one of ``statuses``.

    Looks at a ``status`` attribute (``NetworkError``) and at
    ``response.status_code`` (``httpx.HTTPStatusError``).
    """
    allowed = frozenset(statuses)

    def condition(error: BaseException) -> bool:
        status = getattr(error, "status", None)
        if status is None:
            response = getattr(error, "response", None)
            status = getattr(response, "status_code", None)
        return isinstance(status, int) and status in allowed

    return condition


def network_condition() -> RetryCondition:
    """Retry network, connection and timeout failures."""
    return error_code_condition(_TRANSIENT_CODES)


_TEMPORARY_CODES = _TRANSIENT_CODES | {
    ErrorCode.RATE_LIMIT_ERROR.value,
    ErrorCode.SERVICE_ERROR.value,
    ErrorCode.DATABASE_ERROR.value,
}
_TEMPORARY_MESSAGE_MARKERS = ("temporary", "unavailable", "timeout")


def temporary_error_condition() -> RetryCondition:
    """Retry anything that looks transient by code or by message."""

    def condition(error: BaseException) -> bool:
        if _code_extractor.extract_code(error) in _TEMPORARY_CODES:
            return True
        message = str(error).lower()
        return any(marker in message for marker in _TEMPORARY_MESSAGE_MARKERS)

    return condition


# =============================================================================
# Executor
# =============================================================================


class RetryExecutor:
    """Runs coroutine functions under a retry policy.

    Holds no per-call state, so one executor can serve concurrent callers.

    Args:
        classifier: Used for the retry-time code check and the final
            classification.
        sleep: Awaitable delay function; injectable for tests.
        logger: Logger for attempt-level events.
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        sleep: SleepFunc | None = None,
        logger: GutsafeLogger | None = None,
    ) -> None:
        self.classifier = classifier or ErrorClassifier()
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._logger = logger or _logger

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy = API_CALL_POLICY,
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> Result[T]:
        """Invoke ``operation`` until it succeeds or the policy gives up.

        A first-attempt success never sleeps. A non-retryable failure stops
        after one attempt regardless of ``max_attempts``.
        """
        ctx = ErrorContext.coerce(context)
        attempt = 0
        last_error: Exception | None = None

        while True:
            attempt += 1
            try:
                value = await operation()
            except Exception as exc:
                last_error = exc
            else:
                if attempt > 1:
                    self._logger.info(
                        "retry_succeeded",
                        attempt=attempt,
                        operation=ctx.operation,
                    )
                return Success(value, attempts=attempt)

            code = self.classifier.extract_code(last_error)
            if not policy.is_retryable(last_error, code):
                self._logger.debug(
                    "retry_not_retryable",
                    attempt=attempt,
                    code=code,
                    operation=ctx.operation,
                )
                break
            if attempt >= policy.max_attempts:
                self._logger.warning(
                    "retry_exhausted",
                    attempts=attempt,
                    code=code,
                    operation=ctx.operation,
                )
                break

            delay = compute_delay(attempt, policy)
            self._logger.warning(
                "retry_attempt",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                code=code,
                error=str(last_error),
                strategy=policy.strategy.value,
                delay_seconds=round(delay, 3),
                operation=ctx.operation,
            )
            await self._sleep(delay)

        classified = self.classifier.classify(last_error, ctx)
        return Failure.from_classified(classified, attempts=attempt)

    async def retry_with_condition(
        self,
        operation: Callable[[], Awaitable[T]],
        condition: RetryCondition,
        policy: RetryPolicy = API_CALL_POLICY,
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> Result[T]:
        """Run under ``policy`` timing but with ``condition`` as the predicate."""
        return await self.run(operation, policy.with_overrides(retryable=condition), context)

    async def retry_api_call(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> Result[T]:
        return await self.run(operation, API_CALL_POLICY.with_overrides(**overrides), context)

    async def retry_database_operation(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> Result[T]:
        return await self.run(
            operation, DATABASE_OPERATION_POLICY.with_overrides(**overrides), context
        )

    async def retry_file_upload(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> Result[T]:
        return await self.run(operation, FILE_UPLOAD_POLICY.with_overrides(**overrides), context)

    async def retry_critical_operation(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> Result[T]:
        return await self.run(
            operation, CRITICAL_OPERATION_POLICY.with_overrides(**overrides), context
        )
