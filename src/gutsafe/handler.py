"""Error handler facade.

Composes the classifier, the retry executor and the report dispatcher into
the interface application code calls. Every entry point returns a value:
``handle_error`` gives back the canonical error, the wrappers give back a
``Success`` or ``Failure``. Local logging and report queueing happen as a
side effect and never raise into the caller.

Example usage:
    handler = ErrorHandler.from_config(AppConfig.from_yaml(Path("gutsafe.yaml")))
    async with handler:
        result = await handler.with_retry(fetch_product, "api_call", service="scanner")
        if not result.ok:
            show(handler.get_user_friendly_error(result.error))
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from gutsafe.core.config import AppConfig
from gutsafe.core.errors import (
    CONTEXT_DETAILS_KEY,
    CanonicalError,
    ClassifiedError,
    ErrorClassifier,
    ErrorContext,
    Failure,
    Result,
    Success,
    UserFriendlyError,
)
from gutsafe.core.logging import GutsafeLogger, get_logger
from gutsafe.execution.retry import (
    API_CALL_POLICY,
    DEFAULT_POLICIES,
    RetryExecutor,
    RetryPolicy,
)
from gutsafe.reporting import ReportDispatcher, ReportingStats, ReportSender

T = TypeVar("T")

ContextLike = ErrorContext | Mapping[str, Any] | None

_DEFAULT_SERVICE = "error_handler"


class ErrorHandler:
    """Entry point for classifying, logging and reporting failures.

    Args:
        classifier: Normalizes and classifies errors.
        dispatcher: Queues and delivers reports.
        executor: Runs operations under retry policies.
        policies: Extra named retry policies, merged over the presets.
        logger: Sink for the local log entry written per handled error.
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        dispatcher: ReportDispatcher | None = None,
        executor: RetryExecutor | None = None,
        policies: Mapping[str, RetryPolicy] | None = None,
        logger: GutsafeLogger | None = None,
    ) -> None:
        self.classifier = classifier or ErrorClassifier()
        self.executor = executor or RetryExecutor(classifier=self.classifier)
        self.dispatcher = dispatcher or ReportDispatcher(executor=self.executor)
        self._policies: dict[str, RetryPolicy] = {**DEFAULT_POLICIES, **(policies or {})}
        self._logger = logger or get_logger("error_handler")

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        sender: ReportSender | None = None,
    ) -> ErrorHandler:
        """Build a handler from loaded configuration.

        Entries in ``retry_policies`` override the preset of the same name
        field by field; other names start from the API call preset.
        """
        classifier = ErrorClassifier()
        executor = RetryExecutor(classifier=classifier)
        dispatcher = ReportDispatcher(config.reporting, sender=sender, executor=executor)
        policies = {
            name: RetryPolicy.from_config(
                policy_config, DEFAULT_POLICIES.get(name, API_CALL_POLICY)
            )
            for name, policy_config in config.retry_policies.items()
        }
        return cls(
            classifier=classifier,
            dispatcher=dispatcher,
            executor=executor,
            policies=policies,
        )

    # -------------------------------------------------------------------------
    # Handling
    # -------------------------------------------------------------------------

    def handle_error(
        self,
        error: Any,
        context: ContextLike = None,
        service: str | None = None,
    ) -> CanonicalError:
        """Classify ``error``, log it, queue a report, and return it canonical."""
        ctx = ErrorContext.coerce(context).with_service(service)
        classified = self.classifier.classify(error, ctx)
        self._log_and_report(classified, ctx)
        return classified.error

    def create_error_result(
        self,
        error: Any,
        context: ContextLike = None,
        service: str | None = None,
        attempts: int = 1,
    ) -> Failure:
        """Handle ``error`` and wrap it as a Failure."""
        ctx = ErrorContext.coerce(context).with_service(service)
        classified = self.classifier.classify(error, ctx)
        self._log_and_report(classified, ctx)
        return Failure.from_classified(classified, attempts=attempts)

    async def with_error_handling(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ContextLike = None,
        service: str | None = None,
    ) -> Result[T]:
        """Run ``operation`` once, turning any exception into a Failure."""
        try:
            value = await operation()
        except Exception as exc:
            return self.create_error_result(exc, context, service)
        return Success(value)

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | str | None = None,
        context: ContextLike = None,
        service: str | None = None,
    ) -> Result[T]:
        """Run ``operation`` under a retry policy.

        ``policy`` may be a policy, a registered policy name, or None to use
        the policy registered for ``service`` (falling back to the API call
        preset). Only the final failure is logged and reported.
        """
        resolved = self._resolve_policy(policy, service)
        ctx = ErrorContext.coerce(context).with_service(service)
        result = await self.executor.run(operation, resolved, ctx)
        if not result.ok:
            self._log_and_report(
                ClassifiedError(result.error, result.category, result.severity), ctx
            )
        return result

    def _resolve_policy(self, policy: RetryPolicy | str | None, service: str | None) -> RetryPolicy:
        if isinstance(policy, RetryPolicy):
            return policy
        if policy is not None:
            return self.get_retry_policy(policy)
        if service is not None and service in self._policies:
            return self._policies[service]
        return self._policies.get("api_call", API_CALL_POLICY)

    def _log_and_report(self, classified: ClassifiedError, ctx: ErrorContext) -> None:
        error = classified.error
        self._logger.log(
            classified.severity.log_level,
            "error_handled",
            code=error.code,
            message=error.message,
            severity=classified.severity.name,
            category=classified.category.value,
            service=ctx.service or _DEFAULT_SERVICE,
            operation=ctx.operation,
            details=dict(error.details),
            stack=error.stack,
        )
        extra = {k: v for k, v in error.details.items() if k != CONTEXT_DETAILS_KEY}
        self.dispatcher.report_error(
            error, ctx, classified.severity, classified.category, extra=extra
        )

    # -------------------------------------------------------------------------
    # Presentation and stats
    # -------------------------------------------------------------------------

    def get_user_friendly_error(self, error: Any) -> UserFriendlyError:
        """User-facing view of any error value."""
        if isinstance(error, (CanonicalError, ClassifiedError)):
            return self.classifier.get_user_friendly_error(error)
        return self.classifier.get_user_friendly_error(self.classifier.classify(error))

    def get_stats(self) -> ReportingStats:
        return self.dispatcher.get_stats()

    # -------------------------------------------------------------------------
    # Policy registry and reporting control
    # -------------------------------------------------------------------------

    def set_retry_policy(self, name: str, policy: RetryPolicy) -> None:
        """Register ``policy`` under ``name`` (a service or operation name)."""
        self._policies[name] = policy

    def get_retry_policy(self, name: str) -> RetryPolicy:
        """Policy registered under ``name``.

        Raises:
            KeyError: If nothing is registered under ``name``.
        """
        try:
            return self._policies[name]
        except KeyError:
            raise KeyError(
                f"No retry policy named {name!r}; known: {sorted(self._policies)}"
            ) from None

    def set_reporting_enabled(self, enabled: bool) -> None:
        self.dispatcher.set_enabled(enabled)

    async def start(self) -> None:
        await self.dispatcher.start()

    async def stop(self) -> None:
        await self.dispatcher.stop()

    async def __aenter__(self) -> ErrorHandler:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
