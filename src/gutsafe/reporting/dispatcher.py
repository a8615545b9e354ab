"""Batched, asynchronous delivery of error reports.

``report_error`` is synchronous and never raises: it queues a report and,
once the queue reaches ``batch_size``, schedules a flush on the running
event loop. A periodic timer flushes whatever is pending. A batch that
fails delivery after retries goes back to the front of the queue, ahead
of anything reported meanwhile.

Example usage:
    dispatcher = ReportDispatcher(ReportingConfig(endpoint="https://..."))
    async with dispatcher:
        dispatcher.report_error(error, context, Severity.HIGH, ErrorCategory.NETWORK)
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Any

from gutsafe.core.config import ReportingConfig
from gutsafe.core.errors import (
    CanonicalError,
    ErrorCategory,
    ErrorContext,
    Severity,
)
from gutsafe.core.logging import GutsafeLogger, get_logger
from gutsafe.execution.retry import API_CALL_POLICY, RetryExecutor, RetryPolicy
from gutsafe.reporting.base import (
    ErrorReport,
    ReportingStats,
    ReportSender,
    build_payload,
)
from gutsafe.reporting.http import HttpReportSender
from gutsafe.utils.time import utc_now

_DELIVERY_CONTEXT = ErrorContext(operation="deliver_reports", service="error_reporting")

# Config fields that require a new HTTP sender when changed
_SENDER_FIELDS = frozenset({"endpoint", "endpoint_env", "api_key", "api_key_env",
                            "timeout_seconds", "app_version"})


class ReportDispatcher:
    """Queues error reports and delivers them in batches.

    Args:
        config: Reporting configuration.
        sender: Delivery backend. When omitted, an ``HttpReportSender`` is
            built from the configured endpoint; with no endpoint, flushes
            succeed without sending anything.
        executor: Retry executor used for delivery attempts.
        logger: Logger for queue and delivery events.
    """

    def __init__(
        self,
        config: ReportingConfig | None = None,
        sender: ReportSender | None = None,
        executor: RetryExecutor | None = None,
        logger: GutsafeLogger | None = None,
    ) -> None:
        self._config = config or ReportingConfig()
        self._owns_sender = sender is None
        self._sender = sender if sender is not None else self._create_sender(self._config)
        self._executor = executor or RetryExecutor()
        self._logger = logger or get_logger("reporting")

        self._queue: list[ErrorReport] = []
        self._stats = ReportingStats()
        self._flushing = False
        self._started = False
        self._timer_task: asyncio.Task[None] | None = None
        self._flush_tasks: set[asyncio.Task[bool]] = set()

    @staticmethod
    def _create_sender(config: ReportingConfig) -> ReportSender | None:
        endpoint = config.resolved_endpoint()
        if not endpoint:
            return None
        return HttpReportSender(
            endpoint=endpoint,
            api_key=config.resolved_api_key(),
            timeout=config.timeout_seconds,
            app_version=config.app_version,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ReportingConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def queued_reports(self) -> list[ErrorReport]:
        """Copy of the pending queue, oldest first."""
        return list(self._queue)

    # -------------------------------------------------------------------------
    # Queueing
    # -------------------------------------------------------------------------

    def report_error(
        self,
        error: CanonicalError,
        context: ErrorContext | None = None,
        severity: Severity = Severity.LOW,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        extra: dict[str, Any] | None = None,
    ) -> ErrorReport | None:
        """Queue one report.

        Returns the report, or None when reporting is disabled or the report
        cannot be serialized.
        """
        if not self._config.enabled:
            return None

        try:
            report = ErrorReport.create(
                error, context or ErrorContext(), severity, category, extra=extra
            )
            # Unserializable reports never reach the queue
            json.dumps(report.to_dict(), default=str)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("report_build_failed", code=error.code, error=repr(exc))
            return None

        self._queue.append(report)
        self._stats.record(report)
        self._enforce_capacity()
        self._stats.pending_reports = len(self._queue)
        self._logger.debug(
            "error_queued",
            report_id=report.id,
            code=error.code,
            pending_reports=len(self._queue),
        )

        if len(self._queue) >= self._config.batch_size:
            self._schedule_flush()
        return report

    def _enforce_capacity(self) -> None:
        overflow = len(self._queue) - self._config.max_queue_size
        if overflow <= 0:
            return
        if self._config.overflow_policy == "drop_newest":
            dropped = self._queue[-overflow:]
            del self._queue[-overflow:]
        else:
            dropped = self._queue[:overflow]
            del self._queue[:overflow]
        self._stats.dropped_reports += len(dropped)
        self._logger.warning(
            "reports_dropped",
            dropped=len(dropped),
            overflow_policy=self._config.overflow_policy,
            max_queue_size=self._config.max_queue_size,
            report_ids=[r.id for r in dropped],
        )

    def _schedule_flush(self) -> None:
        if self._flushing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("flush_deferred_no_loop", pending_reports=len(self._queue))
            return
        task = loop.create_task(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def _delivery_policy(self) -> RetryPolicy:
        delay = self._config.retry_delay_seconds
        return API_CALL_POLICY.with_overrides(
            max_attempts=self._config.max_retries,
            base_delay=delay,
            max_delay=delay * 4,
        )

    async def flush(self) -> bool:
        """Deliver every queued report as one batch.

        At most one flush is in flight at a time; a call made while one is
        running returns False immediately.

        Returns:
            True if the batch was delivered (or there was nothing to do),
            False if it was requeued.
        """
        if self._flushing:
            self._logger.debug("flush_skipped_in_flight")
            return False
        if not self._queue:
            return True

        self._flushing = True
        batch, self._queue = self._queue, []
        self._stats.pending_reports = 0
        try:
            delivered = await self._deliver(batch)
        except BaseException:
            self._requeue(batch)
            raise
        finally:
            self._flushing = False

        if not delivered:
            self._requeue(batch)
            self._logger.error(
                "reports_requeued",
                report_count=len(batch),
                pending_reports=len(self._queue),
            )
            return False

        now = utc_now()
        self._stats.last_reported = now
        self._stats.last_flush = now
        self._stats.pending_reports = len(self._queue)
        self._logger.info("reports_flushed", report_count=len(batch))

        if len(self._queue) >= self._config.batch_size:
            self._schedule_flush()
        return True

    def _requeue(self, batch: list[ErrorReport]) -> None:
        self._queue[:0] = batch
        self._enforce_capacity()
        self._stats.pending_reports = len(self._queue)

    async def _deliver(self, batch: list[ErrorReport]) -> bool:
        sender = self._sender
        if sender is None:
            self._logger.debug(
                "reports_not_sent_no_endpoint",
                report_count=len(batch),
                reports=[report.summary() for report in batch],
            )
            return True

        config = self._config

        async def send_batch() -> None:
            await sender.send(build_payload(batch, config.app_version, config.platform))

        result = await self._executor.run(send_batch, self._delivery_policy(), _DELIVERY_CONTEXT)
        if not result.ok:
            self._logger.warning(
                "report_delivery_failed",
                code=result.error.code,
                error=result.error.message,
                attempts=result.attempts,
            )
        return result.ok

    # -------------------------------------------------------------------------
    # Timer and lifecycle
    # -------------------------------------------------------------------------

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self._config.flush_interval_seconds)
            # Flush runs in its own task so cancelling the timer never
            # interrupts a delivery in flight
            self._schedule_flush()

    def _start_timer(self) -> None:
        if self.timer_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("flush_timer_deferred_no_loop")
            return
        self._timer_task = loop.create_task(self._run_timer())
        self._logger.debug(
            "flush_timer_started",
            interval_seconds=self._config.flush_interval_seconds,
        )

    def _cancel_timer(self) -> asyncio.Task[None] | None:
        task, self._timer_task = self._timer_task, None
        if task is not None and not task.done():
            task.cancel()
        return task

    async def start(self) -> None:
        """Start the periodic flush timer when reporting is enabled."""
        self._started = True
        if self._config.enabled:
            self._start_timer()
        self._logger.info(
            "reporting_started",
            enabled=self._config.enabled,
            endpoint_configured=self._sender is not None,
            batch_size=self._config.batch_size,
        )

    async def stop(self, flush: bool = True) -> None:
        """Stop the timer, wait for flushes in flight, then flush once more.

        The final flush is best effort: reports that still fail delivery
        stay queued and are lost when the process exits.
        """
        self._started = False
        task = self._cancel_timer()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        while pending := [t for t in self._flush_tasks if not t.done()]:
            await asyncio.gather(*pending, return_exceptions=True)
        if flush and self._queue:
            await self.flush()
        if self._sender is not None:
            await self._sender.close()
        self._logger.info("reporting_stopped", pending_reports=len(self._queue))

    async def __aenter__(self) -> ReportDispatcher:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -------------------------------------------------------------------------
    # Runtime control
    # -------------------------------------------------------------------------

    def set_enabled(self, enabled: bool) -> None:
        """Turn reporting on or off.

        Disabling stops the timer but leaves any delivery in flight alone.
        """
        self._config = self._config.model_copy(update={"enabled": enabled})
        if enabled:
            if self._started:
                self._start_timer()
        else:
            self._cancel_timer()
        self._logger.info("reporting_enabled_changed", enabled=enabled)

    async def update_config(self, **changes: Any) -> ReportingConfig:
        """Apply and validate config changes.

        Raises:
            pydantic.ValidationError: If the merged config is invalid; the
                current config is left untouched.
        """
        merged = ReportingConfig.model_validate({**self._config.model_dump(), **changes})
        self._config = merged

        if self._owns_sender and _SENDER_FIELDS.intersection(changes):
            old, self._sender = self._sender, self._create_sender(merged)
            if old is not None:
                await old.close()

        if "flush_interval_seconds" in changes or "enabled" in changes:
            self._cancel_timer()
            if merged.enabled and self._started:
                self._start_timer()

        self._logger.info("reporting_config_updated", fields=sorted(changes))
        return merged

    def clear_reports(self) -> int:
        """Drop every queued report. Returns how many were dropped."""
        count = len(self._queue)
        self._queue = []
        self._stats.pending_reports = 0
        self._logger.info("reports_cleared", report_count=count)
        return count

    def get_stats(self) -> ReportingStats:
        """Independent copy of the current counters."""
        self._stats.pending_reports = len(self._queue)
        return self._stats.snapshot()
