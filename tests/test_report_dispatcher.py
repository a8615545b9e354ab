"""Tests for ReportDispatcher: batching, requeue, timer and lifecycle."""

import asyncio
from typing import Any

import pytest
from pydantic import ValidationError

from gutsafe.core.config import ReportingConfig
from gutsafe.core.errors import (
    CanonicalError,
    ErrorCategory,
    ErrorCode,
    ErrorContext,
    ReportDeliveryError,
    Severity,
)
from gutsafe.execution import RetryExecutor
from gutsafe.reporting import (
    ErrorReport,
    HttpReportSender,
    MockReportSender,
    ReportDispatcher,
)


def make_error(code: str = "NETWORK_ERROR", message: str = "offline") -> CanonicalError:
    return CanonicalError(code=code, message=message)


def report(
    dispatcher: ReportDispatcher,
    code: str = "NETWORK_ERROR",
    service: str | None = "scanner",
) -> ErrorReport | None:
    return dispatcher.report_error(
        make_error(code),
        ErrorContext(service=service, user_id="u-1"),
        Severity.MEDIUM,
        ErrorCategory.NETWORK,
    )


async def settle(rounds: int = 5) -> None:
    """Let tasks scheduled on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class GatedSender:
    """Sender that blocks inside ``send`` until the test opens the gate."""

    def __init__(self, fail: bool) -> None:
        self.fail = fail
        self.started = asyncio.Event()
        self.gate = asyncio.Event()
        self.payloads: list[dict[str, Any]] = []

    async def send(self, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)
        self.started.set()
        await self.gate.wait()
        if self.fail:
            raise ReportDeliveryError("rejected", code=ErrorCode.DELIVERY_REJECTED.value)

    async def close(self) -> None:
        pass


# =============================================================================
# Queueing
# =============================================================================


class TestReportError:
    def test_queues_report_and_updates_stats(self, dispatcher: ReportDispatcher):
        queued = report(dispatcher)

        assert isinstance(queued, ErrorReport)
        assert queued.id.startswith("err_")
        assert queued.user_id == "u-1"
        assert dispatcher.queued_reports == [queued]

        stats = dispatcher.get_stats()
        assert stats.total_errors == 1
        assert stats.pending_reports == 1
        assert stats.errors_by_severity[Severity.MEDIUM] == 1
        assert stats.errors_by_category[ErrorCategory.NETWORK] == 1
        assert stats.errors_by_service == {"scanner": 1}

    def test_report_defaults(self, dispatcher: ReportDispatcher):
        queued = dispatcher.report_error(make_error(), ErrorContext())
        assert queued is not None
        assert queued.user_id == "anonymous"
        assert queued.session_id == "unknown"
        assert queued.stack_trace == "No stack trace available"
        assert dispatcher.get_stats().errors_by_service == {"unknown": 1}

    def test_ids_are_unique(self, dispatcher: ReportDispatcher):
        ids = {report(dispatcher).id for _ in range(2)}
        assert len(ids) == 2

    def test_disabled_reporting_ignores_errors(self, dispatcher: ReportDispatcher):
        dispatcher.set_enabled(False)
        assert report(dispatcher) is None
        assert dispatcher.queued_reports == []
        assert dispatcher.get_stats().total_errors == 0

    def test_no_running_loop_defers_flush(self, dispatcher: ReportDispatcher):
        for _ in range(4):
            report(dispatcher)
        assert len(dispatcher.queued_reports) == 4

    def test_stats_snapshot_is_independent(self, dispatcher: ReportDispatcher):
        report(dispatcher)
        snapshot = dispatcher.get_stats()
        snapshot.total_errors = 99
        snapshot.errors_by_service["scanner"] = 99
        fresh = dispatcher.get_stats()
        assert fresh.total_errors == 1
        assert fresh.errors_by_service["scanner"] == 1

    def test_unserializable_report_is_not_queued(self, dispatcher: ReportDispatcher):
        bad_context = ErrorContext(operation="scan", timestamp="2024-01-01")  # type: ignore[arg-type]

        assert dispatcher.report_error(make_error(), bad_context) is None
        assert dispatcher.queued_reports == []
        assert dispatcher.get_stats().total_errors == 0

    def test_clear_reports(self, dispatcher: ReportDispatcher):
        report(dispatcher)
        report(dispatcher)
        assert dispatcher.clear_reports() == 2
        assert dispatcher.queued_reports == []
        assert dispatcher.get_stats().pending_reports == 0


class TestQueueCap:
    def _dispatcher(self, policy: str) -> ReportDispatcher:
        config = ReportingConfig(batch_size=5, max_queue_size=5, overflow_policy=policy)
        return ReportDispatcher(config, sender=MockReportSender())

    def test_drop_oldest(self):
        dispatcher = self._dispatcher("drop_oldest")
        reports = [report(dispatcher) for _ in range(7)]

        assert dispatcher.queued_reports == reports[2:]
        assert dispatcher.get_stats().dropped_reports == 2

    def test_drop_newest(self):
        dispatcher = self._dispatcher("drop_newest")
        reports = [report(dispatcher) for _ in range(7)]

        assert dispatcher.queued_reports == reports[:5]
        assert dispatcher.get_stats().dropped_reports == 2

    def test_queue_cap_must_hold_a_batch(self):
        with pytest.raises(ValidationError):
            ReportingConfig(batch_size=10, max_queue_size=5)


# =============================================================================
# Flushing
# =============================================================================


class TestFlush:
    @pytest.mark.asyncio
    async def test_batch_size_triggers_flush(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        report(dispatcher)
        report(dispatcher)
        await settle()
        assert mock_sender.sent_payloads == []

        report(dispatcher)
        await settle()

        assert len(mock_sender.sent_payloads) == 1
        assert len(mock_sender.sent_reports) == 3
        assert dispatcher.queued_reports == []

    @pytest.mark.asyncio
    async def test_payload_format(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        queued = report(dispatcher)
        assert await dispatcher.flush() is True

        payload = mock_sender.sent_payloads[0]
        assert set(payload) == {"reports", "metadata"}
        assert payload["metadata"]["appVersion"] == "1.0.0"
        assert payload["metadata"]["platform"] == "python"
        assert "timestamp" in payload["metadata"]

        sent = payload["reports"][0]
        assert sent["id"] == queued.id
        assert sent["severity"] == "MEDIUM"
        assert sent["category"] == "NETWORK"
        assert sent["userId"] == "u-1"
        assert sent["error"]["code"] == "NETWORK_ERROR"
        assert sent["context"]["service"] == "scanner"
        assert sent["context"]["userId"] == "u-1"

    @pytest.mark.asyncio
    async def test_context_mapping_with_string_timestamp_is_delivered(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        context = ErrorContext.coerce(
            {"operation": "scan", "timestamp": "2024-01-01T00:00:00"}
        )
        first = dispatcher.report_error(make_error(), context)
        second = report(dispatcher)

        assert await dispatcher.flush() is True
        assert dispatcher.queued_reports == []
        assert [r["id"] for r in mock_sender.sent_reports] == [first.id, second.id]
        assert mock_sender.sent_reports[0]["context"]["timestamp"] == "2024-01-01T00:00:00"

    @pytest.mark.asyncio
    async def test_success_updates_stats(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        report(dispatcher)
        assert await dispatcher.flush() is True

        stats = dispatcher.get_stats()
        assert stats.pending_reports == 0
        assert stats.last_flush is not None
        assert stats.last_reported == stats.last_flush

    @pytest.mark.asyncio
    async def test_empty_queue_is_a_successful_noop(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        assert await dispatcher.flush() is True
        assert mock_sender.call_count == 0

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(
        self,
        dispatcher: ReportDispatcher,
        mock_sender: MockReportSender,
        sleep_recorder,
    ):
        mock_sender.set_fail_next(1)
        report(dispatcher)

        assert await dispatcher.flush() is True
        assert mock_sender.call_count == 2
        assert sleep_recorder.delays == [0.01]

    @pytest.mark.asyncio
    async def test_exhausted_delivery_requeues_in_order(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        mock_sender.set_fail_next(2)
        first = report(dispatcher)
        second = report(dispatcher)

        assert await dispatcher.flush() is False

        assert dispatcher.queued_reports == [first, second]
        stats = dispatcher.get_stats()
        assert stats.pending_reports == 2
        assert stats.last_flush is None
        assert stats.last_reported is None

    @pytest.mark.asyncio
    async def test_failed_batch_goes_ahead_of_reports_queued_meanwhile(
        self, executor: RetryExecutor
    ):
        sender = GatedSender(fail=True)
        dispatcher = ReportDispatcher(
            ReportingConfig(batch_size=10, flush_interval_seconds=3600),
            sender=sender,
            executor=executor,
        )
        a = report(dispatcher)
        b = report(dispatcher)

        in_flight = asyncio.create_task(dispatcher.flush())
        await sender.started.wait()
        c = report(dispatcher)

        assert dispatcher.is_flushing
        assert await dispatcher.flush() is False

        sender.gate.set()
        assert await in_flight is False

        assert dispatcher.queued_reports == [a, b, c]
        assert dispatcher.get_stats().pending_reports == 3

    @pytest.mark.asyncio
    async def test_reports_queued_during_delivery_stay_out_of_batch(
        self, executor: RetryExecutor
    ):
        sender = GatedSender(fail=False)
        dispatcher = ReportDispatcher(
            ReportingConfig(batch_size=10, flush_interval_seconds=3600),
            sender=sender,
            executor=executor,
        )
        a = report(dispatcher)

        in_flight = asyncio.create_task(dispatcher.flush())
        await sender.started.wait()
        late = report(dispatcher)
        sender.gate.set()
        assert await in_flight is True

        assert [r["id"] for r in sender.payloads[0]["reports"]] == [a.id]
        assert dispatcher.queued_reports == [late]

    @pytest.mark.asyncio
    async def test_follow_up_flush_when_queue_refilled(
        self, reporting_config: ReportingConfig, executor: RetryExecutor
    ):
        sender = GatedSender(fail=False)
        dispatcher = ReportDispatcher(reporting_config, sender=sender, executor=executor)
        for _ in range(3):
            report(dispatcher)
        await sender.started.wait()

        for _ in range(3):
            report(dispatcher)
        sender.gate.set()
        await settle(20)

        assert len(sender.payloads) == 2
        assert dispatcher.queued_reports == []


class TestNoEndpoint:
    @pytest.mark.asyncio
    async def test_timer_flush_without_endpoint(self):
        dispatcher = ReportDispatcher(
            ReportingConfig(batch_size=10, flush_interval_seconds=0.05)
        )
        await dispatcher.start()
        try:
            for _ in range(5):
                report(dispatcher)
            assert dispatcher.get_stats().pending_reports == 5

            await asyncio.sleep(0.2)

            stats = dispatcher.get_stats()
            assert stats.pending_reports == 0
            assert stats.last_flush is not None
        finally:
            await dispatcher.stop()

    def test_endpoint_builds_http_sender(self):
        dispatcher = ReportDispatcher(ReportingConfig(endpoint="https://reports.example.com"))
        assert isinstance(dispatcher._sender, HttpReportSender)

    def test_endpoint_from_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GUTSAFE_TEST_REPORT_URL", "https://env.example.com")
        config = ReportingConfig(endpoint_env="GUTSAFE_TEST_REPORT_URL")
        dispatcher = ReportDispatcher(config)
        assert dispatcher._sender.endpoint == "https://env.example.com"


# =============================================================================
# Lifecycle and runtime control
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_timer(self, dispatcher: ReportDispatcher):
        await dispatcher.start()
        assert dispatcher.timer_running
        await dispatcher.stop()
        assert not dispatcher.timer_running

    @pytest.mark.asyncio
    async def test_disabled_config_starts_without_timer(self, mock_sender: MockReportSender):
        dispatcher = ReportDispatcher(ReportingConfig(enabled=False), sender=mock_sender)
        await dispatcher.start()
        assert not dispatcher.timer_running
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_set_enabled_toggles_timer(self, dispatcher: ReportDispatcher):
        await dispatcher.start()

        dispatcher.set_enabled(False)
        assert not dispatcher.timer_running
        assert not dispatcher.enabled

        dispatcher.set_enabled(True)
        assert dispatcher.timer_running

        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_disabling_does_not_cancel_delivery_in_flight(
        self, executor: RetryExecutor
    ):
        sender = GatedSender(fail=False)
        dispatcher = ReportDispatcher(
            ReportingConfig(batch_size=10, flush_interval_seconds=3600),
            sender=sender,
            executor=executor,
        )
        await dispatcher.start()
        report(dispatcher)
        in_flight = asyncio.create_task(dispatcher.flush())
        await sender.started.wait()

        dispatcher.set_enabled(False)
        sender.gate.set()

        assert await in_flight is True
        assert dispatcher.get_stats().last_flush is not None
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_stop_flushes_and_closes_sender(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        await dispatcher.start()
        report(dispatcher)
        report(dispatcher)

        await dispatcher.stop()

        assert len(mock_sender.sent_reports) == 2
        assert mock_sender.closed

    @pytest.mark.asyncio
    async def test_async_context_manager(
        self, dispatcher: ReportDispatcher, mock_sender: MockReportSender
    ):
        async with dispatcher:
            report(dispatcher)
        assert len(mock_sender.sent_reports) == 1

    @pytest.mark.asyncio
    async def test_update_config(self, dispatcher: ReportDispatcher):
        updated = await dispatcher.update_config(batch_size=7, max_retries=5)
        assert updated.batch_size == 7
        assert dispatcher.config.max_retries == 5

    @pytest.mark.asyncio
    async def test_invalid_update_keeps_current_config(self, dispatcher: ReportDispatcher):
        with pytest.raises(ValidationError):
            await dispatcher.update_config(batch_size=0)
        assert dispatcher.config.batch_size == 3

    @pytest.mark.asyncio
    async def test_update_endpoint_replaces_owned_sender(self):
        dispatcher = ReportDispatcher(ReportingConfig())
        assert dispatcher._sender is None

        await dispatcher.update_config(endpoint="https://reports.example.com")
        assert isinstance(dispatcher._sender, HttpReportSender)
        assert dispatcher._sender.endpoint == "https://reports.example.com"

    @pytest.mark.asyncio
    async def test_update_interval_restarts_timer(self, dispatcher: ReportDispatcher):
        await dispatcher.start()
        await dispatcher.update_config(flush_interval_seconds=10)
        assert dispatcher.timer_running
        await dispatcher.stop()
