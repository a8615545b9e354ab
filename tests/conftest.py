"""Pytest fixtures for gutsafe tests."""

import logging
from collections.abc import Generator

import pytest
import structlog

from gutsafe.core.config import ReportingConfig
from gutsafe.core.errors import ErrorClassifier
from gutsafe.core.logging import clear_context
from gutsafe.execution import RetryExecutor
from gutsafe.reporting import MockReportSender, ReportDispatcher


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset structlog, root handlers and request context around each test."""
    structlog.reset_defaults()
    clear_context()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    structlog.reset_defaults()
    clear_context()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.fixture
def executor(sleep_recorder: SleepRecorder) -> RetryExecutor:
    """Retry executor whose backoff sleeps return immediately."""
    return RetryExecutor(sleep=sleep_recorder)


@pytest.fixture
def mock_sender() -> MockReportSender:
    return MockReportSender()


@pytest.fixture
def reporting_config() -> ReportingConfig:
    """Small batches, long timer: flushes only happen when a test asks."""
    return ReportingConfig(
        batch_size=3,
        flush_interval_seconds=3600,
        max_retries=2,
        retry_delay_seconds=0.01,
        max_queue_size=50,
    )


@pytest.fixture
def dispatcher(
    reporting_config: ReportingConfig,
    mock_sender: MockReportSender,
    executor: RetryExecutor,
) -> ReportDispatcher:
    return ReportDispatcher(reporting_config, sender=mock_sender, executor=executor)
