"""Tests for HttpReportSender and MockReportSender."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from gutsafe.core.config import ReportingConfig
from gutsafe.core.errors import CanonicalError, ErrorCategory, ReportDeliveryError, Severity
from gutsafe.execution import RetryExecutor
from gutsafe.reporting import HttpReportSender, MockReportSender, ReportDispatcher

ENDPOINT = "https://reports.example.com/v1/errors"


def mock_client(response: MagicMock | None = None, side_effect=None) -> MagicMock:
    client = MagicMock()
    client.is_closed = False
    client.post = AsyncMock(return_value=response, side_effect=side_effect)
    client.aclose = AsyncMock()
    return client


def mock_response(status_code: int, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.text = text
    return response


class TestHttpReportSenderInit:
    def test_headers(self):
        sender = HttpReportSender(ENDPOINT, api_key="secret", app_version="2.0.0")
        assert sender._headers["Authorization"] == "Bearer secret"
        assert sender._headers["Content-Type"] == "application/json"
        assert sender._headers["User-Agent"] == "GutSafe-App/2.0.0"

    def test_no_api_key_means_no_authorization(self):
        sender = HttpReportSender(ENDPOINT)
        assert "Authorization" not in sender._headers

    @pytest.mark.asyncio
    async def test_client_is_created_lazily_with_headers(self):
        sender = HttpReportSender(ENDPOINT, api_key="secret", timeout=5.0)
        assert sender._client is None

        client = await sender._get_client()
        assert client.headers["authorization"] == "Bearer secret"
        assert client.timeout.read == 5.0
        assert await sender._get_client() is client

        await sender.close()
        assert sender._client is None


class TestHttpReportSenderSend:
    @pytest.mark.asyncio
    async def test_posts_json_body(self):
        sender = HttpReportSender(ENDPOINT)
        sender._client = mock_client(mock_response(200))
        payload = {
            "reports": [{"id": "err_1"}],
            "metadata": {"timestamp": datetime(2024, 5, 1, tzinfo=UTC)},
        }

        await sender.send(payload)

        call = sender._client.post.call_args
        assert call.args[0] == ENDPOINT
        body = json.loads(call.kwargs["content"])
        assert body["reports"] == [{"id": "err_1"}]
        assert body["metadata"]["timestamp"].startswith("2024-05-01")

    @pytest.mark.parametrize(
        "status, code",
        [
            (408, "TIMEOUT_ERROR"),
            (504, "TIMEOUT_ERROR"),
            (429, "RATE_LIMIT_ERROR"),
            (500, "SERVICE_ERROR"),
            (503, "SERVICE_ERROR"),
            (400, "DELIVERY_REJECTED"),
            (401, "DELIVERY_REJECTED"),
        ],
    )
    @pytest.mark.asyncio
    async def test_status_codes_map_to_error_codes(self, status: int, code: str):
        sender = HttpReportSender(ENDPOINT)
        sender._client = mock_client(mock_response(status, "nope"))

        with pytest.raises(ReportDeliveryError) as exc_info:
            await sender.send({"reports": []})

        assert exc_info.value.code == code
        assert exc_info.value.status == status
        assert exc_info.value.details["url"] == ENDPOINT
        assert f"HTTP {status}" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        sender = HttpReportSender(ENDPOINT)
        sender._client = mock_client(side_effect=httpx.ConnectTimeout("slow"))

        with pytest.raises(ReportDeliveryError) as exc_info:
            await sender.send({"reports": []})

        assert exc_info.value.code == "TIMEOUT_ERROR"
        assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        sender = HttpReportSender(ENDPOINT)
        sender._client = mock_client(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ReportDeliveryError) as exc_info:
            await sender.send({"reports": []})

        assert exc_info.value.code == "NETWORK_ERROR"

    @pytest.mark.asyncio
    async def test_close(self):
        sender = HttpReportSender(ENDPOINT)
        client = mock_client()
        sender._client = client

        await sender.close()

        client.aclose.assert_awaited_once()
        assert sender._client is None


class TestHttpDelivery:
    """Dispatcher and HTTP sender together, over httpx's mock transport."""

    @pytest.mark.asyncio
    async def test_service_error_then_success(self, sleep_recorder):
        statuses = iter([503, 200])
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(next(statuses))

        config = ReportingConfig(endpoint=ENDPOINT, api_key="k", retry_delay_seconds=0.5)
        dispatcher = ReportDispatcher(config, executor=RetryExecutor(sleep=sleep_recorder))
        dispatcher._sender._client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            headers=dispatcher._sender._headers,
        )

        dispatcher.report_error(
            CanonicalError(code="NETWORK_ERROR", message="offline"),
            severity=Severity.MEDIUM,
            category=ErrorCategory.NETWORK,
        )
        assert await dispatcher.flush() is True

        assert len(requests) == 2
        assert sleep_recorder.delays == [0.5]
        assert requests[-1].headers["authorization"] == "Bearer k"
        body = json.loads(requests[-1].content)
        assert body["reports"][0]["error"]["code"] == "NETWORK_ERROR"
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_rejected_batch_is_not_retried(self, sleep_recorder):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad payload")

        dispatcher = ReportDispatcher(
            ReportingConfig(endpoint=ENDPOINT),
            executor=RetryExecutor(sleep=sleep_recorder),
        )
        dispatcher._sender._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        dispatcher.report_error(CanonicalError(code="X", message="x"))
        assert await dispatcher.flush() is False

        assert len(calls) == 1
        assert sleep_recorder.delays == []
        assert len(dispatcher.queued_reports) == 1
        await dispatcher.stop(flush=False)


class TestMockReportSender:
    @pytest.mark.asyncio
    async def test_records_payloads(self):
        sender = MockReportSender()
        await sender.send({"reports": [{"id": "a"}, {"id": "b"}]})
        assert sender.sent_reports == [{"id": "a"}, {"id": "b"}]
        assert sender.call_count == 1

    @pytest.mark.asyncio
    async def test_fail_next(self):
        sender = MockReportSender()
        sender.set_fail_next(1, RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await sender.send({"reports": []})
        await sender.send({"reports": []})

        assert sender.call_count == 2
        assert len(sender.sent_payloads) == 1

    @pytest.mark.asyncio
    async def test_close(self):
        sender = MockReportSender()
        await sender.close()
        assert sender.closed
