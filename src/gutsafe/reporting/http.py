"""HTTP delivery of error report batches using httpx.

Each call to ``send`` makes exactly one POST; retries and requeueing are
the dispatcher's job. Failures are raised as ``ReportDeliveryError`` with a
code the retry policy understands.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from gutsafe.core.errors import ErrorCode, ReportDeliveryError
from gutsafe.core.logging import get_logger

_logger = get_logger("reporting.http")


def _code_for_status(status: int) -> str:
    if status in (408, 504):
        return ErrorCode.TIMEOUT_ERROR.value
    if status == 429:
        return ErrorCode.RATE_LIMIT_ERROR.value
    if status >= 500:
        return ErrorCode.SERVICE_ERROR.value
    return ErrorCode.DELIVERY_REJECTED.value


class HttpReportSender:
    """POSTs report batches to the reporting endpoint.

    Example usage:
        sender = HttpReportSender(
            endpoint="https://reports.example.com/v1/errors",
            api_key="secret",
        )
        await sender.send(payload)
        await sender.close()

    Args:
        endpoint: URL batches are POSTed to.
        api_key: Sent as a Bearer token when set.
        timeout: Per-request timeout in seconds.
        app_version: Used in the User-Agent header.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        app_version: str = "1.0.0",
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._headers = {
            "Content-Type": "application/json",
            "User-Agent": f"GutSafe-App/{app_version}",
        }
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._client: httpx.AsyncClient | None = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers=self._headers,
            )
        return self._client

    async def send(self, payload: dict[str, Any]) -> None:
        """POST one batch.

        Raises:
            ReportDeliveryError: On timeouts, transport errors and non-2xx
                responses.
        """
        body = json.dumps(payload, default=str)
        client = await self._get_client()

        try:
            response = await client.post(self._endpoint, content=body)
        except httpx.TimeoutException as exc:
            raise ReportDeliveryError(
                "Report delivery timed out",
                url=self._endpoint,
                method="POST",
                code=ErrorCode.TIMEOUT_ERROR.value,
            ) from exc
        except httpx.RequestError as exc:
            raise ReportDeliveryError(
                f"Report delivery failed: {exc}",
                url=self._endpoint,
                method="POST",
                code=ErrorCode.NETWORK_ERROR.value,
            ) from exc

        if not response.is_success:
            raise ReportDeliveryError(
                f"HTTP {response.status_code}: {response.text[:100]}",
                status=response.status_code,
                url=self._endpoint,
                method="POST",
                code=_code_for_status(response.status_code),
            )

        _logger.debug(
            "report_batch_sent",
            report_count=len(payload.get("reports", [])),
            status_code=response.status_code,
        )

    async def close(self) -> None:
        """Close the pooled HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class MockReportSender:
    """Records payloads instead of making HTTP calls.

    Useful for tests and for wiring the dispatcher without a backend.
    """

    def __init__(self) -> None:
        self.sent_payloads: list[dict[str, Any]] = []
        self.call_count = 0
        self.closed = False
        self._failures_left = 0
        self._failure: Exception | None = None

    def set_fail_next(self, count: int = 1, error: Exception | None = None) -> None:
        """Make the next ``count`` sends raise ``error``.

        Defaults to a retryable ``NETWORK_ERROR``.
        """
        self._failures_left = count
        self._failure = error

    async def send(self, payload: dict[str, Any]) -> None:
        self.call_count += 1
        if self._failures_left > 0:
            self._failures_left -= 1
            raise self._failure or ReportDeliveryError(
                "Simulated delivery failure",
                code=ErrorCode.NETWORK_ERROR.value,
            )
        self.sent_payloads.append(payload)

    async def close(self) -> None:
        self.closed = True

    @property
    def sent_reports(self) -> list[dict[str, Any]]:
        """All delivered reports, flattened across batches."""
        return [report for payload in self.sent_payloads for report in payload["reports"]]
