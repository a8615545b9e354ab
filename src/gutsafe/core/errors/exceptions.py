"""Typed application exceptions.

Raise these from application code when the failure domain is known; the
classifier treats them as already canonical and keeps their ``code``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from gutsafe.utils.time import utc_now

from .codes import ErrorCode


class AppError(Exception):
    """Base class for failures that carry a code, details and a timestamp."""

    default_code: str = ErrorCode.UNKNOWN_ERROR.value

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: dict[str, Any] = dict(details or {})
        self.timestamp = timestamp or utc_now()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NetworkError(AppError):
    """A request could not reach its destination or got a bad status."""

    default_code = ErrorCode.NETWORK_ERROR.value

    def __init__(
        self,
        message: str,
        status: int | None = None,
        url: str | None = None,
        method: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status = status
        self.url = url
        self.method = method
        for key in ("status", "url", "method"):
            value = getattr(self, key)
            if value is not None:
                self.details.setdefault(key, value)


class RequestTimeoutError(AppError):
    default_code = ErrorCode.TIMEOUT_ERROR.value

    def __init__(self, message: str, timeout_seconds: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.timeout_seconds = timeout_seconds
        if timeout_seconds is not None:
            self.details.setdefault("timeout_seconds", timeout_seconds)


class InputValidationError(AppError):
    """User or API input did not match what was expected."""

    default_code = ErrorCode.VALIDATION_ERROR.value

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.expected = expected
        if field is not None:
            self.details.setdefault("field", field)
        if expected is not None:
            self.details.setdefault("expected", expected)


class DatabaseError(AppError):
    default_code = ErrorCode.DATABASE_ERROR.value

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        table: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.operation = operation
        self.table = table
        if operation is not None:
            self.details.setdefault("operation", operation)
        if table is not None:
            self.details.setdefault("table", table)


class ServiceError(AppError):
    default_code = ErrorCode.SERVICE_ERROR.value

    def __init__(
        self,
        message: str,
        service: str | None = None,
        operation: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.service = service
        self.operation = operation
        if service is not None:
            self.details.setdefault("service", service)
        if operation is not None:
            self.details.setdefault("operation", operation)


class ReportDeliveryError(NetworkError):
    """The reporting endpoint could not be reached or refused a batch."""
