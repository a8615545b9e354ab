"""Data models for error classification.

This module provides:
- ErrorContext: caller-supplied context at the point of failure
- CanonicalError: the normalized, immutable form of any failure
- ClassifiedError: a canonical error with its category and severity
- UserFriendlyError: presentation-layer view of an error
- Success / Failure: result values returned instead of raising
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Generic, TypeVar, Union

from gutsafe.utils.time import coerce_timestamp, utc_now

from .codes import ErrorCategory, Severity

T = TypeVar("T")


@dataclass
class ErrorContext:
    """Context supplied by the caller where a failure happened.

    Created per call and merged into the error details and the report; it
    is never stored on its own.
    """

    operation: str | None = None
    service: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    user_agent: str | None = None
    url: str | None = None
    additional_data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def coerce(cls, value: ErrorContext | Mapping[str, Any] | None) -> ErrorContext:
        """Build an ErrorContext from a context, a plain mapping, or None.

        Mapping keys that are not ErrorContext fields are kept in
        ``additional_data``. A ``timestamp`` that is not a datetime is parsed
        as ISO 8601, falling back to now.
        """
        if isinstance(value, ErrorContext):
            return value
        if value is None:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, item in value.items():
            if key in known:
                kwargs[key] = item
            else:
                extra[key] = item
        if extra:
            kwargs["additional_data"] = {**dict(kwargs.get("additional_data") or {}), **extra}
        if "timestamp" in kwargs:
            kwargs["timestamp"] = coerce_timestamp(kwargs["timestamp"])
        return cls(**kwargs)

    def with_service(self, service: str | None) -> ErrorContext:
        """Copy of this context with ``service`` filled in when it was unset."""
        if service is None or self.service is not None:
            return self
        return replace(self, service=service)

    def to_dict(self, include_timestamp: bool = True) -> dict[str, Any]:
        """JSON-ready dict without unset fields."""
        result: dict[str, Any] = {}
        for name in ("operation", "service", "user_id", "session_id", "user_agent", "url"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.additional_data:
            result["additional_data"] = dict(self.additional_data)
        if include_timestamp:
            result["timestamp"] = self.timestamp.isoformat()
        return result


@dataclass(frozen=True)
class CanonicalError:
    """The single normalized shape every failure is converted into.

    Instances are immutable; ``with_details`` returns a new value.

    Attributes:
        code: Short machine-readable identifier, e.g. ``NETWORK_ERROR``.
        message: Human-readable description.
        timestamp: When the error was normalized (UTC), unless the failure
            already carried one.
        details: Caller context and failure metadata.
        stack: Raw traceback text. Reported, never shown to end users.
    """

    code: str
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    details: Mapping[str, Any] = field(default_factory=dict)
    stack: str | None = None

    def with_details(self, details: Mapping[str, Any]) -> CanonicalError:
        """New error with ``details`` merged over the existing details."""
        return replace(self, details={**self.details, **details})

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "details": dict(self.details),
            "stack": self.stack,
        }


@dataclass(frozen=True)
class ClassifiedError:
    """A canonical error with its derived category and severity."""

    error: CanonicalError
    category: ErrorCategory
    severity: Severity

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message


@dataclass(frozen=True)
class UserFriendlyError:
    """What a presentation layer shows for an error.

    ``can_retry``, not severity, decides whether a retry action is offered.
    """

    title: str
    message: str
    can_retry: bool
    severity: Severity
    category: ErrorCategory
    action: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "title": self.title,
            "message": self.message,
            "can_retry": self.can_retry,
            "severity": self.severity.name,
            "category": self.category.value,
        }
        if self.action is not None:
            result["action"] = self.action
        return result


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome of a wrapped operation."""

    value: T
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Failed outcome of a wrapped operation, already classified."""

    error: CanonicalError
    category: ErrorCategory = ErrorCategory.UNKNOWN
    severity: Severity = Severity.LOW
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_classified(cls, classified: ClassifiedError, attempts: int = 1) -> Failure:
        return cls(
            error=classified.error,
            category=classified.category,
            severity=classified.severity,
            attempts=attempts,
        )


Result = Union[Success[T], Failure]
