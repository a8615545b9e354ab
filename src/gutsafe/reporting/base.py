"""Error reporting base types and protocols.

Provides the data carried through the report queue:
- ErrorReport: one classified error plus its context, queued for delivery
- ReportingStats: running counters owned by the dispatcher
- ReportSender: protocol for delivery backends
- build_payload: the JSON body sent to the reporting endpoint
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from gutsafe.core.errors import CanonicalError, ErrorCategory, ErrorContext, Severity
from gutsafe.utils.time import epoch_millis, utc_now


def generate_report_id() -> str:
    """Unique report id, ``err_<epoch millis>_<9 hex chars>``."""
    return f"err_{epoch_millis()}_{uuid.uuid4().hex[:9]}"


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass
class ErrorReport:
    """A classified error queued for delivery.

    Lifecycle: queued -> in flight -> delivered, or back to queued (at the
    front of the queue) when delivery fails.
    """

    id: str
    error: CanonicalError
    context: ErrorContext
    severity: Severity
    category: ErrorCategory
    timestamp: datetime = field(default_factory=utc_now)
    user_id: str = "anonymous"
    session_id: str = "unknown"
    user_agent: str = "unknown"
    url: str = "unknown"
    stack_trace: str = "No stack trace available"
    additional_data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        error: CanonicalError,
        context: ErrorContext,
        severity: Severity,
        category: ErrorCategory,
        extra: dict[str, Any] | None = None,
    ) -> ErrorReport:
        """Build a report, filling identity fields from ``context``.

        ``extra`` is merged over the context's ``additional_data``.
        """
        return cls(
            id=generate_report_id(),
            error=error,
            context=context,
            severity=severity,
            category=category,
            user_id=context.user_id or "anonymous",
            session_id=context.session_id or "unknown",
            user_agent=context.user_agent or "unknown",
            url=context.url or "unknown",
            stack_trace=error.stack or "No stack trace available",
            additional_data={**context.additional_data, **(extra or {})},
        )

    @property
    def service(self) -> str:
        return self.context.service or "unknown"

    def to_dict(self) -> dict[str, Any]:
        """Wire form of the report (camelCase keys)."""
        return {
            "id": self.id,
            "error": self.error.to_dict(),
            "context": {_to_camel(k): v for k, v in self.context.to_dict().items()},
            "severity": self.severity.name,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
            "userId": self.user_id,
            "sessionId": self.session_id,
            "userAgent": self.user_agent,
            "url": self.url,
            "stackTrace": self.stack_trace,
            "additionalData": self.additional_data,
        }

    def summary(self) -> dict[str, Any]:
        """Short form for log entries."""
        return {
            "id": self.id,
            "severity": self.severity.name,
            "category": self.category.value,
            "code": self.error.code,
        }


@dataclass
class ReportingStats:
    """Running reporting counters.

    Mutated only by the dispatcher; callers get copies from ``snapshot()``.
    ``last_reported`` and ``last_flush`` move only on successful flushes.
    """

    total_errors: int = 0
    errors_by_severity: dict[Severity, int] = field(
        default_factory=lambda: {s: 0 for s in Severity}
    )
    errors_by_category: dict[ErrorCategory, int] = field(
        default_factory=lambda: {c: 0 for c in ErrorCategory}
    )
    errors_by_service: dict[str, int] = field(default_factory=dict)
    last_reported: datetime | None = None
    last_flush: datetime | None = None
    pending_reports: int = 0
    dropped_reports: int = 0

    def record(self, report: ErrorReport) -> None:
        self.total_errors += 1
        self.errors_by_severity[report.severity] = self.errors_by_severity.get(report.severity, 0) + 1
        self.errors_by_category[report.category] = self.errors_by_category.get(report.category, 0) + 1
        self.errors_by_service[report.service] = self.errors_by_service.get(report.service, 0) + 1

    def snapshot(self) -> ReportingStats:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "errors_by_severity": {k.name: v for k, v in self.errors_by_severity.items()},
            "errors_by_category": {k.value: v for k, v in self.errors_by_category.items()},
            "errors_by_service": dict(self.errors_by_service),
            "last_reported": self.last_reported.isoformat() if self.last_reported else None,
            "last_flush": self.last_flush.isoformat() if self.last_flush else None,
            "pending_reports": self.pending_reports,
            "dropped_reports": self.dropped_reports,
        }


def build_payload(
    reports: list[ErrorReport],
    app_version: str,
    platform: str,
) -> dict[str, Any]:
    """JSON body for one batch delivery."""
    return {
        "reports": [report.to_dict() for report in reports],
        "metadata": {
            "appVersion": app_version,
            "platform": platform,
            "timestamp": utc_now().isoformat(),
        },
    }


@runtime_checkable
class ReportSender(Protocol):
    """Protocol for report delivery backends.

    ``send`` raises on any delivery failure; the dispatcher retries and
    requeues around it.
    """

    async def send(self, payload: dict[str, Any]) -> None:
        """Deliver one batch payload."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...
