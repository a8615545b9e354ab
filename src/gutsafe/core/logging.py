"""Structured logging infrastructure for gutsafe.

Provides structured logging using structlog with request-scoped context such
as session_id and user_id. Supports console and JSON output, plus a rotating
log file.

Example usage:
    from gutsafe.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("reporting")

    # Log with auto-context
    logger.info("reports_flushed", report_count=5)

    # Correlate every entry inside a block with the caller's session
    ctx = RequestContext(session_id="s-42", user_id="u-7")
    with with_context(ctx):
        logger.warning("retry_attempt")  # Includes session_id, user_id, request_id
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from gutsafe.core.config import LogConfig

# Field names whose values are never written to a log sink
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "api-key",
    "token",
    "secret",
    "password",
    "credential",
    "bearer",
    "authorization",
})

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_LEVEL_METHODS: dict[str, str] = {
    "DEBUG": "debug",
    "INFO": "info",
    "WARNING": "warning",
    "ERROR": "error",
    "CRITICAL": "critical",
}


@dataclass(frozen=True)
class RequestContext:
    """Immutable correlation context for one logical request or session.

    Fields are added to every log entry emitted inside a ``with_context()``
    block. Explicit keyword arguments on a log call take precedence.

    Attributes:
        request_id: Unique identifier for the request (UUID by default).
        session_id: Application session identifier, if known.
        user_id: Authenticated user identifier, if known.
        service: Logical service handling the request.
    """

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str | None = None
    user_id: str | None = None
    service: str | None = None

    def with_service(self, service: str) -> RequestContext:
        """Return a copy of this context bound to another service."""
        return RequestContext(
            request_id=self.request_id,
            session_id=self.session_id,
            user_id=self.user_id,
            service=service,
        )

    def to_dict(self) -> dict[str, Any]:
        """Context fields for logging, without the unset ones."""
        result: dict[str, Any] = {"request_id": self.request_id}
        if self.session_id is not None:
            result["session_id"] = self.session_id
        if self.user_id is not None:
            result["user_id"] = self.user_id
        if self.service is not None:
            result["service"] = self.service
        return result


_current_context: ContextVar[RequestContext | None] = ContextVar(
    "gutsafe_request_context", default=None
)


def get_current_context() -> RequestContext | None:
    """Get the active RequestContext, or None outside a context block."""
    return _current_context.get()


def set_context(ctx: RequestContext) -> None:
    """Set the active RequestContext. Prefer ``with_context()``."""
    _current_context.set(ctx)


def clear_context() -> None:
    """Clear the active RequestContext."""
    _current_context.set(None)


@contextmanager
def with_context(ctx: RequestContext) -> Iterator[RequestContext]:
    """Activate ``ctx`` for the duration of a block.

    The context variable is task-local, so concurrent asyncio tasks each see
    their own request context.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    """Return ``"[REDACTED]"`` when ``key`` names a sensitive field."""
    key_lower = key.lower()
    if any(pattern in key_lower for pattern in SENSITIVE_PATTERNS):
        return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor redacting sensitive keys, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {
                k: _sanitize_value(str(k), v) for k, v in value.items()
            }
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor merging the active RequestContext into the entry.

    Keys already present on the entry win over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


class GutsafeLogger:
    """Component logger wrapping structlog.

    The underlying structlog logger is fetched on every call so loggers
    created at import time follow a later ``configure_logging()``.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    @property
    def component(self) -> str:
        return self._component

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> GutsafeLogger:
        """Return a new logger with additional bound context."""
        merged = {**self._context, **context}
        merged.pop("component", None)
        return GutsafeLogger(self._component, **merged)

    def unbind(self, *keys: str) -> GutsafeLogger:
        """Return a new logger without the given context keys."""
        remaining = {k: v for k, v in self._context.items() if k not in keys and k != "component"}
        return GutsafeLogger(self._component, **remaining)

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def critical(self, event: str, **kw: Any) -> None:
        self._get_logger().critical(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._get_logger().exception(event, **kw)

    def log(self, level: LogLevel, event: str, **kw: Any) -> None:
        """Log at a level chosen at runtime.

        Used as the error pipeline's logging sink, so it must never raise
        into the caller: a broken handler or renderer is reported on stderr
        and the entry is lost.

        Args:
            level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
            event: The event name (snake_case recommended).
            **kw: Additional key-value pairs to include.
        """
        method = _LEVEL_METHODS.get(level.upper(), "info")
        try:
            getattr(self._get_logger(), method)(event, **kw)
        except Exception as exc:  # noqa: BLE001
            print(
                f"gutsafe logging failure in {self._component}: {event} ({exc!r})",
                file=sys.stderr,
            )


def _build_processors(
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_context:
        processors.append(_add_context)
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ])
    return processors


def _formatter(renderer: Processor, include_timestamps: bool) -> logging.Formatter:
    """Stdlib formatter rendering structlog entries with ``renderer``.

    Entries from plain stdlib loggers (httpx, asyncio) get a level and
    timestamp before rendering.
    """
    foreign_pre_chain: list[Processor] = [structlog.stdlib.add_log_level]
    if include_timestamps:
        foreign_pre_chain.append(_add_timestamp)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=foreign_pre_chain,
    )


def configure_logging(
    level: LogLevel = "INFO",
    format: Literal["json", "console", "both"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure gutsafe structured logging.

    Call once at startup, before the error handler is created.

    Args:
        level: Minimum log level to capture.
        format: "json" for structured lines, "console" for human-readable,
            "both" for console on stderr and JSON into ``file_path``.
        file_path: Log file path. Required if format="both".
        max_file_size_mb: Size at which the log file is rotated.
        backup_count: Number of rotated files to keep.
        include_timestamps: Add ISO8601 timestamps to entries.
        include_context: Add RequestContext fields to entries.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(_formatter(
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            include_timestamps,
        ))
        handlers.append(console_handler)

    if format in ("json", "both"):
        json_handler: logging.Handler
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            json_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_file_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
        else:
            json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(
            _formatter(structlog.processors.JSONRenderer(), include_timestamps)
        )
        handlers.append(json_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    # cache_logger_on_first_use=False keeps module-level loggers in step with
    # reconfiguration
    structlog.configure(
        processors=[
            *_build_processors(include_timestamps, include_context),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def configure_logging_from_config(config: LogConfig) -> None:
    """Apply the ``logging`` section of an application config."""
    configure_logging(
        level=config.level,
        format=config.format,
        file_path=config.file_path,
        max_file_size_mb=config.max_file_size_mb,
        backup_count=config.backup_count,
        include_timestamps=config.include_timestamps,
        include_context=config.include_context,
    )


def get_logger(component: str, **initial_context: Any) -> GutsafeLogger:
    """Get a logger bound to ``component``.

    Example:
        logger = get_logger("retry")
        logger.warning("retry_attempt", attempt=1, delay_seconds=0.5)
    """
    return GutsafeLogger(component, **initial_context)


__all__ = [
    "GutsafeLogger",
    "LogLevel",
    "RequestContext",
    "SENSITIVE_PATTERNS",
    "clear_context",
    "configure_logging",
    "configure_logging_from_config",
    "get_current_context",
    "get_logger",
    "set_context",
    "with_context",
]
