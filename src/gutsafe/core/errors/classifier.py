"""ErrorClassifier: normalization and table-driven classification.

Turns anything that was raised (a native exception, a typed ``AppError``,
an already-canonical value or mapping) into a ``CanonicalError`` and derives
its category and severity. Classification is pure: logging and reporting
are separate steps taken by the caller.
"""

from __future__ import annotations

import re
import traceback
from collections.abc import Mapping
from typing import Any

from gutsafe.core.logging import get_logger
from gutsafe.utils.time import coerce_timestamp, utc_now

from .codes import (
    CATEGORY_RULES,
    CRITICAL_CODE_MARKERS,
    CRITICAL_MESSAGE_MARKERS,
    GENERIC_EXCEPTION_NAMES,
    HIGH_CODE_MARKERS,
    MEDIUM_CODE_MARKERS,
    MESSAGE_CODE_RULES,
    CategoryRule,
    ErrorCategory,
    ErrorCode,
    MessageCodeRule,
    Severity,
)
from .messages import build_user_friendly_error
from .models import CanonicalError, ClassifiedError, ErrorContext, UserFriendlyError

_logger = get_logger("errors")

CONTEXT_DETAILS_KEY = "context"
"""Key under which caller context is merged into ``CanonicalError.details``."""

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def exception_name_to_code(name: str) -> str:
    """Convert an exception class name to an UPPER_SNAKE code.

    ``ConnectionError`` -> ``CONNECTION_ERROR``,
    ``HTTPStatusError`` -> ``HTTP_STATUS_ERROR``.
    """
    return _CAMEL_BOUNDARY.sub("_", name).upper()


def is_canonical_shaped(raw: Any) -> bool:
    """True when ``raw`` carries both a ``code`` and a ``timestamp``.

    Works on attribute-bearing objects (``CanonicalError``, ``AppError``)
    and on mappings.
    """
    if isinstance(raw, Mapping):
        return "code" in raw and "timestamp" in raw
    return hasattr(raw, "code") and hasattr(raw, "timestamp")


def _format_stack(exc: BaseException) -> str | None:
    if exc.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _context_dict(context: ErrorContext | Mapping[str, Any] | None) -> dict[str, Any]:
    if context is None:
        return {}
    return ErrorContext.coerce(context).to_dict(include_timestamp=False)


def merge_context(error: CanonicalError, context: Mapping[str, Any]) -> CanonicalError:
    """Merge caller context into ``error.details`` without overwriting.

    Context lives under its own ``"context"`` key; keys already present
    there keep their value and new keys are added, so repeated merges only
    ever grow the details.
    """
    if not context:
        return error
    existing = error.details.get(CONTEXT_DETAILS_KEY)
    if existing is None:
        return error.with_details({CONTEXT_DETAILS_KEY: dict(context)})
    if isinstance(existing, Mapping):
        merged = {**context, **existing}
        if merged == dict(existing):
            return error
        return error.with_details({CONTEXT_DETAILS_KEY: merged})
    # "context" already holds a non-mapping detail of the caller's; keep both
    return error.with_details({f"caller_{CONTEXT_DETAILS_KEY}": dict(context)})


class ErrorClassifier:
    """Normalizes failures and derives category and severity.

    Both rule tables can be replaced at construction time; the defaults
    live in ``codes.py`` as plain data.
    """

    def __init__(
        self,
        category_rules: tuple[CategoryRule, ...] | None = None,
        message_rules: tuple[MessageCodeRule, ...] | None = None,
    ) -> None:
        self.category_rules = category_rules if category_rules is not None else CATEGORY_RULES
        self.message_rules = message_rules if message_rules is not None else MESSAGE_CODE_RULES

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def extract_code(self, raw: Any) -> str:
        """Derive only the code for ``raw``.

        Order: an explicit string ``code``, then a non-generic exception
        class name, then message keywords, then ``UNKNOWN_ERROR``.
        """
        if isinstance(raw, Mapping):
            code = raw.get("code")
            if isinstance(code, str) and code:
                return code
            return self._code_from_message(str(raw.get("message") or ""))

        code = getattr(raw, "code", None)
        if isinstance(code, str) and code:
            return code

        if isinstance(raw, BaseException):
            name = type(raw).__name__
            if name not in GENERIC_EXCEPTION_NAMES:
                return exception_name_to_code(name)
            return self._code_from_message(str(raw))

        if isinstance(raw, str):
            return self._code_from_message(raw)
        return ErrorCode.UNKNOWN_ERROR.value

    def _code_from_message(self, message: str) -> str:
        lowered = message.lower()
        for rule in self.message_rules:
            if rule.keyword in lowered:
                return rule.code.value
        return ErrorCode.UNKNOWN_ERROR.value

    def normalize(
        self,
        raw: Any,
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> CanonicalError:
        """Convert ``raw`` into a CanonicalError carrying ``context``."""
        ctx = _context_dict(context)

        if isinstance(raw, CanonicalError):
            return merge_context(raw, ctx)

        if is_canonical_shaped(raw):
            return merge_context(self._from_canonical_shape(raw), ctx)

        if isinstance(raw, BaseException):
            details: dict[str, Any] = {"original_error": type(raw).__name__}
            if ctx:
                details[CONTEXT_DETAILS_KEY] = ctx
            return CanonicalError(
                code=self.extract_code(raw),
                message=str(raw) or type(raw).__name__,
                timestamp=utc_now(),
                details=details,
                stack=_format_stack(raw),
            )

        message = raw if isinstance(raw, str) and raw else "Unknown error"
        return CanonicalError(
            code=self.extract_code(raw),
            message=message,
            timestamp=utc_now(),
            details={CONTEXT_DETAILS_KEY: ctx} if ctx else {},
        )

    def _from_canonical_shape(self, raw: Any) -> CanonicalError:
        if isinstance(raw, Mapping):
            fetch = raw.get
        else:
            def fetch(key: str, default: Any = None) -> Any:
                return getattr(raw, key, default)

        code = fetch("code")
        message = fetch("message")
        if not message:
            message = str(raw) if isinstance(raw, BaseException) else str(code)
        stack = fetch("stack")
        if stack is None and isinstance(raw, BaseException):
            stack = _format_stack(raw)
        details = fetch("details") or {}
        return CanonicalError(
            code=str(code) if code else ErrorCode.UNKNOWN_ERROR.value,
            message=str(message),
            timestamp=coerce_timestamp(fetch("timestamp")),
            details=dict(details) if isinstance(details, Mapping) else {"raw_details": details},
            stack=stack,
        )

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def categorize(self, error: CanonicalError | str) -> ErrorCategory:
        """First matching row of the category table, or UNKNOWN."""
        code = (error if isinstance(error, str) else error.code).lower()
        for rule in self.category_rules:
            if any(keyword in code for keyword in rule.keywords):
                return rule.category
        return ErrorCategory.UNKNOWN

    def determine_severity(
        self,
        error: CanonicalError,
        category: ErrorCategory | None = None,
    ) -> Severity:
        """Severity from category plus code/message markers."""
        if category is None:
            category = self.categorize(error)
        code = error.code
        message = error.message

        if (
            category == ErrorCategory.DATABASE
            or any(marker in code for marker in CRITICAL_CODE_MARKERS)
            or any(marker in message for marker in CRITICAL_MESSAGE_MARKERS)
        ):
            return Severity.CRITICAL
        if category in (ErrorCategory.AUTHENTICATION, ErrorCategory.PERMISSION) or any(
            marker in code for marker in HIGH_CODE_MARKERS
        ):
            return Severity.HIGH
        if category in (ErrorCategory.NETWORK, ErrorCategory.SERVICE) or any(
            marker in code for marker in MEDIUM_CODE_MARKERS
        ):
            return Severity.MEDIUM
        return Severity.LOW

    def classify(
        self,
        raw: Any,
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> ClassifiedError:
        """Normalize ``raw`` and attach category and severity.

        Never raises; anything that cannot be interpreted becomes
        ``UNKNOWN_ERROR`` with LOW severity.
        """
        try:
            error = self.normalize(raw, context)
            category = self.categorize(error)
            return ClassifiedError(
                error=error,
                category=category,
                severity=self.determine_severity(error, category),
            )
        except Exception as exc:  # noqa: BLE001
            _logger.debug("classification_fallback", error=repr(exc), raw_type=type(raw).__name__)
            return ClassifiedError(
                error=CanonicalError(
                    code=ErrorCode.UNKNOWN_ERROR.value,
                    message=_safe_str(raw),
                    timestamp=utc_now(),
                ),
                category=ErrorCategory.UNKNOWN,
                severity=Severity.LOW,
            )

    def get_user_friendly_error(self, error: CanonicalError | ClassifiedError) -> UserFriendlyError:
        """Presentation view of ``error``, keyed by its category."""
        if isinstance(error, ClassifiedError):
            return build_user_friendly_error(error.category, error.severity)
        category = self.categorize(error)
        return build_user_friendly_error(category, self.determine_severity(error, category))


def _safe_str(raw: Any) -> str:
    try:
        return str(raw) or "Unknown error"
    except Exception:  # noqa: BLE001
        return "Unknown error"
