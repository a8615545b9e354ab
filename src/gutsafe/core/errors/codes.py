"""Error codes, categories, and severity levels.

Contains the classification vocabulary used throughout gutsafe.

This module provides:
- ErrorCategory: closed set of failure domains
- Severity: ordered urgency levels (LOW < MEDIUM < HIGH < CRITICAL)
- ErrorCode: well-known machine-readable codes
- CATEGORY_RULES: ordered keyword table deriving a category from a code
- MESSAGE_CODE_RULES: ordered keyword table deriving a code from a message

Category Rules
==============

A code is lower-cased and scanned against each row in order; the first row
with a matching keyword decides the category.

    | Order | Keywords                              | Category       |
    |-------|---------------------------------------|----------------|
    | 1     | network, timeout, connection          | NETWORK        |
    | 2     | validation, invalid                   | VALIDATION     |
    | 3     | database, query, sql                  | DATABASE       |
    | 4     | auth, login, token                    | AUTHENTICATION |
    | 5     | permission, forbidden, unauthorized   | PERMISSION     |
    | 6     | rate, limit, throttle                 | RATE_LIMIT     |
    | 7     | timeout                               | TIMEOUT        |
    | 8     | service                               | SERVICE        |
    | -     | (no match)                            | UNKNOWN        |

Row 1 claims "timeout", so ``NETWORK_TIMEOUT_ERROR`` and ``TIMEOUT_ERROR``
are both NETWORK. Row 4 claims "auth", so ``UNAUTHORIZED`` lands in
AUTHENTICATION before row 5 sees it.

Severity Rules
==============

    | Condition                                                  | Severity |
    |------------------------------------------------------------|----------|
    | DATABASE, or "CRITICAL" in code, or "fatal" in message     | CRITICAL |
    | AUTHENTICATION/PERMISSION, or "AUTH"/"PERMISSION" in code  | HIGH     |
    | NETWORK/SERVICE, or "NETWORK"/"SERVICE" in code            | MEDIUM   |
    | otherwise                                                  | LOW      |

Code and message checks are case-sensitive.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import NamedTuple


class ErrorCategory(str, Enum):
    """Failure domains used for user messaging and statistics."""

    NETWORK = "NETWORK"
    VALIDATION = "VALIDATION"
    DATABASE = "DATABASE"
    SERVICE = "SERVICE"
    AUTHENTICATION = "AUTHENTICATION"
    PERMISSION = "PERMISSION"
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class Severity(IntEnum):
    """Ordered urgency levels.

    Higher numeric value = more urgent, so ``severity >= Severity.HIGH``
    selects the errors that need attention. Severity drives the log level
    an error is written at; it never affects retry behavior.
    """

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def log_level(self) -> str:
        """The logging level an error of this severity is written at."""
        return _SEVERITY_LOG_LEVELS[self]


_SEVERITY_LOG_LEVELS: dict[Severity, str] = {
    Severity.LOW: "INFO",
    Severity.MEDIUM: "WARNING",
    Severity.HIGH: "ERROR",
    Severity.CRITICAL: "CRITICAL",
}


class ErrorCode(str, Enum):
    """Well-known error codes.

    Codes are open-ended strings: anything a typed error carries, or that is
    derived from an exception class name, is a valid code. These members are
    the ones the retry presets and message inference refer to.
    """

    NETWORK_ERROR = "NETWORK_ERROR"
    """Network unreachable, DNS failure, or other transport problem."""

    CONNECTION_ERROR = "CONNECTION_ERROR"
    """Connection refused or reset."""

    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    """The operation or request timed out."""

    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    """The remote side is throttling requests."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input failed validation."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """A storage operation failed."""

    SERVICE_ERROR = "SERVICE_ERROR"
    """A dependent service failed or is unavailable."""

    DELIVERY_REJECTED = "DELIVERY_REJECTED"
    """The reporting endpoint refused a batch (4xx other than 408/429)."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Nothing about the failure could be interpreted."""


class CategoryRule(NamedTuple):
    """One row of the category table: any keyword match selects ``category``."""

    keywords: tuple[str, ...]
    category: ErrorCategory


CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(("network", "timeout", "connection"), ErrorCategory.NETWORK),
    CategoryRule(("validation", "invalid"), ErrorCategory.VALIDATION),
    CategoryRule(("database", "query", "sql"), ErrorCategory.DATABASE),
    CategoryRule(("auth", "login", "token"), ErrorCategory.AUTHENTICATION),
    CategoryRule(("permission", "forbidden", "unauthorized"), ErrorCategory.PERMISSION),
    CategoryRule(("rate", "limit", "throttle"), ErrorCategory.RATE_LIMIT),
    CategoryRule(("timeout",), ErrorCategory.TIMEOUT),
    CategoryRule(("service",), ErrorCategory.SERVICE),
)


class MessageCodeRule(NamedTuple):
    """Message keyword (case-insensitive) and the code it implies."""

    keyword: str
    code: ErrorCode


MESSAGE_CODE_RULES: tuple[MessageCodeRule, ...] = (
    MessageCodeRule("network", ErrorCode.NETWORK_ERROR),
    MessageCodeRule("validation", ErrorCode.VALIDATION_ERROR),
    MessageCodeRule("database", ErrorCode.DATABASE_ERROR),
    MessageCodeRule("timeout", ErrorCode.TIMEOUT_ERROR),
    MessageCodeRule("rate limit", ErrorCode.RATE_LIMIT_ERROR),
    MessageCodeRule("connection", ErrorCode.CONNECTION_ERROR),
    MessageCodeRule("service", ErrorCode.SERVICE_ERROR),
)

# Exception class names too broad to serve as a code
GENERIC_EXCEPTION_NAMES = frozenset({"BaseException", "Exception", "Error"})

# Severity keyword checks (case-sensitive, see module docstring)
CRITICAL_CODE_MARKERS: tuple[str, ...] = ("CRITICAL",)
CRITICAL_MESSAGE_MARKERS: tuple[str, ...] = ("fatal",)
HIGH_CODE_MARKERS: tuple[str, ...] = ("AUTH", "PERMISSION")
MEDIUM_CODE_MARKERS: tuple[str, ...] = ("NETWORK", "SERVICE")
