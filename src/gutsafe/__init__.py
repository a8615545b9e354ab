"""gutsafe - error classification, retry and batched error reporting.

Public entry points are re-exported here:
    from gutsafe import AppConfig, ErrorHandler
"""

__version__ = "0.1.0"

from gutsafe.core.config import AppConfig, ReportingConfig
from gutsafe.core.errors import (
    AppError,
    CanonicalError,
    ErrorCategory,
    ErrorClassifier,
    ErrorContext,
    Failure,
    Severity,
    Success,
)
from gutsafe.execution import RetryExecutor, RetryPolicy
from gutsafe.handler import ErrorHandler
from gutsafe.reporting import ReportDispatcher

__all__ = [
    "__version__",
    "AppConfig",
    "AppError",
    "CanonicalError",
    "ErrorCategory",
    "ErrorClassifier",
    "ErrorContext",
    "ErrorHandler",
    "Failure",
    "ReportDispatcher",
    "ReportingConfig",
    "RetryExecutor",
    "RetryPolicy",
    "Severity",
    "Success",
]
