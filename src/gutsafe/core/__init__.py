"""Core domain models and configuration."""

from gutsafe.core.config import AppConfig, LogConfig, ReportingConfig, RetryPolicyConfig
from gutsafe.core.errors import (
    CanonicalError,
    ErrorCategory,
    ErrorClassifier,
    ErrorContext,
    Severity,
)

__all__ = [
    "AppConfig",
    "CanonicalError",
    "ErrorCategory",
    "ErrorClassifier",
    "ErrorContext",
    "LogConfig",
    "ReportingConfig",
    "RetryPolicyConfig",
    "Severity",
]
