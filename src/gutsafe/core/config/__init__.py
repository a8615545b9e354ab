"""Configuration models for gutsafe.

Pydantic models for loading and validating YAML configuration. All models
are re-exported here.
"""

from gutsafe.core.config.reporting import (
    ReportingConfig,
    RetryPolicyConfig,
    expand_env,
)
from gutsafe.core.config.app import AppConfig, LogConfig

__all__ = [
    "AppConfig",
    "LogConfig",
    "ReportingConfig",
    "RetryPolicyConfig",
    "expand_env",
]
