"""Top-level application configuration.

Loads the reporting, logging and retry sections from YAML.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from gutsafe.core.config.reporting import ReportingConfig, RetryPolicyConfig


class LogConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level to capture",
    )
    format: Literal["json", "console", "both"] = Field(
        default="console",
        description="Output format: json for structured, console for human-readable, "
        "both for console to stderr and JSON to file",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path for log file output (required if format='both')",
    )
    max_file_size_mb: int = Field(default=10, gt=0, le=1000)
    backup_count: int = Field(default=3, ge=0, le=100)
    include_timestamps: bool = True
    include_context: bool = True

    @model_validator(mode="after")
    def _check_file_path_required(self) -> LogConfig:
        if self.format == "both" and self.file_path is None:
            raise ValueError("file_path is required when format='both'")
        return self


class AppConfig(BaseModel):
    """Complete configuration for the error pipeline.

    Example YAML:
        reporting:
          endpoint: https://crash.example.com/v1/reports
          api_key: "${CRASH_API_KEY}"
        logging:
          level: DEBUG
        retry_policies:
          api_call:
            max_attempts: 4
          sync:
            max_attempts: 2
            strategy: fixed
            base_delay_seconds: 5
            retryable_codes: [NETWORK_ERROR]
    """

    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    logging: LogConfig = Field(default_factory=LogConfig)
    retry_policies: dict[str, RetryPolicyConfig] = Field(
        default_factory=dict,
        description="Per-operation retry overrides keyed by policy name",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> AppConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> AppConfig:
        """Load configuration from a YAML string."""
        data = yaml.safe_load(yaml_str)
        return cls.model_validate(data or {})
