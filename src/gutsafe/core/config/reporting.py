"""Error reporting and retry configuration models.

Defines models for the report dispatcher (endpoint, batching, flush timer,
queue cap) and for per-operation retry policy overrides.
"""

from __future__ import annotations

import os
import re
from typing import Literal

from pydantic import BaseModel, Field, model_validator

_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def expand_env(value: str) -> str:
    """Expand ``${VAR}`` references; unset variables become empty strings."""
    return _ENV_VAR_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


class ReportingConfig(BaseModel):
    """Configuration for batched delivery of error reports.

    Example YAML:
        reporting:
          enabled: true
          endpoint_env: GUTSAFE_REPORTING_URL
          api_key: "${GUTSAFE_REPORTING_KEY}"
          batch_size: 10
          flush_interval_seconds: 30
          max_retries: 3
          retry_delay_seconds: 1.0

    With no endpoint configured, flushes succeed without any network call,
    so local development needs no reporting backend.
    """

    enabled: bool = Field(default=True, description="Queue and deliver error reports")
    endpoint: str | None = Field(
        default=None, description="URL reports are POSTed to"
    )
    endpoint_env: str | None = Field(
        default=None, description="Environment variable holding the endpoint URL"
    )
    api_key: str | None = Field(
        default=None, description="Bearer token for the endpoint (supports ${VAR})"
    )
    api_key_env: str | None = Field(
        default=None, description="Environment variable holding the API key"
    )
    batch_size: int = Field(
        default=10, ge=1, description="Queue length that triggers an immediate flush"
    )
    flush_interval_seconds: float = Field(
        default=30.0, gt=0, description="Seconds between periodic flushes"
    )
    max_retries: int = Field(
        default=3, ge=1, description="Delivery attempts per flush before requeueing"
    )
    retry_delay_seconds: float = Field(
        default=1.0, ge=0, description="Base delay between delivery attempts"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP timeout for one delivery request"
    )
    max_queue_size: int = Field(
        default=1000, ge=1, description="Reports kept in memory before dropping"
    )
    overflow_policy: Literal["drop_oldest", "drop_newest"] = Field(
        default="drop_oldest",
        description="Which reports to drop when the queue is over max_queue_size",
    )
    app_version: str = Field(default="1.0.0", description="Sent in payload metadata")
    platform: str = Field(default="python", description="Sent in payload metadata")

    @model_validator(mode="after")
    def _validate_queue_size(self) -> ReportingConfig:
        if self.max_queue_size < self.batch_size:
            raise ValueError(
                f"max_queue_size ({self.max_queue_size}) must be at least "
                f"batch_size ({self.batch_size})"
            )
        return self

    def resolved_endpoint(self) -> str | None:
        """Endpoint URL, falling back to ``endpoint_env``."""
        if self.endpoint:
            return expand_env(self.endpoint) or None
        if self.endpoint_env:
            return os.environ.get(self.endpoint_env) or None
        return None

    def resolved_api_key(self) -> str | None:
        """API key, falling back to ``api_key_env``."""
        if self.api_key:
            return expand_env(self.api_key) or None
        if self.api_key_env:
            return os.environ.get(self.api_key_env) or None
        return None


class RetryPolicyConfig(BaseModel):
    """YAML form of a retry policy.

    Unset fields inherit from the preset of the same name, when one exists.
    """

    max_attempts: int | None = Field(default=None, ge=1)
    base_delay_seconds: float | None = Field(default=None, ge=0)
    max_delay_seconds: float | None = Field(default=None, ge=0)
    backoff_multiplier: float | None = Field(default=None, ge=1)
    strategy: Literal["exponential", "linear", "fixed"] | None = None
    retryable_codes: list[str] | None = None

    @model_validator(mode="after")
    def _validate_delay_range(self) -> RetryPolicyConfig:
        if (
            self.base_delay_seconds is not None
            and self.max_delay_seconds is not None
            and self.base_delay_seconds > self.max_delay_seconds
        ):
            raise ValueError(
                f"base_delay_seconds ({self.base_delay_seconds}) must not exceed "
                f"max_delay_seconds ({self.max_delay_seconds})"
            )
        return self
