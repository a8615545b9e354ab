"""Execution helpers: retrying operations under a policy."""

from gutsafe.execution.retry import (
    API_CALL_POLICY,
    CRITICAL_OPERATION_POLICY,
    DATABASE_OPERATION_POLICY,
    DEFAULT_POLICIES,
    FILE_UPLOAD_POLICY,
    RetryCondition,
    RetryExecutor,
    RetryPolicy,
    RetryStrategy,
    compute_delay,
    error_code_condition,
    http_status_condition,
    network_condition,
    temporary_error_condition,
)

__all__ = [
    "API_CALL_POLICY",
    "CRITICAL_OPERATION_POLICY",
    "DATABASE_OPERATION_POLICY",
    "DEFAULT_POLICIES",
    "FILE_UPLOAD_POLICY",
    "RetryCondition",
    "RetryExecutor",
    "RetryPolicy",
    "RetryStrategy",
    "compute_delay",
    "error_code_condition",
    "http_status_condition",
    "network_condition",
    "temporary_error_condition",
]
