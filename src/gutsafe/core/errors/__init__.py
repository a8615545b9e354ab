"""Error normalization and classification.

Re-exports all public symbols so callers can import from
``gutsafe.core.errors`` directly.
"""

from gutsafe.core.errors.codes import (
    CATEGORY_RULES,
    MESSAGE_CODE_RULES,
    CategoryRule,
    ErrorCategory,
    ErrorCode,
    MessageCodeRule,
    Severity,
)
from gutsafe.core.errors.models import (
    CanonicalError,
    ClassifiedError,
    ErrorContext,
    Failure,
    Result,
    Success,
    UserFriendlyError,
)
from gutsafe.core.errors.exceptions import (
    AppError,
    DatabaseError,
    InputValidationError,
    NetworkError,
    ReportDeliveryError,
    RequestTimeoutError,
    ServiceError,
)
from gutsafe.core.errors.messages import USER_MESSAGES, build_user_friendly_error
from gutsafe.core.errors.classifier import (
    CONTEXT_DETAILS_KEY,
    ErrorClassifier,
    exception_name_to_code,
    is_canonical_shaped,
    merge_context,
)

__all__ = [
    "CONTEXT_DETAILS_KEY",
    "CATEGORY_RULES",
    "MESSAGE_CODE_RULES",
    "CategoryRule",
    "ErrorCategory",
    "ErrorCode",
    "MessageCodeRule",
    "Severity",
    "CanonicalError",
    "ClassifiedError",
    "ErrorContext",
    "Failure",
    "Result",
    "Success",
    "UserFriendlyError",
    "AppError",
    "DatabaseError",
    "InputValidationError",
    "NetworkError",
    "ReportDeliveryError",
    "RequestTimeoutError",
    "ServiceError",
    "USER_MESSAGES",
    "build_user_friendly_error",
    "ErrorClassifier",
    "exception_name_to_code",
    "is_canonical_shaped",
    "merge_context",
]
