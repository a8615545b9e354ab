"""User-facing error messages, keyed by category."""

from __future__ import annotations

from typing import NamedTuple

from .codes import ErrorCategory, Severity
from .models import UserFriendlyError


class MessageTemplate(NamedTuple):
    title: str
    message: str
    action: str | None
    can_retry: bool


USER_MESSAGES: dict[ErrorCategory, MessageTemplate] = {
    ErrorCategory.NETWORK: MessageTemplate(
        "Connection Problem",
        "Unable to connect to the server. Please check your internet connection and try again.",
        "Check Connection",
        True,
    ),
    ErrorCategory.VALIDATION: MessageTemplate(
        "Invalid Input",
        "Please check your input and try again. Make sure all required fields are filled correctly.",
        "Fix Input",
        False,
    ),
    ErrorCategory.DATABASE: MessageTemplate(
        "Data Error",
        "There was a problem saving your data. Please try again in a moment.",
        "Retry",
        True,
    ),
    ErrorCategory.SERVICE: MessageTemplate(
        "Service Unavailable",
        "The service is temporarily unavailable. Please try again later.",
        "Try Again",
        True,
    ),
    ErrorCategory.AUTHENTICATION: MessageTemplate(
        "Authentication Required",
        "Please sign in to continue using the app.",
        "Sign In",
        False,
    ),
    ErrorCategory.PERMISSION: MessageTemplate(
        "Access Denied",
        "You don't have permission to perform this action.",
        "Contact Support",
        False,
    ),
    ErrorCategory.RATE_LIMIT: MessageTemplate(
        "Too Many Requests",
        "You're making requests too quickly. Please wait a moment and try again.",
        "Wait and Retry",
        True,
    ),
    ErrorCategory.TIMEOUT: MessageTemplate(
        "Request Timeout",
        "The request is taking too long. Please try again.",
        "Retry",
        True,
    ),
    ErrorCategory.UNKNOWN: MessageTemplate(
        "Something Went Wrong",
        "An unexpected error occurred. Please try again.",
        "Try Again",
        True,
    ),
}


def build_user_friendly_error(category: ErrorCategory, severity: Severity) -> UserFriendlyError:
    template = USER_MESSAGES.get(category, USER_MESSAGES[ErrorCategory.UNKNOWN])
    return UserFriendlyError(
        title=template.title,
        message=template.message,
        action=template.action,
        can_retry=template.can_retry,
        severity=severity,
        category=category,
    )
