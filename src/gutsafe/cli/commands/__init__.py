"""CLI command implementations."""

from .diagnose import classify, send_test
from .validate import validate

__all__ = ["classify", "send_test", "validate"]
