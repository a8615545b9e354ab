"""Shared utilities for gutsafe.

Contains cross-cutting utilities used by multiple modules.
"""

from gutsafe.utils.time import coerce_timestamp, epoch_millis, utc_now

__all__ = ["coerce_timestamp", "epoch_millis", "utc_now"]
