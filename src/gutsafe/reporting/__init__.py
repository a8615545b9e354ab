"""Batched delivery of error reports to a remote endpoint."""

from gutsafe.reporting.base import (
    ErrorReport,
    ReportingStats,
    ReportSender,
    build_payload,
    generate_report_id,
)
from gutsafe.reporting.dispatcher import ReportDispatcher
from gutsafe.reporting.http import HttpReportSender, MockReportSender

__all__ = [
    "ErrorReport",
    "HttpReportSender",
    "MockReportSender",
    "ReportDispatcher",
    "ReportSender",
    "ReportingStats",
    "build_payload",
    "generate_report_id",
]
