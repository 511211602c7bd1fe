"""Aggregate k6 load-test results into report models."""

__version__ = "1.0.0"

from .assembler import build_report, build_report_from_feed  # noqa: E402
from .errors import ConfigError, FeedOpenError, ReportError  # noqa: E402
from .models import (  # noqa: E402
    ApiCallRecord,
    ErrorDetail,
    ErrorInfo,
    GroupSummary,
    ReportModel,
    TimePoint,
    get_success_policy,
    status_is_200,
    status_is_2xx,
)
from .parsing import iter_feed_lines, parse_entries, parse_feed  # noqa: E402

__all__ = [
    "ApiCallRecord",
    "ConfigError",
    "ErrorDetail",
    "ErrorInfo",
    "FeedOpenError",
    "GroupSummary",
    "ReportError",
    "ReportModel",
    "TimePoint",
    "build_report",
    "build_report_from_feed",
    "get_success_policy",
    "iter_feed_lines",
    "parse_entries",
    "parse_feed",
    "status_is_200",
    "status_is_2xx",
]
