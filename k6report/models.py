from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import ConfigError

Status = Union[str, int]

SETUP_SCENARIO = "setup"
UNKNOWN = "unknown"
DEFAULT_METHOD = "GET"
DEFAULT_ERROR_MESSAGE = "Unknown error"


# =========================
# DATA MODELS
# =========================

@dataclass(frozen=True)
class ErrorInfo:
    code: Status
    message: str


@dataclass(frozen=True)
class ApiCallRecord:
    scenario: str
    page: str
    api_name: str
    method: str
    url: str
    status: Status
    duration_ms: float
    timestamp_ms: Optional[int] = None
    vu: int = 0
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class ErrorDetail:
    status: Status
    code: Status
    message: str
    duration_ms: float

    @classmethod
    def from_record(cls, record: ApiCallRecord) -> "ErrorDetail":
        error = record.error or ErrorInfo(code=record.status, message=DEFAULT_ERROR_MESSAGE)
        return cls(
            status=record.status,
            code=error.code,
            message=error.message,
            duration_ms=record.duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "code": self.code,
            "message": self.message,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class GroupSummary:
    key: str
    name: str
    count: int
    avg_duration_ms: float
    p95_duration_ms: float
    error_count: int
    errors: Tuple[ErrorDetail, ...] = ()
    method: Optional[str] = None
    url: Optional[str] = None
    min_duration_ms: Optional[float] = None
    max_duration_ms: Optional[float] = None
    percentiles: Dict[str, float] = field(default_factory=dict)
    durations: Tuple[float, ...] = ()

    @property
    def error_rate(self) -> float:
        return self.error_count / self.count if self.count else 0.0

    def to_dict(self, include_samples: bool = False) -> Dict[str, Any]:
        payload = {
            "key": self.key,
            "name": self.name,
            "method": self.method,
            "url": self.url,
            "count": self.count,
            "avg_duration_ms": self.avg_duration_ms,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "p95_duration_ms": self.p95_duration_ms,
            "percentiles": dict(self.percentiles),
            "error_count": self.error_count,
            "error_rate": self.error_rate,
            "errors": [e.to_dict() for e in self.errors],
        }
        if include_samples:
            payload["durations"] = list(self.durations)
        return payload


@dataclass(frozen=True)
class TimePoint:
    time_ms: int
    avg_duration_ms: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {"time_ms": self.time_ms, "avg_duration_ms": self.avg_duration_ms}


@dataclass(frozen=True)
class BucketStats:
    time_ms: int
    requests: int
    avg_duration_ms: float
    errors: int
    active_vus: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_ms": self.time_ms,
            "requests": self.requests,
            "avg_duration_ms": self.avg_duration_ms,
            "errors": self.errors,
            "active_vus": self.active_vus,
        }


@dataclass(frozen=True)
class TrendFit:
    slope_ms_per_s: float
    intercept_ms: float
    r_squared: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slope_ms_per_s": self.slope_ms_per_s,
            "intercept_ms": self.intercept_ms,
            "r_squared": self.r_squared,
        }


@dataclass(frozen=True)
class StatusCount:
    status: Status
    count: int
    pct: float

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "count": self.count, "pct": self.pct}


@dataclass
class FeedStats:
    lines: int = 0
    records: int = 0
    malformed: int = 0
    ignored: int = 0
    setup: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "lines": self.lines,
            "records": self.records,
            "malformed": self.malformed,
            "ignored": self.ignored,
            "setup": self.setup,
        }


@dataclass(frozen=True)
class ReportModel:
    by_api: List[GroupSummary] = field(default_factory=list)
    by_scenario: List[GroupSummary] = field(default_factory=list)
    by_page: List[GroupSummary] = field(default_factory=list)
    trend: List[TimePoint] = field(default_factory=list)
    vu_trend: Dict[int, List[TimePoint]] = field(default_factory=dict)
    vu_axis: List[int] = field(default_factory=list)
    by_vu: List[GroupSummary] = field(default_factory=list)
    overall: Optional[GroupSummary] = None
    timeseries: List[BucketStats] = field(default_factory=list)
    error_breakdown: List[StatusCount] = field(default_factory=list)
    trend_fit: Optional[TrendFit] = None
    anomalies: List[int] = field(default_factory=list)
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    feed: Optional[FeedStats] = None

    @property
    def total_requests(self) -> int:
        return self.overall.count if self.overall else 0

    @property
    def duration_s(self) -> float:
        if self.start_ms is None or self.end_ms is None:
            return 0.0
        return (self.end_ms - self.start_ms) / 1000.0

    def to_dict(self, include_samples: bool = False) -> Dict[str, Any]:
        return {
            "overall": self.overall.to_dict(include_samples) if self.overall else None,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "duration_s": self.duration_s,
            "by_api": [g.to_dict(include_samples) for g in self.by_api],
            "by_scenario": [g.to_dict(include_samples) for g in self.by_scenario],
            "by_page": [g.to_dict(include_samples) for g in self.by_page],
            "by_vu": [g.to_dict(include_samples) for g in self.by_vu],
            "error_breakdown": [s.to_dict() for s in self.error_breakdown],
            "trend": [p.to_dict() for p in self.trend],
            "trend_fit": self.trend_fit.to_dict() if self.trend_fit else None,
            "anomalies": list(self.anomalies),
            "vu_axis": list(self.vu_axis),
            "vu_trend": {
                str(vu): [p.to_dict() for p in points]
                for vu, points in self.vu_trend.items()
            },
            "timeseries": [b.to_dict() for b in self.timeseries],
            "feed": self.feed.to_dict() if self.feed else None,
        }


# =========================
# SUCCESS POLICIES
# =========================

SuccessPolicy = Callable[[Status], bool]


def status_is_200(status: Status) -> bool:
    """Compatibility predicate: only a status that reads exactly "200" succeeds."""
    return str(status) == "200"


def status_is_2xx(status: Status) -> bool:
    try:
        code = int(str(status))
    except ValueError:
        return False
    return 200 <= code <= 299


SUCCESS_POLICIES: Dict[str, SuccessPolicy] = {
    "status-200": status_is_200,
    "2xx": status_is_2xx,
}

DEFAULT_SUCCESS_POLICY = "status-200"


def get_success_policy(name: str) -> SuccessPolicy:
    try:
        return SUCCESS_POLICIES[name]
    except KeyError:
        known = ", ".join(sorted(SUCCESS_POLICIES))
        raise ConfigError(f"Unknown success policy {name!r} (expected one of: {known})") from None
