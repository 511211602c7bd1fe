"""
Threshold evaluation.

Thresholds use the k6 notation carried by the scenario configuration::

    {
        "http_req_duration": ["p(95)<800"],
        "http_req_duration{name:getADGroup}": ["avg<300"],
        "http_req_failed": ["rate<0.01"],
    }

Supported metrics are ``http_req_duration`` (avg, min, max, med, p(N)),
``http_req_failed`` (rate) and ``http_reqs`` (count, rate). A metric may be
narrowed to one API name, scenario or page with ``{name:...}``,
``{scenario:...}`` or ``{group:::page}``.
"""

import logging
import operator
import re
from typing import Any, Dict, List, Optional, Tuple

from .aggregation import compute_percentiles
from .errors import ConfigError
from .models import GroupSummary, ReportModel

logger = logging.getLogger(__name__)

_METRIC_RE = re.compile(r"^\s*(\w+)\s*(?:\{\s*([^:}]+)\s*:\s*([^}]*?)\s*\})?\s*$")
_EXPR_RE = re.compile(r"^\s*(avg|min|max|med|count|rate|p\(\s*\d+(?:\.\d+)?\s*\))\s*"
                      r"(<=|>=|===|==|!=|<|>)\s*(-?\d+(?:\.\d+)?)\s*$")

_OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "===": operator.eq,
    "!=": operator.ne,
}

_AGGREGATIONS = {
    "http_req_duration": {"avg", "min", "max", "med", "p"},
    "http_req_failed": {"rate"},
    "http_reqs": {"count", "rate"},
}


# =========================
# PARSING
# =========================

def parse_metric(text: str) -> Tuple[str, Optional[str], Optional[str]]:
    match = _METRIC_RE.match(text)
    if match is None:
        raise ConfigError(f"Invalid threshold metric: {text!r}")
    metric, tag, value = match.groups()
    if metric not in _AGGREGATIONS:
        raise ConfigError(f"Unsupported threshold metric: {metric!r}")
    if tag is not None and tag not in ("name", "scenario", "group", "page"):
        raise ConfigError(f"Unsupported threshold tag {tag!r} in {text!r}")
    return metric, tag, value


def parse_expression(metric: str, text: str) -> Tuple[str, Optional[float], str, float]:
    """Split ``p(95)<800`` into (aggregation, percentile, operator, target)."""
    match = _EXPR_RE.match(text)
    if match is None:
        raise ConfigError(f"Invalid threshold expression for {metric}: {text!r}")
    agg, op, target = match.groups()
    pct = None
    if agg.startswith("p("):
        pct = float(agg[2:-1])
        agg = "p"
    if agg not in _AGGREGATIONS[metric]:
        raise ConfigError(f"Aggregation {agg!r} is not available for {metric}")
    return agg, pct, op, float(target)


def _expressions(value: Any) -> List[str]:
    if isinstance(value, (str, dict)):
        value = [value]
    if not isinstance(value, list):
        raise ConfigError(f"Thresholds must be a list of expressions, got {value!r}")
    result = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("threshold")
        if not isinstance(item, str):
            raise ConfigError(f"Invalid threshold entry: {item!r}")
        result.append(item)
    return result


# =========================
# EVALUATION
# =========================

def _select(report: ReportModel, tag: Optional[str], value: Optional[str]) -> List[GroupSummary]:
    if report.overall is None:
        return []
    if tag is None:
        return [report.overall]
    if tag == "name":
        return [g for g in report.by_api if g.name == value]
    if tag == "scenario":
        return [g for g in report.by_scenario if g.key == value]
    page = (value or "").strip(":").split("::")[-1]
    return [g for g in report.by_page if g.key == page]


def _actual(groups: List[GroupSummary], agg: str, pct: Optional[float],
            metric: str, duration_s: float) -> Optional[float]:
    count = sum(g.count for g in groups)
    if not count:
        return None
    if metric == "http_req_failed":
        return sum(g.error_count for g in groups) / count
    if metric == "http_reqs":
        if agg == "count":
            return float(count)
        return count / duration_s if duration_s > 0 else None

    durations = [d for g in groups for d in g.durations]
    if agg == "avg":
        return sum(durations) / len(durations)
    if agg == "min":
        return min(durations)
    if agg == "max":
        return max(durations)
    if agg == "med":
        pct = 50.0
    return next(iter(compute_percentiles(durations, [pct]).values()))


def evaluate_thresholds(report: ReportModel,
                        thresholds: Dict[str, Any]) -> Dict[str, Any]:
    rows = []
    for metric_text, entry in (thresholds or {}).items():
        metric, tag, value = parse_metric(metric_text)
        groups = _select(report, tag, value)
        row = {"label": metric_text.strip(), "checks": []}
        for expression in _expressions(entry):
            agg, pct, op, target = parse_expression(metric, expression)
            actual = _actual(groups, agg, pct, metric, report.duration_s)
            if actual is None:
                logger.info("No data for threshold %s %s", metric_text, expression)
                status = True
            else:
                status = _OPERATORS[op](actual, target)
            row["checks"].append({
                "metric": expression.strip(),
                "target": target,
                "actual": actual,
                "status": status,
            })
        rows.append(row)

    total_checks = sum(len(r["checks"]) for r in rows)
    passed_checks = sum(1 for r in rows for c in r["checks"] if c["status"])
    overall_status = (passed_checks == total_checks) if total_checks else True
    overall_pct = (passed_checks / total_checks) if total_checks else 1.0

    return {
        "rows": rows,
        "total_checks": total_checks,
        "passed_checks": passed_checks,
        "overall_status": overall_status,
        "overall_pct": overall_pct,
    }
