import statistics
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .grouping import GroupAccumulator
from .models import GroupSummary, StatusCount

DEFAULT_PERCENTILES: Sequence[float] = (50, 90, 95, 99)


# =========================
# UTILS
# =========================

def percentile_label(p: float) -> str:
    return f"p{p:g}"


def _round(value: float) -> float:
    return round(float(value), 2)


def compute_percentiles(values: Sequence[float], percentiles: Iterable[float]) -> Dict[str, float]:
    """Percentiles with linear interpolation between closest ranks."""
    wanted = list(percentiles)
    if not values or not wanted:
        return {}
    results = np.percentile(np.asarray(values, dtype=float), wanted)
    return {percentile_label(p): _round(v) for p, v in zip(wanted, results)}


# =========================
# METRIC COMPUTATION
# =========================

def summarize(acc: GroupAccumulator,
              percentiles: Sequence[float] = DEFAULT_PERCENTILES) -> GroupSummary:
    durations = acc.durations
    wanted = sorted(set(percentiles) | {95})
    pcts = compute_percentiles(durations, wanted)
    p95 = pcts[percentile_label(95)]
    if 95 not in percentiles:
        del pcts[percentile_label(95)]

    return GroupSummary(
        key=acc.key,
        name=acc.name,
        method=acc.method,
        url=acc.url,
        count=acc.count,
        avg_duration_ms=_round(statistics.fmean(durations)),
        p95_duration_ms=p95,
        min_duration_ms=min(durations),
        max_duration_ms=max(durations),
        percentiles=pcts,
        error_count=len(acc.errors),
        errors=tuple(acc.errors),
        durations=tuple(durations),
    )


def summarize_groups(groups: Mapping[str, GroupAccumulator],
                     percentiles: Sequence[float] = DEFAULT_PERCENTILES) -> List[GroupSummary]:
    return [summarize(acc, percentiles) for acc in groups.values()]


def error_breakdown(summary: Optional[GroupSummary]) -> List[StatusCount]:
    """Failures per status, most frequent first; ties keep first-seen order."""
    if summary is None or not summary.errors:
        return []
    counter = Counter(str(e.status) for e in summary.errors)
    first_status = {}
    for e in summary.errors:
        first_status.setdefault(str(e.status), e.status)
    total = summary.error_count
    return [
        StatusCount(status=first_status[status], count=count, pct=count / total)
        for status, count in counter.most_common()
    ]
