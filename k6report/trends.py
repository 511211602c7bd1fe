import statistics
from collections import defaultdict
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np
from scipy import stats

from .models import ApiCallRecord, BucketStats, TimePoint, TrendFit

DEFAULT_BUCKET_MS = 1000


class _Observation(NamedTuple):
    timestamp_ms: int
    duration_ms: float
    vu: int
    success: bool


def bucket_of(timestamp_ms: int, bucket_ms: int = DEFAULT_BUCKET_MS) -> int:
    return int(timestamp_ms // bucket_ms)


class TrendBuilder:
    """Collects timestamped observations and derives time series from them.

    Records without a timestamp cannot be placed on a time axis and are left
    out of every series.
    """

    def __init__(self, bucket_ms: int = DEFAULT_BUCKET_MS):
        if bucket_ms <= 0:
            raise ValueError(f"bucket_ms must be > 0, got {bucket_ms}")
        self.bucket_ms = bucket_ms
        self._observations: List[_Observation] = []

    def add(self, record: ApiCallRecord, success: bool = True) -> None:
        if record.timestamp_ms is None:
            return
        self._observations.append(
            _Observation(record.timestamp_ms, record.duration_ms, record.vu, success)
        )

    def __len__(self) -> int:
        return len(self._observations)

    def time_range(self) -> Tuple[Optional[int], Optional[int]]:
        if not self._observations:
            return None, None
        times = [o.timestamp_ms for o in self._observations]
        return min(times), max(times)

    def global_trend(self) -> List[TimePoint]:
        # sorted() is stable, so equal timestamps keep arrival order
        ordered = sorted(self._observations, key=lambda o: o.timestamp_ms)
        return [TimePoint(o.timestamp_ms, o.duration_ms) for o in ordered]

    def _buckets(self) -> Dict[int, List[_Observation]]:
        buckets: Dict[int, List[_Observation]] = defaultdict(list)
        for o in self._observations:
            buckets[bucket_of(o.timestamp_ms, self.bucket_ms)].append(o)
        return buckets

    def vu_trend(self) -> Tuple[List[int], Dict[int, List[TimePoint]]]:
        """Per-VU bucket means aligned on one shared time axis.

        A bucket in which a VU made no call is an explicit ``None`` gap.
        """
        per_vu: Dict[int, Dict[int, List[float]]] = defaultdict(lambda: defaultdict(list))
        for o in self._observations:
            per_vu[o.vu][bucket_of(o.timestamp_ms, self.bucket_ms)].append(o.duration_ms)

        axis = sorted({b for buckets in per_vu.values() for b in buckets})
        series: Dict[int, List[TimePoint]] = {}
        for vu in sorted(per_vu):
            buckets = per_vu[vu]
            series[vu] = [
                TimePoint(
                    b * self.bucket_ms,
                    round(statistics.fmean(buckets[b]), 2) if b in buckets else None,
                )
                for b in axis
            ]
        return [b * self.bucket_ms for b in axis], series

    def timeseries(self) -> List[BucketStats]:
        rows = []
        for b, observations in sorted(self._buckets().items()):
            rows.append(BucketStats(
                time_ms=b * self.bucket_ms,
                requests=len(observations),
                avg_duration_ms=round(statistics.fmean(o.duration_ms for o in observations), 2),
                errors=sum(1 for o in observations if not o.success),
                active_vus=len({o.vu for o in observations}),
            ))
        return rows


# =========================
# ADVANCED ANALYSIS
# =========================

def fit_trend(points: List[TimePoint]) -> Optional[TrendFit]:
    """Least-squares line through the raw trend, slope in ms per second of run time."""
    values = [p for p in points if p.avg_duration_ms is not None]
    if len(values) < 5:
        return None
    start = values[0].time_ms
    x = np.array([(p.time_ms - start) / 1000.0 for p in values])
    y = np.array([p.avg_duration_ms for p in values])
    if np.all(x == x[0]):
        return None
    result = stats.linregress(x, y)
    return TrendFit(
        slope_ms_per_s=float(result.slope),
        intercept_ms=float(result.intercept),
        r_squared=float(result.rvalue ** 2),
    )


def detect_anomalies(points: List[TimePoint], threshold: float = 3.0) -> List[int]:
    """Indices of points whose z-score exceeds ``threshold``."""
    if len(points) < 10:
        return []
    values = np.array([
        p.avg_duration_ms if p.avg_duration_ms is not None else np.nan for p in points
    ])
    mean = np.nanmean(values)
    std = np.nanstd(values)
    if not std:
        return []
    z_scores = np.abs((values - mean) / std)
    return np.where(z_scores > threshold)[0].tolist()
