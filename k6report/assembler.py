from typing import Iterable, Optional, Sequence

from .aggregation import DEFAULT_PERCENTILES, error_breakdown, summarize, summarize_groups
from .grouping import DIMENSIONS, Grouper, overall_key
from .models import ApiCallRecord, FeedStats, ReportModel, SuccessPolicy, status_is_200
from .parsing import parse_feed
from .trends import DEFAULT_BUCKET_MS, TrendBuilder, detect_anomalies, fit_trend


def build_report(records: Iterable[ApiCallRecord],
                 policy: SuccessPolicy = status_is_200,
                 percentiles: Sequence[float] = DEFAULT_PERCENTILES,
                 bucket_ms: int = DEFAULT_BUCKET_MS,
                 feed: Optional[FeedStats] = None) -> ReportModel:
    """Aggregate records into a ``ReportModel`` in a single pass.

    Every grouping dimension owns its own accumulators; the success policy is
    evaluated once per record and shared by all of them. An empty input gives
    an empty but well-formed model.
    """
    groupers = {name: Grouper(key_of, policy) for name, key_of in DIMENSIONS.items()}
    overall = Grouper(overall_key, policy)
    trend = TrendBuilder(bucket_ms)

    for record in records:
        success = policy(record.status)
        for grouper in groupers.values():
            grouper.add(record, success)
        overall.add(record, success)
        trend.add(record, success)

    overall_summary = None
    if overall.groups:
        overall_summary = summarize(overall.groups["*"], percentiles)

    points = trend.global_trend()
    vu_axis, vu_series = trend.vu_trend()
    start_ms, end_ms = trend.time_range()

    return ReportModel(
        by_api=summarize_groups(groupers["api"].groups, percentiles),
        by_scenario=summarize_groups(groupers["scenario"].groups, percentiles),
        by_page=summarize_groups(groupers["page"].groups, percentiles),
        trend=points,
        vu_trend=vu_series,
        vu_axis=vu_axis,
        by_vu=summarize_groups(groupers["vu"].groups, percentiles),
        overall=overall_summary,
        timeseries=trend.timeseries(),
        error_breakdown=error_breakdown(overall_summary),
        trend_fit=fit_trend(points),
        anomalies=detect_anomalies(points),
        start_ms=start_ms,
        end_ms=end_ms,
        feed=feed,
    )


def build_report_from_feed(path: str,
                           policy: SuccessPolicy = status_is_200,
                           percentiles: Sequence[float] = DEFAULT_PERCENTILES,
                           bucket_ms: int = DEFAULT_BUCKET_MS) -> ReportModel:
    """Parse a feed file and aggregate it. Raises ``FeedOpenError`` if unreadable."""
    stats = FeedStats()
    records = parse_feed(path, policy=policy, stats=stats)
    return build_report(records, policy, percentiles, bucket_ms, feed=stats)
