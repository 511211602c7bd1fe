import pytest

from k6report.models import TimePoint
from k6report.trends import TrendBuilder, bucket_of, detect_anomalies, fit_trend


def _builder(records, bucket_ms=1000) -> TrendBuilder:
    builder = TrendBuilder(bucket_ms)
    for record in records:
        builder.add(record, success=str(record.status) == "200")
    return builder


def test_global_trend_sorted_by_time_and_stable(make_record) -> None:
    records = [
        make_record(timestamp_ms=3000, duration_ms=3),
        make_record(timestamp_ms=1000, duration_ms=1),
        make_record(timestamp_ms=2000, duration_ms=20),
        make_record(timestamp_ms=2000, duration_ms=21),
    ]
    trend = _builder(records).global_trend()

    assert trend == [
        TimePoint(1000, 1),
        TimePoint(2000, 20),
        TimePoint(2000, 21),
        TimePoint(3000, 3),
    ]


def test_records_without_timestamp_are_left_out(make_record) -> None:
    builder = _builder([make_record(timestamp_ms=None), make_record(timestamp_ms=5)])
    assert len(builder) == 1
    assert builder.time_range() == (5, 5)
    assert TrendBuilder().time_range() == (None, None)


def test_vu_trend_aligned_with_explicit_gaps(make_record) -> None:
    records = [
        make_record(vu=1, timestamp_ms=1000, duration_ms=100),
        make_record(vu=1, timestamp_ms=1500, duration_ms=200),
        make_record(vu=2, timestamp_ms=2100, duration_ms=50),
        make_record(vu=1, timestamp_ms=3999, duration_ms=300),
    ]
    axis, series = _builder(records).vu_trend()

    assert axis == [1000, 2000, 3000]
    assert list(series) == [1, 2]
    assert series[1] == [TimePoint(1000, 150.0), TimePoint(2000, None), TimePoint(3000, 300.0)]
    assert series[2] == [TimePoint(1000, None), TimePoint(2000, 50.0), TimePoint(3000, None)]


def test_bucket_boundaries_round_trip(make_record) -> None:
    records = [make_record(vu=i % 3, timestamp_ms=1_700_000_000_000 + i * 377) for i in range(40)]
    axis, _ = _builder(records).vu_trend()

    assert sorted({bucket_of(r.timestamp_ms) for r in records}) == [bucket_of(t) for t in axis]
    for time_ms in axis:
        assert bucket_of(time_ms) * 1000 == time_ms
    again, _ = _builder([make_record(timestamp_ms=t) for t in axis]).vu_trend()
    assert again == axis


def test_custom_bucket_width(make_record) -> None:
    records = [make_record(timestamp_ms=t) for t in [0, 4999, 5000]]
    axis, _ = _builder(records, bucket_ms=5000).vu_trend()
    assert axis == [0, 5000]


def test_invalid_bucket_width() -> None:
    with pytest.raises(ValueError):
        TrendBuilder(0)


def test_timeseries_counts_requests_errors_and_vus(make_record) -> None:
    records = [
        make_record(vu=1, timestamp_ms=1000, duration_ms=10),
        make_record(vu=2, timestamp_ms=1200, duration_ms=30, status="500"),
        make_record(vu=1, timestamp_ms=1900, duration_ms=20),
        make_record(vu=1, timestamp_ms=2000, duration_ms=40),
    ]
    rows = _builder(records).timeseries()

    assert [(r.time_ms, r.requests, r.avg_duration_ms, r.errors, r.active_vus) for r in rows] == [
        (1000, 3, 20.0, 1, 2),
        (2000, 1, 40.0, 0, 1),
    ]


def test_fit_trend_detects_linear_growth() -> None:
    points = [TimePoint(i * 1000, 100 + 10 * i) for i in range(6)]
    fit = fit_trend(points)

    assert fit.slope_ms_per_s == pytest.approx(10.0)
    assert fit.intercept_ms == pytest.approx(100.0)
    assert fit.r_squared == pytest.approx(1.0)


def test_fit_trend_needs_enough_spread() -> None:
    assert fit_trend([TimePoint(i, 1) for i in range(4)]) is None
    assert fit_trend([TimePoint(1000, i) for i in range(6)]) is None


def test_detect_anomalies_flags_outlier() -> None:
    points = [TimePoint(i, 100) for i in range(19)] + [TimePoint(19, 10_000)]
    assert detect_anomalies(points) == [19]
    assert detect_anomalies(points[:5]) == []
    assert detect_anomalies([TimePoint(i, 5) for i in range(20)]) == []
