"""Unit tests for result finalization and percentile strategies."""

from __future__ import annotations

import random

import pytest

from loadcast.aggregator import AggregateState, StreamAggregator
from loadcast.models import PercentileValue, TestConfig
from loadcast.plan import build_plan
from loadcast.statistics import (
    DigestPercentiles,
    MeanMultiplierPercentiles,
    finalize,
    format_bytes,
    percentile_values,
    round_half_up,
)


@pytest.fixture
def plan_2s():
    return build_plan(TestConfig(url="https://api.test", virtual_users=1, duration="2s", ramp_up="0s"))


@pytest.mark.parametrize(("x", "expected"), [(2.5, 3), (2.4999, 2), (0.5, 1), (0.0, 0), (151.5, 152)])
def test_round_half_up(x: float, expected: int) -> None:
    assert round_half_up(x) == expected


def test_percentile_values_mean_multipliers() -> None:
    assert percentile_values(100) == (
        PercentileValue("p50", 100),
        PercentileValue("p90", 150),
        PercentileValue("p95", 200),
        PercentileValue("p99", 300),
    )
    assert [p.value for p in percentile_values(101)] == [101, 152, 202, 303]


@pytest.mark.parametrize(
    ("num_bytes", "expected"),
    [(2_500_000, "2.5 MB"), (1_000_000, "1.0 MB"), (12_000, "12 kB"), (999_999, "1000 kB"), (0, "0 kB")],
)
def test_format_bytes(num_bytes: float, expected: str) -> None:
    assert format_bytes(num_bytes) == expected


def test_finalize_sample_stream(k6_sample_lines: list[str], plan_2s) -> None:
    agg = StreamAggregator(1, random.Random(3))
    agg.ingest_lines(k6_sample_lines)
    result = finalize(agg.state, plan_2s)
    assert result.source == "k6"
    assert result.summary.vus == 1
    assert result.summary.requests == 4
    assert result.summary.failed == 1
    assert result.summary.avg_response_time == 250
    assert result.metrics.duration == "2s"
    assert result.metrics.request_rate == 2
    assert result.metrics.min_response_time == 100
    assert result.metrics.max_response_time == 400
    assert result.metrics.data_received == "2.5 MB"
    assert result.metrics.data_sent == "12 kB"
    assert result.http_status_codes == {"200": 3, "500": 1}
    assert [p.value for p in result.response_time] == [250, 375, 500, 750]
    assert len(result.time_series) == 4


def test_finalize_empty_state(plan_2s) -> None:
    result = finalize(AggregateState(), plan_2s)
    assert result.summary.requests == 0
    assert result.summary.avg_response_time == 0
    assert result.metrics.request_rate == 0
    assert result.metrics.min_response_time == 0
    assert result.metrics.max_response_time == 0
    assert result.http_status_codes == {}
    assert [p.value for p in result.response_time] == [0, 0, 0, 0]
    assert result.time_series == ()


def test_finalize_does_not_alias_state(k6_sample_lines: list[str], plan_2s) -> None:
    agg = StreamAggregator(1)
    agg.ingest_lines(k6_sample_lines)
    result = finalize(agg.state, plan_2s)
    agg.state.status_counts["200"] = 99
    assert result.http_status_codes["200"] == 3


def test_mean_multiplier_strategy_ignores_state() -> None:
    assert MeanMultiplierPercentiles().estimate(AggregateState(), 80) == percentile_values(80)


def test_digest_percentiles_monotone_and_plausible(plan_2s) -> None:
    state = AggregateState()
    for v in range(1, 1001):
        state.digest.update(float(v))
        state.duration_count += 1
    values = [p.value for p in DigestPercentiles().estimate(state, 500)]
    assert [p.percentile for p in DigestPercentiles().estimate(state, 500)] == ["p50", "p90", "p95", "p99"]
    assert values == sorted(values)
    assert 450 <= values[0] <= 550
    assert 850 <= values[1] <= 950
    assert values[3] <= 1000


def test_digest_percentiles_fall_back_without_durations() -> None:
    assert DigestPercentiles().estimate(AggregateState(), 120) == percentile_values(120)


def test_finalize_with_digest_strategy(k6_sample_lines: list[str], plan_2s) -> None:
    agg = StreamAggregator(1)
    agg.ingest_lines(k6_sample_lines)
    result = finalize(agg.state, plan_2s, DigestPercentiles())
    values = [p.value for p in result.response_time]
    assert values == sorted(values)
    assert 100 <= values[0] <= 400
    assert values[-1] <= 400
