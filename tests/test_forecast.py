"""Unit tests for the capacity forecaster."""

from __future__ import annotations

import pytest

from loadcast.forecast import (
    RECOMMENDATIONS,
    forecast,
    response_time_score,
    scalability,
    success_rate_score,
)
from loadcast.models import RecommendationLevel, ResultMetrics, ResultSummary, TestResult
from loadcast.statistics import percentile_values


def _result(avg_ms: int, requests: int, failed: int, vus: int = 10, duration: str = "30s") -> TestResult:
    """TestResult whose p95 is 2 * avg_ms (mean-multiplier percentiles)."""
    return TestResult(
        summary=ResultSummary(vus=vus, requests=requests, avg_response_time=avg_ms, failed=failed),
        metrics=ResultMetrics(
            duration=duration,
            request_rate=0,
            data_received="0 kB",
            data_sent="0 kB",
            min_response_time=0,
            max_response_time=0,
        ),
        time_series=(),
        http_status_codes={},
        response_time=percentile_values(avg_ms),
    )


@pytest.mark.parametrize(
    ("p95", "expected"),
    [(0, 1.0), (300, 1.0), (301, 0.8), (700, 0.8), (1500, 0.6), (3000, 0.4), (3001, 0.2)],
)
def test_response_time_score_bands(p95: float, expected: float) -> None:
    assert response_time_score(p95) == expected


@pytest.mark.parametrize(
    ("rate", "expected"),
    [(1.0, 1.0), (0.99, 1.0), (0.98, 0.8), (0.95, 0.8), (0.90, 0.6), (0.85, 0.4), (0.84, 0.2), (0.0, 0.2)],
)
def test_success_rate_score_bands(rate: float, expected: float) -> None:
    assert success_rate_score(rate) == expected


@pytest.mark.parametrize(
    ("score", "factor", "level"),
    [
        (1.0, 2.2, RecommendationLevel.EXCELLENT),
        (0.8, 1.6, RecommendationLevel.EXCELLENT),
        (0.68, 1.36, RecommendationLevel.GOOD),
        (0.6, 1.2, RecommendationLevel.GOOD),
        (0.4, 0.9, RecommendationLevel.FAIR),
        (0.2, 0.75, RecommendationLevel.POOR),
    ],
)
def test_scalability(score: float, factor: float, level: RecommendationLevel) -> None:
    assert scalability(score) == (factor, level)


def test_forecast_perfect_run() -> None:
    # p95 = 300 ms, no failures
    fc = forecast(_result(avg_ms=150, requests=300, failed=0))
    assert fc.response_time_score == 1.0
    assert fc.success_rate_score == 1.0
    assert fc.performance_score == 100
    assert fc.scalability_factor == 2.2
    assert fc.recommendation_level is RecommendationLevel.EXCELLENT
    assert fc.recommended_max_concurrency == 22
    # 22 / 0.3 s * 1.0 * 0.8
    assert fc.predicted_throughput == 59
    assert fc.current_throughput == 10.0
    assert fc.recommendation == RECOMMENDATIONS[RecommendationLevel.EXCELLENT]
    assert not fc.needs_investigation


def test_forecast_band_edge_is_good_not_fair() -> None:
    # p95 = 1500 ms, 90% success -> 0.6 * 0.6 + 0.6 * 0.4 = 0.6
    fc = forecast(_result(avg_ms=750, requests=100, failed=10))
    assert fc.performance_score == 60
    assert fc.scalability_factor == 1.2
    assert fc.recommendation_level is RecommendationLevel.GOOD
    assert fc.recommended_max_concurrency == 12
    assert not fc.needs_investigation


def test_forecast_excellent_edge() -> None:
    # p95 = 700 ms, 95% success -> 0.8
    fc = forecast(_result(avg_ms=350, requests=100, failed=5))
    assert fc.performance_score == 80
    assert fc.scalability_factor == 1.6
    assert fc.recommendation_level is RecommendationLevel.EXCELLENT


def test_forecast_fair() -> None:
    # p95 = 3000 ms, 85% success -> 0.4
    fc = forecast(_result(avg_ms=1500, requests=100, failed=15))
    assert fc.performance_score == 40
    assert fc.scalability_factor == 0.9
    assert fc.recommendation_level is RecommendationLevel.FAIR
    assert fc.recommended_max_concurrency == 9
    assert fc.needs_investigation


def test_forecast_poor() -> None:
    fc = forecast(_result(avg_ms=4000, requests=100, failed=50))
    assert fc.performance_score == 20
    assert fc.scalability_factor == 0.75
    assert fc.recommendation_level is RecommendationLevel.POOR
    assert fc.recommended_max_concurrency == 8
    assert fc.needs_investigation


def test_forecast_zero_requests() -> None:
    fc = forecast(_result(avg_ms=0, requests=0, failed=0))
    assert fc.success_rate == 0.0
    assert fc.success_rate_score == 0.2
    # 1.0 * 0.6 + 0.2 * 0.4 = 0.68
    assert fc.performance_score == 68
    assert fc.predicted_throughput == 0
    assert fc.current_throughput == 0.0
    assert fc.throughput_growth_pct == -100.0


def test_forecast_response_floor_50ms() -> None:
    fc = forecast(_result(avg_ms=0, requests=100, failed=0))
    # 22 / 0.05 s * 0.8
    assert fc.predicted_throughput == 352


def test_forecast_current_throughput_uses_duration_units() -> None:
    fc = forecast(_result(avg_ms=150, requests=600, failed=0, duration="1m"))
    assert fc.current_throughput == 10.0
    assert fc.throughput_growth_pct == pytest.approx((59 / 10 - 1) * 100)


def test_forecast_duration_argument_wins() -> None:
    fc = forecast(_result(avg_ms=150, requests=600, failed=0, duration="1m"), duration="2m")
    assert fc.current_throughput == 5.0


def test_forecast_unparseable_duration_uses_one_second() -> None:
    fc = forecast(_result(avg_ms=150, requests=7, failed=0, duration="soon"))
    assert fc.current_throughput == 7.0


def test_forecast_monotone_in_response_time() -> None:
    scores = [forecast(_result(avg_ms=avg, requests=100, failed=0)).performance_score for avg in (100, 300, 700, 1400, 2000)]
    assert scores == sorted(scores, reverse=True)


def test_forecast_to_dict() -> None:
    out = forecast(_result(avg_ms=150, requests=300, failed=0)).to_dict()
    assert out["performanceScore"] == 100
    assert out["recommendationLevel"] == "excellent"
    assert out["scalabilityFactor"] == 2.2
    assert out["needsInvestigation"] is False
