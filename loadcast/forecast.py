"""Capacity forecaster: TestResult -> Forecast.

A fixed business-rule model, not a statistical one. The p95 response time and the
success rate are each mapped to a band score, combined 60/40 into a performance score,
and the score selects a scalability factor that projects the concurrency and
throughput the target could sustain (Little's law with an 80% safety margin).
"""

from __future__ import annotations

from .config import parse_duration
from .exceptions import InvalidConfigError
from .logging_config import get_logger
from .models import Forecast, RecommendationLevel, TestResult
from .statistics import round_half_up

logger = get_logger("forecast")

# (upper bound of p95 in ms, score); anything slower scores FLOOR_SCORE
RESPONSE_TIME_BANDS = ((300, 1.0), (700, 0.8), (1500, 0.6), (3000, 0.4))
# (lower bound of success rate, score)
SUCCESS_RATE_BANDS = ((0.99, 1.0), (0.95, 0.8), (0.90, 0.6), (0.85, 0.4))
FLOOR_SCORE = 0.2
RESPONSE_TIME_WEIGHT = 0.6
SUCCESS_RATE_WEIGHT = 0.4
MIN_EFFECTIVE_RESPONSE_MS = 50
THROUGHPUT_SAFETY_MARGIN = 0.8
# Scores are compared at this precision so band edges (0.6, 0.8) are exact
SCORE_PRECISION = 4

RECOMMENDATIONS = {
    RecommendationLevel.EXCELLENT: "Excellent performance; the system can take more users with confidence.",
    RecommendationLevel.GOOD: "Good performance; check system resources before adding load.",
    RecommendationLevel.FAIR: "Close to its limits; improve performance before adding load.",
    RecommendationLevel.POOR: "Performance problems; reduce load or fix the system urgently.",
}


def response_time_score(p95_ms: float) -> float:
    for bound, score in RESPONSE_TIME_BANDS:
        if p95_ms <= bound:
            return score
    return FLOOR_SCORE


def success_rate_score(success_rate: float) -> float:
    for bound, score in SUCCESS_RATE_BANDS:
        if success_rate >= bound:
            return score
    return FLOOR_SCORE


def scalability(score: float) -> tuple[float, RecommendationLevel]:
    """Piecewise-linear scalability factor for a 0-1 performance score."""
    if score >= 0.8:
        factor, level = 1.6 + (score - 0.8) * 3, RecommendationLevel.EXCELLENT
    elif score >= 0.6:
        factor, level = 1.2 + (score - 0.6) * 2, RecommendationLevel.GOOD
    elif score >= 0.4:
        factor, level = 0.9 + (score - 0.4) * 1.5, RecommendationLevel.FAIR
    else:
        factor, level = 0.6 + score * 0.75, RecommendationLevel.POOR
    return round(factor, SCORE_PRECISION), level


def _duration_seconds(duration: str | None) -> float:
    if not duration:
        return 1.0
    try:
        ms = parse_duration(duration)
    except InvalidConfigError:
        logger.debug("Unparseable duration %r; current throughput uses 1s", duration)
        return 1.0
    return ms / 1000 if ms > 0 else 1.0


def forecast(result: TestResult, duration: str | None = None) -> Forecast:
    """Compute the capacity forecast for a result.

    Args:
        result: Finished TestResult
        duration: Hold duration of the originating plan; defaults to result.metrics.duration
    """
    requests = result.summary.requests
    failed = result.summary.failed
    success_rate = (requests - failed) / requests if requests > 0 else 0.0
    p95 = result.percentile("p95")
    if p95 is None:
        p95 = result.summary.avg_response_time

    rt_score = response_time_score(p95)
    sr_score = success_rate_score(success_rate)
    score = round(rt_score * RESPONSE_TIME_WEIGHT + sr_score * SUCCESS_RATE_WEIGHT, SCORE_PRECISION)
    factor, level = scalability(score)

    max_concurrency = round_half_up(result.summary.vus * factor)
    effective_response_seconds = max(p95, MIN_EFFECTIVE_RESPONSE_MS) / 1000
    theoretical_throughput = max_concurrency / effective_response_seconds
    predicted_throughput = round_half_up(theoretical_throughput * success_rate * THROUGHPUT_SAFETY_MARGIN)

    current_throughput = requests / _duration_seconds(duration or result.metrics.duration)
    growth_pct = (predicted_throughput / max(current_throughput, 1) - 1) * 100

    return Forecast(
        performance_score=round_half_up(score * 100),
        recommended_max_concurrency=max_concurrency,
        predicted_throughput=predicted_throughput,
        scalability_factor=factor,
        recommendation_level=level,
        response_time_score=rt_score,
        success_rate_score=sr_score,
        success_rate=success_rate,
        current_throughput=current_throughput,
        throughput_growth_pct=growth_pct,
        recommendation=RECOMMENDATIONS[level],
    )
