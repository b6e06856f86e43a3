"""Statistics engine: AggregateState -> immutable TestResult.

Percentiles come from a pluggable strategy. The default derives them from the mean
(p50 = avg, p90 = 1.5x, p95 = 2x, p99 = 3x), which is cheap and matches results
produced by earlier versions. DigestPercentiles estimates true quantiles from the
T-Digest kept by the aggregator and returns the same four named entries.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Protocol

from tdigest import TDigest

from .models import LoadTestPlan, PercentileValue, ResultMetrics, ResultSummary, TestResult

if TYPE_CHECKING:
    from .aggregator import AggregateState

PERCENTILE_NAMES = ("p50", "p90", "p95", "p99")
MEAN_MULTIPLIERS = (1.0, 1.5, 2.0, 3.0)
BYTES_PER_MB = 1_000_000
BYTES_PER_KB = 1_000


def round_half_up(x: float) -> int:
    """Round .5 away from zero for positive values (2.5 -> 3), unlike round()."""
    return int(math.floor(x + 0.5))


def percentile_values(avg_response_time: int) -> tuple[PercentileValue, ...]:
    """Mean-multiplier percentile model. Ascending by construction."""
    return tuple(
        PercentileValue(name, round_half_up(avg_response_time * m))
        for name, m in zip(PERCENTILE_NAMES, MEAN_MULTIPLIERS)
    )


def format_bytes(num_bytes: float) -> str:
    if num_bytes >= BYTES_PER_MB:
        return f"{num_bytes / BYTES_PER_MB:.1f} MB"
    return f"{num_bytes / BYTES_PER_KB:.0f} kB"


class PercentileStrategy(Protocol):
    def estimate(self, state: AggregateState, avg_response_time: int) -> tuple[PercentileValue, ...]: ...


class MeanMultiplierPercentiles:
    """p50/p90/p95/p99 as fixed multiples of the average response time."""

    def estimate(self, state: AggregateState, avg_response_time: int) -> tuple[PercentileValue, ...]:
        return percentile_values(avg_response_time)


def _digest_percentile(digest: TDigest, p: float) -> float:
    try:
        return digest.percentile(p) or 0.0
    except (ValueError, IndexError):
        return 0.0


class DigestPercentiles:
    """Streaming quantiles from the T-Digest of observed durations.

    Falls back to the mean-multiplier model when no duration was observed.
    """

    def estimate(self, state: AggregateState, avg_response_time: int) -> tuple[PercentileValue, ...]:
        if not state.has_durations:
            return percentile_values(avg_response_time)
        out: list[PercentileValue] = []
        floor = 0
        for name in PERCENTILE_NAMES:
            value = max(floor, round_half_up(_digest_percentile(state.digest, float(name[1:]))))
            out.append(PercentileValue(name, value))
            floor = value
        return tuple(out)


def finalize(
    state: AggregateState,
    plan: LoadTestPlan,
    strategy: PercentileStrategy | None = None,
    source: str = "k6",
) -> TestResult:
    """Convert a finished aggregate into a TestResult.

    avgResponseTime divides the duration sum by the request count (k6 emits one
    duration per request); requestRate uses the hold-stage duration.
    """
    strategy = strategy or MeanMultiplierPercentiles()
    total = state.total_requests
    avg = round_half_up(state.sum_response_time / total) if total > 0 else 0
    duration_seconds = plan.duration_seconds
    request_rate = round_half_up(total / duration_seconds) if duration_seconds > 0 else 0
    min_rt = round_half_up(state.min_response_time) if state.has_durations else 0
    return TestResult(
        summary=ResultSummary(
            vus=plan.virtual_users,
            requests=total,
            avg_response_time=avg,
            failed=state.failed_requests,
        ),
        metrics=ResultMetrics(
            duration=plan.duration,
            request_rate=request_rate,
            data_received=format_bytes(state.bytes_received),
            data_sent=format_bytes(state.bytes_sent),
            min_response_time=min_rt,
            max_response_time=round_half_up(state.max_response_time),
        ),
        time_series=tuple(state.samples),
        http_status_codes=dict(state.status_counts),
        response_time=strategy.estimate(state, avg),
        source=source,
    )
