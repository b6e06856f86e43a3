"""Stream aggregation with bounded memory.

Consumes the measurement stream one point at a time: running totals, a status-code
histogram, a time-series capped at the first 30 samples and a T-Digest of durations.
Partial states from separate shards combine with `merge_states` (associative).
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import orjson
from tdigest import TDigest

from .exceptions import MalformedStreamLineError
from .logging_config import get_logger
from .models import MeasurementPoint, MetricName, TimeSeriesSample
from .statistics import round_half_up

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger("aggregator")

# Time-series samples kept per run; later duration points only update totals
MAX_TIME_SERIES_SAMPLES = 30
DEFAULT_STATUS = "200"
_METRICS_BY_NAME = {m.value: m for m in MetricName}


@dataclass(slots=True)
class AggregateState:
    """Mutable accumulator for one run. Owned by a single StreamAggregator."""

    total_requests: int = 0
    failed_requests: int = 0
    sum_response_time: float = 0.0
    duration_count: int = 0
    min_response_time: float = math.inf
    max_response_time: float = 0.0
    samples: list[TimeSeriesSample] = field(default_factory=list)
    status_counts: dict[str, int] = field(default_factory=dict)
    bytes_received: float = 0.0
    bytes_sent: float = 0.0
    skipped_lines: int = 0
    digest: TDigest = field(default_factory=TDigest)

    @property
    def has_durations(self) -> bool:
        return self.duration_count > 0


def _parse_timestamp(raw: object) -> float:
    """k6 emits RFC 3339 strings; numeric epoch seconds are accepted too.

    The result must be representable as a local datetime, since samples are labelled
    with it; out-of-range values raise ValueError, OverflowError or OSError.
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        ts = float(raw)
    elif isinstance(raw, str) and raw:
        # fromisoformat truncates k6's nanosecond fractions to microseconds
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    else:
        raise ValueError(f"unsupported timestamp: {raw!r}")
    clock_time(ts)
    return ts


def clock_time(timestamp: float) -> str:
    """Local wall-clock label (HH:MM:SS) for a chart sample."""
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")


def parse_point(line: str | bytes) -> MeasurementPoint | None:
    """Decode one k6 JSON output line.

    Returns None for well-formed lines that carry no point we consume (e.g. "Metric"
    declarations or other metric names).

    Raises:
        MalformedStreamLineError: If the line is not valid JSON or the point is incomplete
    """
    try:
        obj = orjson.loads(line)
    except orjson.JSONDecodeError as e:
        raise MalformedStreamLineError("Measurement line is not valid JSON", original_error=e) from e
    if not isinstance(obj, dict) or obj.get("type") != "Point":
        return None
    metric = _METRICS_BY_NAME.get(obj.get("metric"))
    if metric is None:
        return None
    data = obj.get("data")
    if not isinstance(data, dict):
        raise MalformedStreamLineError("Point has no data object", context={"metric": metric.value})
    try:
        value = float(data["value"])
        if not math.isfinite(value):
            raise ValueError(f"non-finite value: {value!r}")
        timestamp = _parse_timestamp(data.get("time"))
    except (KeyError, TypeError, ValueError, OverflowError, OSError) as e:
        raise MalformedStreamLineError(
            "Point has an invalid value or time",
            context={"metric": metric.value},
            original_error=e,
        ) from e
    tags = data.get("tags")
    return MeasurementPoint(metric, timestamp, value, tags if isinstance(tags, dict) else None)


class StreamAggregator:
    """Incrementally folds MeasurementPoints into an AggregateState.

    activeUsers cannot be read from the k6 stream, so each sample gets a uniform random
    value in [1, virtual_users]. This is an approximation, not a measured quantity.
    """

    __slots__ = ("_state", "_virtual_users", "_rng")

    def __init__(self, virtual_users: int, rng: random.Random | None = None) -> None:
        self._state = AggregateState()
        self._virtual_users = max(1, virtual_users)
        self._rng = rng or random.Random()

    @property
    def state(self) -> AggregateState:
        return self._state

    def ingest(self, point: MeasurementPoint) -> None:
        """Apply one point to the running state."""
        s = self._state
        metric = point.metric
        if metric is MetricName.HTTP_REQ_DURATION:
            v = point.value
            s.sum_response_time += v
            s.duration_count += 1
            if v < s.min_response_time:
                s.min_response_time = v
            if v > s.max_response_time:
                s.max_response_time = v
            s.digest.update(v)
            if len(s.samples) < MAX_TIME_SERIES_SAMPLES:
                s.samples.append(
                    TimeSeriesSample(
                        time=clock_time(point.timestamp),
                        response_time=round_half_up(v),
                        active_users=self._rng.randint(1, self._virtual_users),
                        timestamp=point.timestamp,
                    )
                )
        elif metric is MetricName.HTTP_REQS:
            s.total_requests += 1
            status = str(point.tags.get("status") or DEFAULT_STATUS)
            s.status_counts[status] = s.status_counts.get(status, 0) + 1
        elif metric is MetricName.HTTP_REQ_FAILED:
            if point.value > 0:
                s.failed_requests += 1
        elif metric is MetricName.DATA_RECEIVED:
            s.bytes_received += point.value
        elif metric is MetricName.DATA_SENT:
            s.bytes_sent += point.value

    def ingest_line(self, line: str | bytes) -> bool:
        """Decode and ingest one raw line. Returns False when nothing was ingested."""
        if not line.strip():
            return False
        try:
            point = parse_point(line)
        except MalformedStreamLineError as e:
            self._state.skipped_lines += 1
            logger.debug("Skipping malformed measurement line: %s", e)
            return False
        if point is None:
            return False
        self.ingest(point)
        return True

    def ingest_lines(self, lines: Iterable[str | bytes]) -> int:
        """Ingest many lines; returns the number of points applied."""
        return sum(1 for line in lines if self.ingest_line(line))

    def merge(self, other: StreamAggregator | AggregateState) -> None:
        """Fold another shard's state into this one."""
        other_state = other.state if isinstance(other, StreamAggregator) else other
        self._state = merge_states(self._state, other_state)


def merge_states(a: AggregateState, b: AggregateState) -> AggregateState:
    """Associative combination of two partial states.

    Totals, histograms and byte counters add up; min/max combine; the time series keeps
    the first MAX_TIME_SERIES_SAMPLES samples in chronological order.
    """
    status_counts = dict(a.status_counts)
    for k, v in b.status_counts.items():
        status_counts[k] = status_counts.get(k, 0) + v
    samples = sorted(a.samples + b.samples, key=lambda sample: sample.timestamp)
    return AggregateState(
        total_requests=a.total_requests + b.total_requests,
        failed_requests=a.failed_requests + b.failed_requests,
        sum_response_time=a.sum_response_time + b.sum_response_time,
        duration_count=a.duration_count + b.duration_count,
        min_response_time=min(a.min_response_time, b.min_response_time),
        max_response_time=max(a.max_response_time, b.max_response_time),
        samples=samples[:MAX_TIME_SERIES_SAMPLES],
        status_counts=status_counts,
        bytes_received=a.bytes_received + b.bytes_received,
        bytes_sent=a.bytes_sent + b.bytes_sent,
        skipped_lines=a.skipped_lines + b.skipped_lines,
        digest=a.digest + b.digest,
    )
