"""Data models for loadcast.

Input (TestConfig), derived plan (LoadTestPlan), ephemeral stream items
(MeasurementPoint) and the immutable outputs (TestResult, Forecast, RunReport).
Outputs serialize to the camelCase shape consumed by presentation collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import orjson


class HttpMethod(str, Enum):
    """HTTP methods accepted in a test config."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


@dataclass(slots=True, frozen=True)
class KeyValue:
    """One ordered header or query parameter entry."""

    key: str
    value: str

    def is_complete(self) -> bool:
        return bool(self.key) and bool(self.value)


@dataclass(slots=True)
class TestConfig:
    """Declarative HTTP load-test configuration, as supplied by the caller."""

    __test__ = False

    url: str
    method: HttpMethod = HttpMethod.GET
    headers: list[KeyValue] = field(default_factory=list)
    parameters: list[KeyValue] = field(default_factory=list)
    body: str = ""
    virtual_users: int = 10
    duration: str = "30s"
    ramp_up: str = "5s"

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method.value,
            "headers": [{"key": h.key, "value": h.value} for h in self.headers],
            "parameters": [{"key": p.key, "value": p.value} for p in self.parameters],
            "body": self.body,
            "virtualUsers": self.virtual_users,
            "duration": self.duration,
            "rampUp": self.ramp_up,
        }


class BodyKind(str, Enum):
    JSON = "json"
    RAW = "raw"


@dataclass(slots=True, frozen=True)
class BodyPayload:
    """Resolved request body: parsed JSON structure or the raw string verbatim."""

    kind: BodyKind
    value: Any

    def serialized(self) -> str:
        """Text the driver sends on the wire."""
        if self.kind is BodyKind.JSON:
            return orjson.dumps(self.value).decode("utf-8")
        return self.value


@dataclass(slots=True, frozen=True)
class Stage:
    """One load stage: move to `target` VUs over `duration` (literal duration string)."""

    target: int
    duration: str


@dataclass(slots=True, frozen=True)
class LoadTestPlan:
    """Fully specified, immutable load-test plan derived from a TestConfig."""

    method: HttpMethod
    final_url: str
    header_map: dict[str, str]
    body: BodyPayload | None
    stages: tuple[Stage, ...]
    virtual_users: int
    duration: str
    duration_ms: int
    ramp_up: str
    ramp_up_ms: int

    @property
    def duration_seconds(self) -> float:
        return self.duration_ms / 1000

    @property
    def total_ms(self) -> int:
        """Wall-clock length of all three stages."""
        return self.duration_ms + 2 * self.ramp_up_ms


class MetricName(str, Enum):
    """k6 metric names consumed from the measurement stream."""

    HTTP_REQ_DURATION = "http_req_duration"
    HTTP_REQS = "http_reqs"
    HTTP_REQ_FAILED = "http_req_failed"
    DATA_RECEIVED = "data_received"
    DATA_SENT = "data_sent"


class MeasurementPoint:
    """One timestamped observation emitted by a driver.

    Uses __slots__: one instance is allocated per stream line.
    """

    __slots__ = ("metric", "timestamp", "value", "tags")

    def __init__(
        self,
        metric: MetricName,
        timestamp: float,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.metric = metric
        self.timestamp = timestamp
        self.value = value
        self.tags = tags if tags is not None else {}

    def __repr__(self) -> str:
        return f"MeasurementPoint(metric={self.metric.value!r}, value={self.value!r}, tags={self.tags!r})"


@dataclass(slots=True, frozen=True)
class TimeSeriesSample:
    """Chart sample. `timestamp` (epoch seconds) orders samples and is not exported."""

    time: str
    response_time: int
    active_users: int
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "responseTime": self.response_time, "activeUsers": self.active_users}


@dataclass(slots=True, frozen=True)
class ResultSummary:
    vus: int
    requests: int
    avg_response_time: int
    failed: int


@dataclass(slots=True, frozen=True)
class ResultMetrics:
    duration: str
    request_rate: int
    data_received: str
    data_sent: str
    min_response_time: int
    max_response_time: int


@dataclass(slots=True, frozen=True)
class PercentileValue:
    percentile: str
    value: int


@dataclass(slots=True, frozen=True)
class TestResult:
    """Final, immutable result of one run."""

    __test__ = False

    summary: ResultSummary
    metrics: ResultMetrics
    time_series: tuple[TimeSeriesSample, ...]
    http_status_codes: dict[str, int]
    response_time: tuple[PercentileValue, ...]
    source: str = "k6"

    def percentile(self, name: str) -> int | None:
        for item in self.response_time:
            if item.percentile == name:
                return item.value
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "vus": self.summary.vus,
                "requests": self.summary.requests,
                "avgResponseTime": self.summary.avg_response_time,
                "failed": self.summary.failed,
            },
            "metrics": {
                "duration": self.metrics.duration,
                "requestRate": self.metrics.request_rate,
                "dataReceived": self.metrics.data_received,
                "dataSent": self.metrics.data_sent,
                "minResponseTime": self.metrics.min_response_time,
                "maxResponseTime": self.metrics.max_response_time,
            },
            "timeSeries": [s.to_dict() for s in self.time_series],
            "httpStatusCodes": dict(self.http_status_codes),
            "responseTime": [{"percentile": p.percentile, "value": p.value} for p in self.response_time],
            "source": self.source,
        }


class RecommendationLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(slots=True, frozen=True)
class Forecast:
    """Capacity forecast derived from a TestResult."""

    performance_score: int
    recommended_max_concurrency: int
    predicted_throughput: int
    scalability_factor: float
    recommendation_level: RecommendationLevel
    response_time_score: float
    success_rate_score: float
    success_rate: float
    current_throughput: float
    throughput_growth_pct: float
    recommendation: str

    @property
    def needs_investigation(self) -> bool:
        """True below a 60/100 score: resources should be checked before adding load."""
        return self.performance_score < 60

    def to_dict(self) -> dict[str, Any]:
        return {
            "performanceScore": self.performance_score,
            "recommendedMaxConcurrency": self.recommended_max_concurrency,
            "predictedThroughput": self.predicted_throughput,
            "scalabilityFactor": self.scalability_factor,
            "recommendationLevel": self.recommendation_level.value,
            "responseTimeScore": self.response_time_score,
            "successRateScore": self.success_rate_score,
            "successRate": round(self.success_rate, 4),
            "currentThroughput": round(self.current_throughput, 2),
            "throughputGrowthPct": round(self.throughput_growth_pct, 1),
            "recommendation": self.recommendation,
            "needsInvestigation": self.needs_investigation,
        }


@dataclass(slots=True, frozen=True)
class RunReport:
    """TestResult + Forecast pair handed to presentation collaborators."""

    run_id: str
    config: TestConfig
    result: TestResult
    forecast: Forecast
    started_at: datetime
    finished_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.run_id,
            "startedAt": self.started_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "finishedAt": self.finished_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "config": self.config.to_dict(),
            "results": self.result.to_dict(),
            "forecast": self.forecast.to_dict(),
        }
