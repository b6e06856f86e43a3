"""Run orchestration: config -> plan -> execution -> TestResult -> Forecast.

Each call is self-contained (own run id, own workspace, no module-level state), so
several runs may execute concurrently on one event loop.
"""

from __future__ import annotations

import asyncio
import random
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .config import EngineSettings
from .drivers import K6Driver, LoadDriver, SyntheticDriver
from .executor import ExecutionAdapter
from .forecast import forecast
from .logging_config import get_logger
from .models import RunReport, TestConfig
from .plan import build_plan

if TYPE_CHECKING:
    from .statistics import PercentileStrategy

logger = get_logger("runner")


async def run_load_test(
    config: TestConfig,
    settings: EngineSettings | None = None,
    driver: LoadDriver | None = None,
    rng: random.Random | None = None,
    cancel_event: asyncio.Event | None = None,
    strategy: PercentileStrategy | None = None,
) -> RunReport:
    """Run one load test end to end.

    Args:
        config: Test configuration (validated here, before any resource is used)
        settings: Engine settings; read from the environment when omitted
        driver: Load driver to try first; k6 unless settings.force_synthetic
        rng: Random source for synthetic data and sampled active users
        cancel_event: Set it to abort the run
        strategy: Percentile strategy for stream results

    Returns:
        RunReport with the TestResult and its Forecast

    Raises:
        InvalidConfigError: If the config is invalid
        RunCancelledError: If cancel_event was set before the run finished
    """
    settings = settings or EngineSettings.from_env()
    plan = build_plan(config)
    rng = rng or random.Random()
    if driver is None and not settings.force_synthetic:
        driver = K6Driver(settings.k6_binary, rng)
    adapter = ExecutionAdapter(
        driver,
        SyntheticDriver(rng),
        timeout=settings.timeout_seconds,
        artifact_root=settings.artifact_root,
        strategy=strategy,
    )

    run_id = uuid.uuid4().hex
    started_at = datetime.now(timezone.utc)
    logger.info(
        "Starting load test %s: %s %s, vus=%s, duration=%s, ramp_up=%s",
        run_id, plan.method.value, plan.final_url, plan.virtual_users, plan.duration, plan.ramp_up,
        extra={"run_id": run_id},
    )
    result = await adapter.run(plan, cancel_event=cancel_event, run_id=run_id)
    capacity = forecast(result, duration=plan.duration)
    finished_at = datetime.now(timezone.utc)
    logger.info(
        "Load test %s finished (%s): requests=%s, failed=%s, avg_ms=%s, score=%s",
        run_id, result.source, result.summary.requests, result.summary.failed,
        result.summary.avg_response_time, capacity.performance_score,
        extra={"run_id": run_id, "source": result.source},
    )
    return RunReport(
        run_id=run_id,
        config=config,
        result=result,
        forecast=capacity,
        started_at=started_at,
        finished_at=finished_at,
    )
