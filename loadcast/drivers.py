"""Load drivers: the k6 process driver and the synthetic fallback.

Both implement the same capability (start, wait, cleanup) and hand back an artifact
that knows how to summarize itself, so the execution adapter never branches on which
driver produced the data.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from .aggregator import StreamAggregator
from .exceptions import DriverError, DriverTimeoutError, DriverUnavailableError
from .logging_config import get_logger
from .models import LoadTestPlan, ResultMetrics, ResultSummary, TestResult, TimeSeriesSample
from .script import render_k6_script
from .statistics import finalize, percentile_values, round_half_up

if TYPE_CHECKING:
    from .statistics import PercentileStrategy

logger = get_logger("drivers")

SCRIPT_FILENAME = "script.js"
RESULTS_FILENAME = "results.json"
LOG_FILENAME = "k6.log"
# Bytes of driver stderr attached to DriverError context
LOG_TAIL_BYTES = 2000

SYNTHETIC_MAX_SAMPLES = 30


class RunWorkspace:
    """Per-run artifact directory. The run id is part of the name, so concurrent runs
    never share script or result files."""

    __slots__ = ("run_id", "path")

    def __init__(self, run_id: str, root: Path | None = None) -> None:
        self.run_id = run_id
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix=f"loadcast-{run_id}-", dir=root))

    @property
    def script_path(self) -> Path:
        return self.path / SCRIPT_FILENAME

    @property
    def results_path(self) -> Path:
        return self.path / RESULTS_FILENAME

    @property
    def log_path(self) -> Path:
        return self.path / LOG_FILENAME

    def has_results(self) -> bool:
        p = self.results_path
        return p.exists() and p.stat().st_size > 0

    def remove(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)

    def __repr__(self) -> str:
        return f"RunWorkspace(run_id={self.run_id!r}, path={str(self.path)!r})"


@dataclass(slots=True)
class DriverHandle:
    """A started driver invocation."""

    run_id: str
    plan: LoadTestPlan
    workspace: RunWorkspace
    process: asyncio.subprocess.Process | None = None
    started_at: float = field(default_factory=time.perf_counter)


class DriverArtifact(Protocol):
    partial: bool

    def summarize(self, plan: LoadTestPlan, strategy: PercentileStrategy | None = None) -> TestResult: ...


class LoadDriver(Protocol):
    name: str

    async def start(self, plan: LoadTestPlan, workspace: RunWorkspace) -> DriverHandle: ...

    async def wait(self, handle: DriverHandle, timeout: float) -> DriverArtifact: ...

    async def cleanup(self, handle: DriverHandle) -> None: ...


class StreamArtifact:
    """Line-delimited k6 JSON output on disk."""

    __slots__ = ("path", "partial", "_rng")

    def __init__(self, path: Path, rng: random.Random | None = None, partial: bool = False) -> None:
        self.path = path
        self.partial = partial
        self._rng = rng

    def summarize(self, plan: LoadTestPlan, strategy: PercentileStrategy | None = None) -> TestResult:
        aggregator = StreamAggregator(plan.virtual_users, self._rng)
        with self.path.open("rb") as f:
            ingested = aggregator.ingest_lines(f)
        skipped = aggregator.state.skipped_lines
        if skipped:
            logger.warning("Skipped %d malformed measurement line(s) in %s", skipped, self.path.name)
        logger.debug("Ingested %d measurement points (partial=%s)", ingested, self.partial)
        return finalize(aggregator.state, plan, strategy, source="k6")


class SyntheticArtifact:
    """Already-summarized synthetic result."""

    __slots__ = ("result", "partial")

    def __init__(self, result: TestResult) -> None:
        self.result = result
        self.partial = False

    def summarize(self, plan: LoadTestPlan, strategy: PercentileStrategy | None = None) -> TestResult:
        return self.result


async def _terminate(process: asyncio.subprocess.Process | None) -> None:
    """Kill the process if still running and reap it."""
    if process is None or process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    await process.wait()


def _log_tail(path: Path) -> str:
    try:
        data = path.read_bytes()
    except OSError:
        return ""
    return data[-LOG_TAIL_BYTES:].decode("utf-8", errors="replace").strip()


class K6Driver:
    """Runs the plan through the k6 binary, streaming points to a JSON output file."""

    name = "k6"

    def __init__(self, binary: str = "k6", rng: random.Random | None = None) -> None:
        self.binary = binary
        self._rng = rng

    def resolve_binary(self) -> str:
        """Absolute path of the k6 binary. Raises DriverUnavailableError if not found."""
        resolved = shutil.which(self.binary)
        if resolved is None:
            raise DriverUnavailableError("k6 binary not found", context={"binary": self.binary})
        return resolved

    async def start(self, plan: LoadTestPlan, workspace: RunWorkspace) -> DriverHandle:
        binary = self.resolve_binary()
        workspace.script_path.write_text(render_k6_script(plan), encoding="utf-8")
        args = [
            binary, "run", "--quiet",
            "--out", f"json={workspace.results_path}",
            str(workspace.script_path),
        ]
        try:
            with workspace.log_path.open("wb") as log:
                process = await asyncio.create_subprocess_exec(
                    *args,
                    cwd=str(workspace.path),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=log,
                )
        except OSError as e:
            raise DriverUnavailableError(
                f"Cannot start k6: {e}",
                context={"binary": binary},
                original_error=e,
            ) from e
        logger.debug("Started k6 (pid=%s) for run %s", process.pid, workspace.run_id)
        return DriverHandle(run_id=workspace.run_id, plan=plan, workspace=workspace, process=process)

    async def wait(self, handle: DriverHandle, timeout: float) -> DriverArtifact:
        process = handle.process
        workspace = handle.workspace
        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            await _terminate(process)
            if workspace.has_results():
                logger.warning("k6 exceeded %.0fs timeout; using partial output", timeout)
                return StreamArtifact(workspace.results_path, self._rng, partial=True)
            raise DriverTimeoutError(
                "k6 exceeded timeout without producing output",
                context={"timeout_seconds": timeout, "run_id": handle.run_id},
            )
        if workspace.has_results():
            if returncode != 0:
                # k6 exits non-zero when checks or thresholds fail; output is still valid
                logger.info("k6 exited with code %s; using its output", returncode)
            return StreamArtifact(workspace.results_path, self._rng)
        raise DriverError(
            f"k6 exited with code {returncode} and produced no output",
            context={"run_id": handle.run_id, "stderr": _log_tail(workspace.log_path)},
        )

    async def cleanup(self, handle: DriverHandle) -> None:
        await _terminate(handle.process)
        handle.workspace.remove()


def _mm_ss(seconds: float) -> str:
    return f"{int(seconds // 60):02d}:{int(seconds % 60):02d}"


class SyntheticDriver:
    """Deterministic-shape stand-in used when k6 cannot run.

    Counts follow fixed formulas (0.8 requests per VU-second, 5% failures); response
    times, active users and byte totals are drawn from fixed ranges using the injected
    random source, so tests should assert bounds and counts, not exact values.
    """

    name = "synthetic"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def start(self, plan: LoadTestPlan, workspace: RunWorkspace) -> DriverHandle:
        return DriverHandle(run_id=workspace.run_id, plan=plan, workspace=workspace)

    async def wait(self, handle: DriverHandle, timeout: float) -> DriverArtifact:
        return SyntheticArtifact(self.generate(handle.plan))

    async def cleanup(self, handle: DriverHandle) -> None:
        handle.workspace.remove()

    def generate(self, plan: LoadTestPlan) -> TestResult:
        rng = self._rng
        vus = plan.virtual_users
        duration_ms = plan.duration_ms
        # Integer forms of floor(D/1000 * V * 0.8) and floor(total * 0.05)
        total = duration_ms * vus * 8 // 10_000
        failed = total * 5 // 100

        sample_count = min(SYNTHETIC_MAX_SAMPLES, duration_ms // 1000)
        step = duration_ms / 1000 / sample_count if sample_count else 0.0
        samples = tuple(
            TimeSeriesSample(
                time=_mm_ss(i * step),
                response_time=rng.randint(100, 299),
                active_users=rng.randint(1, vus),
                timestamp=i * step,
            )
            for i in range(sample_count)
        )
        avg = rng.randint(100, 249)
        duration_seconds = duration_ms / 1000
        return TestResult(
            summary=ResultSummary(vus=vus, requests=total, avg_response_time=avg, failed=failed),
            metrics=ResultMetrics(
                duration=plan.duration,
                request_rate=round_half_up(total / duration_seconds) if duration_seconds > 0 else 0,
                data_received=f"{rng.random() * 5 + 1:.1f} MB",
                data_sent=f"{rng.random() * 500 + 100:.0f} kB",
                min_response_time=avg * 7 // 10,
                max_response_time=avg * 25 // 10,
            ),
            time_series=samples,
            http_status_codes={
                "200": total - failed,
                "404": failed * 3 // 10,
                "500": failed * 7 // 10,
            },
            response_time=percentile_values(avg),
            source="synthetic",
        )
