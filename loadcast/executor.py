"""Execution adapter: run a plan through a load driver with synthetic fallback.

Once a run has started it always ends with a TestResult: driver failures
(unavailable, timeout without output, crash) degrade to the synthetic driver.
Only caller cancellation ends a run without a result.
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable

from .config import DEFAULT_DRIVER_TIMEOUT_SEC
from .drivers import LoadDriver, RunWorkspace, SyntheticDriver
from .exceptions import DriverError, DriverTimeoutError, DriverUnavailableError, RunCancelledError
from .logging_config import get_logger
from .models import LoadTestPlan, TestResult

if TYPE_CHECKING:
    from .statistics import PercentileStrategy

logger = get_logger("executor")


def _raise_if_cancelled(cancel_event: asyncio.Event | None, run_id: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelledError("Run cancelled by caller", context={"run_id": run_id})


async def _wait_or_cancel(
    awaitable: Awaitable[Any],
    cancel_event: asyncio.Event | None,
    run_id: str,
) -> Any:
    """Await `awaitable` unless cancel_event fires first (then raise RunCancelledError)."""
    if cancel_event is None:
        return await awaitable
    wait_task = asyncio.ensure_future(awaitable)
    cancel_task = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({wait_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_task.cancel()
        if not wait_task.done():
            wait_task.cancel()
            try:
                await wait_task
            except asyncio.CancelledError:
                pass
    if cancel_task in done:
        if wait_task.done() and not wait_task.cancelled():
            # Retrieve the outcome so a driver error is not reported as never retrieved
            wait_task.exception()
        raise RunCancelledError("Run cancelled by caller", context={"run_id": run_id})
    return wait_task.result()


class ExecutionAdapter:
    """Runs a LoadTestPlan through a driver and returns the summarized TestResult.

    Every invocation gets its own RunWorkspace and cleans it up on every exit path:
    success, driver failure, timeout and cancellation.
    """

    def __init__(
        self,
        driver: LoadDriver | None = None,
        fallback: SyntheticDriver | None = None,
        timeout: float = DEFAULT_DRIVER_TIMEOUT_SEC,
        artifact_root: Path | None = None,
        strategy: PercentileStrategy | None = None,
    ) -> None:
        self._driver = driver
        self._fallback = fallback or SyntheticDriver()
        self._timeout = timeout
        self._artifact_root = artifact_root
        self._strategy = strategy

    async def run(
        self,
        plan: LoadTestPlan,
        cancel_event: asyncio.Event | None = None,
        run_id: str | None = None,
    ) -> TestResult:
        """Execute the plan. Raises RunCancelledError if the caller cancelled.

        Any other failure on the real driver path falls back to the synthetic driver.
        """
        run_id = run_id or uuid.uuid4().hex
        _raise_if_cancelled(cancel_event, run_id)
        if self._driver is not None:
            log_fields = {"run_id": run_id, "driver": self._driver.name}
            try:
                return await self._run_with(self._driver, plan, run_id, cancel_event)
            except DriverUnavailableError as e:
                logger.warning(
                    "Load driver %s unavailable, using synthetic results: %s", self._driver.name, e, extra=log_fields
                )
            except DriverTimeoutError as e:
                logger.warning(
                    "Load driver %s timed out, using synthetic results: %s", self._driver.name, e, extra=log_fields
                )
            except DriverError as e:
                logger.warning(
                    "Load driver %s failed, using synthetic results: %s", self._driver.name, e, extra=log_fields
                )
            except RunCancelledError:
                raise
            except Exception:
                logger.exception("Load driver %s crashed, using synthetic results", self._driver.name, extra=log_fields)
        _raise_if_cancelled(cancel_event, run_id)
        return await self._run_with(self._fallback, plan, run_id, cancel_event)

    async def _run_with(
        self,
        driver: LoadDriver,
        plan: LoadTestPlan,
        run_id: str,
        cancel_event: asyncio.Event | None,
    ) -> TestResult:
        workspace = RunWorkspace(run_id, self._artifact_root)
        handle = None
        try:
            handle = await driver.start(plan, workspace)
            artifact = await _wait_or_cancel(driver.wait(handle, self._timeout), cancel_event, run_id)
            _raise_if_cancelled(cancel_event, run_id)
            return artifact.summarize(plan, self._strategy)
        finally:
            if handle is not None:
                await driver.cleanup(handle)
            workspace.remove()
