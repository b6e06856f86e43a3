"""
loadcast - Load-test orchestration and results analytics.

Builds a load-test plan from a declarative HTTP config, drives k6 (or a deterministic
synthetic fallback), aggregates the measurement stream and forecasts capacity.
"""

from .exceptions import (
    DriverError,
    DriverTimeoutError,
    DriverUnavailableError,
    HistoryError,
    InvalidConfigError,
    LoadcastError,
    MalformedStreamLineError,
    RunCancelledError,
)

__all__ = [
    "__version__",
    "DriverError",
    "DriverTimeoutError",
    "DriverUnavailableError",
    "HistoryError",
    "InvalidConfigError",
    "LoadcastError",
    "MalformedStreamLineError",
    "RunCancelledError",
]

__version__ = "1.0.0"
