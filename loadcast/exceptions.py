"""Error types raised by loadcast, all derived from LoadcastError.

Only InvalidConfigError and RunCancelledError ever reach the caller of a run; driver
and stream errors are recovered inside the execution adapter and aggregator.
"""

from __future__ import annotations

from typing import Any


class LoadcastError(Exception):
    """Base class for loadcast errors.

    ``context`` holds the fields that identify what failed (run id, field name, path)
    and ``original_error`` the lower-level exception, if one was wrapped. Both are
    appended to ``str(err)`` so a single log line or CLI message carries them.
    """

    def __init__(
        self,
        message: str,
        *args: object,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, *args)
        self.message = message
        self.context = dict(context) if context else {}
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append("(" + " ".join(f"{key}={value!r}" for key, value in self.context.items()) + ")")
        text = " ".join(parts)
        if self.original_error is not None:
            text += f"; caused by {type(self.original_error).__name__}: {self.original_error}"
        return text

    def with_context(self, **fields: Any) -> "LoadcastError":
        self.context.update(fields)
        return self


class InvalidConfigError(LoadcastError):
    """Raised when a test configuration is rejected before any driver is invoked.

    Common causes:
    - Empty target URL
    - virtual_users < 1
    - Duration or ramp-up not matching <n><s|m|h>
    - Config file not found or not a mapping
    """


class DriverUnavailableError(LoadcastError):
    """Raised when the load generator binary is not installed or not executable."""


class DriverTimeoutError(LoadcastError):
    """Raised when the load generator exceeded its timeout without leaving any output."""


class DriverError(LoadcastError):
    """Raised when the load generator crashed or produced no output artifact."""


class MalformedStreamLineError(LoadcastError):
    """Raised for a single measurement line that cannot be decoded.

    The aggregator catches it and skips the line; it never aborts a run.
    """


class RunCancelledError(LoadcastError):
    """Raised when the caller aborted a run. No TestResult is produced."""


class HistoryError(LoadcastError):
    """Raised when the run history store cannot be written (e.g. quota exceeded)."""
