"""File-backed history of past runs (newest first, bounded).

Entries are the RunReport JSON documents. A write that exceeds the storage quota is
retried once with half the entry cap; an unreadable history file is cleared.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import orjson

from .config import config_from_dict
from .exceptions import HistoryError
from .logging_config import get_logger
from .models import RunReport, TestConfig

logger = get_logger("history")

DEFAULT_MAX_ENTRIES = 50
DEFAULT_HISTORY_PATH = Path.home() / ".loadcast" / "history.json"


class RunHistory:
    """Bounded store of past RunReport documents, with load/save/clear."""

    def __init__(
        self,
        path: str | Path = DEFAULT_HISTORY_PATH,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_bytes: int | None = None,
    ) -> None:
        self.path = Path(path)
        self.max_entries = max_entries
        self.max_bytes = max_bytes

    def load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = orjson.loads(self.path.read_bytes())
        except (orjson.JSONDecodeError, OSError) as e:
            logger.warning("Clearing unreadable run history %s: %s", self.path, e)
            self.clear()
            return []
        if not isinstance(data, list):
            logger.warning("Clearing run history %s: expected a list", self.path)
            self.clear()
            return []
        return data

    def _write(self, entries: list[dict[str, Any]]) -> None:
        payload = orjson.dumps(entries)
        if self.max_bytes is not None and len(payload) > self.max_bytes:
            raise HistoryError(
                "Run history exceeds storage quota",
                context={"bytes": len(payload), "max_bytes": self.max_bytes},
            )
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(payload)
            os.replace(tmp, self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise HistoryError(f"Cannot write run history: {e}", original_error=e) from e

    def save(self, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Persist up to max_entries; on failure retry with half.

        Returns the entries now stored, which are the previous ones if both writes fail.
        """
        trimmed = entries[: self.max_entries]
        try:
            self._write(trimmed)
            return trimmed
        except HistoryError as e:
            logger.warning("Saving run history failed, retrying with fewer entries: %s", e)
        reduced = entries[: self.max_entries // 2]
        try:
            self._write(reduced)
            return reduced
        except HistoryError as e:
            logger.error("Saving reduced run history failed: %s", e)
            return self.load()

    def add(self, report: RunReport) -> list[dict[str, Any]]:
        return self.save([report.to_dict(), *self.load()])

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Clearing run history failed: %s", e)

    def get(self, run_id: str) -> dict[str, Any] | None:
        for entry in self.load():
            if entry.get("id") == run_id:
                return entry
        return None

    def retry_config(self, run_id: str) -> TestConfig:
        """Stored config of a past run, unchanged, ready for build_plan again."""
        entry = self.get(run_id)
        if entry is None:
            raise HistoryError(f"No run with id {run_id} in history", context={"path": str(self.path)})
        return config_from_dict(entry.get("config") or {})
