"""Tests for the bounded run history store."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import orjson
import pytest

from loadcast.exceptions import HistoryError
from loadcast.history import RunHistory


def _entries(n: int) -> list[dict]:
    return [{"id": f"{i:04d}", "pad": "x" * 100} for i in range(n)]


def test_load_missing_file_is_empty(tmp_path: Path) -> None:
    assert RunHistory(tmp_path / "history.json").load() == []


def test_add_puts_newest_first(tmp_path: Path, make_report: Callable) -> None:
    history = RunHistory(tmp_path / "nested" / "history.json")
    history.add(make_report(seed=1))
    history.add(make_report(seed=2))
    ids = [e["id"] for e in history.load()]
    assert ids == ["run-2", "run-1"]


def test_save_caps_entries(tmp_path: Path) -> None:
    history = RunHistory(tmp_path / "history.json")
    kept = history.save(_entries(60))
    assert len(kept) == 50
    stored = history.load()
    assert len(stored) == 50
    assert stored[0]["id"] == "0000"
    assert stored[-1]["id"] == "0049"


def test_quota_exceeded_retries_with_half(tmp_path: Path) -> None:
    one = len(orjson.dumps(_entries(1)))
    history = RunHistory(tmp_path / "history.json", max_bytes=one * 30)
    kept = history.save(_entries(60))
    assert len(kept) == 25
    assert [e["id"] for e in history.load()] == [f"{i:04d}" for i in range(25)]


def test_quota_exceeded_twice_keeps_file_untouched(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_bytes(orjson.dumps([{"id": "old"}]))
    history = RunHistory(path, max_bytes=10)
    entries = _entries(3)
    assert history.save(entries) == [{"id": "old"}]
    assert orjson.loads(path.read_bytes()) == [{"id": "old"}]


def test_write_raises_history_error_on_quota(tmp_path: Path) -> None:
    history = RunHistory(tmp_path / "history.json", max_bytes=10)
    with pytest.raises(HistoryError) as exc:
        history._write(_entries(2))
    assert exc.value.context["max_bytes"] == 10


def test_corrupt_file_is_cleared(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")
    history = RunHistory(path)
    assert history.load() == []
    assert not path.exists()


def test_non_list_file_is_cleared(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text('{"id": "x"}', encoding="utf-8")
    assert RunHistory(path).load() == []
    assert not path.exists()


def test_clear(tmp_path: Path, make_report: Callable) -> None:
    history = RunHistory(tmp_path / "history.json")
    history.add(make_report())
    history.clear()
    assert history.load() == []
    history.clear()


def test_get_and_retry_config(tmp_path: Path, make_report: Callable) -> None:
    history = RunHistory(tmp_path / "history.json")
    report = make_report(url="https://api.example.com/orders", seed=3)
    history.add(report)
    assert history.get("run-3")["config"]["url"] == "https://api.example.com/orders"
    assert history.get("nope") is None
    assert history.retry_config("run-3") == report.config


def test_retry_config_unknown_id(tmp_path: Path) -> None:
    with pytest.raises(HistoryError):
        RunHistory(tmp_path / "history.json").retry_config("missing")
