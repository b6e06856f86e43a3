"""Pytest fixtures for loadcast tests."""

from __future__ import annotations

import random
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import orjson
import pytest

from loadcast.drivers import SyntheticDriver
from loadcast.forecast import forecast
from loadcast.models import RunReport, TestConfig
from loadcast.plan import build_plan


def point_line(metric: str, value: float, time: str = "2024-05-01T10:00:00Z", status: str | None = None) -> str:
    """One k6 JSON output Point line."""
    data: dict = {"time": time, "value": value, "tags": {}}
    if status is not None:
        data["tags"]["status"] = status
    return orjson.dumps({"type": "Point", "metric": metric, "data": data}).decode()


# 4 requests: durations 100..400 ms, one 500 response, 2.5 MB in / 12 kB out
K6_SAMPLE_LINES = [
    '{"type":"Metric","data":{"name":"http_req_duration","type":"trend"},"metric":"http_req_duration"}',
    point_line("http_req_duration", 100, "2024-05-01T10:00:00Z"),
    point_line("http_req_duration", 200, "2024-05-01T10:00:01Z"),
    point_line("http_req_duration", 300, "2024-05-01T10:00:02Z"),
    point_line("http_req_duration", 400, "2024-05-01T10:00:03Z"),
    point_line("http_reqs", 1, status="200"),
    point_line("http_reqs", 1, status="200"),
    point_line("http_reqs", 1, status="200"),
    point_line("http_reqs", 1, status="500"),
    point_line("http_req_failed", 0),
    point_line("http_req_failed", 0),
    point_line("http_req_failed", 0),
    point_line("http_req_failed", 1),
    point_line("data_received", 2_000_000),
    point_line("data_received", 500_000),
    point_line("data_sent", 12_000),
    point_line("vus", 1),
]


@pytest.fixture
def k6_sample_lines() -> list[str]:
    return list(K6_SAMPLE_LINES)


@pytest.fixture
def tmp_path_config(tmp_path: Path) -> Path:
    """Write a minimal valid test config (YAML) to a temp file."""
    p = tmp_path / "loadtest.yaml"
    p.write_text(
        """
url: https://api.example.com/items
method: POST
headers:
  - key: Authorization
    value: Bearer abc
parameters:
  - key: page
    value: "2"
body: '{"name": "widget"}'
virtualUsers: 20
duration: 1m
rampUp: 10s
""",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def make_fake_k6(tmp_path: Path) -> Callable[..., str]:
    """Factory for an executable stand-in for k6.

    It finds the `json=PATH` output argument, optionally writes lines there, optionally
    sleeps (exec, so killing the process kills the sleep) and exits with exit_code.
    """

    def _make(
        lines: list[str] | None = None,
        exit_code: int = 0,
        sleep_seconds: float = 0,
        stderr: str = "",
        name: str = "k6",
    ) -> str:
        data = tmp_path / f"{name}-output.jsonl"
        script = tmp_path / name
        body = [
            "#!/bin/sh",
            'out=""',
            'for arg in "$@"; do',
            '  case "$arg" in',
            '    json=*) out="${arg#json=}" ;;',
            "  esac",
            "done",
        ]
        if lines:
            data.write_text("\n".join(lines) + "\n", encoding="utf-8")
            body.append(f'cat "{data}" > "$out"')
        if stderr:
            body.append(f"echo '{stderr}' >&2")
        if sleep_seconds:
            body.append(f"exec sleep {sleep_seconds}")
        body.append(f"exit {exit_code}")
        script.write_text("\n".join(body) + "\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


@pytest.fixture
def make_report() -> Callable[..., RunReport]:
    """Factory for a synthetic RunReport (no driver, no workspace)."""

    def _make(url: str = "https://api.example.com", virtual_users: int = 10, seed: int = 7) -> RunReport:
        config = TestConfig(url=url, virtual_users=virtual_users, duration="10s", ramp_up="2s")
        plan = build_plan(config)
        result = SyntheticDriver(random.Random(seed)).generate(plan)
        now = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)
        return RunReport(
            run_id=f"run-{seed}",
            config=config,
            result=result,
            forecast=forecast(result, duration=plan.duration),
            started_at=now,
            finished_at=now,
        )

    return _make
