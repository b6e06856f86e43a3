"""CLI entry point for loadcast."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import random
import signal
import sys
from pathlib import Path

from rich.console import Console

from . import __version__
from .config import EngineSettings, config_from_dict, load_config, validate_test_config
from .display import render_report
from .exceptions import LoadcastError, RunCancelledError
from .history import RunHistory
from .logging_config import get_logger
from .models import HttpMethod, KeyValue, RunReport, TestConfig
from .report import generate_json_report
from .runner import run_load_test

logger = get_logger("cli")

# Defaults when running without -f (config file)
DEFAULT_USERS = 10
DEFAULT_DURATION = "30s"
DEFAULT_RAMP_UP = "5s"


def _parse_pairs(items: list[str] | None, sep: str) -> list[KeyValue]:
    """KEY<sep>VALUE strings -> KeyValue list. Items without the separator are ignored."""
    if not items:
        return []
    out: list[KeyValue] = []
    for s in items:
        if sep in s:
            k, _, v = s.partition(sep)
            out.append(KeyValue(k.strip(), v.strip()))
    return out


def _build_config_from_args(args: argparse.Namespace) -> TestConfig:
    """Build TestConfig from CLI args only (no config file). Uses defaults for omitted values."""
    return config_from_dict(
        {
            "url": args.url,
            "method": args.method or HttpMethod.GET.value,
            "headers": [{"key": h.key, "value": h.value} for h in _parse_pairs(args.header, ":")],
            "parameters": [{"key": p.key, "value": p.value} for p in _parse_pairs(args.param, "=")],
            "body": args.body or "",
            "virtualUsers": args.users if args.users is not None else DEFAULT_USERS,
            "duration": args.duration or DEFAULT_DURATION,
            "rampUp": args.ramp_up or DEFAULT_RAMP_UP,
        }
    )


def _apply_overrides(base: TestConfig, args: argparse.Namespace) -> TestConfig:
    """CLI values win over the config file; headers and params are appended."""
    changes: dict = {}
    if args.url:
        changes["url"] = args.url
    if args.method:
        changes["method"] = HttpMethod(args.method)
    if args.header:
        changes["headers"] = [*base.headers, *_parse_pairs(args.header, ":")]
    if args.param:
        changes["parameters"] = [*base.parameters, *_parse_pairs(args.param, "=")]
    if args.body is not None:
        changes["body"] = args.body
    if args.users is not None:
        changes["virtual_users"] = args.users
    if args.duration:
        changes["duration"] = args.duration
    if args.ramp_up:
        changes["ramp_up"] = args.ramp_up
    if not changes:
        return base
    merged = dataclasses.replace(base, **changes)
    validate_test_config(merged)
    return merged


def _settings_from_args(args: argparse.Namespace) -> EngineSettings:
    settings = EngineSettings.from_env()
    if args.k6_bin:
        settings.k6_binary = args.k6_bin
    if args.timeout is not None:
        settings.timeout_seconds = args.timeout
    if args.synthetic:
        settings.force_synthetic = True
    return settings


async def _run_with_signals(
    config: TestConfig,
    settings: EngineSettings,
    rng: random.Random | None,
    live: bool,
) -> RunReport:
    """Run with SIGINT/SIGTERM wired to the run's cancel event."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform/loop (e.g. Windows)
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, cancel_event.set)
    coro = run_load_test(config, settings=settings, rng=rng, cancel_event=cancel_event)
    if not live:
        return await coro
    with Console(stderr=True).status(f"Running load test against {config.url} ..."):
        return await coro


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="loadcast",
        description="Load-test orchestration and capacity forecast. Drives k6 when installed, "
        "synthetic results otherwise.",
    )
    parser.add_argument("url", nargs="?", help="Target URL (required unless -f or --retry supplies one)")
    parser.add_argument("-f", "--config", default=None, help="Path to YAML/JSON test config")
    parser.add_argument("-X", "--method", choices=[m.value for m in HttpMethod], default=None, help="HTTP method")
    parser.add_argument("-H", "--header", action="append", metavar="KEY:VALUE", help="Request header (repeatable)")
    parser.add_argument("-p", "--param", action="append", metavar="KEY=VALUE", help="Query parameter (repeatable)")
    parser.add_argument("-d", "--body", default=None, help="Request body (JSON or raw text; ignored for GET)")
    parser.add_argument("--users", type=int, default=None, help="Number of virtual users")
    parser.add_argument("--duration", default=None, metavar="DUR", help="Hold duration, e.g. 30s, 5m, 1h")
    parser.add_argument("--ramp-up", default=None, metavar="DUR", dest="ramp_up", help="Ramp-up (and ramp-down) duration")
    parser.add_argument("--timeout", type=float, default=None, metavar="SEC", help="Driver timeout in seconds (default: 120)")
    parser.add_argument("--k6-bin", default=None, metavar="PATH", dest="k6_bin", help="k6 binary name or path")
    parser.add_argument("--synthetic", action="store_true", help="Skip k6 and generate synthetic results")
    parser.add_argument("--seed", type=int, default=None, help="Seed for synthetic data and sampled active users")
    parser.add_argument("--json", metavar="PATH", dest="json_path", help="Also write JSON report to PATH")
    parser.add_argument("--history", metavar="PATH", default=None, help="Append the run to this history file")
    parser.add_argument("--retry", metavar="RUN_ID", default=None, help="Re-run the config of RUN_ID from --history")
    parser.add_argument("--no-live", action="store_true", help="No spinner while the test runs")
    parser.add_argument("-v", "--version", action="version", version=f"loadcast {__version__}")
    args = parser.parse_args()

    def handle_error(e: BaseException) -> int:
        if isinstance(e, LoadcastError):
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        if isinstance(e, (OSError, ValueError)):
            print(f"Error: {e}", file=sys.stderr)
            return 1
        logger.exception("Unexpected error")
        print("Error: An unexpected error occurred. Check logs for details.", file=sys.stderr)
        return 1

    history = RunHistory(Path(args.history)) if args.history else None
    if args.retry and history is None:
        print("Error: --retry requires --history", file=sys.stderr)
        return 1
    if not (args.url or args.config or args.retry):
        print("Error: target URL, -f/--config or --retry required", file=sys.stderr)
        return 1

    try:
        if args.retry:
            config = history.retry_config(args.retry)
        elif args.config:
            config = _apply_overrides(load_config(args.config), args)
        else:
            config = _build_config_from_args(args)
        settings = _settings_from_args(args)
        rng = random.Random(args.seed) if args.seed is not None else None
        report = asyncio.run(_run_with_signals(config, settings, rng, live=not args.no_live))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except RunCancelledError:
        print("\nCancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        return handle_error(e)

    render_report(report)
    try:
        if args.json_path:
            path = generate_json_report(args.json_path, report)
            print(f"JSON report: {path}", file=sys.stderr)
        if history is not None:
            history.add(report)
    except (LoadcastError, OSError) as e:
        return handle_error(e)
    return 0


if __name__ == "__main__":
    sys.exit(main())
