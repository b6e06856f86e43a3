"""Test configuration loading/validation and engine settings."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import InvalidConfigError
from .logging_config import get_logger
from .models import HttpMethod, KeyValue, TestConfig

logger = get_logger("config")

DURATION_PATTERN = re.compile(r"^(\d+)([smh])$")
_UNIT_MS = {"s": 1000, "m": 60 * 1000, "h": 60 * 60 * 1000}

# Hard wall-clock limit on the real load generator
DEFAULT_DRIVER_TIMEOUT_SEC = 120.0
DEFAULT_K6_BINARY = "k6"

K6_BIN_ENV = "LOADCAST_K6_BIN"
TIMEOUT_ENV = "LOADCAST_TIMEOUT"
ARTIFACT_DIR_ENV = "LOADCAST_ARTIFACT_DIR"
SYNTHETIC_ENV = "LOADCAST_SYNTHETIC"


def parse_duration(text: str) -> int:
    """Parse a `<n><s|m|h>` duration string into milliseconds.

    Raises:
        InvalidConfigError: If text does not match the grammar
    """
    match = DURATION_PATTERN.match(text.strip()) if isinstance(text, str) else None
    if match is None:
        raise InvalidConfigError(
            "Duration must look like <number><s|m|h>, e.g. 30s",
            context={"duration": text},
        )
    return int(match.group(1)) * _UNIT_MS[match.group(2)]


def validate_test_config(config: TestConfig) -> None:
    """Validate TestConfig. Raises InvalidConfigError if invalid."""
    if not config.url or not config.url.strip():
        raise InvalidConfigError("url must not be empty")
    if config.virtual_users < 1:
        raise InvalidConfigError("virtual_users must be >= 1", context={"virtual_users": config.virtual_users})
    if parse_duration(config.duration) <= 0:
        raise InvalidConfigError("duration must be > 0", context={"duration": config.duration})
    parse_duration(config.ramp_up)


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in raw and raw[k] is not None:
            return raw[k]
    return default


def _key_values(raw: Any, field_name: str) -> list[KeyValue]:
    """Accept a list of {key, value} objects or a plain mapping."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [KeyValue(str(k), "" if v is None else str(v)) for k, v in raw.items()]
    if not isinstance(raw, list):
        raise InvalidConfigError(f"{field_name} must be a list of key/value entries")
    out: list[KeyValue] = []
    for item in raw:
        if not isinstance(item, dict):
            raise InvalidConfigError(f"{field_name} entries must be objects with key and value")
        out.append(KeyValue(str(item.get("key") or ""), str(item.get("value") or "")))
    return out


def config_from_dict(raw: dict[str, Any]) -> TestConfig:
    """Build and validate a TestConfig from a mapping.

    Accepts the camelCase keys of the JSON request document (virtualUsers, rampUp)
    as well as snake_case (virtual_users, ramp_up).

    Raises:
        InvalidConfigError: If a field has the wrong type or fails validation
    """
    if not isinstance(raw, dict):
        raise InvalidConfigError(
            "Config must be an object/dictionary",
            context={"actual_type": type(raw).__name__},
        )
    method_str = str(_pick(raw, "method", default="GET")).strip().upper()
    try:
        method = HttpMethod(method_str)
    except ValueError as e:
        raise InvalidConfigError(
            f"Unsupported HTTP method: {method_str}",
            context={"allowed": [m.value for m in HttpMethod]},
            original_error=e,
        ) from e
    try:
        config = TestConfig(
            url=str(_pick(raw, "url", default="")).strip(),
            method=method,
            headers=_key_values(_pick(raw, "headers"), "headers"),
            parameters=_key_values(_pick(raw, "parameters", "params"), "parameters"),
            body=str(_pick(raw, "body", default="")),
            virtual_users=int(_pick(raw, "virtualUsers", "virtual_users", "vus", default=10)),
            duration=str(_pick(raw, "duration", default="30s")).strip(),
            ramp_up=str(_pick(raw, "rampUp", "ramp_up", default="5s")).strip(),
        )
    except (TypeError, ValueError) as e:
        raise InvalidConfigError(f"Invalid config value: {e}", original_error=e) from e
    validate_test_config(config)
    return config


def load_config(path: str | Path) -> TestConfig:
    """Load a test configuration from a YAML (or JSON) file.

    Raises:
        InvalidConfigError: If file not found, invalid YAML, or validation fails
    """
    p = Path(path)
    if not p.exists():
        raise InvalidConfigError(f"Config file not found: {path}", context={"path": str(path)})
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.exception("Failed to parse config file")
        raise InvalidConfigError(
            f"Invalid YAML syntax in config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e
    except OSError as e:
        logger.exception("Failed to read config file")
        raise InvalidConfigError(
            f"Cannot read config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e
    if not isinstance(raw, dict):
        raise InvalidConfigError(
            "Config must be a YAML object/dictionary",
            context={"path": str(path), "actual_type": type(raw).__name__},
        )
    config = config_from_dict(raw)
    logger.debug(
        "Loaded config: url=%s, method=%s, vus=%s, duration=%s",
        config.url, config.method.value, config.virtual_users, config.duration,
    )
    return config


@dataclass(slots=True)
class EngineSettings:
    """Execution settings independent of any single test config."""

    k6_binary: str = DEFAULT_K6_BINARY
    timeout_seconds: float = DEFAULT_DRIVER_TIMEOUT_SEC
    artifact_root: Path | None = None
    force_synthetic: bool = False

    @classmethod
    def from_env(cls) -> "EngineSettings":
        settings = cls()
        if os.environ.get(K6_BIN_ENV):
            settings.k6_binary = os.environ[K6_BIN_ENV]
        timeout = os.environ.get(TIMEOUT_ENV)
        if timeout:
            try:
                settings.timeout_seconds = float(timeout)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", TIMEOUT_ENV, timeout)
        if os.environ.get(ARTIFACT_DIR_ENV):
            settings.artifact_root = Path(os.environ[ARTIFACT_DIR_ENV])
        settings.force_synthetic = (os.environ.get(SYNTHETIC_ENV) or "").lower() in ("1", "true", "yes")
        return settings
