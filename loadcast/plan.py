"""Plan builder: TestConfig -> LoadTestPlan. Pure and deterministic."""

from __future__ import annotations

from urllib.parse import quote

import orjson

from .config import parse_duration, validate_test_config
from .logging_config import get_logger
from .models import BodyKind, BodyPayload, HttpMethod, KeyValue, LoadTestPlan, Stage, TestConfig

logger = get_logger("plan")

# Characters encodeURIComponent leaves untouched besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_component(text: str) -> str:
    return quote(text, safe=_URI_COMPONENT_SAFE)


def merge_query(url: str, parameters: list[KeyValue]) -> str:
    """Append complete parameters to url, after any existing query string."""
    valid = [p for p in parameters if p.is_complete()]
    if not valid:
        return url
    query = "&".join(f"{encode_component(p.key)}={encode_component(p.value)}" for p in valid)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


def build_header_map(headers: list[KeyValue]) -> dict[str, str]:
    """Ordered header mapping without incomplete entries. Last value wins on collision."""
    out: dict[str, str] = {}
    for h in headers:
        if h.is_complete():
            out[h.key] = h.value
    return out


def resolve_body(method: HttpMethod, body: str) -> BodyPayload | None:
    """Tag the body as parsed JSON when it parses strictly, else keep it raw."""
    if method is HttpMethod.GET or not body:
        return None
    try:
        return BodyPayload(BodyKind.JSON, orjson.loads(body))
    except orjson.JSONDecodeError:
        return BodyPayload(BodyKind.RAW, body)


def build_stages(virtual_users: int, duration: str, ramp_up: str) -> tuple[Stage, ...]:
    return (
        Stage(target=virtual_users, duration=ramp_up),
        Stage(target=virtual_users, duration=duration),
        Stage(target=0, duration=ramp_up),
    )


def build_plan(config: TestConfig) -> LoadTestPlan:
    """Validate and normalize a TestConfig into a LoadTestPlan.

    Raises:
        InvalidConfigError: On empty url, virtual_users < 1 or a bad duration string
    """
    validate_test_config(config)
    url = config.url.strip()
    plan = LoadTestPlan(
        method=config.method,
        final_url=merge_query(url, config.parameters),
        header_map=build_header_map(config.headers),
        body=resolve_body(config.method, config.body),
        stages=build_stages(config.virtual_users, config.duration, config.ramp_up),
        virtual_users=config.virtual_users,
        duration=config.duration,
        duration_ms=parse_duration(config.duration),
        ramp_up=config.ramp_up,
        ramp_up_ms=parse_duration(config.ramp_up),
    )
    logger.debug("Built plan: %s %s, stages=%s", plan.method.value, plan.final_url, len(plan.stages))
    return plan
