"""Render a LoadTestPlan into a k6 script (Jinja2 template, JSON-encoded literals)."""

from __future__ import annotations

from typing import Any

import orjson
from jinja2 import Environment, PackageLoader

from .models import LoadTestPlan

K6_SCRIPT_TEMPLATE = "k6_script.js.j2"


def _js_literal(value: Any) -> str:
    """JSON literal safe to embed in JS source."""
    return orjson.dumps(value).decode("utf-8").replace("</", "<\\/")


def _environment() -> Environment:
    env = Environment(
        loader=PackageLoader("loadcast", "templates"),
        autoescape=False,
        keep_trailing_newline=True,
    )
    env.filters["js"] = _js_literal
    return env


def render_k6_script(plan: LoadTestPlan) -> str:
    """k6 script for the plan: three stages, headers, body and a 1 s think time."""
    template = _environment().get_template(K6_SCRIPT_TEMPLATE)
    return template.render(
        stages=[{"duration": s.duration, "target": s.target} for s in plan.stages],
        headers=plan.header_map,
        body=plan.body.serialized() if plan.body is not None else None,
        method=plan.method.value,
        url=plan.final_url,
    )
