"""Machine-readable JSON report."""

from __future__ import annotations

from pathlib import Path

import orjson

from .logging_config import get_logger
from .models import RunReport

logger = get_logger("report")


def generate_json_report(output_path: str | Path, report: RunReport) -> Path:
    """Write the run (config, results, forecast) as indented JSON. Returns the path."""
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(orjson.dumps(report.to_dict(), option=orjson.OPT_INDENT_2))
    logger.debug("JSON report written to %s", out)
    return out
