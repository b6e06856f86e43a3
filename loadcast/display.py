"""Rich terminal rendering of a finished run."""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import Forecast, RecommendationLevel, RunReport, TestResult

LEVEL_STYLES = {
    RecommendationLevel.EXCELLENT: "green",
    RecommendationLevel.GOOD: "blue",
    RecommendationLevel.FAIR: "yellow",
    RecommendationLevel.POOR: "red",
}


def build_summary_table(result: TestResult) -> Table:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan")
    table.add_column(style="green")
    s, m = result.summary, result.metrics
    table.add_row("Virtual users", str(s.vus))
    table.add_row("Requests", str(s.requests))
    table.add_row("Failed", str(s.failed))
    table.add_row("Avg response (ms)", str(s.avg_response_time))
    table.add_row("Min / max (ms)", f"{m.min_response_time} / {m.max_response_time}")
    table.add_row("Request rate (req/s)", str(m.request_rate))
    table.add_row("Duration", m.duration)
    table.add_row("Data received / sent", f"{m.data_received} / {m.data_sent}")
    return table


def build_percentile_table(result: TestResult) -> Table:
    table = Table(title="Response time percentiles", show_edge=False)
    table.add_column("Percentile", style="cyan")
    table.add_column("ms", justify="right")
    for p in result.response_time:
        table.add_row(p.percentile, str(p.value))
    return table


def build_status_table(result: TestResult) -> Table:
    table = Table(title="HTTP status codes", show_edge=False)
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")
    for status, count in sorted(result.http_status_codes.items()):
        table.add_row(status, str(count))
    return table


def build_forecast_panel(forecast: Forecast) -> Panel:
    style = LEVEL_STYLES[forecast.recommendation_level]
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan")
    table.add_column()
    table.add_row("Performance score", Text(f"{forecast.performance_score}/100", style=f"bold {style}"))
    table.add_row("Recommended max users", str(forecast.recommended_max_concurrency))
    table.add_row("Predicted throughput", f"{forecast.predicted_throughput} req/s")
    growth = (forecast.scalability_factor - 1) * 100
    table.add_row("Scalability", f"x{forecast.scalability_factor:.2f} ({growth:+.0f}%)")
    if forecast.throughput_growth_pct > 0:
        table.add_row("Throughput potential", f"+{forecast.throughput_growth_pct:.0f}%")
    body: list = [table, Text(forecast.recommendation, style=style)]
    if forecast.needs_investigation:
        body.append(Text("Check CPU, memory, database connections and network latency.", style="dim"))
    return Panel(Group(*body), title=f"Capacity forecast: {forecast.recommendation_level.value}", border_style=style)


def render_report(report: RunReport, console: Console | None = None) -> None:
    console = console or Console()
    result = report.result
    title = Text()
    title.append("loadcast ", style="bold magenta")
    title.append(f"| {report.config.method.value} {report.config.url}", style="dim")
    if result.source == "synthetic":
        title.append(" | synthetic data", style="bold yellow")
    console.print(Panel(build_summary_table(result), title=title, border_style="blue"))
    console.print(build_percentile_table(result))
    console.print(build_status_table(result))
    console.print(build_forecast_panel(report.forecast))
