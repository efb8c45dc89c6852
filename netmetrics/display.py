"""Rich terminal output for netmetrics."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table
from rich.text import Text

from netmetrics.models import LatencyStats, MeasurementReport, ProbeResult
from netmetrics.stats import format_mbps, format_ms

console = Console()

# Latency color thresholds (milliseconds)
FAST_THRESHOLD_MS = 20.0
MEDIUM_THRESHOLD_MS = 50.0


def _color_for_ms(value: float) -> str:
    if value <= FAST_THRESHOLD_MS:
        return "green"
    elif value <= MEDIUM_THRESHOLD_MS:
        return "yellow"
    return "red"


def _status(result: ProbeResult) -> Text:
    if not result.succeeded:
        return Text(result.error or "failed", style="red")
    if result.estimated:
        return Text("estimated", style="yellow")
    return Text("ok", style="green")


def render_report(report: MeasurementReport) -> None:
    """Display a full measurement report."""
    location = report.location_info
    geo = location.geo
    place = ", ".join(p for p in (geo.city, geo.region, geo.country) if p != "Unknown")
    console.print(
        f"[bold]Your Connection:[/bold] [bold]{location.ip}[/bold]"
        + (f" | {place}" if place else "")
        + (f" | [dim]{geo.isp}[/dim]" if geo.isp != "Unknown" else "")
    )

    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        header_style="bold",
        title=f"[bold]Network Metrics[/bold] [dim]{report.timestamp}[/dim]",
        title_style="",
    )
    table.add_column("Metric", style="bold", min_width=10)
    table.add_column("Value", justify="right", min_width=12)
    table.add_column("Source", style="dim")
    table.add_column("Status")

    ping = Text(format_ms(report.ping_ms))
    if report.latency.succeeded:
        ping.stylize(_color_for_ms(report.ping_ms))

    table.add_row("Ping", ping, report.latency.endpoint or "\u2014", _status(report.latency))
    table.add_row(
        "Download",
        format_mbps(report.download_mbps),
        report.download.endpoint or "\u2014",
        _status(report.download),
    )
    table.add_row(
        "Upload",
        format_mbps(report.upload_mbps),
        report.upload.endpoint or "\u2014",
        _status(report.upload),
    )
    table.add_row(
        "Location",
        location.ip,
        report.location.endpoint or "\u2014",
        _status(report.location),
    )
    console.print(table)

    latency = report.latency.value
    if isinstance(latency, LatencyStats) and len(latency.samples) > 1:
        console.print(
            f"[dim]Latency avg {format_ms(latency.average)}, "
            f"min {format_ms(latency.min)}, max {format_ms(latency.max)} "
            f"over {len(latency.samples)} targets[/dim]"
        )

    if report.system is not None:
        cpu = report.system.cpu
        mem = report.system.memory
        console.print(
            f"[dim]Host: {cpu.get('cores', 0)} cores, "
            f"{mem.get('used', '?')} of {mem.get('total', '?')} memory used[/dim]"
        )


def render_error(message: str) -> None:
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")
