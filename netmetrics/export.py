"""JSON export for measurement reports."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Optional

from netmetrics.models import LatencyStats, MeasurementReport
from netmetrics.stats import format_mbps, format_ms


def report_to_dict(report: MeasurementReport) -> dict[str, Any]:
    """Build the response body for a report.

    Every field is always present; failed probes show their sentinels.
    """
    location = report.location_info
    latency = report.latency.value
    if not isinstance(latency, LatencyStats):
        latency = LatencyStats()

    data: dict[str, Any] = {
        "download": format_mbps(report.download_mbps),
        "upload": format_mbps(report.upload_mbps, estimated=report.upload.estimated),
        "ping": format_ms(report.ping_ms),
        "ip": location.ip,
        "location": {
            "country": location.geo.country,
            "city": location.geo.city,
            "region": location.geo.region,
            "isp": location.geo.isp,
        },
        "latency": {
            "current": format_ms(latency.current),
            "average": format_ms(latency.average),
            "min": format_ms(latency.min),
            "max": format_ms(latency.max),
        },
        "timestamp": report.timestamp,
    }

    errors = {
        r.kind: r.error
        for r in (report.latency, report.download, report.upload, report.location)
        if not r.succeeded and r.error
    }
    if errors:
        data["errors"] = errors

    if report.network is not None:
        data["network"] = dict(report.network)

    if report.system is not None:
        data["system"] = asdict(report.system)

    return data


def error_payload(message: str, timestamp: str, error: Optional[str] = None) -> dict[str, str]:
    """Body returned when the measurement itself fails."""
    return {
        "error": error or "Failed to perform network metrics test",
        "message": message,
        "timestamp": timestamp,
    }


def export_json(report: MeasurementReport, indent: int = 2) -> str:
    """Export a report as JSON string."""
    return json.dumps(report_to_dict(report), indent=indent, default=str)


def write_to_file(content: str, path: str) -> None:
    """Write string content to a file."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
