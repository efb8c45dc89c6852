"""Data models for netmetrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

UNKNOWN = "Unknown"

# Probe kinds, also the keys of a report.
LATENCY = "latency"
DOWNLOAD = "download"
UPLOAD = "upload"
LOCATION = "location"
PROBE_KINDS = (LATENCY, DOWNLOAD, UPLOAD, LOCATION)


@dataclass(frozen=True)
class EndpointCandidate:
    """One externally owned endpoint a probe may use."""

    url: str
    method: str = "GET"
    expected_payload_size: int = 0
    name: str = ""
    schema: str = ""  # response parser key for IP / geo providers
    priority: int = 0  # lower is preferred

    @property
    def label(self) -> str:
        return self.name or self.url


@dataclass(frozen=True)
class GeoInfo:
    """Coarse geolocation; every field falls back to the Unknown sentinel."""

    country: str = UNKNOWN
    city: str = UNKNOWN
    region: str = UNKNOWN
    isp: str = UNKNOWN

    @property
    def is_unknown(self) -> bool:
        return all(v == UNKNOWN for v in (self.country, self.city, self.region))


@dataclass(frozen=True)
class LocationInfo:
    """Public address of the caller plus its geolocation."""

    ip: str = UNKNOWN
    geo: GeoInfo = field(default_factory=GeoInfo)


@dataclass(frozen=True)
class LatencyStats:
    """Latency summary in milliseconds.

    ``current`` is the value selected by the latency policy; the other
    fields summarise every successful sample.
    """

    current: float = 0.0
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    samples: tuple[float, ...] = ()


ProbeValue = Union[float, LatencyStats, LocationInfo]


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single probe run."""

    kind: str
    value: ProbeValue
    succeeded: bool = True
    error: Optional[str] = None
    estimated: bool = False
    endpoint: Optional[str] = None


@dataclass(frozen=True)
class SystemSnapshot:
    """Host system stats at a point in time."""

    cpu: dict[str, Any] = field(default_factory=dict)
    memory: dict[str, str] = field(default_factory=dict)
    os: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MeasurementReport:
    """Unified result of one measurement request."""

    latency: ProbeResult
    download: ProbeResult
    upload: ProbeResult
    location: ProbeResult
    timestamp: str
    system: Optional[SystemSnapshot] = None
    network: Optional[dict[str, str]] = None

    @property
    def ping_ms(self) -> float:
        value = self.latency.value
        return value.current if isinstance(value, LatencyStats) else 0.0

    @property
    def download_mbps(self) -> float:
        return float(self.download.value)

    @property
    def upload_mbps(self) -> float:
        return float(self.upload.value)

    @property
    def location_info(self) -> LocationInfo:
        value = self.location.value
        return value if isinstance(value, LocationInfo) else LocationInfo()

    @property
    def failed_probes(self) -> list[str]:
        return [
            r.kind
            for r in (self.latency, self.download, self.upload, self.location)
            if not r.succeeded
        ]


@dataclass
class MeasurementConfig:
    """Configuration for a measurement run."""

    latency_targets: list[EndpointCandidate] = field(default_factory=list)
    latency_method: str = "http"  # http | dns
    latency_policy: str = "min"  # min | first
    download_candidates: list[EndpointCandidate] = field(default_factory=list)
    download_max_seconds: float = 8.0
    download_min_bytes: int = 1
    upload_candidates: list[EndpointCandidate] = field(default_factory=list)
    upload_mode: str = "auto"  # measure | estimate | auto
    upload_estimate_ratio: float = 0.3
    upload_payload_size: int = 2_000_000
    upload_payload_fill: str = "random"  # random | zero
    ip_lookup_candidates: list[EndpointCandidate] = field(default_factory=list)
    geo_candidates: list[EndpointCandidate] = field(default_factory=list)
    request_timeout: float = 5.0
    deadline: float = 20.0
    http2: bool = True
    include_system: bool = False
    system_cache_ttl: float = 50.0
