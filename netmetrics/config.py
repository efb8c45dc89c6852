"""Constants, default endpoint lists, and config loading for netmetrics."""

from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Optional

import yaml

from netmetrics.models import EndpointCandidate, MeasurementConfig

logger = logging.getLogger(__name__)

# User agent for HTTP requests
USER_AGENT = "netmetrics/0.1.0"

# Default measurement settings
DEFAULT_TIMEOUT = 5.0
DEFAULT_DEADLINE = 20.0
DEFAULT_PORT = 3000

# Bytes per megabit, used for every throughput figure
BITS_PER_MEGABIT = 1024 * 1024

LATENCY_METHODS = ("http", "dns")
LATENCY_POLICIES = ("min", "first")
UPLOAD_MODES = ("measure", "estimate", "auto")
PAYLOAD_FILLS = ("random", "zero")

# Reachability targets.  The dns method resolves the hostname of each URL.
LATENCY_TARGETS = [
    EndpointCandidate("https://www.google.com/generate_204", method="HEAD", name="google"),
    EndpointCandidate("https://www.cloudflare.com/cdn-cgi/trace", method="HEAD", name="cloudflare"),
    EndpointCandidate("https://www.amazon.com/", method="HEAD", name="amazon"),
]

# Download payload sources, fastest first.
DOWNLOAD_CANDIDATES = [
    EndpointCandidate(
        "https://speed.cloudflare.com/__down?bytes=25000000",
        expected_payload_size=25_000_000,
        name="cloudflare",
        priority=0,
    ),
    EndpointCandidate(
        "https://proof.ovh.net/files/10Mb.dat",
        expected_payload_size=1_250_000,
        name="ovh",
        priority=1,
    ),
    EndpointCandidate(
        "http://speedtest.tele2.net/10MB.zip",
        expected_payload_size=10_485_760,
        name="tele2",
        priority=2,
    ),
]

# Upload sinks.
UPLOAD_CANDIDATES = [
    EndpointCandidate("https://speed.cloudflare.com/__up", method="POST", name="cloudflare", priority=0),
    EndpointCandidate("https://httpbin.org/post", method="POST", name="httpbin", priority=1),
]

# "What is my IP" services.  schema "json" reads the "ip" key; "text" is the raw body.
IP_LOOKUP_CANDIDATES = [
    EndpointCandidate("https://api.ipify.org?format=json", name="ipify", schema="json"),
    EndpointCandidate("https://ipinfo.io/json", name="ipinfo", schema="json"),
    EndpointCandidate("https://ifconfig.me/ip", name="ifconfig.me", schema="text"),
]

# Geolocation API fallback chain.  "{ip}" is replaced with the caller address.
GEO_CANDIDATES = [
    EndpointCandidate("https://ipinfo.io/{ip}/json", name="ipinfo", schema="ipinfo"),
    EndpointCandidate("https://ipapi.co/{ip}/json/", name="ipapi", schema="ipapi"),
    EndpointCandidate(
        "http://ip-api.com/json/{ip}?fields=status,message,query,city,regionName,country,isp,org",
        name="ip-api",
        schema="ip-api",
    ),
]

_CANDIDATE_KEYS = {
    "latency_targets",
    "download_candidates",
    "upload_candidates",
    "ip_lookup_candidates",
    "geo_candidates",
}


def default_config() -> MeasurementConfig:
    """Return a config populated with the built-in endpoint lists."""
    return MeasurementConfig(
        latency_targets=list(LATENCY_TARGETS),
        download_candidates=list(DOWNLOAD_CANDIDATES),
        upload_candidates=list(UPLOAD_CANDIDATES),
        ip_lookup_candidates=list(IP_LOOKUP_CANDIDATES),
        geo_candidates=list(GEO_CANDIDATES),
        request_timeout=DEFAULT_TIMEOUT,
        deadline=DEFAULT_DEADLINE,
    )


def _as_candidate(raw: Any) -> EndpointCandidate:
    if isinstance(raw, str):
        return EndpointCandidate(url=raw)
    if not isinstance(raw, dict) or "url" not in raw:
        raise ValueError(f"Endpoint entries need a url: {raw!r}")
    return EndpointCandidate(
        url=str(raw["url"]),
        method=str(raw.get("method", "GET")).upper(),
        expected_payload_size=int(raw.get("expected_payload_size", 0)),
        name=str(raw.get("name", "")),
        schema=str(raw.get("schema", "")),
        priority=int(raw.get("priority", 0)),
    )


def _as_candidate_list(key: str, raw: Any) -> list[EndpointCandidate]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{key} must be a list of endpoints, got {type(raw).__name__}")
    try:
        return [_as_candidate(item) for item in raw]
    except TypeError as exc:
        raise ValueError(f"{key}: {exc}") from exc


def _coerce(key: str, raw: Any, target: type) -> Any:
    """Convert a scalar from YAML to the type of the setting it replaces."""
    if target is bool:
        if isinstance(raw, bool):
            return raw
        raise ValueError(f"{key} must be true or false, got {raw!r}")
    if isinstance(raw, bool) or isinstance(raw, (list, dict)) or raw is None:
        raise ValueError(f"{key} must be a {target.__name__}, got {raw!r}")
    if target is str:
        return str(raw)
    try:
        number = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if target is int:
        if not number.is_integer():
            raise ValueError(f"{key} must be a whole number, got {raw!r}")
        return int(number)
    return number


def validate_config(config: MeasurementConfig) -> MeasurementConfig:
    """Raise ``ValueError`` if any setting is out of range."""
    if config.latency_method not in LATENCY_METHODS:
        raise ValueError(f"latency_method must be one of {LATENCY_METHODS}")
    if config.latency_policy not in LATENCY_POLICIES:
        raise ValueError(f"latency_policy must be one of {LATENCY_POLICIES}")
    if config.upload_mode not in UPLOAD_MODES:
        raise ValueError(f"upload_mode must be one of {UPLOAD_MODES}")
    if config.upload_payload_fill not in PAYLOAD_FILLS:
        raise ValueError(f"upload_payload_fill must be one of {PAYLOAD_FILLS}")
    if not 0.0 <= config.upload_estimate_ratio <= 1.0:
        raise ValueError("upload_estimate_ratio must be between 0 and 1")
    for name in ("request_timeout", "deadline", "download_max_seconds"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name} must be positive")
    if config.upload_payload_size <= 0:
        raise ValueError("upload_payload_size must be positive")
    if config.system_cache_ttl < 0:
        raise ValueError("system_cache_ttl cannot be negative")
    return config


def load_config(path: Optional[str] = None) -> MeasurementConfig:
    """Load a measurement config from a YAML file.

    Keys missing from the file keep their defaults.  Endpoint lists in the
    file replace the built-in lists entirely.
    """
    config = default_config()
    if not path:
        return config

    source_path = Path(path)
    if not source_path.exists():
        raise FileNotFoundError(f"Missing configuration file at {source_path}")

    with source_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {source_path}")

    known = {f.name for f in fields(MeasurementConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    for key, value in data.items():
        if key in _CANDIDATE_KEYS:
            value = _as_candidate_list(key, value)
        else:
            value = _coerce(key, value, type(getattr(config, key)))
        setattr(config, key, value)

    logger.debug("Loaded configuration from %s", source_path)
    return validate_config(config)
