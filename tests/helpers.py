"""Shared test doubles: a per-task fake clock and a routing mock transport."""

from __future__ import annotations

import asyncio
import contextvars
import inspect
from typing import Any, Callable

import httpx

from netmetrics.models import EndpointCandidate, MeasurementConfig

_offset: contextvars.ContextVar[float] = contextvars.ContextVar("fake_clock", default=0.0)


class FakeClock:
    """Clock that only moves when a mock endpoint advances it.

    The offset lives in a context variable, so every asyncio task (one per
    probe, one per latency target) sees its own timeline and concurrent
    requests do not disturb each other's timings.
    """

    def __call__(self) -> float:
        return _offset.get()

    @staticmethod
    def advance(seconds: float) -> None:
        _offset.set(_offset.get() + seconds)


def make_transport(routes: dict[str, Callable[[httpx.Request], Any]]) -> httpx.MockTransport:
    """Dispatch requests to the first responder whose URL prefix matches.

    Unrouted URLs behave like an unreachable host.
    """

    async def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        for prefix, responder in routes.items():
            if url.startswith(prefix):
                result = responder(request)
                if inspect.isawaitable(result):
                    result = await result
                return result
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


def respond(status: int = 200, after: float = 0.0, **kwargs: Any) -> Callable[[httpx.Request], httpx.Response]:
    """Responder that takes *after* fake seconds, then answers."""

    def responder(request: httpx.Request) -> httpx.Response:
        FakeClock.advance(after)
        return httpx.Response(status, **kwargs)

    return responder


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


async def hang(request: httpx.Request) -> httpx.Response:
    await asyncio.sleep(3600)
    return httpx.Response(200)


LATENCY_URLS = ["https://a.test/ping", "https://b.test/ping", "https://c.test/ping"]
DOWNLOAD_URLS = ["https://dl1.test/file", "https://dl2.test/file"]
UPLOAD_URLS = ["https://up1.test/sink", "https://up2.test/sink"]
IPLOOKUP_URLS = ["https://ip1.test/json", "https://ip2.test/ip"]
GEO_URLS = ["https://geo1.test/", "https://geo2.test/", "https://geo3.test/"]

PUBLIC_IP = "93.184.216.34"


def make_config(**overrides: Any) -> MeasurementConfig:
    config = MeasurementConfig(
        latency_targets=[EndpointCandidate(url, method="HEAD") for url in LATENCY_URLS],
        download_candidates=[
            EndpointCandidate(url, priority=i) for i, url in enumerate(DOWNLOAD_URLS)
        ],
        upload_candidates=[
            EndpointCandidate(url, method="POST", priority=i) for i, url in enumerate(UPLOAD_URLS)
        ],
        ip_lookup_candidates=[
            EndpointCandidate(IPLOOKUP_URLS[0], schema="json"),
            EndpointCandidate(IPLOOKUP_URLS[1], schema="text"),
        ],
        geo_candidates=[
            EndpointCandidate(GEO_URLS[0] + "{ip}/json", schema="ipinfo"),
            EndpointCandidate(GEO_URLS[1] + "{ip}/json/", schema="ipapi"),
            EndpointCandidate(GEO_URLS[2] + "json/{ip}", schema="ip-api"),
        ],
        upload_payload_size=1_000_000,
        request_timeout=1.0,
        deadline=2.0,
        http2=False,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


IPINFO_BODY = {
    "ip": PUBLIC_IP,
    "city": "Amsterdam",
    "region": "North Holland",
    "country": "NL",
    "org": "AS64500 Example Net",
}

IPAPI_BODY = {
    "ip": PUBLIC_IP,
    "city": "Rotterdam",
    "region": "South Holland",
    "country_name": "Netherlands",
    "org": "Example ISP",
}


def healthy_routes() -> dict[str, Callable[[httpx.Request], Any]]:
    """Every probe succeeds: pings of 20/35/50 ms, 10 MB in 1 s, 1 MB up in 0.5 s."""
    return {
        LATENCY_URLS[0]: respond(204, after=0.020),
        LATENCY_URLS[1]: respond(204, after=0.035),
        LATENCY_URLS[2]: respond(204, after=0.050),
        DOWNLOAD_URLS[0]: respond(200, after=1.0, content=b"\0" * 10_000_000),
        UPLOAD_URLS[0]: respond(200, after=0.5, json={"ok": True}),
        IPLOOKUP_URLS[0]: respond(200, json={"ip": PUBLIC_IP}),
        GEO_URLS[0]: respond(200, json=IPINFO_BODY),
    }
