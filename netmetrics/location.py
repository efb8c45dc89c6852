"""Public address and coarse geolocation via free APIs."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Callable, Optional, Sequence

import httpx

from netmetrics.failover import CandidateError, check_status, first_success
from netmetrics.models import (
    LOCATION,
    UNKNOWN,
    EndpointCandidate,
    GeoInfo,
    LocationInfo,
    ProbeResult,
)

logger = logging.getLogger(__name__)


def is_public_address(address: Optional[str]) -> bool:
    """True when *address* is a globally routable IP address."""
    if not address:
        return False
    try:
        return ipaddress.ip_address(address.strip()).is_global
    except ValueError:
        return False


class LocationProbe:
    """Resolve the caller's public address and look up its location.

    *observed_ip* is the address the request layer saw.  When it is missing
    or not globally routable (loopback, private, behind a proxy) the
    address is asked from the IP lookup providers instead.
    """

    def __init__(
        self,
        ip_lookup_candidates: Sequence[EndpointCandidate],
        geo_candidates: Sequence[EndpointCandidate],
        client: httpx.AsyncClient,
        observed_ip: Optional[str] = None,
    ) -> None:
        self.ip_lookup_candidates = list(ip_lookup_candidates)
        self.geo_candidates = list(geo_candidates)
        self.client = client
        self.observed_ip = observed_ip

    async def run(self) -> ProbeResult:
        if is_public_address(self.observed_ip):
            ip = self.observed_ip.strip()
        else:
            lookup = await first_success(
                self.ip_lookup_candidates, self._lookup_ip, label="IP lookup"
            )
            if not lookup.succeeded:
                return ProbeResult(
                    kind=LOCATION,
                    value=LocationInfo(),
                    succeeded=False,
                    error=f"public IP unavailable: {lookup.error_summary}",
                )
            ip = lookup.value

        async def _attempt(candidate: EndpointCandidate) -> GeoInfo:
            return await self._query_geo(candidate, ip)

        geo = await first_success(self.geo_candidates, _attempt, label="Geolocation")
        if not geo.succeeded:
            return ProbeResult(
                kind=LOCATION,
                value=LocationInfo(ip=ip),
                succeeded=False,
                error=f"geolocation unavailable: {geo.error_summary}",
            )

        logger.info("Location %s resolved via %s", ip, geo.candidate.label)
        return ProbeResult(
            kind=LOCATION,
            value=LocationInfo(ip=ip, geo=geo.value),
            endpoint=geo.candidate.url,
        )

    async def _lookup_ip(self, candidate: EndpointCandidate) -> str:
        response = await self.client.request(candidate.method, candidate.url)
        check_status(response)

        if candidate.schema == "text":
            raw = response.text.strip()
        else:
            data = response.json()
            if not isinstance(data, dict):
                raise CandidateError("unexpected JSON shape")
            raw = str(data.get("ip") or data.get("query") or "")

        # Raises ValueError for anything that is not an address.
        return str(ipaddress.ip_address(raw))

    async def _query_geo(self, candidate: EndpointCandidate, ip: str) -> GeoInfo:
        parser = _PARSERS.get(candidate.schema or "ipinfo")
        if parser is None:
            raise CandidateError(f"no parser for schema {candidate.schema!r}")

        url = candidate.url.replace("{ip}", ip)
        response = await self.client.request(candidate.method, url)
        check_status(response)
        data = response.json()
        if not isinstance(data, dict):
            raise CandidateError("unexpected JSON shape")

        geo = parser(data)
        if geo.is_unknown:
            raise CandidateError("response carried no location fields")
        return geo


def _text(value: Any) -> str:
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text or UNKNOWN


def _parse_ipinfo(data: dict) -> GeoInfo:
    """Parse ipinfo.io response."""
    if data.get("bogon") or data.get("error"):
        raise CandidateError("ipinfo.io could not locate address")

    return GeoInfo(
        country=_text(data.get("country")),
        city=_text(data.get("city")),
        region=_text(data.get("region")),
        isp=_text(data.get("org")),
    )


def _parse_ipapi(data: dict) -> GeoInfo:
    """Parse ipapi.co response."""
    if data.get("error"):
        raise CandidateError(str(data.get("reason", "ipapi.co error")))

    return GeoInfo(
        country=_text(data.get("country_name") or data.get("country_code")),
        city=_text(data.get("city")),
        region=_text(data.get("region")),
        isp=_text(data.get("org")),
    )


def _parse_ip_api_com(data: dict) -> GeoInfo:
    """Parse ip-api.com response."""
    if data.get("status") == "fail":
        raise CandidateError(str(data.get("message", "ip-api.com error")))

    return GeoInfo(
        country=_text(data.get("country")),
        city=_text(data.get("city")),
        region=_text(data.get("regionName")),
        isp=_text(data.get("isp") or data.get("org")),
    )


_PARSERS: dict[str, Callable[[dict], GeoInfo]] = {
    "ipinfo": _parse_ipinfo,
    "ipapi": _parse_ipapi,
    "ip-api": _parse_ip_api_com,
}
