"""Round-trip latency probe.

Every reachability target is sampled once, concurrently.  The ``http``
method times a streamed request up to the response headers (first byte);
the ``dns`` method times a hostname resolution through dnspython.  A target
that errors or times out contributes no sample.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence
from urllib.parse import urlparse

import dns.asyncresolver
import dns.exception
import dns.rdatatype
import httpx

from netmetrics.failover import RECOVERABLE_ERRORS, ordered
from netmetrics.models import LATENCY, EndpointCandidate, LatencyStats, ProbeResult
from netmetrics.stats import summarize_latency

logger = logging.getLogger(__name__)

_SAMPLE_ERRORS = RECOVERABLE_ERRORS + (dns.exception.DNSException,)


class LatencyProbe:
    """Measure latency to a set of targets and pick one value by policy."""

    def __init__(
        self,
        targets: Sequence[EndpointCandidate],
        client: httpx.AsyncClient,
        method: str = "http",
        policy: str = "min",
        timeout: float = 5.0,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.targets = ordered(targets)
        self.client = client
        self.method = method
        self.policy = policy
        self.timeout = timeout
        self.clock = clock

    async def run(self) -> ProbeResult:
        samples = await asyncio.gather(*(self._sample(t) for t in self.targets))
        measured = [
            (target, ms) for target, ms in zip(self.targets, samples) if ms is not None
        ]

        if not measured:
            logger.warning("Latency: no target responded (%d tried)", len(self.targets))
            return ProbeResult(
                kind=LATENCY,
                value=LatencyStats(),
                succeeded=False,
                error="all latency targets unreachable",
            )

        if self.policy == "first":
            chosen, current = measured[0]
        else:
            chosen, current = min(measured, key=lambda pair: pair[1])

        stats = summarize_latency([ms for _, ms in measured], current)
        logger.info("Latency %.1f ms via %s (%s policy)", current, chosen.label, self.policy)
        return ProbeResult(kind=LATENCY, value=stats, endpoint=chosen.url)

    async def _sample(self, target: EndpointCandidate) -> Optional[float]:
        """Return the latency to *target* in ms, or ``None`` on failure."""
        try:
            if self.method == "dns":
                return await self._sample_dns(target)
            return await self._sample_http(target)
        except _SAMPLE_ERRORS as exc:
            logger.debug("Latency target %s failed: %s", target.label, exc)
            return None

    async def _sample_http(self, target: EndpointCandidate) -> float:
        t0 = self.clock()
        async with self.client.stream(target.method, target.url) as response:
            # Headers received; the body is never read.
            elapsed = self.clock() - t0
            logger.debug("%s answered HTTP %d", target.label, response.status_code)
        return elapsed * 1000.0

    async def _sample_dns(self, target: EndpointCandidate) -> float:
        hostname = urlparse(target.url).hostname or target.url
        resolver = dns.asyncresolver.Resolver()
        resolver.lifetime = self.timeout

        t0 = self.clock()
        await resolver.resolve(hostname, dns.rdatatype.A)
        return (self.clock() - t0) * 1000.0
