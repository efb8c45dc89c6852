"""Download and upload throughput probes.

Both probes walk their candidate list sequentially so a probe never
competes with itself for bandwidth.  Throughput is always reported in Mbps
(``bytes * 8 / 2**20 / seconds``).

Download streams the body of the first healthy candidate and stops at the
end of the body or after ``max_seconds``, whichever comes first.  Upload
POSTs a pre-built payload and times the request until the sink accepts it.
When no sink is usable the upload can be estimated from the download
figure; such results carry ``estimated=True``.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Callable, Sequence

import httpx

from netmetrics.failover import CandidateError, check_status, first_success, ordered
from netmetrics.models import DOWNLOAD, UPLOAD, EndpointCandidate, ProbeResult
from netmetrics.stats import throughput_mbps

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def build_payload(size: int, fill: str = "random") -> bytes:
    """Allocate the upload body.

    Raises ``ValueError`` for a non-positive size; ``MemoryError`` passes
    through.  Both are fatal to the measurement, not to a single candidate.
    """
    if size <= 0:
        raise ValueError(f"Upload payload size must be positive, got {size}")
    if fill == "zero":
        return bytes(size)
    return os.urandom(size)


def estimate_upload(download: ProbeResult, ratio: float) -> ProbeResult:
    """Approximate upload throughput as a fixed fraction of download."""
    if not download.succeeded:
        return ProbeResult(
            kind=UPLOAD,
            value=0.0,
            succeeded=False,
            error="download unavailable, upload cannot be estimated",
        )
    # No sink was contacted, so the estimate has no endpoint of its own.
    return ProbeResult(kind=UPLOAD, value=float(download.value) * ratio, estimated=True)


class DownloadProbe:
    """Measure download bandwidth against the first healthy candidate."""

    def __init__(
        self,
        candidates: Sequence[EndpointCandidate],
        client: httpx.AsyncClient,
        max_seconds: float = 8.0,
        min_bytes: int = 1,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.candidates = ordered(candidates)
        self.client = client
        self.max_seconds = max_seconds
        self.min_bytes = max(min_bytes, 1)
        self.clock = clock

    async def run(self) -> ProbeResult:
        outcome = await first_success(self.candidates, self._transfer, label="Download")
        if not outcome.succeeded:
            return ProbeResult(
                kind=DOWNLOAD, value=0.0, succeeded=False, error=outcome.error_summary
            )

        logger.info("Download %.2f Mbps via %s", outcome.value, outcome.candidate.label)
        return ProbeResult(kind=DOWNLOAD, value=outcome.value, endpoint=outcome.candidate.url)

    async def _transfer(self, candidate: EndpointCandidate) -> float:
        received = 0
        t0 = self.clock()
        async with self.client.stream(candidate.method, candidate.url) as response:
            check_status(response)
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                received += len(chunk)
                if self.clock() - t0 >= self.max_seconds:
                    logger.debug("Download from %s capped at %.1fs", candidate.label, self.max_seconds)
                    break
        elapsed = self.clock() - t0

        if received < self.min_bytes:
            raise CandidateError(f"only {received} bytes received")
        if elapsed <= 0:
            raise CandidateError("transfer finished without measurable time")
        if candidate.expected_payload_size and received < candidate.expected_payload_size:
            logger.debug(
                "%s sent %d of %d expected bytes",
                candidate.label,
                received,
                candidate.expected_payload_size,
            )
        return throughput_mbps(received, elapsed)


class UploadProbe:
    """Measure upload bandwidth by POSTing a fixed-size payload."""

    def __init__(
        self,
        candidates: Sequence[EndpointCandidate],
        client: httpx.AsyncClient,
        payload_size: int,
        fill: str = "random",
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.candidates = ordered(candidates)
        self.client = client
        self.payload_size = payload_size
        self.fill = fill
        self.clock = clock

    async def run(self) -> ProbeResult:
        payload = build_payload(self.payload_size, self.fill)

        async def _attempt(candidate: EndpointCandidate) -> float:
            return await self._transfer(candidate, payload)

        outcome = await first_success(self.candidates, _attempt, label="Upload")
        if not outcome.succeeded:
            return ProbeResult(
                kind=UPLOAD, value=0.0, succeeded=False, error=outcome.error_summary
            )

        logger.info("Upload %.2f Mbps via %s", outcome.value, outcome.candidate.label)
        return ProbeResult(kind=UPLOAD, value=outcome.value, endpoint=outcome.candidate.url)

    async def _transfer(self, candidate: EndpointCandidate, payload: bytes) -> float:
        method = candidate.method if candidate.method in ("POST", "PUT") else "POST"
        t0 = self.clock()
        response = await self.client.request(
            method,
            candidate.url,
            content=payload,
            headers={"Content-Type": "application/octet-stream"},
        )
        elapsed = self.clock() - t0
        check_status(response)

        if elapsed <= 0:
            raise CandidateError("upload finished without measurable time")
        return throughput_mbps(len(payload), elapsed)
