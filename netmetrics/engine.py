"""Measurement aggregator for netmetrics.

Runs the four probes concurrently and folds their results into one
:class:`~netmetrics.models.MeasurementReport`:

    latency  -- LatencyProbe (targets sampled concurrently)
    download -- DownloadProbe (candidates tried sequentially)
    upload   -- UploadProbe, or an estimate derived from download
    location -- LocationProbe (IP lookup + geolocation failover)

Each aggregator serves exactly one measurement and moves through
``IDLE -> DISPATCHED -> COLLECTING -> COMPLETE``.  Probes that miss the
overall deadline are cancelled and their slot is filled with a failure
sentinel; a probe failure never aborts the report.  Only an exception that
escapes a probe (an internal fault, e.g. the upload payload cannot be
built) surfaces, as :class:`MeasurementError`.

Public API:
    MeasurementAggregator -- single-use orchestrator
    measure               -- build an aggregator and run it
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import psutil

from netmetrics.config import USER_AGENT
from netmetrics.latency import LatencyProbe
from netmetrics.location import LocationProbe
from netmetrics.models import (
    DOWNLOAD,
    LATENCY,
    LOCATION,
    UPLOAD,
    LatencyStats,
    LocationInfo,
    MeasurementConfig,
    MeasurementReport,
    ProbeResult,
    SystemSnapshot,
)
from netmetrics.system import CachedValue
from netmetrics.throughput import DownloadProbe, UploadProbe, estimate_upload

logger = logging.getLogger(__name__)

DEADLINE_ERROR = "deadline exceeded"


class MeasurementError(Exception):
    """An internal fault that makes the whole measurement fail."""


class AggregatorState(enum.Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    COLLECTING = "collecting"
    COMPLETE = "complete"


def failure_sentinel(kind: str, error: str) -> ProbeResult:
    """Placeholder result for a probe that produced nothing."""
    if kind == LATENCY:
        value = LatencyStats()
    elif kind == LOCATION:
        value = LocationInfo()
    else:
        value = 0.0
    return ProbeResult(kind=kind, value=value, succeeded=False, error=error)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class MeasurementAggregator:
    """Dispatch all probes, enforce the deadline, and build the report.

    Parameters
    ----------
    config:
        Endpoint lists, policies and timeouts.
    observed_ip:
        Caller address seen by the request layer, if any.
    transport:
        Optional httpx transport shared by the probe clients (tests pass an
        ``httpx.MockTransport``).
    system_cache:
        Optional cached host snapshot to attach to the report.
    network:
        Details of the incoming request (address, scheme, HTTP version,
        user agent) copied into the report as-is.
    clock:
        Monotonic clock in seconds used for every timing.
    """

    def __init__(
        self,
        config: MeasurementConfig,
        observed_ip: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        system_cache: Optional[CachedValue[SystemSnapshot]] = None,
        network: Optional[dict[str, str]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config
        self.observed_ip = observed_ip
        self.transport = transport
        self.system_cache = system_cache
        self.network = network
        self.clock = clock
        self.state = AggregatorState.IDLE

    # -- Probe tasks --------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """A fresh client per probe, so probes share no connection state."""
        return httpx.AsyncClient(
            transport=self.transport,
            http2=self.config.http2,
            timeout=httpx.Timeout(self.config.request_timeout),
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    async def _latency(self) -> ProbeResult:
        async with self._client() as client:
            probe = LatencyProbe(
                self.config.latency_targets,
                client,
                method=self.config.latency_method,
                policy=self.config.latency_policy,
                timeout=self.config.request_timeout,
                clock=self.clock,
            )
            return await probe.run()

    async def _download(self) -> ProbeResult:
        async with self._client() as client:
            probe = DownloadProbe(
                self.config.download_candidates,
                client,
                max_seconds=self.config.download_max_seconds,
                min_bytes=self.config.download_min_bytes,
                clock=self.clock,
            )
            return await probe.run()

    async def _upload(self, download: asyncio.Task) -> ProbeResult:
        mode = self.config.upload_mode
        ratio = self.config.upload_estimate_ratio

        # shield: cancelling upload must not cancel the download it waits on.
        if mode == "estimate":
            return estimate_upload(await asyncio.shield(download), ratio)

        async with self._client() as client:
            probe = UploadProbe(
                self.config.upload_candidates,
                client,
                payload_size=self.config.upload_payload_size,
                fill=self.config.upload_payload_fill,
                clock=self.clock,
            )
            measured = await probe.run()

        if measured.succeeded or mode == "measure":
            return measured

        logger.info("Upload measurement failed, estimating from download")
        estimated = estimate_upload(await asyncio.shield(download), ratio)
        if not estimated.succeeded:
            return failure_sentinel(UPLOAD, f"{measured.error}; {estimated.error}")
        return estimated

    async def _location(self) -> ProbeResult:
        async with self._client() as client:
            probe = LocationProbe(
                self.config.ip_lookup_candidates,
                self.config.geo_candidates,
                client,
                observed_ip=self.observed_ip,
            )
            return await probe.run()

    # -- Orchestration ------------------------------------------------------

    async def run(self) -> MeasurementReport:
        """Run every probe once and return the report."""
        if self.state is not AggregatorState.IDLE:
            raise RuntimeError("MeasurementAggregator instances are single-use")

        deadline = self.config.deadline
        download = asyncio.create_task(self._download(), name=DOWNLOAD)
        tasks: dict[str, asyncio.Task] = {
            LATENCY: asyncio.create_task(self._latency(), name=LATENCY),
            DOWNLOAD: download,
            UPLOAD: asyncio.create_task(self._upload(download), name=UPLOAD),
            LOCATION: asyncio.create_task(self._location(), name=LOCATION),
        }
        self.state = AggregatorState.DISPATCHED
        logger.info("Dispatched %d probes (deadline %.1fs)", len(tasks), deadline)

        self.state = AggregatorState.COLLECTING
        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=deadline)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: dict[str, ProbeResult] = {}
        faults: list[str] = []
        first_fault: Optional[BaseException] = None
        for kind, task in tasks.items():
            if task in pending:
                logger.warning("%s probe missed the %.1fs deadline", kind, deadline)
                results[kind] = failure_sentinel(kind, DEADLINE_ERROR)
                continue
            exc = task.exception()
            if exc is not None:
                logger.error("%s probe raised %s: %s", kind, type(exc).__name__, exc)
                faults.append(f"{kind}: {exc}")
                first_fault = first_fault or exc
                continue
            results[kind] = task.result()

        self.state = AggregatorState.COMPLETE
        if faults:
            raise MeasurementError("; ".join(faults)) from first_fault

        report = MeasurementReport(
            latency=results[LATENCY],
            download=results[DOWNLOAD],
            upload=results[UPLOAD],
            location=results[LOCATION],
            timestamp=utc_timestamp(),
            system=self._system_snapshot(),
            network=dict(self.network) if self.network else None,
        )
        if report.failed_probes:
            logger.info("Report built with failed probes: %s", ", ".join(report.failed_probes))
        return report

    def _system_snapshot(self) -> Optional[SystemSnapshot]:
        if self.system_cache is None:
            return None
        try:
            return self.system_cache.get()
        except (OSError, psutil.Error) as exc:
            logger.warning("System stats unavailable: %s", exc)
            return None


async def measure(
    config: MeasurementConfig,
    observed_ip: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    system_cache: Optional[CachedValue[SystemSnapshot]] = None,
) -> MeasurementReport:
    """Run one measurement with a fresh aggregator."""
    aggregator = MeasurementAggregator(
        config,
        observed_ip=observed_ip,
        transport=transport,
        system_cache=system_cache,
    )
    return await aggregator.run()
