"""Statistical aggregation and unit conversion for measurements."""

from __future__ import annotations

from typing import Sequence

from netmetrics.config import BITS_PER_MEGABIT
from netmetrics.models import LatencyStats


def throughput_mbps(nbytes: int, seconds: float) -> float:
    """Convert a byte count over a duration into Mbps (1 Mb = 2**20 bits)."""
    if nbytes <= 0 or seconds <= 0:
        return 0.0
    return (nbytes * 8) / (BITS_PER_MEGABIT * seconds)


def summarize_latency(samples: Sequence[float], current: float) -> LatencyStats:
    """Compute a latency summary from samples in milliseconds."""
    if not samples:
        return LatencyStats()

    avg = sum(samples) / len(samples)
    return LatencyStats(
        current=round(current, 3),
        average=round(avg, 2),
        min=round(min(samples), 3),
        max=round(max(samples), 3),
        samples=tuple(round(s, 3) for s in samples),
    )


def format_mbps(value: float, estimated: bool = False) -> str:
    text = f"{max(value, 0.0):.2f} Mbps"
    return f"{text} (estimated)" if estimated else text


def format_ms(value: float) -> str:
    return f"{max(value, 0.0):.1f} ms"
