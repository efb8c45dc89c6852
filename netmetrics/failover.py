"""Ordered candidate failover.

Probes hand a candidate list and an async ``attempt`` callable to
:func:`first_success`.  Candidates are consumed lazily in priority order
until one attempt returns a value.  Network errors, timeouts, non-2xx
statuses and malformed bodies are per-candidate failures; anything else is
a programming fault and propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Iterable, Optional, TypeVar

import httpx

from netmetrics.models import EndpointCandidate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CandidateError(Exception):
    """A candidate answered, but not with something usable."""


# Failures that move on to the next candidate.
RECOVERABLE_ERRORS = (
    CandidateError,
    httpx.HTTPError,
    httpx.InvalidURL,
    asyncio.TimeoutError,
    OSError,
    ValueError,
)


@dataclass
class FailoverOutcome(Generic[T]):
    """Result of walking a candidate list."""

    candidate: Optional[EndpointCandidate] = None
    value: Optional[T] = None
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.candidate is not None

    @property
    def error_summary(self) -> str:
        if not self.errors:
            return "no candidates configured"
        return "; ".join(self.errors)


def ordered(candidates: Iterable[EndpointCandidate]) -> list[EndpointCandidate]:
    """Sort candidates by priority, keeping declaration order for ties."""
    return sorted(candidates, key=lambda c: c.priority)


def check_status(response: httpx.Response) -> None:
    """Raise :class:`CandidateError` for anything but a 2xx response."""
    if not response.is_success:
        raise CandidateError(f"HTTP {response.status_code}")


async def first_success(
    candidates: Iterable[EndpointCandidate],
    attempt: Callable[[EndpointCandidate], Awaitable[T]],
    label: str = "probe",
) -> FailoverOutcome[T]:
    """Try each candidate in priority order and return the first success."""
    outcome: FailoverOutcome[T] = FailoverOutcome()

    for candidate in ordered(candidates):
        try:
            value = await attempt(candidate)
        except RECOVERABLE_ERRORS as exc:
            reason = str(exc) or type(exc).__name__
            outcome.errors.append(f"{candidate.label}: {reason}")
            logger.debug("%s candidate %s failed: %s", label, candidate.label, reason)
            continue

        outcome.candidate = candidate
        outcome.value = value
        logger.debug("%s candidate %s succeeded", label, candidate.label)
        return outcome

    logger.warning("%s: all candidates failed (%s)", label, outcome.error_summary)
    return outcome
