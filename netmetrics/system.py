"""Host system stats with an explicit time-stamped cache."""

from __future__ import annotations

import logging
import platform
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

import psutil

from netmetrics.models import SystemSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

_GB = 1024 ** 3


class CachedValue(Generic[T]):
    """A value recomputed at most once per *ttl* seconds.

    Owned by whoever creates it (the web app keeps one per process) and
    passed by reference to each measurement.
    """

    def __init__(
        self,
        producer: Callable[[], T],
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.producer = producer
        self.ttl = ttl
        self.clock = clock
        self._value: Optional[T] = None
        self._stamp: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def age(self) -> Optional[float]:
        if self._stamp is None:
            return None
        return self.clock() - self._stamp

    def get(self) -> T:
        with self._lock:
            now = self.clock()
            if self._stamp is None or now - self._stamp >= self.ttl:
                self._value = self.producer()
                self._stamp = now
                logger.debug("Refreshed cached %s", type(self._value).__name__)
            return self._value  # type: ignore[return-value]

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._stamp = None


def collect_system_snapshot() -> SystemSnapshot:
    """Read CPU, memory and OS details of the host."""
    freq = psutil.cpu_freq()
    vm = psutil.virtual_memory()
    uptime_h = (time.time() - psutil.boot_time()) / 3600

    return SystemSnapshot(
        cpu={
            "cores": psutil.cpu_count(logical=True) or 0,
            "model": platform.processor() or platform.machine() or "Unknown",
            "speed": round(freq.current) if freq else 0,
        },
        memory={
            "total": f"{vm.total / _GB:.2f} GB",
            "free": f"{vm.available / _GB:.2f} GB",
            "used": f"{(vm.total - vm.available) / _GB:.2f} GB",
        },
        os={
            "platform": platform.system().lower(),
            "type": platform.system(),
            "release": platform.release(),
            "arch": platform.machine(),
            "uptime": f"{uptime_h:.2f} hours",
        },
    )


def system_cache(ttl: float) -> CachedValue[SystemSnapshot]:
    return CachedValue(collect_system_snapshot, ttl)
