"""
Latency, jitter and packet-loss sampler.

Sends ``ping_count`` small GETs one after another, ``ping_interval_ms``
apart, and times each round trip with ``time.perf_counter``.  A failed probe
counts as a drop; a probe interrupted by ``stop`` counts as nothing.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .constants import LATENCY_URL, PING_COUNT, PING_INTERVAL_MS
from .errors import Cancelled, MeasurementError, error_for_status
from .stats import loss_percent, mean, population_stddev
from .transport import Transport, with_cache_bust

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LatencyProgress:
    """Reported after every probe attempt."""

    count: int
    drops: int
    last_ms: Optional[float] = None
    error: Optional[MeasurementError] = None


@dataclass
class LatencyResult:
    """Aggregated round-trip statistics for one latency phase."""

    average_ms: float = 0.0
    jitter_ms: float = 0.0
    loss_percent: float = 0.0
    count: int = 0
    drops: int = 0
    samples: List[float] = field(default_factory=list)

    @classmethod
    def from_samples(cls, samples: List[float], drops: int) -> LatencyResult:
        return cls(
            average_ms=mean(samples),
            jitter_ms=population_stddev(samples),
            loss_percent=loss_percent(drops, len(samples)),
            count=len(samples),
            drops=drops,
            samples=list(samples),
        )

    def to_dict(self) -> dict:
        return {
            "average_ms": round(self.average_ms, 3),
            "jitter_ms": round(self.jitter_ms, 3),
            "loss_percent": round(self.loss_percent, 2),
            "count": self.count,
            "drops": self.drops,
            "samples": [round(s, 3) for s in self.samples],
        }


# ---------------------------------------------------------------------------
# Tester
# ---------------------------------------------------------------------------

class LatencyTester:
    """Serial HTTP round-trip probes against a tiny fixed payload."""

    def __init__(
        self,
        transport: Transport,
        ping_count: int = PING_COUNT,
        interval_ms: float = PING_INTERVAL_MS,
        url: str = LATENCY_URL,
    ) -> None:
        self.transport = transport
        self.ping_count = ping_count
        self.interval_ms = interval_ms
        self.url = url
        self.on_progress: Optional[Callable[[LatencyProgress], None]] = None

    async def test(self, stop: Optional[asyncio.Event] = None) -> LatencyResult:
        stop = stop or asyncio.Event()
        samples: List[float] = []
        drops = 0
        last_error: Optional[MeasurementError] = None

        logger.info("Latency: %d probes, %.0f ms apart", self.ping_count, self.interval_ms)

        for _ in range(self.ping_count):
            if stop.is_set():
                break
            try:
                rtt_ms = await self._probe_or_stop(stop)
            except Cancelled:
                last_error = None
                break
            except MeasurementError as exc:
                drops += 1
                last_error = exc
                logger.debug("Latency probe dropped: %s", exc)
                self._report(LatencyProgress(count=len(samples), drops=drops, error=exc))
            else:
                samples.append(rtt_ms)
                last_error = None
                self._report(LatencyProgress(count=len(samples), drops=drops, last_ms=rtt_ms))

            if stop.is_set():
                break
            await self._pause(stop)

        if not samples and last_error is not None:
            raise last_error

        return LatencyResult.from_samples(samples, drops)

    # -- Internals ----------------------------------------------------------

    async def _probe_once(self) -> float:
        t0 = time.perf_counter()
        response = await self.transport.request("GET", with_cache_bust(self.url))
        if not response.ok:
            raise error_for_status("latency", response.status)
        return (time.perf_counter() - t0) * 1000

    async def _probe_or_stop(self, stop: asyncio.Event) -> float:
        """Run one probe, abandoning it (``Cancelled``) if *stop* fires first."""
        probe = asyncio.create_task(self._probe_once())
        stopper = asyncio.create_task(stop.wait())
        try:
            done, _ = await asyncio.wait({probe, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not probe.done():
                probe.cancel()
                try:
                    await probe
                except asyncio.CancelledError:
                    pass

        if probe in done:
            return probe.result()
        raise Cancelled("Latency probe cancelled.")

    async def _pause(self, stop: asyncio.Event) -> None:
        """Sleep ``interval_ms`` unless *stop* is set first."""
        if self.interval_ms <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(stop.wait(), timeout=self.interval_ms / 1000)
        except asyncio.TimeoutError:
            pass

    def _report(self, progress: LatencyProgress) -> None:
        if self.on_progress:
            self.on_progress(progress)
