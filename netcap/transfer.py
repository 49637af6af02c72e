"""
Time-boxed, bounded-concurrency transfer loop shared by download and upload.

``max_parallel`` worker coroutines repeatedly run a *transfer unit* (one
request) until the phase duration elapses or ``stop`` is set.  The workers
live in a scope owned by the phase: when the phase ends -- naturally, by the
watchdog, or by ``stop`` -- every worker task is cancelled, which aborts any
in-flight request, and awaited before the result is computed.

Counters (bytes, count, in-flight) are plain locals mutated only on the
running event loop; no locks are needed or used.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .constants import BUSY_WAIT, MIN_ELAPSED, PROGRESS_INTERVAL, WATCHDOG_GRACE
from .errors import MeasurementError
from .stats import bits_per_second

logger = logging.getLogger(__name__)

TransferUnit = Callable[[], Awaitable[int]]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ProgressSnapshot:
    """Transient progress report emitted at most every ``PROGRESS_INTERVAL``."""

    bytes_so_far: int
    transfer_count: int
    elapsed_seconds: float
    bits_per_second: float


@dataclass
class ThroughputResult:
    """Terminal aggregate of one download or upload phase."""

    bits_per_second: float = 0.0
    count: int = 0
    bytes_total: int = 0
    duration_ms: float = 0.0

    @property
    def mbps(self) -> float:
        return self.bits_per_second / 1_000_000

    def to_dict(self) -> dict:
        return {
            "speed_bps": round(self.bits_per_second, 2),
            "speed_mbps": round(self.mbps, 2),
            "count": self.count,
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
        }


# ---------------------------------------------------------------------------
# Phase loop
# ---------------------------------------------------------------------------

async def run_transfer_phase(
    duration_seconds: float,
    max_parallel: int,
    transfer_unit: TransferUnit,
    stop: Optional[asyncio.Event] = None,
    on_progress: Optional[Callable[[ProgressSnapshot], None]] = None,
    *,
    progress_interval: float = PROGRESS_INTERVAL,
    watchdog_grace: float = WATCHDOG_GRACE,
) -> ThroughputResult:
    """
    Run *transfer_unit* on ``max_parallel`` workers for *duration_seconds*.

    Failed units are absorbed; the phase raises the last recorded error only
    if no byte at all was transferred.
    """
    stop = stop or asyncio.Event()
    max_parallel = max(1, max_parallel)

    total_bytes = 0
    count = 0
    in_flight = 0
    last_error: Optional[MeasurementError] = None

    start = time.perf_counter()
    end = start + duration_seconds
    last_emit = start

    def _emit_progress() -> None:
        nonlocal last_emit
        now = time.perf_counter()
        if on_progress is None or now - last_emit < progress_interval:
            return
        last_emit = now
        elapsed = now - start
        on_progress(
            ProgressSnapshot(
                bytes_so_far=total_bytes,
                transfer_count=count,
                elapsed_seconds=elapsed,
                bits_per_second=bits_per_second(total_bytes, elapsed, MIN_ELAPSED),
            )
        )

    # -- Worker -------------------------------------------------------------

    async def _worker() -> None:
        nonlocal total_bytes, count, in_flight, last_error

        while not stop.is_set() and time.perf_counter() < end:
            if in_flight >= max_parallel:
                await asyncio.sleep(BUSY_WAIT)
                continue

            in_flight += 1
            try:
                moved = await transfer_unit()
            except MeasurementError as exc:
                last_error = exc
                logger.debug("Transfer failed: %s", exc)
            else:
                total_bytes += moved
                count += 1
                last_error = None
                _emit_progress()
            finally:
                in_flight -= 1

            # Let the other workers run even if the unit never suspended.
            await asyncio.sleep(0)

    # -- Orchestration ------------------------------------------------------

    workers = [asyncio.create_task(_worker()) for _ in range(max_parallel)]
    stopper = asyncio.create_task(stop.wait())

    try:
        pending = set(workers)
        deadline = start + duration_seconds + watchdog_grace
        while pending and not stop.is_set():
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                logger.warning("Transfer phase exceeded its watchdog; forcing stop")
                break
            done, pending = await asyncio.wait(
                pending | {stopper},
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
            pending.discard(stopper)
            if any(
                task is not stopper and not task.cancelled() and task.exception() is not None
                for task in done
            ):
                break  # a worker crashed; re-raised below
    finally:
        for task in workers:
            task.cancel()
        stopper.cancel()
        outcomes = await asyncio.gather(*workers, return_exceptions=True)
        try:
            await stopper
        except asyncio.CancelledError:
            pass

    for outcome in outcomes:
        if isinstance(outcome, Exception):
            raise outcome

    elapsed = time.perf_counter() - start

    if total_bytes == 0 and last_error is not None:
        raise last_error

    return ThroughputResult(
        bits_per_second=bits_per_second(total_bytes, elapsed, MIN_ELAPSED),
        count=count,
        bytes_total=total_bytes,
        duration_ms=elapsed * 1000,
    )
