"""
Test orchestration: download -> upload -> latency.

``TestOrchestrator`` owns one run at a time.  Each phase is isolated: a
phase error is recorded against that phase and the run moves on, ending in
``COMPLETE`` (with ``warnings`` set if anything errored).  ``stop()`` ends
the run immediately; results that arrive afterwards are dropped.  Only an
unexpected exception moves the run to ``FAILED``.

Consumers observe the run through ``PhaseEvent`` callbacks, the timestamped
``log``, the final ``results`` and ``capabilities()``.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from .config import TestConfig
from .download import DownloadTester
from .errors import Cancelled, MeasurementError
from .latency import LatencyProgress, LatencyResult, LatencyTester
from .rating import Measurements, ProfileVerdict, rate
from .rotation import REASON_FALLBACK, REASON_INITIAL, TargetChange
from .stats import format_bps
from .transfer import ProgressSnapshot, ThroughputResult
from .transport import Transport
from .upload import UploadTester

logger = logging.getLogger(__name__)

PHASE_DOWNLOAD = "download"
PHASE_UPLOAD = "upload"
PHASE_LATENCY = "latency"
PHASES = (PHASE_DOWNLOAD, PHASE_UPLOAD, PHASE_LATENCY)

_PHASE_LABELS = {
    PHASE_DOWNLOAD: "Download",
    PHASE_UPLOAD: "Upload",
    PHASE_LATENCY: "Latency",
}


class TestState(enum.Enum):
    __test__ = False

    IDLE = "idle"
    PREPARING = "preparing"
    MEASURING_DOWNLOAD = "measuring_download"
    MEASURING_UPLOAD = "measuring_upload"
    MEASURING_LATENCY = "measuring_latency"
    COMPLETE = "complete"
    STOPPED = "stopped"
    FAILED = "failed"


_STATE_LABELS = {
    TestState.IDLE: ("Idle", 0),
    TestState.PREPARING: ("Preparing test…", 0),
    TestState.MEASURING_DOWNLOAD: ("Measuring download speed…", 1),
    TestState.MEASURING_UPLOAD: ("Measuring upload speed…", 2),
    TestState.MEASURING_LATENCY: ("Measuring latency & quality…", 3),
    TestState.COMPLETE: ("Test complete", 3),
    TestState.STOPPED: ("Test stopped", 0),
    TestState.FAILED: ("Test failed", 0),
}

TOTAL_STEPS = 3


# ---------------------------------------------------------------------------
# Events, log, results
# ---------------------------------------------------------------------------

@dataclass
class PhaseEvent:
    """
    Notification for consumers.

    ``kind`` is one of ``state``, ``start``, ``progress``, ``target``,
    ``complete``, ``error`` or ``fatal``.
    """

    kind: str
    phase: Optional[str] = None
    data: Any = None
    message: str = ""


@dataclass
class LogEntry:
    timestamp: float  # seconds since the run started
    message: str


@dataclass
class RunResults:
    """Per-phase outcomes of the current (or last) run."""

    download: Optional[ThroughputResult] = None
    upload: Optional[ThroughputResult] = None
    latency: Optional[LatencyResult] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def samples(self) -> Dict[str, int]:
        return {
            PHASE_DOWNLOAD: self.download.count if self.download else 0,
            PHASE_UPLOAD: self.upload.count if self.upload else 0,
            PHASE_LATENCY: self.latency.count if self.latency else 0,
        }

    def measurements(self) -> Measurements:
        """Rating inputs; a phase without a result stays ``None``."""
        return Measurements(
            download_mbps=self.download.mbps if self.download else None,
            upload_mbps=self.upload.mbps if self.upload else None,
            rtt_ms=self.latency.average_ms if self.latency else None,
            loss_percent=self.latency.loss_percent if self.latency else None,
        )

    def to_dict(self) -> dict:
        return {
            PHASE_DOWNLOAD: self.download.to_dict() if self.download else None,
            PHASE_UPLOAD: self.upload.to_dict() if self.upload else None,
            PHASE_LATENCY: self.latency.to_dict() if self.latency else None,
            "errors": dict(self.errors),
            "samples": self.samples,
        }


PhaseRunner = Callable[[asyncio.Event], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class TestOrchestrator:
    """
    Sequences the three measurement phases of a run.

    Every run owns a private ``asyncio.Event``.  It is the run's cancellation
    handle (passed down to the samplers) and its identity: a run may only
    write state, log or results while its event is the current one and has
    not been set.  A run started while a stopped one is still unwinding waits
    for the earlier run to settle before it resets anything.
    """

    __test__ = False

    def __init__(
        self,
        config: TestConfig,
        transport: Transport,
        on_event: Optional[Callable[[PhaseEvent], None]] = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.on_event = on_event

        self.state = TestState.IDLE
        self.results = RunResults()
        self.log: List[LogEntry] = []
        self.warnings = False
        self.fatal_error: Optional[str] = None

        self._stop: Optional[asyncio.Event] = None
        self._settled: Optional[asyncio.Event] = None
        self._started: Optional[float] = None

    # -- Status -------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._stop is not None and not self._stop.is_set()

    @property
    def status_label(self) -> str:
        if self.state is TestState.COMPLETE and self.warnings:
            return "Test finished with warnings"
        return _STATE_LABELS[self.state][0]

    @property
    def step(self) -> int:
        return _STATE_LABELS[self.state][1]

    def capabilities(self) -> List[ProfileVerdict]:
        """Verdicts for the current results; empty before anything is known."""
        measurements = self.results.measurements()
        if not measurements.has_any() and not self.results.errors:
            return []
        return rate(measurements, self.config.profiles)

    # -- Control ------------------------------------------------------------

    async def run(self) -> RunResults:
        """Run all phases.  Returns the results (also kept on ``self``)."""
        if self.running:
            logger.debug("Run requested while one is in progress; ignored")
            return self.results

        stop = asyncio.Event()
        settled = asyncio.Event()
        previous = self._settled
        self._stop = stop
        self._settled = settled

        try:
            if previous is not None and not previous.is_set():
                logger.debug("Waiting for the previous run to settle")
                await previous.wait()
            if stop.is_set():
                return self.results

            self._started = time.perf_counter()
            self.results = RunResults()
            self.log = []
            self.warnings = False
            self.fatal_error = None

            logger.info("Starting network capability test")
            self._set_state(TestState.PREPARING)
            self._log("Initializing test environment…")

            try:
                await self._run_phase(stop, PHASE_DOWNLOAD, TestState.MEASURING_DOWNLOAD, self._measure_download)
                await self._run_phase(stop, PHASE_UPLOAD, TestState.MEASURING_UPLOAD, self._measure_upload)
                await self._run_phase(stop, PHASE_LATENCY, TestState.MEASURING_LATENCY, self._measure_latency)
                self._complete(stop)
            except Cancelled:
                logger.info("Run stopped before completion")
            except Exception as exc:  # noqa: BLE001 -- anything here is fatal to the run
                self._fail(stop, exc)
        finally:
            settled.set()

        return self.results

    def stop(self) -> None:
        """Abort the current run; its in-flight requests are cancelled."""
        if not self.running:
            return
        self._stop.set()
        self._set_state(TestState.STOPPED)
        self._log("Test stopped by user.")
        logger.warning("Test manually stopped")

    # -- Phases -------------------------------------------------------------

    async def _run_phase(
        self, stop: asyncio.Event, phase: str, state: TestState, runner: PhaseRunner
    ) -> None:
        self._ensure_current(stop)
        label = _PHASE_LABELS[phase]

        self._set_state(state)
        self._log(f"{label} test started.")
        self._emit(PhaseEvent("start", phase))
        logger.info("Measuring %s", phase)

        try:
            result = await runner(stop)
        except Cancelled:
            raise
        except MeasurementError as exc:
            self._ensure_current(stop, phase)
            self.warnings = True
            self.results.errors[phase] = exc.message
            self._log(f"{label} test error: {exc.message}")
            self._emit(PhaseEvent("error", phase, data=exc, message=exc.message))
            logger.warning("%s test failed but continuing: %s", label, exc.message)
            return

        self._ensure_current(stop, phase)
        setattr(self.results, phase, result)
        self._log(f"{label} test completed successfully.")
        self._emit(PhaseEvent("complete", phase, data=result))
        logger.info("%s test finished: %r", label, result)

    async def _measure_download(self, stop: asyncio.Event) -> ThroughputResult:
        cfg = self.config
        tester = DownloadTester(
            self.transport,
            duration_seconds=cfg.download_duration,
            parallel=cfg.download_parallel,
            download_bytes=cfg.download_bytes,
            url_template=cfg.download_url_template,
        )
        tester.on_progress = self._throughput_progress(stop, PHASE_DOWNLOAD, "transferred")
        return await tester.test(
            stop,
            progress_interval=cfg.progress_interval,
            watchdog_grace=cfg.watchdog_grace,
        )

    async def _measure_upload(self, stop: asyncio.Event) -> ThroughputResult:
        cfg = self.config
        tester = UploadTester(
            self.transport,
            cfg.upload_targets,
            duration_seconds=cfg.upload_duration,
            parallel=cfg.upload_parallel,
            payload_bytes=cfg.upload_payload_bytes,
            max_consecutive_failures=cfg.max_consecutive_failures,
        )
        tester.on_progress = self._throughput_progress(stop, PHASE_UPLOAD, "sent")
        tester.on_target_change = partial(self._target_changed, stop)
        return await tester.test(
            stop,
            progress_interval=cfg.progress_interval,
            watchdog_grace=cfg.watchdog_grace,
        )

    async def _measure_latency(self, stop: asyncio.Event) -> LatencyResult:
        cfg = self.config
        tester = LatencyTester(
            self.transport,
            ping_count=cfg.ping_count,
            interval_ms=cfg.ping_interval_ms,
            url=cfg.latency_url,
        )
        tester.on_progress = partial(self._latency_progress, stop)
        return await tester.test(stop)

    # -- Progress callbacks -------------------------------------------------

    def _throughput_progress(
        self, stop: asyncio.Event, phase: str, verb: str
    ) -> Callable[[ProgressSnapshot], None]:
        label = _PHASE_LABELS[phase]

        def _on_progress(snapshot: ProgressSnapshot) -> None:
            if not self._is_current(stop):
                return
            self._log(
                f"{label} progress: {snapshot.bytes_so_far / 1e6:.1f} MB {verb}, "
                f"{format_bps(snapshot.bits_per_second)}"
            )
            self._emit(PhaseEvent("progress", phase, data=snapshot))

        return _on_progress

    def _target_changed(self, stop: asyncio.Event, change: TargetChange) -> None:
        if not self._is_current(stop):
            return
        description = change.name or "alternate endpoint"
        host = urlsplit(change.url).netloc
        if host:
            description = f"{description} ({host})"
        if change.reason == REASON_INITIAL:
            self._log(f"Upload endpoint: {description}")
        elif change.reason == REASON_FALLBACK:
            self._log(f"Switched upload endpoint to {description}")
        self._emit(PhaseEvent("target", PHASE_UPLOAD, data=change, message=description))

    def _latency_progress(self, stop: asyncio.Event, progress: LatencyProgress) -> None:
        if not self._is_current(stop):
            return
        if progress.error is not None:
            self._log("Latency request failed, retrying…")
        elif progress.last_ms is not None:
            self._log(
                f"Latency sample {progress.count}: {progress.last_ms:.1f} ms "
                f"({progress.drops} drops)"
            )
        self._emit(PhaseEvent("progress", PHASE_LATENCY, data=progress))

    # -- Terminal states ----------------------------------------------------

    def _complete(self, stop: asyncio.Event) -> None:
        self._ensure_current(stop)
        stop.set()
        self._set_state(TestState.COMPLETE)
        self._log(f"{self.status_label}.")
        if self.warnings:
            logger.warning("Test completed with warnings")
        else:
            logger.info("Test completed successfully")

    def _fail(self, stop: asyncio.Event, exc: BaseException) -> None:
        if not self._is_current(stop):
            logger.debug("Error after the run was stopped: %r", exc)
            return
        logger.exception("Test failed")
        stop.set()
        self.fatal_error = str(exc) or "Unknown error occurred."
        self._set_state(TestState.FAILED)
        self._log(f"Fatal error: {self.fatal_error}")
        self._emit(PhaseEvent("fatal", message=self.fatal_error))

    # -- Helpers ------------------------------------------------------------

    def _is_current(self, stop: asyncio.Event) -> bool:
        return self._stop is stop and not stop.is_set()

    def _ensure_current(self, stop: asyncio.Event, phase: Optional[str] = None) -> None:
        """Raise ``Cancelled`` once the run owning *stop* has been stopped."""
        if self._is_current(stop):
            return
        if phase is not None:
            self._log(f"{_PHASE_LABELS[phase]} measurement aborted.")
            logger.info("%s measurement aborted", _PHASE_LABELS[phase])
        raise Cancelled("Run stopped.")

    def _set_state(self, state: TestState) -> None:
        self.state = state
        self._emit(PhaseEvent("state", data=state, message=self.status_label))

    def _log(self, message: str) -> None:
        started = self._started
        timestamp = time.perf_counter() - started if started is not None else 0.0
        self.log.append(LogEntry(timestamp=timestamp, message=message))

    def _emit(self, event: PhaseEvent) -> None:
        if self.on_event:
            self.on_event(event)
