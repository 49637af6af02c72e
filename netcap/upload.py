"""
Upload throughput sampler.

Parallel POSTs of a fixed 2 MiB payload to the rotation manager's current
target.  Failures feed the rotation manager so a rate-limited or dead
endpoint is abandoned in favour of the next one.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Iterable, Optional

from .constants import (
    MAX_CONSECUTIVE_FAILURES,
    UPLOAD_DURATION,
    UPLOAD_HEADERS,
    UPLOAD_PARALLEL,
    UPLOAD_PAYLOAD_BYTES,
)
from .errors import MeasurementError, error_for_status
from .rotation import EndpointRotation, TargetChange, UploadTarget
from .transfer import ProgressSnapshot, ThroughputResult, run_transfer_phase
from .transport import Transport, with_cache_bust

logger = logging.getLogger(__name__)


def make_payload(size: int = UPLOAD_PAYLOAD_BYTES) -> bytes:
    """Random bytes when the OS has a random source, zeros otherwise."""
    try:
        return os.urandom(size)
    except NotImplementedError:
        logger.warning("No OS random source; uploading a zero-filled payload")
        return bytes(size)


class UploadTester:
    """Time-boxed upload measurement with endpoint failover."""

    def __init__(
        self,
        transport: Transport,
        targets: Iterable[UploadTarget],
        duration_seconds: float = UPLOAD_DURATION,
        parallel: int = UPLOAD_PARALLEL,
        payload_bytes: int = UPLOAD_PAYLOAD_BYTES,
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
    ) -> None:
        self.transport = transport
        self.targets = list(targets)
        self.duration_seconds = duration_seconds
        self.parallel = parallel
        self.payload_bytes = payload_bytes
        self.max_consecutive_failures = max_consecutive_failures
        self.on_progress: Optional[Callable[[ProgressSnapshot], None]] = None
        self.on_target_change: Optional[Callable[[TargetChange], None]] = None
        self.rotation: Optional[EndpointRotation] = None

    async def test(self, stop: Optional[asyncio.Event] = None, **loop_options) -> ThroughputResult:
        # Raises ConfigurationError before any transfer when no target exists.
        rotation = EndpointRotation(
            self.targets,
            max_consecutive_failures=self.max_consecutive_failures,
            on_change=self.on_target_change,
        )
        self.rotation = rotation
        payload = make_payload(self.payload_bytes)

        async def _post_once() -> int:
            index = rotation.active_index
            target = rotation.targets[index]
            try:
                response = await self.transport.request(
                    "POST",
                    with_cache_bust(target.url),
                    data=payload,
                    headers=UPLOAD_HEADERS,
                )
                if not response.ok:
                    raise error_for_status("upload", response.status)
            except MeasurementError as exc:
                rotation.record_failure(exc, index)
                raise
            rotation.record_success(index)
            return len(payload)

        logger.info(
            "Upload: %.1fs, %d parallel, %d targets",
            self.duration_seconds,
            self.parallel,
            len(rotation.targets),
        )
        rotation.start()
        return await run_transfer_phase(
            self.duration_seconds,
            self.parallel,
            _post_once,
            stop=stop,
            on_progress=self.on_progress,
            **loop_options,
        )
