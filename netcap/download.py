"""
Download throughput sampler.

Parallel GETs of a fixed-size payload from a parametrised URL, each one
cache-busted, run through the shared transfer loop.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .constants import DOWNLOAD_BYTES, DOWNLOAD_DURATION, DOWNLOAD_PARALLEL, DOWNLOAD_URL_TEMPLATE
from .errors import error_for_status
from .transfer import ProgressSnapshot, ThroughputResult, run_transfer_phase
from .transport import Transport, with_cache_bust

logger = logging.getLogger(__name__)


class DownloadTester:
    """
    Time-boxed download measurement.

    Each worker repeatedly fetches ``download_bytes`` bytes and counts the
    body length of every successful response.
    """

    def __init__(
        self,
        transport: Transport,
        duration_seconds: float = DOWNLOAD_DURATION,
        parallel: int = DOWNLOAD_PARALLEL,
        download_bytes: int = DOWNLOAD_BYTES,
        url_template: str = DOWNLOAD_URL_TEMPLATE,
    ) -> None:
        self.transport = transport
        self.duration_seconds = duration_seconds
        self.parallel = parallel
        self.download_bytes = download_bytes
        self.url_template = url_template
        self.on_progress: Optional[Callable[[ProgressSnapshot], None]] = None

    @property
    def url(self) -> str:
        return self.url_template.format(bytes=self.download_bytes)

    async def transfer_once(self) -> int:
        """One GET; returns the number of body bytes received."""
        response = await self.transport.request("GET", with_cache_bust(self.url))
        if not response.ok:
            raise error_for_status("download", response.status)
        return len(response.body)

    async def test(self, stop: Optional[asyncio.Event] = None, **loop_options) -> ThroughputResult:
        logger.info(
            "Download: %.1fs, %d parallel, %d bytes per request",
            self.duration_seconds,
            self.parallel,
            self.download_bytes,
        )
        return await run_transfer_phase(
            self.duration_seconds,
            self.parallel,
            self.transfer_once,
            stop=stop,
            on_progress=self.on_progress,
            **loop_options,
        )
