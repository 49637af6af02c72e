"""
Upload endpoint rotation.

Keeps an ordered list of upload targets and a consecutive-failure counter per
target.  All mutation happens from coroutines on one event loop, so the
counters need no locking.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .constants import MAX_CONSECUTIVE_FAILURES
from .errors import ConfigurationError, Forbidden, MeasurementError, RateLimited, TransportError

logger = logging.getLogger(__name__)

REASON_INITIAL = "initial"
REASON_FALLBACK = "fallback"
REASON_RETRY = "retry"


@dataclass(frozen=True)
class UploadTarget:
    """A named upload endpoint."""

    name: str
    url: str

    def to_dict(self) -> dict:
        return {"name": self.name, "url": self.url}


@dataclass(frozen=True)
class TargetChange:
    """Passed to the target-change observer."""

    name: str
    url: str
    reason: str


def dedupe_targets(targets: Iterable[UploadTarget]) -> List[UploadTarget]:
    """Drop later entries whose URL was already seen, keeping order."""
    seen = set()
    unique: List[UploadTarget] = []
    for target in targets:
        if target.url in seen:
            continue
        seen.add(target.url)
        unique.append(target)
    return unique


class EndpointRotation:
    """
    Failover between upload targets.

    A failure rotates to the next target (cyclically) when it is a rate
    limit, a 403, a transport error, or the current target has reached
    ``max_consecutive_failures`` -- and only if more than one target exists.
    """

    def __init__(
        self,
        targets: Iterable[UploadTarget],
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
        on_change: Optional[Callable[[TargetChange], None]] = None,
    ) -> None:
        self.targets = dedupe_targets(targets)
        if not self.targets:
            raise ConfigurationError(
                "No upload endpoints configured. Set NETCAP_UPLOAD_ENDPOINTS "
                "or NETCAP_UPLOAD_ENDPOINT to provide at least one target."
            )
        self.max_consecutive_failures = max_consecutive_failures
        self.on_change = on_change
        self.active_index = 0
        self.failures = [0] * len(self.targets)
        self._last_notified = -1

    # -- Queries ------------------------------------------------------------

    def current_target(self) -> UploadTarget:
        return self.targets[self.active_index]

    def failure_count(self, index: Optional[int] = None) -> int:
        return self.failures[self.active_index if index is None else index]

    # -- Updates ------------------------------------------------------------

    def start(self) -> None:
        """Announce the initial target."""
        self._notify(REASON_INITIAL)

    def record_success(self, index: Optional[int] = None) -> None:
        self.failures[self.active_index if index is None else index] = 0

    def record_failure(self, error: MeasurementError, index: Optional[int] = None) -> bool:
        """
        Count *error* against the current target.  Returns True if rotated.

        *index* names the target the failed request was sent to; a failure
        reported for a target that is no longer active is counted but never
        rotates a second time.
        """
        if index is not None and index != self.active_index:
            self.failures[index] += 1
            return False

        self.failures[self.active_index] += 1
        if len(self.targets) <= 1:
            return False

        immediate = isinstance(error, (RateLimited, Forbidden, TransportError))
        if immediate or self.failures[self.active_index] >= self.max_consecutive_failures:
            self._advance(REASON_FALLBACK)
            return True
        return False

    # -- Internals ----------------------------------------------------------

    def _advance(self, reason: str) -> None:
        previous = self.active_index
        self.active_index = (self.active_index + 1) % len(self.targets)
        self.failures[self.active_index] = 0
        logger.info(
            "Upload endpoint %s -> %s (%s)",
            self.targets[previous].name,
            self.current_target().name,
            reason,
        )
        self._notify(reason)

    def _notify(self, reason: str) -> None:
        if self.on_change is None:
            return
        if self._last_notified == self.active_index and reason != REASON_RETRY:
            return
        self._last_notified = self.active_index
        target = self.current_target()
        self.on_change(TargetChange(name=target.name, url=target.url, reason=reason))
