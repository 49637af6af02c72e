"""
Error kinds raised by the measurement engine.

Per-request failures are raised by the transfer units and absorbed by the
phase loops; a phase only lets one escape when it collected nothing usable.
"""
from __future__ import annotations

from typing import Optional


class MeasurementError(Exception):
    """Base class for every engine error.  ``status`` is the HTTP status, if any."""

    status: Optional[int] = None

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        if status is not None:
            self.status = status

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.__class__.__name__


class ConfigurationError(MeasurementError):
    """No usable upload target (or similar setup problem)."""


class TransportError(MeasurementError):
    """Network, DNS or TLS failure -- no HTTP status is available."""


class HttpError(MeasurementError):
    """Server answered with a non-success status."""


class RateLimited(HttpError):
    status = 429


class Forbidden(HttpError):
    status = 403


class Cancelled(MeasurementError):
    """The run was stopped; unwinds without surfacing a message."""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def error_for_status(phase: str, status: int) -> HttpError:
    """Build the error for a non-success *status* during *phase*."""
    label = phase.capitalize()
    if status == 429:
        return RateLimited(f"{label} test was rate limited (HTTP 429).", status)
    if status == 403:
        return Forbidden(f"{label} request was forbidden (HTTP 403).", status)
    return HttpError(f"{label} request failed with status {status}.", status)
