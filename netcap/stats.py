"""
Measurement statistics.

Pure functions -- no I/O, no side effects.
"""
from __future__ import annotations

import statistics
from typing import Sequence


def mean(samples: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence."""
    if not samples:
        return 0.0
    return statistics.mean(samples)


def population_stddev(samples: Sequence[float]) -> float:
    """Population standard deviation, 0.0 for fewer than two samples."""
    if len(samples) < 2:
        return 0.0
    return statistics.pstdev(samples)


def loss_percent(drops: int, samples: int) -> float:
    """Share of dropped probes in percent; 0.0 when nothing was attempted."""
    attempts = drops + samples
    if attempts <= 0:
        return 0.0
    return drops / attempts * 100


def bits_per_second(byte_count: int, elapsed_seconds: float, floor: float = 0.001) -> float:
    return byte_count * 8 / max(elapsed_seconds, floor)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_bps(bps: float) -> str:
    return format_speed(bps / 1_000_000)


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
