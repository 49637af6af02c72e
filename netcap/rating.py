"""
Capability rating.

Turns aggregate measurements into Pass / Fail / Unknown verdicts for named
usage profiles.  Everything here is pure and deterministic: the same
measurements always produce the same verdicts.

A profile is a list of quality tiers ordered from most to least demanding.
Each tier checks only the dimensions its thresholds name:

* a measurement that is absent makes that dimension *missing*;
* a measurement on the wrong side of its threshold makes it *limiting*.

Tier status is Fail if anything is limiting, else Unknown if anything is
missing, else Pass.  The profile passes if any tier passes (the first such
tier is the achieved quality), is Unknown if no tier passes but one is
Unknown, and fails otherwise.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

# Tolerance for boundary comparisons; a value equal to its threshold passes.
EPSILON = 1e-9


# ---------------------------------------------------------------------------
# Catalog types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Thresholds:
    min_download_mbps: Optional[float] = None
    min_upload_mbps: Optional[float] = None
    max_rtt_ms: Optional[float] = None
    max_loss_percent: Optional[float] = None


@dataclass(frozen=True)
class Quality:
    """One quality tier of a profile."""

    id: str
    label: str
    detail: str
    thresholds: Thresholds


@dataclass(frozen=True)
class Profile:
    """A named use case, tiers ordered from best to most modest."""

    service: str
    qualities: Tuple[Quality, ...]


DEFAULT_PROFILES: Tuple[Profile, ...] = (
    Profile(
        service="Teams",
        qualities=(
            Quality(
                id="teams-720p",
                label="Video 720p",
                detail="≥1.5/1 Mbps, RTT ≤150ms",
                thresholds=Thresholds(min_download_mbps=1.5, min_upload_mbps=1, max_rtt_ms=150, max_loss_percent=3),
            ),
            Quality(
                id="teams-audio",
                label="Audio only",
                detail="≥0.3/0.3 Mbps, RTT ≤200ms",
                thresholds=Thresholds(min_download_mbps=0.3, min_upload_mbps=0.3, max_rtt_ms=200, max_loss_percent=5),
            ),
        ),
    ),
    Profile(
        service="Streaming",
        qualities=(
            Quality(
                id="streaming-4k",
                label="4K",
                detail="≥25 Mbps down",
                thresholds=Thresholds(min_download_mbps=25, max_loss_percent=2),
            ),
            Quality(
                id="streaming-1080p",
                label="1080p",
                detail="≥5 Mbps down",
                thresholds=Thresholds(min_download_mbps=5, max_loss_percent=3),
            ),
        ),
    ),
    Profile(
        service="GeForce NOW",
        qualities=(
            Quality(
                id="geforce-1080p60",
                label="1080p60",
                detail="≥25 Mbps, RTT ≤40ms",
                thresholds=Thresholds(min_download_mbps=25, max_rtt_ms=40, max_loss_percent=1.5),
            ),
            Quality(
                id="geforce-720p60",
                label="720p60",
                detail="≥15 Mbps, RTT ≤80ms",
                thresholds=Thresholds(min_download_mbps=15, max_rtt_ms=80, max_loss_percent=2.5),
            ),
        ),
    ),
)


# ---------------------------------------------------------------------------
# Inputs and outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Measurements:
    """Aggregate inputs; ``None`` means the measurement was not collected."""

    download_mbps: Optional[float] = None
    upload_mbps: Optional[float] = None
    rtt_ms: Optional[float] = None
    loss_percent: Optional[float] = None

    def has_any(self) -> bool:
        return any(
            v is not None
            for v in (self.download_mbps, self.upload_mbps, self.rtt_ms, self.loss_percent)
        )


class Verdict(enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TierVerdict:
    id: str
    label: str
    detail: str
    verdict: Verdict
    missing: Tuple[str, ...] = ()
    limiting: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "detail": self.detail,
            "status": self.verdict.value,
            "missing": list(self.missing),
            "limiting": list(self.limiting),
        }


@dataclass(frozen=True)
class ProfileVerdict:
    service: str
    verdict: Verdict
    why: str
    missing: Tuple[str, ...] = ()
    limiting: Tuple[str, ...] = ()
    tiers: Tuple[TierVerdict, ...] = field(default_factory=tuple)
    achieved: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "status": self.verdict.value,
            "why": self.why,
            "achieved": self.achieved,
            "missing": list(self.missing),
            "limiting": list(self.limiting),
            "tiers": [t.to_dict() for t in self.tiers],
        }


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _is_missing(value: Optional[float]) -> bool:
    return value is None or value != value  # NaN counts as missing


def _fmt_threshold(value: float) -> str:
    return f"{value:g}"


def rate_quality(quality: Quality, m: Measurements) -> TierVerdict:
    """Evaluate a single tier."""
    t = quality.thresholds
    missing: List[str] = []
    limiting: List[str] = []

    if t.min_download_mbps is not None:
        if _is_missing(m.download_mbps):
            missing.append("download speed")
        elif m.download_mbps + EPSILON < t.min_download_mbps:
            limiting.append(
                f"download speed ({m.download_mbps:.1f} < {_fmt_threshold(t.min_download_mbps)} Mbps)"
            )

    if t.min_upload_mbps is not None:
        if _is_missing(m.upload_mbps):
            missing.append("upload speed")
        elif m.upload_mbps + EPSILON < t.min_upload_mbps:
            limiting.append(
                f"upload speed ({m.upload_mbps:.1f} < {_fmt_threshold(t.min_upload_mbps)} Mbps)"
            )

    if t.max_rtt_ms is not None:
        if _is_missing(m.rtt_ms):
            missing.append("latency")
        elif m.rtt_ms - EPSILON > t.max_rtt_ms:
            limiting.append(f"latency ({m.rtt_ms:.0f} ms > {_fmt_threshold(t.max_rtt_ms)} ms)")

    if t.max_loss_percent is not None:
        if _is_missing(m.loss_percent):
            missing.append("packet loss")
        elif m.loss_percent - EPSILON > t.max_loss_percent:
            limiting.append(
                f"packet loss ({m.loss_percent:.1f}% > {_fmt_threshold(t.max_loss_percent)}%)"
            )

    if limiting:
        verdict = Verdict.FAIL
    elif missing:
        verdict = Verdict.UNKNOWN
    else:
        verdict = Verdict.PASS

    return TierVerdict(
        id=quality.id,
        label=quality.label,
        detail=quality.detail,
        verdict=verdict,
        missing=tuple(missing),
        limiting=tuple(limiting),
    )


def rate_profile(profile: Profile, m: Measurements) -> ProfileVerdict:
    tiers = tuple(rate_quality(q, m) for q in profile.qualities)

    passing = [t for t in tiers if t.verdict is Verdict.PASS]
    unknown = next((t for t in tiers if t.verdict is Verdict.UNKNOWN), None)
    failing = next((t for t in reversed(tiers) if t.verdict is Verdict.FAIL), None)

    if passing:
        top = passing[0]
        why = f"Highest supported quality: {top.label} ({top.detail})"
        blocked = [t for t in tiers[: tiers.index(top)] if t.verdict is Verdict.FAIL]
        if blocked:
            higher = blocked[0]
            why += f". {higher.label} limited by {join_list(list(higher.limiting))}."
        return ProfileVerdict(
            service=profile.service,
            verdict=Verdict.PASS,
            why=why,
            tiers=tiers,
            achieved=top.id,
        )

    if unknown is not None:
        return ProfileVerdict(
            service=profile.service,
            verdict=Verdict.UNKNOWN,
            why=f"Need more data to evaluate {profile.service}.",
            missing=unknown.missing,
            tiers=tiers,
        )

    label = failing.label if failing else profile.service
    return ProfileVerdict(
        service=profile.service,
        verdict=Verdict.FAIL,
        why=f"Requirements not met for {label}.",
        limiting=failing.limiting if failing else (),
        tiers=tiers,
    )


def rate(
    measurements: Measurements,
    profiles: Sequence[Profile] = DEFAULT_PROFILES,
) -> List[ProfileVerdict]:
    """Rate *measurements* against every profile, in catalog order."""
    return [rate_profile(p, measurements) for p in profiles]


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def join_list(items: Sequence[str]) -> str:
    """``a``, ``a and b``, ``a, b and c``."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} and {items[-1]}"


def describe_missing(missing: Sequence[str]) -> str:
    if not missing:
        return ""
    noun = "measurement" if len(missing) == 1 else "measurements"
    return f"{join_list(missing)} {noun}"
