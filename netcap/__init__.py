"""Network capability measurement engine -- samplers, rating and orchestration."""

from .config import TestConfig, build_upload_targets, parse_upload_endpoints
from .download import DownloadTester
from .errors import (
    Cancelled,
    ConfigurationError,
    Forbidden,
    HttpError,
    MeasurementError,
    RateLimited,
    TransportError,
)
from .latency import LatencyProgress, LatencyResult, LatencyTester
from .orchestrator import PhaseEvent, RunResults, TestOrchestrator, TestState
from .rating import DEFAULT_PROFILES, Measurements, ProfileVerdict, Verdict, rate
from .rotation import EndpointRotation, TargetChange, UploadTarget
from .stats import format_bps, format_latency, format_speed, loss_percent, mean, population_stddev
from .transfer import ProgressSnapshot, ThroughputResult, run_transfer_phase
from .transport import AiohttpTransport, Response, Transport
from .upload import UploadTester

__all__ = [
    "AiohttpTransport",
    "Cancelled",
    "ConfigurationError",
    "DEFAULT_PROFILES",
    "DownloadTester",
    "EndpointRotation",
    "Forbidden",
    "HttpError",
    "LatencyProgress",
    "LatencyResult",
    "LatencyTester",
    "MeasurementError",
    "Measurements",
    "PhaseEvent",
    "ProfileVerdict",
    "ProgressSnapshot",
    "RateLimited",
    "Response",
    "RunResults",
    "TargetChange",
    "TestConfig",
    "TestOrchestrator",
    "TestState",
    "ThroughputResult",
    "Transport",
    "TransportError",
    "UploadTarget",
    "UploadTester",
    "Verdict",
    "build_upload_targets",
    "format_bps",
    "format_latency",
    "format_speed",
    "loss_percent",
    "mean",
    "parse_upload_endpoints",
    "population_stddev",
    "rate",
    "run_transfer_phase",
]
