"""
Run configuration.

Reads/writes ``~/.netcap/config.json`` and parses the upload endpoint list
from the environment.  Everything a run needs ends up in a ``TestConfig``
that is passed to the orchestrator explicitly.

Supported settings keys::

    download_duration = 6.0
    upload_duration = 5.0
    download_parallel = 6
    upload_parallel = 4
    ping_count = 12
    upload_endpoints = []        # extra upload URLs, tried first

Environment::

    NETCAP_UPLOAD_ENDPOINTS="https://a.example/up,https://b.example/up"
    NETCAP_UPLOAD_ENDPOINT="https://a.example/up"    # used if the plural is unset
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .constants import (
    DEFAULT_UPLOAD_TARGETS,
    DOWNLOAD_BYTES,
    DOWNLOAD_DURATION,
    DOWNLOAD_PARALLEL,
    DOWNLOAD_URL_TEMPLATE,
    LATENCY_URL,
    MAX_CONSECUTIVE_FAILURES,
    PING_COUNT,
    PING_INTERVAL_MS,
    PROGRESS_INTERVAL,
    UPLOAD_DURATION,
    UPLOAD_ENDPOINT_ENV,
    UPLOAD_ENDPOINTS_ENV,
    UPLOAD_PARALLEL,
    UPLOAD_PAYLOAD_BYTES,
    WATCHDOG_GRACE,
)
from .rating import DEFAULT_PROFILES, Profile
from .rotation import UploadTarget, dedupe_targets

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".netcap")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "download_duration": DOWNLOAD_DURATION,
    "upload_duration": UPLOAD_DURATION,
    "download_parallel": DOWNLOAD_PARALLEL,
    "upload_parallel": UPLOAD_PARALLEL,
    "ping_count": PING_COUNT,
    "upload_endpoints": [],
}


# ---------------------------------------------------------------------------
# Settings file
# ---------------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Settings from *path* (``~/.netcap/config.json`` by default) over ``DEFAULTS``.

    A missing file yields the defaults.  An unreadable or malformed file is
    logged and ignored, as are keys that are not settings.
    """
    path = path or _config_path()
    settings = dict(DEFAULTS)

    try:
        with open(path, encoding="utf-8") as fh:
            stored = json.load(fh)
    except FileNotFoundError:
        return settings
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return settings

    if not isinstance(stored, dict):
        logger.warning("Ignoring settings file %s: expected a JSON object", path)
        return settings

    unknown = sorted(set(stored) - set(DEFAULTS))
    if unknown:
        logger.debug("Unknown settings ignored: %s", ", ".join(unknown))
    settings.update((key, value) for key, value in stored.items() if key in DEFAULTS)
    return settings


def save_config(settings: Mapping[str, Any], path: Optional[str] = None) -> str:
    """Persist the known keys of *settings* atomically.  Returns the file path."""
    path = path or _config_path()
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    known = {key: settings[key] for key in DEFAULTS if key in settings}

    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(known, fh, indent=2, ensure_ascii=False)
    os.replace(tmp, path)
    logger.info("Settings saved to %s", path)
    return path


# ---------------------------------------------------------------------------
# Upload targets
# ---------------------------------------------------------------------------

def parse_upload_endpoints(raw: Optional[str], name_prefix: str = "Custom endpoint") -> List[UploadTarget]:
    """Split a comma-separated URL list into sequentially named targets."""
    if not raw:
        return []
    urls = [part.strip() for part in raw.split(",")]
    return [
        UploadTarget(name=f"{name_prefix} {i}", url=url)
        for i, url in enumerate((u for u in urls if u), start=1)
    ]


def endpoints_from_env(environ: Optional[Mapping[str, str]] = None) -> List[UploadTarget]:
    environ = os.environ if environ is None else environ
    raw = environ.get(UPLOAD_ENDPOINTS_ENV) or environ.get(UPLOAD_ENDPOINT_ENV) or ""
    return parse_upload_endpoints(raw)


def build_upload_targets(
    configured: Iterable[UploadTarget] = (),
    defaults: Iterable[Tuple[str, str]] = DEFAULT_UPLOAD_TARGETS,
) -> List[UploadTarget]:
    """Configured targets first, then the built-in ones, unique by URL."""
    builtin = [UploadTarget(name=name, url=url) for name, url in defaults]
    return dedupe_targets([*configured, *builtin])


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------

@dataclass
class TestConfig:
    """Every tunable of a run; passed explicitly to the orchestrator."""

    __test__ = False  # not a test case

    download_duration: float = DOWNLOAD_DURATION
    upload_duration: float = UPLOAD_DURATION
    download_parallel: int = DOWNLOAD_PARALLEL
    upload_parallel: int = UPLOAD_PARALLEL
    download_bytes: int = DOWNLOAD_BYTES
    upload_payload_bytes: int = UPLOAD_PAYLOAD_BYTES
    ping_count: int = PING_COUNT
    ping_interval_ms: float = PING_INTERVAL_MS
    watchdog_grace: float = WATCHDOG_GRACE
    progress_interval: float = PROGRESS_INTERVAL
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES
    download_url_template: str = DOWNLOAD_URL_TEMPLATE
    latency_url: str = LATENCY_URL
    upload_targets: List[UploadTarget] = field(default_factory=build_upload_targets)
    profiles: Tuple[Profile, ...] = DEFAULT_PROFILES

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> TestConfig:
        """Merge file *settings* (see ``DEFAULTS``) and *environ* into a config."""
        settings = {**DEFAULTS, **(settings or {})}
        urls = [t.url for t in endpoints_from_env(environ)]
        urls.extend(settings.get("upload_endpoints") or [])
        configured = parse_upload_endpoints(",".join(urls))
        return cls(
            download_duration=float(settings["download_duration"]),
            upload_duration=float(settings["upload_duration"]),
            download_parallel=int(settings["download_parallel"]),
            upload_parallel=int(settings["upload_parallel"]),
            ping_count=int(settings["ping_count"]),
            upload_targets=build_upload_targets(configured),
        )
