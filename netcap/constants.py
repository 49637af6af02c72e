"""
Shared constants used across the measurement modules.

Centralises endpoint URLs, default tunables and CLI limits so they live in
exactly one place.  Runtime code receives these through ``TestConfig``.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36"
)

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-store",
}

UPLOAD_HEADERS = {"Content-Type": "application/octet-stream"}

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

DOWNLOAD_URL_TEMPLATE = "https://speed.cloudflare.com/__down?bytes={bytes}"
LATENCY_URL = "https://speed.cloudflare.com/__down?bytes=16"
CACHE_BUST_PARAM = "cacheBust"

DEFAULT_UPLOAD_TARGETS = (
    ("Cloudflare Speed Test", "https://speed.cloudflare.com/__up"),
    ("Postman Echo", "https://postman-echo.com/post"),
    ("HTTPBin", "https://httpbin.org/post"),
)

UPLOAD_ENDPOINTS_ENV = "NETCAP_UPLOAD_ENDPOINTS"
UPLOAD_ENDPOINT_ENV = "NETCAP_UPLOAD_ENDPOINT"

# ---------------------------------------------------------------------------
# Phase defaults
# ---------------------------------------------------------------------------

DOWNLOAD_DURATION = 6.0          # seconds
UPLOAD_DURATION = 5.0            # seconds
DOWNLOAD_PARALLEL = 6
UPLOAD_PARALLEL = 4
DOWNLOAD_BYTES = 8 * 2 ** 20     # 8 MiB per GET
UPLOAD_PAYLOAD_BYTES = 2 * 2 ** 20  # 2 MiB per POST
PING_COUNT = 12
PING_INTERVAL_MS = 120.0

# ---------------------------------------------------------------------------
# Loop tunables
# ---------------------------------------------------------------------------

WATCHDOG_GRACE = 2.0             # seconds beyond the nominal duration
PROGRESS_INTERVAL = 0.5          # min seconds between progress callbacks
BUSY_WAIT = 0.010                # back-off when at the parallelism cap
MIN_ELAPSED = 0.001              # floor for throughput divisors
MAX_CONSECUTIVE_FAILURES = 3     # per upload target before rotating

# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

CONNECT_TIMEOUT = 5.0
READ_TIMEOUT = 5.0

# ---------------------------------------------------------------------------
# CLI limits
# ---------------------------------------------------------------------------

MIN_DURATION = 1.0
MAX_DURATION = 120.0
MIN_PARALLEL = 1
MAX_PARALLEL = 32
MIN_PING_COUNT = 1
MAX_PING_COUNT = 100
