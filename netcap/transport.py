"""
HTTP transport used by every sampler.

The engine only needs GET and POST, the response status and a body it can
count.  ``AiohttpTransport`` wraps a single ``aiohttp.ClientSession`` managed
via the async-context-manager protocol
(``async with AiohttpTransport() as transport: ...``).  Cancelling the task
awaiting ``request()`` aborts the underlying connection.
"""
from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp

from .constants import CACHE_BUST_PARAM, COMMON_HEADERS, CONNECT_TIMEOUT, READ_TIMEOUT
from .errors import TransportError


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

@dataclass
class Response:
    """Status and fully-consumed body of one request."""

    status: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


# ---------------------------------------------------------------------------
# Cache busting
# ---------------------------------------------------------------------------

def cache_bust_token() -> str:
    return secrets.token_hex(6)


def with_cache_bust(url: str, token: Optional[str] = None) -> str:
    """Return *url* with a fresh ``cacheBust`` query parameter."""
    token = token or cache_bust_token()
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{CACHE_BUST_PARAM}={token}"

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != CACHE_BUST_PARAM]
    query.append((CACHE_BUST_PARAM, token))
    return urlunsplit(parts._replace(query=urlencode(query)))


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------

class Transport:
    """Interface the samplers depend on."""

    async def request(
        self,
        method: str,
        url: str,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Response:
        raise NotImplementedError


class AiohttpTransport(Transport):
    """``Transport`` backed by one shared aiohttp session."""

    def __init__(self, connections: int = 8) -> None:
        self.connections = connections
        self._session: Optional[aiohttp.ClientSession] = None

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> AiohttpTransport:
        connector = aiohttp.TCPConnector(
            limit=self.connections,
            force_close=False,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=CONNECT_TIMEOUT,
            sock_read=READ_TIMEOUT,
        )
        self._session = aiohttp.ClientSession(
            headers={**COMMON_HEADERS, "Accept-Encoding": "identity"},
            connector=connector,
            timeout=timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "AiohttpTransport must be used as an async context manager "
                "(async with AiohttpTransport() as transport: ...)"
            )
        return self._session

    # -- Public methods -----------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Response:
        session = self._ensure_session()
        try:
            async with session.request(method, url, data=data, headers=headers) as resp:
                body = await resp.read()
                return Response(status=resp.status, body=body)
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{method} {url} timed out.") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
