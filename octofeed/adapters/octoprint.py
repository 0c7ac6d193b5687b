"""OctoPrint adapter providing HTTP and WebSocket helpers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlparse, urlunparse

import aiohttp

from ..config import OctoPrintConfig

LOGGER = logging.getLogger(__name__)


class OctoPrintClient:
    """Non-blocking utility for OctoPrint connectivity."""

    def __init__(
        self,
        config: OctoPrintConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ) -> None:
        self.config = config
        self.timeout = timeout

        self._base_url = self.config.url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def fetch_connection_state(self) -> Optional[str]:
        """Return ``current.state`` of the backend's printer connection.

        Raises:
            asyncio.TimeoutError: If request exceeds timeout
            aiohttp.ClientError: If HTTP request fails
        """

        data = await self._get_json(self.config.api_url("connection"))
        current = data.get("current") if isinstance(data, dict) else None
        if not isinstance(current, dict):
            return None
        state = current.get("state")
        return state if isinstance(state, str) else None

    async def fetch_z_offset(self) -> dict[str, Any]:
        """Fetch the calibration offset reported by the Z offset plugin."""

        data = await self._get_json(self.config.api_url("plugin/z_probe_offset_universal"))
        return data if isinstance(data, dict) else {}

    @contextlib.asynccontextmanager
    async def open_websocket(self) -> AsyncIterator[aiohttp.ClientWebSocketResponse]:
        """Open the push socket at ``/sockjs/websocket``."""

        session = await self._ensure_session()
        ws_url = build_ws_url(self.config.api_url("sockjs/websocket", api=False))
        async with session.ws_connect(ws_url, headers=self._auth_headers()) as ws:
            LOGGER.info("Connected to OctoPrint websocket at %s", ws_url)
            yield ws

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _auth_headers(self) -> dict[str, str]:
        headers = self.config.http_headers()
        headers.pop("Content-Type", None)
        return headers

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _get_json(self, url: str) -> Any:
        session = await self._ensure_session()
        try:
            async with asyncio.timeout(self.timeout):
                async with session.get(url, headers=self.config.http_headers()) as response:
                    response.raise_for_status()
                    return await response.json()
        except asyncio.TimeoutError:
            LOGGER.warning("OctoPrint request timed out after %.1fs (url=%s)", self.timeout, url)
            raise


def build_ws_url(http_url: str) -> str:
    parsed = urlparse(http_url)
    scheme = "ws"
    if parsed.scheme == "https":
        scheme = "wss"
    return urlunparse((scheme, parsed.netloc, parsed.path, "", "", ""))
