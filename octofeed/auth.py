"""Socket credential provider backed by the OctoPrint login endpoint."""

from __future__ import annotations

import logging
from typing import Optional

import aiohttp

from .config import OctoPrintConfig
from .models import SocketAuth

LOGGER = logging.getLogger(__name__)


class SessionKeyProvider:
    """Obtains socket credentials through a passive login.

    A passive login with the API key returns the user name and a session
    id, which together authenticate the push socket.
    """

    def __init__(
        self,
        config: OctoPrintConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def get_session_key(self) -> SocketAuth:
        """Request a fresh session key.

        Raises:
            RuntimeError: If the backend rejects the login or answers without
                a session.
            aiohttp.ClientError: If the HTTP request fails.
        """

        session = self._ensure_session()
        url = self.config.api_url("login")
        LOGGER.debug("Requesting socket session from %s", url)

        async with session.post(
            url,
            json={"passive": True},
            headers=self.config.http_headers(),
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as response:
            if response.status in (401, 403):
                raise RuntimeError("Session request rejected: invalid or missing API key")
            if response.status != 200:
                text = await response.text()
                raise RuntimeError(
                    f"Session request failed with status {response.status}: {text[:200]}"
                )

            data = await response.json()

        user = data.get("name") if isinstance(data, dict) else None
        key = data.get("session") if isinstance(data, dict) else None
        if not user or not key:
            raise RuntimeError("Session response did not include a user and session")
        return SocketAuth(user=user, session=key)

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session
