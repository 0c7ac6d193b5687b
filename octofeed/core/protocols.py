"""Protocol definitions for the feed's external collaborators."""

from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    import aiohttp

    from ..channels import ReplayChannel
    from ..models import JobStatus, PrinterEvent, PrinterNotification, PrinterStatus, SocketAuth, ZOffset


class CredentialProvider(Protocol):
    """Supplies short-lived socket credentials."""

    async def get_session_key(self) -> SocketAuth:
        """Obtain a fresh ``SocketAuth``; raise on failure."""
        ...


class PrinterApi(Protocol):
    """One-shot HTTP reads and the push socket of the printer backend."""

    async def fetch_connection_state(self) -> Optional[str]:
        """Return the backend's reported printer connection state text."""
        ...

    async def fetch_z_offset(self) -> dict[str, Any]:
        """Return the raw calibration offset payload."""
        ...

    def open_websocket(self) -> AbstractAsyncContextManager[aiohttp.ClientWebSocketResponse]:
        """Open the push websocket."""
        ...

    async def aclose(self) -> None:
        """Close any underlying resources."""
        ...


@runtime_checkable
class PrinterFeed(Protocol):
    """Consumer-facing contract: connect once, then read four channels."""

    def connect(self) -> asyncio.Future[None]:
        """Start connecting; the future resolves after the handshake ack."""
        ...

    @property
    def printer_status(self) -> ReplayChannel[PrinterStatus]:
        ...

    @property
    def job_status(self) -> ReplayChannel[JobStatus]:
        ...

    @property
    def events(self) -> ReplayChannel[PrinterEvent | PrinterNotification]:
        ...

    @property
    def z_offset(self) -> ReplayChannel[ZOffset]:
        ...
