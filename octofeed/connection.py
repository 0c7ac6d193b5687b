"""Connection lifecycle of the printer feed.

This module owns the push socket: obtaining socket credentials with bounded
backoff, the authentication handshake, re-authentication on request, and the
post-handshake check of the backend's printer connection. Every inbound
message is handed to a :class:`~octofeed.dispatch.MessageDispatcher`.

Each call to :meth:`ConnectionManager.connect` starts a new epoch. Work
belonging to an older epoch (credential retries, HTTP checks) is dropped
when it completes instead of touching state owned by the newer one.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Coroutine, Optional

import aiohttp

from . import constants
from .adapters import OctoPrintClient
from .auth import SessionKeyProvider
from .channels import ReplayChannel
from .config import FeedConfig, ResilienceConfig
from .core import CredentialProvider, PrinterApi
from .dispatch import EventPayload, MessageDispatcher
from .events import EventClassifier
from .models import (
    JobStatus,
    PrinterCapabilities,
    PrinterEvent,
    PrinterStatus,
    SocketAuth,
    ZOffset,
)
from .status import StatusAggregator

LOGGER = logging.getLogger(__name__)

SleepType = Callable[[float], Awaitable[None]]


def credential_retry_delay(attempt: int, resilience: ResilienceConfig) -> float:
    """Delay before retrying after the ``attempt``-th consecutive failure (0-based)."""

    if attempt < resilience.credential_retry_fast_attempts:
        return resilience.credential_retry_fast_seconds
    return resilience.credential_retry_slow_seconds


@dataclass(slots=True)
class CredentialAttempts:
    """Consecutive credential failures counted across one connection epoch.

    The count is shared by the initial fetch and every re-authentication of
    the same epoch and is not reset when a fetch succeeds.
    """

    epoch: int
    failures: int = 0


class ConnectionManager:
    """Keeps a live, normalized view of one printer backend.

    Key responsibilities:
    - Fetch socket credentials, retrying indefinitely with backoff
    - Authenticate the socket and re-authenticate when asked to
    - Route inbound messages to the status and event handlers
    - Expose printer status, job status, events and Z offset as replay channels
    """

    def __init__(
        self,
        *,
        config: FeedConfig,
        credentials: CredentialProvider,
        api: PrinterApi,
        clock: Callable[[], datetime] = datetime.now,
        sleep: SleepType = asyncio.sleep,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._api = api
        self._sleep = sleep
        self._owned: list[Any] = []

        self._classifier = EventClassifier(self._publish_event)
        self._aggregator = StatusAggregator(
            classifier=self._classifier,
            publish_printer_status=self._publish_printer_status,
            publish_job_status=self._publish_job_status,
            layer_progress=config.display_layer_progress,
            filament=config.filament,
            clock=clock,
        )

        self._printer_status: ReplayChannel[PrinterStatus] = ReplayChannel(
            "printer_status", seed=self._aggregator.printer_status_snapshot
        )
        self._job_status: ReplayChannel[JobStatus] = ReplayChannel(
            "job_status", seed=self._aggregator.job_status_snapshot
        )
        self._events: ReplayChannel[EventPayload] = ReplayChannel("events")
        self._z_offset: ReplayChannel[ZOffset] = ReplayChannel("z_offset")

        self._epoch = 0
        self._connected: Optional[asyncio.Future[None]] = None
        self._socket_task: Optional[asyncio.Task[None]] = None
        self._background: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_config(cls, config: FeedConfig, **kwargs: Any) -> "ConnectionManager":
        """Build a manager talking to the backend described by ``config``."""

        timeout = config.resilience.request_timeout_seconds
        api = OctoPrintClient(config.octoprint, timeout=timeout)
        credentials = SessionKeyProvider(config.octoprint, timeout=timeout)
        manager = cls(config=config, credentials=credentials, api=api, **kwargs)
        manager._owned.extend([api, credentials])
        return manager

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------
    @property
    def printer_status(self) -> ReplayChannel[PrinterStatus]:
        return self._printer_status

    @property
    def job_status(self) -> ReplayChannel[JobStatus]:
        return self._job_status

    @property
    def events(self) -> ReplayChannel[EventPayload]:
        return self._events

    @property
    def z_offset(self) -> ReplayChannel[ZOffset]:
        return self._z_offset

    @property
    def last_state(self) -> PrinterEvent:
        return self._classifier.last_state

    @property
    def epoch(self) -> int:
        return self._epoch

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> asyncio.Future[None]:
        """Start a new connection; the future resolves on the handshake ack.

        A previous connection, if any, is abandoned and its pending future
        cancelled.
        """

        loop = asyncio.get_running_loop()
        self._epoch += 1
        epoch = self._epoch
        self._cancel_tasks()
        if self._connected is not None and not self._connected.done():
            self._connected.cancel()

        self._aggregator.reset()
        self._classifier.reset()

        connected: asyncio.Future[None] = loop.create_future()
        self._connected = connected

        LOGGER.info("Connecting to %s (epoch=%d)", self._config.octoprint.url, epoch)
        self._spawn(self._load_z_offset(epoch))
        self._socket_task = asyncio.create_task(self._run(epoch, connected))
        return connected

    async def aclose(self) -> None:
        """Abandon the current connection and release owned resources."""

        self._epoch += 1
        tasks = self._cancel_tasks()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._connected is not None and not self._connected.done():
            self._connected.cancel()

        for resource in self._owned:
            await resource.aclose()

    def _cancel_tasks(self) -> list[asyncio.Task[Any]]:
        tasks = list(self._background)
        if self._socket_task is not None:
            tasks.append(self._socket_task)
            self._socket_task = None
        for task in tasks:
            task.cancel()
        self._background.clear()
        return tasks

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    # ------------------------------------------------------------------
    # Socket
    # ------------------------------------------------------------------
    async def _run(self, epoch: int, connected: asyncio.Future[None]) -> None:
        attempts = CredentialAttempts(epoch)
        socket_auth = await self._fetch_credentials(attempts)
        if socket_auth is None:
            return

        try:
            async with self._api.open_websocket() as ws:
                dispatcher = self._build_dispatcher(attempts, ws, connected)
                await ws.send_json(socket_auth.auth_payload())

                async for message in ws:
                    if message.type == aiohttp.WSMsgType.TEXT:
                        self._dispatch(dispatcher, message.data)
                    elif message.type == aiohttp.WSMsgType.ERROR:
                        raise ws.exception() or RuntimeError("Websocket error")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Printer socket failed: %s", exc)

        if self._is_current(epoch):
            LOGGER.warning("Printer socket closed (epoch=%d)", epoch)
            self._publish_event(PrinterEvent.CLOSED)

    def _build_dispatcher(
        self,
        attempts: CredentialAttempts,
        ws: aiohttp.ClientWebSocketResponse,
        connected: asyncio.Future[None],
    ) -> MessageDispatcher:
        return MessageDispatcher(
            aggregator=self._aggregator,
            classifier=self._classifier,
            publish_event=self._publish_event,
            publish_z_offset=self._z_offset.publish,
            on_reauth=lambda: self._spawn(self._reauthenticate(attempts, ws)),
            on_connected=lambda: self._handle_connected(attempts.epoch, connected),
            layer_progress=self._config.display_layer_progress,
        )

    @staticmethod
    def _dispatch(dispatcher: MessageDispatcher, raw_data: str) -> None:
        try:
            payload = json.loads(raw_data)
        except json.JSONDecodeError:
            LOGGER.debug("Discarding non-JSON socket frame")
            return

        try:
            dispatcher.dispatch(payload)
        except Exception:  # pragma: no cover - keep the socket alive
            LOGGER.exception("Failed to handle socket message")

    def _handle_connected(self, epoch: int, connected: asyncio.Future[None]) -> None:
        LOGGER.info("Socket handshake acknowledged (epoch=%d)", epoch)
        if not connected.done():
            connected.set_result(None)
        self._spawn(self._check_printer_connection(epoch))

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------
    async def _fetch_credentials(self, attempts: CredentialAttempts) -> Optional[SocketAuth]:
        """Fetch credentials, retrying until success or until superseded.

        Retry delays continue from ``attempts.failures``, so a
        re-authentication keeps the backoff reached earlier in the epoch.
        """

        epoch = attempts.epoch
        while self._is_current(epoch):
            try:
                socket_auth = await self._credentials.get_session_key()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                delay = credential_retry_delay(attempts.failures, self._config.resilience)
                attempts.failures += 1
                LOGGER.warning(
                    "Socket credential request %d failed: %s, retrying in %.1fs",
                    attempts.failures,
                    exc,
                    delay,
                )
                await self._sleep(delay)
                continue

            if self._is_current(epoch):
                return socket_auth

        LOGGER.debug("Dropping credential request of superseded epoch %d", epoch)
        return None

    async def _reauthenticate(
        self, attempts: CredentialAttempts, ws: aiohttp.ClientWebSocketResponse
    ) -> None:
        LOGGER.info("Backend requested re-authentication")
        socket_auth = await self._fetch_credentials(attempts)
        if socket_auth is None or ws.closed:
            return
        try:
            await ws.send_json(socket_auth.auth_payload())
        except (ConnectionError, aiohttp.ClientError) as exc:
            LOGGER.warning("Could not re-send socket authentication: %s", exc)

    # ------------------------------------------------------------------
    # One-shot HTTP reads
    # ------------------------------------------------------------------
    async def _check_printer_connection(self, epoch: int) -> None:
        try:
            state = await self._api.fetch_connection_state()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Printer connection check failed: %s", exc)
            return

        if not self._is_current(epoch):
            return
        if state in constants.DETACHED_CONNECTION_STATES:
            LOGGER.warning("Backend reports printer connection %s", state)
            self._publish_event(PrinterEvent.CLOSED)

    async def _load_z_offset(self, epoch: int) -> None:
        try:
            data = await self._api.fetch_z_offset()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Z offset fetch failed: %s", exc)
            return

        if not self._is_current(epoch):
            return
        self._z_offset.publish(
            ZOffset(
                z_offset=data.get("z_offset"),
                printer_cap=PrinterCapabilities(eeprom=None, z_probe=None),
            )
        )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def _publish_printer_status(self, status: PrinterStatus) -> None:
        self._printer_status.publish(status)

    def _publish_job_status(self, status: JobStatus) -> None:
        self._job_status.publish(status)

    def _publish_event(self, event: EventPayload) -> None:
        self._events.publish(event)
