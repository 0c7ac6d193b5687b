import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest
import pytest_asyncio
from aiohttp import web

from octofeed.config import FeedConfig, default_config
from octofeed.models import SocketAuth


class FakeClock:
    """Test clock that returns a fixed or incrementing time."""

    def __init__(self, start: datetime, step: timedelta = timedelta(0)) -> None:
        self._current = start
        self._step = step

    def __call__(self) -> datetime:
        value = self._current
        self._current += self._step
        return value


class FakeCredentials:
    """Credential provider failing a configurable number of times first."""

    def __init__(self, *, fail_times: int = 0, user: str = "alice") -> None:
        self.fail_times = fail_times
        self.user = user
        self.call_count = 0

    async def get_session_key(self) -> SocketAuth:
        self.call_count += 1
        if self.call_count <= self.fail_times:
            raise ConnectionError("Simulated credential failure")
        return SocketAuth(user=self.user, session=f"s{self.call_count - self.fail_times}")


class RecordingSleep:
    """Replacement for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@dataclass
class ServerState:
    connection_state: Optional[str] = "Operational"
    z_offset: Any = -1.25
    login_status: int = 200
    messages: list[dict[str, Any]] = field(default_factory=list)
    request_reauth: bool = False
    close_after_messages: bool = False
    auth_payloads: list[Any] = field(default_factory=list)
    api_keys: list[Optional[str]] = field(default_factory=list)
    reauth_received: asyncio.Event = field(default_factory=asyncio.Event)


class _Server:
    def __init__(self, server_port: int, state: ServerState):
        self._port = server_port
        self.state = state

    def make_url(self, path: str = "/") -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"http://127.0.0.1:{self._port}{path}"


@pytest_asyncio.fixture
async def octoprint_server(unused_tcp_port_factory):
    state = ServerState()

    async def websocket_handler(request: web.Request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        state.auth_payloads.append(await ws.receive_json())
        await ws.send_json({"connected": {"version": "1.9.3"}})
        for message in state.messages:
            await ws.send_json(message)

        if state.request_reauth:
            await ws.send_json({"reauth": True})
            state.auth_payloads.append(await ws.receive_json())
            state.reauth_received.set()

        if state.close_after_messages:
            await ws.close()
            return ws

        async for _ in ws:
            pass
        return ws

    async def connection_handler(request: web.Request):
        state.api_keys.append(request.headers.get("X-Api-Key"))
        return web.json_response(
            {"current": {"state": state.connection_state, "port": "/dev/ttyUSB0"}}
        )

    async def z_offset_handler(request: web.Request):
        return web.json_response({"z_offset": state.z_offset})

    async def login_handler(request: web.Request):
        body = await request.json()
        if state.login_status != 200:
            return web.Response(status=state.login_status, text="nope")
        assert body == {"passive": True}
        return web.json_response({"name": "octo", "session": "abc123"})

    app = web.Application()
    app.router.add_get("/sockjs/websocket", websocket_handler)
    app.router.add_get("/api/connection", connection_handler)
    app.router.add_get("/api/plugin/z_probe_offset_universal", z_offset_handler)
    app.router.add_post("/api/login", login_handler)

    runner = web.AppRunner(app)
    await runner.setup()

    port = unused_tcp_port_factory()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()

    try:
        yield _Server(port, state)
    finally:
        await runner.cleanup()


@pytest.fixture
def make_config():
    def _create(url: str = "http://127.0.0.1:5000", **features: Any) -> FeedConfig:
        config = default_config()
        config.octoprint.url = url
        config.octoprint.api_key = "test-key"
        config.features.display_layer_progress = features.get(
            "display_layer_progress", False
        )
        return config

    return _create
