"""
Shared test fixtures for Gmail Bulk Delete tests
"""

import asyncio
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import requests
from requests.cookies import RequestsCookieJar
import socketio

from bulk_delete.api import StatsApi
from bulk_delete.channel import ChannelManager
from bulk_delete.context import SessionContext
from bulk_delete.models import ClientConfig
from bulk_delete.orchestrator import DeleteOrchestrator


BASE_URL = "http://bulk.test"


# === Mock HTTP Session ===

class MockResponse:
    """Mock for requests.Response"""
    def __init__(self, status_code: int = 200, payload=None, url: str = BASE_URL):
        self.status_code = status_code
        self._payload = payload
        self.url = url

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class MockHttpSession:
    """Mock requests.Session routing (method, path) to canned responses or errors"""

    def __init__(self, routes: Optional[Dict[Tuple[str, str], object]] = None):
        self.routes = routes or {}
        self.calls: List[Tuple[str, str]] = []
        self.cookies = RequestsCookieJar()

    def request(self, method: str, url: str, timeout: float = None):
        path = url.replace(BASE_URL, "", 1)
        self.calls.append((method, path))
        result = self.routes.get((method, path))
        if result is None:
            return MockResponse(404, {"error": "not found"}, url)
        if isinstance(result, list):
            # successive responses for repeated calls
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, Exception):
            raise result
        return result


# === Mock Socket.IO Client ===

class MockSocketClient:
    """Mock socketio.AsyncClient that records emits and lets tests push events"""

    def __init__(self, auto_connect: bool = True, fail_emit: bool = False, fail_connect: bool = False):
        self.handlers: Dict[str, object] = {}
        self.emitted: List[Tuple[str, Dict]] = []
        self.connect_kwargs: Dict = {}
        self.auto_connect = auto_connect
        self.fail_emit = fail_emit
        self.fail_connect = fail_connect
        self.connected = False
        self.shutdown_called = False
        self.connect_count = 0

    def on(self, event: str, handler=None):
        self.handlers[event] = handler

    async def connect(self, url: str, headers: Dict = None, transports: List[str] = None, retry: bool = False):
        self.connect_count += 1
        self.connect_kwargs = {"url": url, "headers": headers, "transports": transports, "retry": retry}
        if self.fail_connect:
            raise socketio.exceptions.ConnectionError("Connection refused by the server")
        if self.auto_connect:
            await self.establish()

    async def emit(self, event: str, data: Dict = None):
        if self.fail_emit or not self.connected:
            raise socketio.exceptions.BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((event, data))

    async def shutdown(self):
        self.shutdown_called = True
        if self.connected:
            self.connected = False
            await self._trigger("disconnect", "client disconnect")

    # === Test helpers ===

    async def establish(self):
        self.connected = True
        await self._trigger("connect")

    async def drop(self):
        """Simulate an unexpected transport loss"""
        self.connected = False
        await self._trigger("disconnect", "transport close")

    async def push(self, event: str, data):
        """Simulate a server-pushed event"""
        await self._trigger(event, data)

    async def _trigger(self, event: str, *args):
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)


# === Helpers ===

def make_stats_payload(categories=None, total: int = 1000, **extra) -> dict:
    """Helper to create a /api/stats body"""
    stats = {"total": total, "categories": categories if categories is not None else {
        "promotions": {"count": 400, "percentage": 40},
        "social": {"count": 250, "percentage": 25},
        "trash": {"count": 50, "percentage": 5},
    }}
    stats.update(extra)
    return {"profile": {"emailAddress": "me@example.com"}, "stats": stats}


async def settle(rounds: int = 3):
    """Let background tasks run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


# === Fixtures ===

@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(api_base_url=BASE_URL, session_cookie="sid=abc123", refresh_delay=0)


@pytest.fixture
def stats_payload() -> dict:
    return make_stats_payload()


@pytest.fixture
def mock_http_session(stats_payload) -> MockHttpSession:
    """Session where every endpoint succeeds"""
    return MockHttpSession({
        ("GET", "/api/stats"): MockResponse(200, stats_payload),
        ("GET", "/api/user-count"): MockResponse(200, {"count": 42}),
        ("POST", "/api/logout"): MockResponse(200, {"success": True}),
    })


@pytest.fixture
def api(config, mock_http_session) -> StatsApi:
    return StatsApi(config, session=mock_http_session)


@pytest.fixture
def mock_socket() -> MockSocketClient:
    return MockSocketClient()


@pytest.fixture
def channel(mock_socket) -> ChannelManager:
    return ChannelManager(BASE_URL, client_factory=lambda: mock_socket)


@pytest_asyncio.fixture
async def connected_channel(channel) -> ChannelManager:
    await channel.open(cookie="sid=abc123")
    assert await channel.wait_connected(timeout=1)
    yield channel
    await channel.close()


@pytest.fixture
def refresh() -> AsyncMock:
    return AsyncMock(return_value=True)


@pytest.fixture
def confirmations() -> List[str]:
    """Categories the user was asked to confirm"""
    return []


@pytest.fixture
def orchestrator(connected_channel, refresh, confirmations) -> DeleteOrchestrator:
    def confirm(category: str) -> bool:
        confirmations.append(category)
        return True

    orchestrator = DeleteOrchestrator(connected_channel, confirm=confirm, refresh=refresh, refresh_delay=0)
    connected_channel.subscribe(orchestrator.handle)
    return orchestrator


@pytest.fixture
def context(config, api, mock_socket) -> SessionContext:
    return SessionContext(config, api=api, client_factory=lambda: mock_socket, confirm=lambda category: True)


@pytest.fixture
def transport_error() -> requests.ConnectionError:
    return requests.ConnectionError("Connection refused")
