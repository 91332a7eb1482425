"""
Channel Lifecycle Manager - Owns the Socket.IO event channel
Open only while the session is authenticated; reconnects with the library's retry policy
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

import socketio

from bulk_delete.errors import ChannelUnavailable, TransportFailure
from bulk_delete.events import EVENT_TYPES, InboundEvent, parse_event
from bulk_delete.models import Connectivity


logger = logging.getLogger(__name__)

EventHandler = Callable[[InboundEvent], Awaitable[None]]


def default_client_factory() -> socketio.AsyncClient:
    return socketio.AsyncClient(
        reconnection=True,
        reconnection_attempts=0,  # retry forever
        reconnection_delay=1,
        reconnection_delay_max=5,
    )


class ChannelManager:
    """Manage the single event channel connection shared by all operations"""

    def __init__(
        self,
        url: str,
        client_factory: Callable[[], socketio.AsyncClient] = default_client_factory,
        progress_callback: Optional[Callable] = None
    ):
        self.url = url
        self.client_factory = client_factory
        self.progress_callback = progress_callback

        self._client: Optional[socketio.AsyncClient] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._handler: Optional[EventHandler] = None
        self._closing = False
        self._connected = asyncio.Event()
        self.connectivity = Connectivity.DISCONNECTED

    def subscribe(self, handler: EventHandler) -> None:
        """Route parsed inbound events to handler"""
        self._handler = handler

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def wait_connected(self, timeout: Optional[float] = None) -> bool:
        """Wait for the channel to connect, returns False on timeout"""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # === Lifecycle ===

    async def open(self, cookie: Optional[str] = None) -> None:
        """Create the client and start connecting in the background"""
        if self._client is not None:
            logger.debug("Channel already open")
            return

        self._closing = False
        client = self.client_factory()
        client.on("connect", self._on_connect)
        client.on("disconnect", self._on_disconnect)
        client.on("connect_error", self._on_connect_error)
        for name in EVENT_TYPES:
            client.on(name, self._make_dispatcher(name))
        self._client = client

        await self._set_connectivity(Connectivity.CONNECTING)

        headers = {"Cookie": cookie} if cookie else {}
        self._connect_task = asyncio.create_task(self._connect(client, headers))

    async def close(self) -> None:
        """Fully shut the connection down, including pending reconnection attempts"""
        client = self._client
        if client is None:
            return

        self._closing = True
        self._client = None

        try:
            await client.shutdown()
        except socketio.exceptions.SocketIOError as e:
            logger.warning(f"Error while closing channel: {e}")

        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass
        self._connect_task = None

        await self._set_connectivity(Connectivity.DISCONNECTED)
        logger.info("Channel closed")

    async def _connect(self, client: socketio.AsyncClient, headers: Dict[str, str]) -> None:
        try:
            await client.connect(
                self.url,
                headers=headers,
                transports=["websocket", "polling"],
                retry=True,
            )
        except socketio.exceptions.ConnectionError as e:
            if self._closing:
                return
            logger.error(f"Channel connection failed: {e}")
            if self._client is client:
                self._client = None
            await self._set_connectivity(Connectivity.DISCONNECTED)
            await self._report_progress("notice", {
                "level": "error",
                "message": f"Real-time connection failed: {e}",
            })

    # === Commands ===

    async def send(self, command: str, payload: Dict) -> None:
        """Emit a command, raises ChannelUnavailable if not connected"""
        if self.connectivity != Connectivity.CONNECTED or self._client is None:
            raise ChannelUnavailable()

        try:
            await self._client.emit(command, payload)
        except socketio.exceptions.SocketIOError as e:
            logger.error(f"Failed to send {command}: {e}")
            raise TransportFailure(f"Failed to send {command}: {e}") from e

        logger.debug(f"Sent {command}: {payload}")

    # === Channel Events ===

    async def _on_connect(self) -> None:
        if self._closing:
            return
        logger.info("Channel connected")
        await self._set_connectivity(Connectivity.CONNECTED)

    async def _on_disconnect(self, *args) -> None:
        if self._closing:
            return
        # Operations already accepted keep running server-side
        logger.warning(f"Channel disconnected {args or ''}, reconnecting")
        await self._set_connectivity(Connectivity.CONNECTING)

    async def _on_connect_error(self, data=None) -> None:
        logger.debug(f"Channel connect error: {data}")
        if not self._closing and self.connectivity != Connectivity.CONNECTING:
            await self._set_connectivity(Connectivity.CONNECTING)

    def _make_dispatcher(self, name: str) -> Callable:
        async def dispatch(data=None) -> None:
            if self._closing:
                return
            event = parse_event(name, data)
            if event is None or self._handler is None:
                return
            await self._handler(event)

        return dispatch

    async def _set_connectivity(self, state: Connectivity) -> None:
        if state == self.connectivity:
            return
        logger.debug(f"Connectivity {self.connectivity.value} -> {state.value}")
        self.connectivity = state
        if state == Connectivity.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()
        await self._report_progress("connectivity", {"state": state.value})

    # === Progress ===

    async def _report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)
