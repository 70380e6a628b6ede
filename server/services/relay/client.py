"""
Relay Hub WebSocket Transport

Connects one side of the heart-rate relay (sensor or display) to the relay hub.

Connection flow:
1. Connect to ws://<hub>/ws/relay?client_type=<sensor|display>&pairing_code=<code>
2. Receive connection.established with session_token
3. Receive pairing.connected once the peer with the same pairing code is online
4. Exchange payloads via relay.send / relay.message notifications
5. pairing.disconnected when the peer drops; the hub connection stays open

Frames are JSON-RPC 2.0 notifications without ids: the hub never acknowledges
a relay.send, matching the fire-and-forget contract of the transport.
"""
import asyncio
import json
from typing import Any, Dict, Optional, Set

import aiohttp
import structlog

from constants import (
    CONNECTION_ESTABLISHED,
    JSONRPC_VERSION,
    PAIRING_CONNECTED,
    PAIRING_DISCONNECTED,
    PING,
    RELAY_MESSAGE,
    RELAY_SEND,
)
from .exceptions import RelayConnectionError, TransportUnreachable
from .transport import TransportSession

logger = structlog.get_logger()


def notification(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a JSON-RPC 2.0 notification frame"""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
        "params": params or {},
    }


class RelayTransport(TransportSession):
    """WebSocket transport to the relay hub, re-activated whenever it drops"""

    def __init__(
        self,
        base_url: str,
        client_type: str,
        pairing_code: str,
        reconnect_delay: float = 2.0,
        keepalive_interval: float = 25.0,
    ):
        """
        Initialize relay transport.

        Args:
            base_url: Hub WebSocket URL (e.g., 'ws://localhost:8010/ws/relay')
            client_type: 'sensor' or 'display'
            pairing_code: Shared code that pairs a sensor with a display
            reconnect_delay: Seconds to wait before re-activating a dropped session
            keepalive_interval: Seconds between keepalive pings
        """
        super().__init__(name=client_type)
        self.base_url = base_url
        self.client_type = client_type
        self.pairing_code = pairing_code
        self.url = f"{base_url}?client_type={client_type}&pairing_code={pairing_code}"
        self.reconnect_delay = reconnect_delay
        self.keepalive_interval = keepalive_interval

        # WebSocket connection
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.session: Optional[aiohttp.ClientSession] = None
        self.connected = False

        # Pairing state
        self.session_token: Optional[str] = None
        self.peer_name: Optional[str] = None

        # Background tasks
        self._run_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._send_tasks: Set[asyncio.Task] = set()
        self._running = False

    # =========================================================================
    # Session Management
    # =========================================================================

    async def activate(self) -> None:
        """Start the connection loop unless it is already running."""
        self._bind_loop()
        if self._run_task and not self._run_task.done():
            logger.debug("[Relay] Session already active", url=self.base_url, client_type=self.client_type)
            return

        self._running = True
        self._run_task = asyncio.create_task(self._connection_loop())
        logger.info("[Relay] Session activated", url=self.base_url, client_type=self.client_type)

    async def deactivate(self) -> None:
        """Close connection and stop re-activating."""
        logger.info("[Relay] Deactivating...", client_type=self.client_type)
        self._running = False

        task = self._run_task
        self._run_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_socket()
        await self._cancel_handler_tasks()
        logger.info("[Relay] Deactivated", client_type=self.client_type)

    def is_connected(self) -> bool:
        """Check if connected to the relay hub (the peer may still be absent)."""
        return self.connected and self.ws is not None and not self.ws.closed

    async def _connection_loop(self):
        """Connect, receive until the link drops, then re-activate after a delay."""
        while self._running:
            try:
                await self._connect()
                await self._receive_loop()
            except RelayConnectionError as e:
                logger.warning("[Relay] Handshake failed", error=str(e))
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.warning("[Relay] Connection failed", error=str(e) or type(e).__name__)
            finally:
                await self._close_socket()

            if self._running:
                logger.info("[Relay] Re-activating session", delay=self.reconnect_delay)
                await asyncio.sleep(self.reconnect_delay)

    async def _connect(self):
        """Open the WebSocket and wait for connection.established."""
        logger.info("[Relay] Connecting...", url=self.base_url, client_type=self.client_type)
        timeout = aiohttp.ClientTimeout(total=None, connect=10)
        self.session = aiohttp.ClientSession(timeout=timeout)

        self.ws = await self.session.ws_connect(self.url, heartbeat=30, autoping=True)

        msg = await asyncio.wait_for(self.ws.receive(), timeout=10.0)
        if msg.type != aiohttp.WSMsgType.TEXT:
            raise RelayConnectionError(f"Unexpected frame during handshake: {msg.type.name}")

        try:
            data = json.loads(msg.data)
        except json.JSONDecodeError as e:
            raise RelayConnectionError(f"Invalid handshake frame: {e}") from e
        if not isinstance(data, dict):
            raise RelayConnectionError("Handshake frame is not a JSON object")

        method = data.get("method")
        if method != CONNECTION_ESTABLISHED:
            error = data.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            raise RelayConnectionError(message or f"Unexpected response: {method or 'unknown'}")

        params = data.get("params")
        self.session_token = params.get("session_token") if isinstance(params, dict) else None
        self.connected = True
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())
        logger.info("[Relay] Connection established", session_token=self.session_token)

    async def _close_socket(self):
        """Drop the current socket; the peer is unreachable until re-paired."""
        self.connected = False
        self.peer_name = None
        self._set_reachable(False)

        task = self._keepalive_task
        self._keepalive_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self.ws and not self.ws.closed:
            await self.ws.close()
        self.ws = None

        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    # =========================================================================
    # Background Tasks
    # =========================================================================

    async def _receive_loop(self):
        """Receive frames until the hub closes the socket."""
        logger.info("[Relay] Receive loop started")
        while self._running and self.ws and not self.ws.closed:
            msg = await self.ws.receive()

            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.warning("[Relay] Ignoring non-JSON frame")
                    continue
                if not isinstance(data, dict):
                    logger.warning("[Relay] Ignoring non-object frame")
                    continue
                self._handle_message(data)

            elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                logger.warning("[Relay] Connection closed by hub", code=msg.data, reason=msg.extra)
                break

            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error("[Relay] WebSocket error", error=str(self.ws.exception()))
                break

        logger.info("[Relay] Receive loop stopped")

    async def _keepalive_loop(self):
        """Background keepalive task."""
        try:
            while self.is_connected():
                await asyncio.sleep(self.keepalive_interval)
                if self.is_connected():
                    await self.ws.send_json(notification(PING))
        except asyncio.CancelledError:
            pass
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.error("[Relay] Keepalive error", error=str(e))

    # =========================================================================
    # Message Handling
    # =========================================================================

    def _handle_message(self, data: Dict[str, Any]):
        """Handle an inbound hub notification."""
        method = data.get("method", "")
        params = data.get("params")
        if not isinstance(params, dict):
            params = {}

        if method == PAIRING_CONNECTED:
            self.peer_name = params.get("device_name")
            logger.info("[Relay] Peer paired", peer=self.peer_name)
            self._set_reachable(True)

        elif method == PAIRING_DISCONNECTED:
            logger.info("[Relay] Peer disconnected", peer=self.peer_name, reason=params.get("reason", "unknown"))
            self.peer_name = None
            self._set_reachable(False)

        elif method == RELAY_MESSAGE:
            self._deliver_payload(params.get("data"))

        elif method == CONNECTION_ESTABLISHED:
            self.session_token = params.get("session_token")

        else:
            logger.debug("[Relay] Ignoring hub message", method=method)

    def _transmit(self, payload: Dict[str, Any]) -> None:
        if not self.is_reachable or not self.is_connected():
            raise TransportUnreachable(f"{self.client_type} peer not reachable")
        self._loop.call_soon_threadsafe(self._spawn_send, notification(RELAY_SEND, {"data": payload}))

    def _spawn_send(self, frame: Dict[str, Any]) -> None:
        task = asyncio.ensure_future(self._send_frame(frame))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def _send_frame(self, frame: Dict[str, Any]):
        ws = self.ws
        if ws is None or ws.closed:
            logger.debug("[Relay] Socket closed before send, message dropped")
            return
        try:
            await ws.send_json(frame)
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.warning("[Relay] Send failed, message dropped", error=str(e))
