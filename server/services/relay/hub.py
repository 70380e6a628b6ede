"""
Relay Hub

Server side of the relay transport. Pairs one sensor connection with one
display connection per pairing code and forwards relay.send payloads to the
peer as relay.message notifications. Payloads sent while no peer is connected
are dropped; the hub never queues or acknowledges.
"""
import asyncio
import json
import uuid
import weakref
from typing import Any, Dict, Optional

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from constants import (
    CLIENT_TYPES,
    CLIENT_TYPE_DISPLAY,
    CLIENT_TYPE_SENSOR,
    CONNECTION_ESTABLISHED,
    PAIRING_CONNECTED,
    PAIRING_DISCONNECTED,
    PING,
    RELAY_MESSAGE,
    RELAY_SEND,
    WS_CLOSE_INVALID_CLIENT,
    WS_CLOSE_REPLACED,
)
from .client import notification

logger = structlog.get_logger()

_PEER_ROLE = {
    CLIENT_TYPE_SENSOR: CLIENT_TYPE_DISPLAY,
    CLIENT_TYPE_DISPLAY: CLIENT_TYPE_SENSOR,
}


class RelayHub:
    """Pairing and forwarding between sensor and display connections"""

    def __init__(self):
        # pairing_code -> {client_type -> websocket}
        self._rooms: Dict[str, Dict[str, WebSocket]] = {}
        self._send_locks: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
        self.forwarded = 0
        self.dropped = 0

    def get_status(self) -> Dict[str, Any]:
        return {
            "rooms": {code: sorted(room.keys()) for code, room in self._rooms.items()},
            "forwarded": self.forwarded,
            "dropped": self.dropped,
        }

    def _peer(self, pairing_code: str, client_type: str) -> Optional[WebSocket]:
        return self._rooms.get(pairing_code, {}).get(_PEER_ROLE[client_type])

    async def _safe_send(self, websocket: WebSocket, data: dict) -> bool:
        """Serialized send; a dead socket is logged, not raised."""
        if websocket not in self._send_locks:
            self._send_locks[websocket] = asyncio.Lock()
        async with self._send_locks[websocket]:
            try:
                await websocket.send_json(data)
                return True
            except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
                logger.warning("[Hub] Send error", error=str(e))
                return False

    async def serve(self, websocket: WebSocket, client_type: str, pairing_code: str):
        """Run one client connection until it disconnects."""
        if client_type not in CLIENT_TYPES:
            logger.warning("[Hub] Rejecting unknown client type", client_type=client_type)
            await websocket.close(code=WS_CLOSE_INVALID_CLIENT)
            return

        await websocket.accept()
        room = self._rooms.setdefault(pairing_code, {})
        previous = room.get(client_type)
        room[client_type] = websocket

        if previous is not None:
            logger.info("[Hub] Replacing stale connection", client_type=client_type, pairing_code=pairing_code)
            try:
                await previous.close(code=WS_CLOSE_REPLACED)
            except RuntimeError:
                pass

        await self._safe_send(websocket, notification(CONNECTION_ESTABLISHED, {
            "session_token": uuid.uuid4().hex,
            "client_type": client_type,
        }))
        logger.info("[Hub] Client connected", client_type=client_type, pairing_code=pairing_code)

        peer = self._peer(pairing_code, client_type)
        if peer is not None:
            await self._announce_pairing(websocket, client_type, peer)

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("[Hub] Ignoring non-JSON frame", client_type=client_type)
                    continue
                if isinstance(data, dict):
                    await self._handle(pairing_code, client_type, data)
        except WebSocketDisconnect:
            pass
        except RuntimeError as e:
            # Socket closed under us by a replacing connection
            logger.debug("[Hub] Receive stopped", client_type=client_type, error=str(e))
        finally:
            await self._release(pairing_code, client_type, websocket)

    async def _announce_pairing(self, websocket: WebSocket, client_type: str, peer: WebSocket):
        peer_type = _PEER_ROLE[client_type]
        await self._safe_send(websocket, notification(PAIRING_CONNECTED, {"device_name": peer_type}))
        await self._safe_send(peer, notification(PAIRING_CONNECTED, {"device_name": client_type}))
        logger.info("[Hub] Paired", client_type=client_type, peer=peer_type)

    async def _release(self, pairing_code: str, client_type: str, websocket: WebSocket):
        room = self._rooms.get(pairing_code)
        if room is None or room.get(client_type) is not websocket:
            # Already replaced by a newer connection
            return

        del room[client_type]
        logger.info("[Hub] Client disconnected", client_type=client_type, pairing_code=pairing_code)

        peer = room.get(_PEER_ROLE[client_type])
        if peer is not None:
            await self._safe_send(peer, notification(PAIRING_DISCONNECTED, {
                "device_name": client_type,
                "reason": "peer_disconnected",
            }))
        if not room:
            del self._rooms[pairing_code]

    async def _handle(self, pairing_code: str, client_type: str, data: Dict[str, Any]):
        method = data.get("method", "")
        params = data.get("params")
        if not isinstance(params, dict):
            params = {}

        if method == RELAY_SEND:
            peer = self._peer(pairing_code, client_type)
            if peer is None:
                self.dropped += 1
                logger.debug("[Hub] No peer, payload dropped", client_type=client_type)
                return
            if await self._safe_send(peer, notification(RELAY_MESSAGE, {"data": params.get("data", {})})):
                self.forwarded += 1
            else:
                self.dropped += 1

        elif method == PING:
            return

        else:
            logger.debug("[Hub] Ignoring method", method=method, client_type=client_type)
