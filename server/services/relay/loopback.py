"""
In-process loopback transport

Two TransportSession ends joined back to back. Payloads are copied through a
JSON round trip so both ends see exactly what a real link would carry. The
shared link can be taken down to simulate the peer leaving range.
"""
import json
from typing import Any, Dict, Optional, Tuple

import structlog

from constants import CLIENT_TYPE_DISPLAY, CLIENT_TYPE_SENSOR
from .exceptions import TransportUnreachable
from .transport import TransportSession

logger = structlog.get_logger()


class LoopbackLink:
    """The shared medium between two loopback ends"""

    def __init__(self):
        self.up = True
        self.ends: Tuple["LoopbackTransport", ...] = ()

    def set_up(self, up: bool) -> None:
        self.up = up
        logger.info("[Loopback] Link state changed", up=up)
        for end in self.ends:
            end._refresh()


class LoopbackTransport(TransportSession):
    """One end of an in-process relay link"""

    def __init__(self, name: str, link: LoopbackLink):
        super().__init__(name=name)
        self.link = link
        self.peer: Optional["LoopbackTransport"] = None
        self.active = False

    async def activate(self) -> None:
        self._bind_loop()
        if self.active:
            return
        self.active = True
        self.link.set_up(self.link.up)

    async def deactivate(self) -> None:
        self.active = False
        if self.peer is not None:
            self.peer._refresh()
        self._refresh()
        await self._cancel_handler_tasks()

    def _refresh(self) -> None:
        peer_active = self.peer is not None and self.peer.active
        self._set_reachable(self.active and peer_active and self.link.up)

    def _transmit(self, payload: Dict[str, Any]) -> None:
        if not self.is_reachable:
            raise TransportUnreachable(f"{self.name} peer not reachable")
        self.peer._deliver_payload(json.loads(json.dumps(payload)))


def create_loopback_pair(
    sensor_name: str = CLIENT_TYPE_SENSOR,
    display_name: str = CLIENT_TYPE_DISPLAY,
) -> Tuple[LoopbackTransport, LoopbackTransport]:
    """Create (sensor_end, display_end) sharing one link."""
    link = LoopbackLink()
    sensor_end = LoopbackTransport(sensor_name, link)
    display_end = LoopbackTransport(display_name, link)
    sensor_end.peer = display_end
    display_end.peer = sensor_end
    link.ends = (sensor_end, display_end)
    return sensor_end, display_end
