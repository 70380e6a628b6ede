"""
Transport Session Adapter

Wraps a paired, session-oriented messaging link between the sensor side and the
display side. The link only carries messages while the peer is reachable, gives
no delivery or ordering guarantee and no backpressure signal.

Contract:
- send() never raises and never blocks; it drops the message when the peer is
  unreachable.
- Received messages are marshaled onto the event loop that activated the
  transport before any handler runs. Coroutine handlers become tasks there.
- activate() is idempotent.
"""
import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set

import structlog

from .exceptions import TransportUnreachable
from .protocol import (
    ControlMessage,
    RelayMessage,
    SampleMessage,
    StatusMessage,
    decode_payload,
    encode_message,
)

logger = structlog.get_logger()

Handler = Callable[..., Any]


class TransportSession(ABC):
    """Base class for relay transports with typed handler registration"""

    def __init__(self, name: str):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._reachable = False

        self._control_handlers: List[Handler] = []
        self._sample_handlers: List[Handler] = []
        self._status_handlers: List[Handler] = []
        self._reachability_handlers: List[Handler] = []

        # Strong refs so handler tasks are not garbage collected mid-flight
        self._handler_tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # Handler Registration
    # =========================================================================

    def on_control_message(self, handler: Handler) -> Handler:
        self._control_handlers.append(handler)
        return handler

    def on_sample_message(self, handler: Handler) -> Handler:
        self._sample_handlers.append(handler)
        return handler

    def on_status_message(self, handler: Handler) -> Handler:
        self._status_handlers.append(handler)
        return handler

    def on_reachability_changed(self, handler: Handler) -> Handler:
        self._reachability_handlers.append(handler)
        return handler

    # =========================================================================
    # Session
    # =========================================================================

    @property
    def is_reachable(self) -> bool:
        """True while the paired peer can be sent to."""
        return self._reachable

    @abstractmethod
    async def activate(self) -> None:
        """Activate the session. Safe to call any number of times."""

    @abstractmethod
    async def deactivate(self) -> None:
        """Tear the session down and stop re-activating it."""

    def send(self, message: RelayMessage) -> None:
        """Fire-and-forget send. Drops the message if the peer is unreachable."""
        payload = encode_message(message)
        try:
            self._transmit(payload)
        except TransportUnreachable as e:
            logger.debug("[Relay] Message dropped", transport=self.name, payload=payload, reason=str(e))

    @abstractmethod
    def _transmit(self, payload: Dict[str, Any]) -> None:
        """Hand a payload to the link. Raises TransportUnreachable if it cannot."""

    def _bind_loop(self) -> None:
        self._loop = asyncio.get_running_loop()

    # =========================================================================
    # Inbound Delivery
    # =========================================================================

    def _handlers_for(self, message: RelayMessage) -> List[Handler]:
        if isinstance(message, ControlMessage):
            return self._control_handlers
        if isinstance(message, SampleMessage):
            return self._sample_handlers
        if isinstance(message, StatusMessage):
            return self._status_handlers
        return []

    def _deliver_payload(self, payload: Any) -> None:
        """Decode an inbound payload and dispatch it. Callable from any thread."""
        messages = decode_payload(payload)
        if not messages:
            logger.debug("[Relay] Ignoring unrecognized payload",
                         transport=self.name,
                         keys=list(payload.keys()) if isinstance(payload, dict) else "not_dict")
            return

        for message in messages:
            for handler in self._handlers_for(message):
                self._marshal(handler, message)

    def _set_reachable(self, reachable: bool) -> None:
        if reachable == self._reachable:
            return
        self._reachable = reachable
        logger.info("[Relay] Reachability changed", transport=self.name, reachable=reachable)
        for handler in self._reachability_handlers:
            self._marshal(handler, reachable)

    def _marshal(self, handler: Handler, *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("[Relay] Transport not active, dropping delivery", transport=self.name)
            return
        loop.call_soon_threadsafe(self._invoke, handler, args)

    def _invoke(self, handler: Handler, args: tuple) -> None:
        try:
            result = handler(*args)
        except Exception as e:
            logger.error("[Relay] Handler error", transport=self.name, error=str(e), exc_info=True)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("[Relay] Handler task failed", transport=self.name, error=str(error))

    async def _cancel_handler_tasks(self) -> None:
        tasks = list(self._handler_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
