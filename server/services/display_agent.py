"""
Display Relay Agent (phone side)

Sends start/stop commands to the wearable and folds incoming samples into the
current TelemetrySession. Samples arrive already marshaled onto the event loop
by the transport, so every mutation here has a single writer.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from core.logging import get_logger
from services.relay import ControlMessage, SampleMessage, StatusMessage, TransportSession
from services.session_aggregator import SessionAggregator

logger = get_logger(__name__)


class DisplayRelayAgent:
    """Phone-side end of the heart-rate relay."""

    def __init__(self, transport: TransportSession, aggregator: SessionAggregator):
        self.transport = transport
        self.aggregator = aggregator

        # Latest-value projection for display
        self.bpm: float = 0.0
        self.last_sample_at: Optional[datetime] = None
        self.last_status: Optional[str] = None
        self.last_status_at: Optional[datetime] = None

        transport.on_sample_message(self._handle_sample)
        transport.on_status_message(self._handle_status)
        transport.on_reachability_changed(self._handle_reachability)

    @property
    def is_reachable(self) -> bool:
        return self.transport.is_reachable

    async def start_heart_rate(self) -> bool:
        """Open a session and ask the wearable to start streaming.

        Does nothing when the wearable is unreachable; the intent is not
        queued for later.
        """
        if not self.transport.is_reachable:
            logger.warning("[Display] Start skipped, wearable unreachable")
            return False

        session = await self.aggregator.open_session()
        self.transport.send(ControlMessage.START)
        logger.info("[Display] Start sent", session_id=session.id)
        return True

    async def stop_heart_rate(self) -> bool:
        """Close the session and ask the wearable to stop.

        When unreachable nothing happens and the wearable keeps streaming.
        """
        if not self.transport.is_reachable:
            logger.warning("[Display] Stop skipped, wearable unreachable")
            return False

        session = await self.aggregator.close_session()
        self.transport.send(ControlMessage.STOP)
        logger.info("[Display] Stop sent", session_id=session.id if session else None)
        return True

    def _handle_sample(self, message: SampleMessage):
        now = self.aggregator.now()
        self.bpm = message.bpm
        self.last_sample_at = now
        self.aggregator.record_sample(message.bpm, at=now)

    def _handle_status(self, message: StatusMessage):
        self.last_status = message.status
        self.last_status_at = self.aggregator.now()
        logger.info("[Display] Wearable status", status=message.status)

    def _handle_reachability(self, reachable: bool):
        logger.info("[Display] Wearable reachability changed", reachable=reachable)

    def get_status(self) -> Dict[str, Any]:
        current = self.aggregator.current
        return {
            "reachable": self.transport.is_reachable,
            "bpm": self.bpm,
            "last_sample_at": self.last_sample_at.isoformat() if self.last_sample_at else None,
            "last_status": self.last_status,
            "session": current.to_dict(include_samples=False) if current else None,
        }
