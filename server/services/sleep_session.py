"""Sleep session: soothing audio plus heart-rate monitoring.

Ends the heart-rate session when playback completes, the same way a manual
stop does.
"""
from typing import Any, Dict, Optional

from core.logging import get_logger
from services.display_agent import DisplayRelayAgent
from services.playback import PlaybackService

logger = get_logger(__name__)


class SleepSessionController:
    """Couples the playback collaborator to the display relay agent."""

    def __init__(self, display_agent: DisplayRelayAgent, playback: PlaybackService):
        self.display_agent = display_agent
        self.playback = playback
        self.active = False
        self.monitoring = False

    async def begin(self, track: str, duration: Optional[float] = None) -> Dict[str, Any]:
        """Start audio and ask the wearable to start streaming.

        Audio plays even when the wearable is unreachable; monitoring is
        simply skipped in that case.
        """
        if self.active:
            await self.end()

        self.playback.load(track)
        self.playback.on_playback_complete = self._on_playback_complete
        self.monitoring = await self.display_agent.start_heart_rate()

        if duration is not None:
            self.playback.play_with_timed_stop(duration)
        else:
            self.playback.play()

        self.active = True
        logger.info("[Sleep] Session started", track=track, duration=duration, monitoring=self.monitoring)
        return self.get_status()

    async def end(self) -> Dict[str, Any]:
        """Stop audio and heart-rate monitoring."""
        self.playback.on_playback_complete = None
        self.playback.stop()
        stopped = await self.display_agent.stop_heart_rate()
        self.active = False
        self.monitoring = False
        logger.info("[Sleep] Session ended", heart_rate_stopped=stopped)
        return {**self.get_status(), "heart_rate_stopped": stopped}

    async def _on_playback_complete(self):
        logger.info("[Sleep] Playback complete, ending session")
        await self.end()

    def get_status(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "monitoring": self.monitoring,
            "playback": self.playback.get_status(),
        }
