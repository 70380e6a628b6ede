"""
Audio playback collaborator

Tracks what is playing and when it will finish. Actual audio output and
fade effects live outside this service; what matters here is the triggering
contract: on_playback_complete fires when a track runs out or a timed stop
elapses, and never fires after stop().
"""
import inspect
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from core.logging import get_logger
from services.scheduler import ScheduledTask, TaskScheduler

logger = get_logger(__name__)


class TrackNotFound(LookupError):
    """Requested track is not in the catalog"""


class PlaybackService:
    """Plays catalog tracks with optional timed stop."""

    def __init__(self, scheduler: TaskScheduler, tracks: Dict[str, float]):
        self.scheduler = scheduler
        self.tracks = dict(tracks)

        self.current_track: Optional[str] = None
        self.is_playing = False
        self.position: float = 0.0
        self._started_at: Optional[datetime] = None
        self._stop_at: Optional[float] = None
        self._resume_position: float = 0.0
        self._handles: List[ScheduledTask] = []

        self.on_playback_complete: Optional[Callable[[], Any]] = None

    def load(self, track: str) -> None:
        """Load a track from the catalog, stopping whatever was playing."""
        if track not in self.tracks:
            raise TrackNotFound(f"Unknown track: {track}")
        self.stop()
        self.current_track = track
        logger.info("[Playback] Track loaded", track=track, length=self.tracks[track])

    def play(self) -> None:
        """Play until the end of the loaded track."""
        self._start(stop_after=None)

    def play_with_timed_stop(self, seconds: float) -> None:
        """Play and stop after `seconds`, or at the end of the track if sooner."""
        if seconds <= 0:
            raise ValueError("Timed stop must be positive")
        self._start(stop_after=seconds)

    def pause(self) -> None:
        if not self.is_playing:
            return
        self.position = self._elapsed_position()
        if self._stop_at is not None:
            self._stop_at = max(self._stop_at - (self.position - self._resume_position), 0.0)
        self._cancel_handles()
        self.is_playing = False
        self._started_at = None
        logger.info("[Playback] Paused", track=self.current_track, position=round(self.position, 1))

    def stop(self) -> None:
        """Stop playback and rewind. Cancels all pending timers."""
        self._cancel_handles()
        was_playing = self.is_playing
        self.is_playing = False
        self.position = 0.0
        self._started_at = None
        self._stop_at = None
        if was_playing:
            logger.info("[Playback] Stopped", track=self.current_track)

    def remaining(self) -> Optional[float]:
        """Seconds until the completion callback fires, None if not playing."""
        if not self.is_playing or self.current_track is None:
            return None
        to_end = self.tracks[self.current_track] - self._elapsed_position()
        if self._stop_at is not None:
            to_end = min(to_end, self._stop_at - (self._elapsed_position() - self._resume_position))
        return max(to_end, 0.0)

    def get_status(self) -> Dict[str, Any]:
        return {
            "track": self.current_track,
            "is_playing": self.is_playing,
            "position": round(self._elapsed_position(), 1) if self.current_track else 0.0,
            "remaining": self.remaining(),
        }

    def _start(self, stop_after: Optional[float]) -> None:
        if self.current_track is None:
            raise RuntimeError("No track loaded")

        self._cancel_handles()
        self._resume_position = self.position
        self._stop_at = stop_after if stop_after is not None else self._stop_at
        self._started_at = datetime.now(timezone.utc)
        self.is_playing = True

        delay = self.remaining()
        self._handles.append(self.scheduler.schedule(delay, self._complete, name="playback_complete"))
        logger.info("[Playback] Playing", track=self.current_track, completes_in=round(delay, 1))

    def _elapsed_position(self) -> float:
        if not self.is_playing or self._started_at is None:
            return self.position
        elapsed = (datetime.now(timezone.utc) - self._started_at).total_seconds()
        return self._resume_position + elapsed

    def _cancel_handles(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles = []

    async def _complete(self) -> None:
        track = self.current_track
        self._handles = []
        self.stop()
        logger.info("[Playback] Completed", track=track)

        callback = self.on_playback_complete
        if callback is None:
            return
        result = callback()
        if inspect.isawaitable(result):
            await result
