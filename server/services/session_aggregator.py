"""Session Aggregator (display side).

Builds TelemetrySession records from the received sample stream and answers
reporting queries over the stored sessions. Timestamps are aware UTC;
calendar days are those of the display's timezone.
"""

import asyncio
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlmodel import col

from core.database import Database
from core.logging import get_logger
from models.telemetry import TelemetrySession, utc_now

logger = get_logger(__name__)


def start_of_day(day: date, tz: Optional[tzinfo] = None) -> datetime:
    """Midnight starting `day` in `tz` (system local when None), as UTC."""
    if tz is None:
        local_midnight = datetime.combine(day, time.min).astimezone()
    else:
        local_midnight = datetime.combine(day, time.min, tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)


class SessionAggregator:
    """Owns the single open TelemetrySession on the display side."""

    def __init__(self, store: Database, clock: Callable[[], datetime] = utc_now,
                 tz: Optional[tzinfo] = None):
        self.store = store
        self.tz = tz
        self._clock = clock
        self._current: Optional[TelemetrySession] = None
        # Open and close both await the store; overlapping calls must not interleave
        self._lock = asyncio.Lock()

    @property
    def current(self) -> Optional[TelemetrySession]:
        return self._current

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        """Current calendar day in the display's timezone."""
        return self.now().astimezone(self.tz).date()

    async def open_session(self) -> TelemetrySession:
        """Start a new session, replacing any session from today.

        At most one session is open, and a day keeps a single record: the
        open session is closed, then every stored session started today is
        deleted before the new one is inserted.
        """
        async with self._lock:
            if self._current is not None:
                logger.info("Replacing open telemetry session", session_id=self._current.id)
                await self._close_current()

            now = self.now()
            removed = await self.store.delete_telemetry_sessions(
                col(TelemetrySession.start_date) >= start_of_day(self.today(), self.tz)
            )
            if removed:
                logger.info("Removed earlier sessions for today", count=removed)
            await self.store.close_dangling_sessions(before=now)

            session = TelemetrySession(start_date=now)
            await self.store.insert_telemetry_session(session)
            self._current = session
            logger.info("Telemetry session opened", session_id=session.id, start_date=now.isoformat())
            return session

    def record_sample(self, bpm: float, at: Optional[datetime] = None) -> bool:
        """Append a sample to the open session. Returns False when none is open."""
        if self._current is None:
            logger.debug("Sample received with no open session", bpm=bpm)
            return False
        self._current.add_sample(at or self.now(), bpm)
        return True

    async def close_session(self) -> Optional[TelemetrySession]:
        """Set the end date on the open session and persist it.

        Waits for an open in progress, so a stop never misses a session
        that is being started.
        """
        async with self._lock:
            return await self._close_current()

    async def _close_current(self) -> Optional[TelemetrySession]:
        session = self._current
        if session is None:
            return None

        self._current = None
        session.end_date = self.now()
        await self.store.save_telemetry_session(session)
        logger.info("Telemetry session closed",
                    session_id=session.id,
                    samples=len(session.samples),
                    min_bpm=session.min_bpm,
                    max_bpm=session.max_bpm)
        return session

    # ========================================================================
    # Reporting queries
    # ========================================================================

    def _with_current(self, sessions: List[TelemetrySession]) -> List[TelemetrySession]:
        # The stored copy of the open session lags behind the in-memory one
        if self._current is None:
            return sessions
        return [self._current if s.id == self._current.id else s for s in sessions]

    async def sessions_on_day(self, day: date) -> List[TelemetrySession]:
        """Sessions overlapping the calendar day, oldest first."""
        day_start = start_of_day(day, self.tz)
        day_end = start_of_day(day + timedelta(days=1), self.tz)
        sessions = await self.store.query_telemetry_sessions(
            col(TelemetrySession.start_date) < day_end,
            or_(col(TelemetrySession.end_date).is_(None), col(TelemetrySession.end_date) >= day_start),
        )
        return self._with_current(sessions)

    async def sessions_in_last_days(self, days: int) -> List[TelemetrySession]:
        """Sessions started since the start of the day `days - 1` days ago."""
        if days < 1:
            raise ValueError("days must be at least 1")
        since = start_of_day(self.today() - timedelta(days=days - 1), self.tz)
        sessions = await self.store.query_telemetry_sessions(col(TelemetrySession.start_date) >= since)
        return self._with_current(sessions)

    @staticmethod
    def combined_range(sessions: Iterable[TelemetrySession]) -> Optional[Tuple[float, float]]:
        """Min over per-session minima and max over per-session maxima.

        None when no session carries data.
        """
        minima = []
        maxima = []
        for session in sessions:
            if session.min_bpm is not None:
                minima.append(session.min_bpm)
            if session.max_bpm is not None:
                maxima.append(session.max_bpm)
        if not minima or not maxima:
            return None
        return min(minima), max(maxima)
