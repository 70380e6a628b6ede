"""Telemetry session reporting routes."""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query

from core.container import container
from core.logging import get_logger
from models.telemetry import TelemetrySession
from services.session_aggregator import SessionAggregator

logger = get_logger(__name__)
router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _report(sessions: List[TelemetrySession], include_samples: bool):
    combined = SessionAggregator.combined_range(sessions)
    return {
        "success": True,
        "sessions": [s.to_dict(include_samples=include_samples) for s in sessions],
        "count": len(sessions),
        "min_bpm": combined[0] if combined else None,
        "max_bpm": combined[1] if combined else None,
    }


@router.get("/today")
async def get_today_sessions(
    include_samples: bool = True,
    aggregator: SessionAggregator = Depends(lambda: container.session_aggregator())
):
    """Sessions overlapping the current calendar day."""
    try:
        sessions = await aggregator.sessions_on_day(aggregator.today())
        return _report(sessions, include_samples)
    except Exception as e:
        logger.error("Failed to load today's sessions", error=str(e))
        return {"success": False, "error": str(e)}


@router.get("/day/{day}")
async def get_day_sessions(
    day: date,
    include_samples: bool = True,
    aggregator: SessionAggregator = Depends(lambda: container.session_aggregator())
):
    """Sessions overlapping the given calendar day (YYYY-MM-DD)."""
    try:
        sessions = await aggregator.sessions_on_day(day)
        return _report(sessions, include_samples)
    except Exception as e:
        logger.error("Failed to load sessions", day=day.isoformat(), error=str(e))
        return {"success": False, "error": str(e)}


@router.get("/recent")
async def get_recent_sessions(
    days: int = Query(default=7, ge=1, le=366),
    include_samples: bool = False,
    aggregator: SessionAggregator = Depends(lambda: container.session_aggregator())
):
    """Sessions started within the last `days` calendar days, with their combined range."""
    try:
        sessions = await aggregator.sessions_in_last_days(days)
        return {**_report(sessions, include_samples), "days": days}
    except Exception as e:
        logger.error("Failed to load recent sessions", days=days, error=str(e))
        return {"success": False, "error": str(e)}
