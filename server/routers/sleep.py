"""Sleep session routes: soothing audio with heart-rate monitoring."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.container import container
from core.logging import get_logger
from services.playback import PlaybackService, TrackNotFound
from services.sleep_session import SleepSessionController

logger = get_logger(__name__)
router = APIRouter(prefix="/api/sleep", tags=["sleep"])


class SleepStartRequest(BaseModel):
    """Request model for starting a sleep session."""
    track: str = Field(..., description="Audio track name (e.g., 'rain', 'ocean_waves')")
    duration_minutes: Optional[float] = Field(default=None, gt=0, description="Stop playback after this many minutes")


@router.get("/tracks")
async def list_tracks(
    playback: PlaybackService = Depends(lambda: container.playback())
):
    return {"success": True, "tracks": playback.tracks}


@router.post("/start")
async def start_sleep_session(
    request: SleepStartRequest,
    controller: SleepSessionController = Depends(lambda: container.sleep_controller())
):
    duration = request.duration_minutes * 60 if request.duration_minutes is not None else None
    try:
        status = await controller.begin(request.track, duration=duration)
        return {"success": True, **status}
    except TrackNotFound as e:
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error("Failed to start sleep session", track=request.track, error=str(e))
        return {"success": False, "error": str(e)}


@router.post("/stop")
async def stop_sleep_session(
    controller: SleepSessionController = Depends(lambda: container.sleep_controller())
):
    try:
        status = await controller.end()
        return {"success": True, **status}
    except Exception as e:
        logger.error("Failed to stop sleep session", error=str(e))
        return {"success": False, "error": str(e)}


@router.get("/status")
async def get_sleep_status(
    controller: SleepSessionController = Depends(lambda: container.sleep_controller())
):
    return {"success": True, **controller.get_status()}
