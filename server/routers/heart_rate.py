"""Heart-rate monitoring routes (display side)."""

from fastapi import APIRouter, Depends

from core.container import container
from core.logging import get_logger
from services.display_agent import DisplayRelayAgent

logger = get_logger(__name__)
router = APIRouter(prefix="/api/heart-rate", tags=["heart-rate"])


@router.post("/start")
async def start_heart_rate(
    display_agent: DisplayRelayAgent = Depends(lambda: container.display_agent())
):
    """Open a telemetry session and ask the wearable to start streaming."""
    try:
        sent = await display_agent.start_heart_rate()
        if not sent:
            return {"success": False, "error": "Wearable not reachable"}
        return {"success": True, "status": display_agent.get_status()}
    except Exception as e:
        logger.error("Failed to start heart rate", error=str(e))
        return {"success": False, "error": str(e)}


@router.post("/stop")
async def stop_heart_rate(
    display_agent: DisplayRelayAgent = Depends(lambda: container.display_agent())
):
    """Close the telemetry session and ask the wearable to stop."""
    try:
        sent = await display_agent.stop_heart_rate()
        if not sent:
            return {"success": False, "error": "Wearable not reachable"}
        return {"success": True, "status": display_agent.get_status()}
    except Exception as e:
        logger.error("Failed to stop heart rate", error=str(e))
        return {"success": False, "error": str(e)}


@router.get("/latest")
async def get_latest(
    display_agent: DisplayRelayAgent = Depends(lambda: container.display_agent())
):
    return {"success": True, **display_agent.get_status()}
