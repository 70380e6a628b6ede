"""Relay hub WebSocket endpoint pairing a sensor with a display."""

from fastapi import APIRouter, WebSocket

from core.container import container

router = APIRouter(tags=["relay"])


@router.websocket("/ws/relay")
async def relay_endpoint(websocket: WebSocket, client_type: str = "", pairing_code: str = "default"):
    """Forward relay.send frames from one side as relay.message frames to its peer."""
    await container.relay_hub().serve(websocket, client_type, pairing_code)


@router.get("/api/relay/status")
async def relay_status():
    return {"success": True, **container.relay_hub().get_status()}
