"""
FastAPI backend for the heart-rate relay display service.

Hosts the relay hub the wearable connects to, the display relay agent with
its session aggregator, and the sleep-session audio controller.
"""

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.config import Settings
from core.logging import configure_logging, get_logger
from routers import heart_rate, relay, sessions, sleep

# Initialize settings and logging
settings = Settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting heart-rate relay services")

    await container.database().startup()
    container.scheduler().start()

    # Builds the display agent so its handlers are registered before any frame arrives
    container.display_agent()
    await container.transport().activate()

    logger.info("Services started successfully",
                relay_url=settings.relay_url,
                hub_enabled=settings.relay_hub_enabled)
    yield

    # Shutdown
    controller = container.sleep_controller()
    if controller.active:
        await controller.end()
    aggregator = container.session_aggregator()
    if aggregator.current is not None:
        await aggregator.close_session()

    await container.transport().deactivate()
    container.scheduler().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Heart-Rate Relay Services",
    version="1.0.0",
    description="Relays heart-rate telemetry from a wearable to a display and records sessions",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )

app.add_middleware(CatchAllExceptionsMiddleware)

# Include routers
if settings.relay_hub_enabled:
    app.include_router(relay.router)
app.include_router(heart_rate.router)
app.include_router(sessions.router)
app.include_router(sleep.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    display_agent = container.display_agent()
    return {
        "status": "OK",
        "service": "heart-rate-relay",
        "version": "1.0.0",
        "environment": "development" if settings.is_development else "production",
        "relay": {
            "hub_enabled": settings.relay_hub_enabled,
            "wearable_reachable": display_agent.is_reachable,
        },
        "scheduler_running": container.scheduler().running,
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting heart-rate relay services",
               host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
    )
