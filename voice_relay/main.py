"""
FastAPI server relaying Twilio Media Streams calls to the OpenAI Realtime API.

This module initializes the FastAPI application that serves as the media stream
endpoint for Twilio. Each WebSocket connection on ``/media-stream`` is one phone
call, bridged to its own OpenAI Realtime session with scheduling tools backed by
Square Appointments.

Configuration is validated at startup: a missing credential stops the server
before it accepts any call.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket

from voice_relay.config.logging_config import configure_logging
from voice_relay.config.settings import get_settings
from voice_relay.services.scheduling_gateway import SquareSchedulingGateway
from voice_relay.websocket_manager import WebSocketManager

# Configure logging
logger = configure_logging()

APP_NAME = "Voice Relay"
APP_DESCRIPTION = "Bridge between Twilio Media Streams and the OpenAI Realtime API"
APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings and open the shared scheduling gateway for the app's lifetime.

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    gateway = SquareSchedulingGateway(
        settings.square_access_token,
        environment=settings.square_env,
        api_version=settings.square_api_version,
        default_location_id=settings.square_location_id,
        default_team_member_id=settings.square_team_member_id,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    logger.info(
        f"Relay ready: model={settings.realtime_model}, square_env={settings.square_env}, "
        f"turn_detection={settings.turn_detection}"
    )
    try:
        yield
    finally:
        await gateway.aclose()
        logger.info("Scheduling gateway closed")


# Create FastAPI application
app = FastAPI(
    title=APP_NAME,
    description=APP_DESCRIPTION,
    version=APP_VERSION,
    lifespan=lifespan,
)

# Create WebSocket manager
websocket_manager = WebSocketManager()


@app.websocket("/media-stream")
async def media_stream_endpoint(websocket: WebSocket):
    """WebSocket endpoint for Twilio Media Streams.

    Twilio connects here when a call's TwiML ``<Connect><Stream>`` verb runs. The
    connection carries the caller's audio in and the assistant's audio out until
    either side hangs up.
    """
    await websocket_manager.handle_websocket(
        websocket, app.state.settings, app.state.gateway
    )


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information including the number of calls in progress.
    """
    settings = app.state.settings
    return {
        "status": "healthy",
        "openai_api_key_configured": bool(settings.openai_api_key),
        "square_configured": bool(settings.square_access_token),
        "square_env": settings.square_env,
        "active_calls": websocket_manager.active_calls,
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": APP_NAME,
        "description": APP_DESCRIPTION,
        "version": APP_VERSION,
        "endpoints": {
            "/media-stream": "WebSocket endpoint for Twilio Media Streams",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        websocket_ping_interval=5,
        websocket_ping_timeout=20,
        http="h11",
    )
