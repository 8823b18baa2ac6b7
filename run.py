"""
Run script for starting the voice relay server.

This script validates configuration up front and starts the FastAPI server with
WebSocket settings suited to real-time audio between Twilio and OpenAI.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import os
import sys

import uvicorn

from voice_relay.config.logging_config import configure_logging
from voice_relay.config.settings import get_settings
from voice_relay.errors import ConfigurationError

# Configure logging
logger = configure_logging()


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the Twilio to OpenAI Realtime voice relay"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to run the server on (default: PORT env var or 8000)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind the server to (default: HOST env var or 0.0.0.0)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: LOG_LEVEL env var or INFO)",
    )
    return parser.parse_args()


def main():
    """Main entry point for starting the server."""
    args = parse_args()

    try:
        settings = get_settings()
    except ConfigurationError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        print("Set OPENAI_API_KEY and SQUARE_ACCESS_TOKEN (a .env file works too)")
        sys.exit(1)

    host = args.host or settings.host
    port = args.port or settings.port
    log_level = args.log_level or settings.log_level.upper()

    logger.info(f"Starting server on http://{host}:{port}")
    logger.info(f"Log level: {log_level}")
    logger.info(f"Square environment: {settings.square_env}")

    uvicorn.run(
        "voice_relay.main:app",
        host=host,
        port=port,
        log_level=log_level.lower(),
        # Use HTTP/1.1 for lower overhead than HTTP/2
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
