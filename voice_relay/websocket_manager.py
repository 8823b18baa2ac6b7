"""
WebSocket connection manager for Twilio Media Streams calls.

Every accepted telephony WebSocket is one call. The manager accepts the socket,
hands it to a CallSupervisor that bridges it to its own OpenAI Realtime session,
and keeps a count of calls in progress for the health endpoint. Calls share
nothing but the stateless scheduling gateway.
"""

import logging

from fastapi import WebSocket

from voice_relay.bot.call_supervisor import CallSupervisor, default_realtime_factory
from voice_relay.config.constants import LOGGER_NAME
from voice_relay.config.settings import Settings
from voice_relay.services.scheduling_gateway import SquareSchedulingGateway

logger = logging.getLogger(LOGGER_NAME)


class WebSocketManager:
    """Accepts telephony WebSockets and runs one supervised call per connection."""

    def __init__(self, realtime_factory=default_realtime_factory):
        self.realtime_factory = realtime_factory
        self.active_calls = 0

    async def handle_websocket(
        self,
        websocket: WebSocket,
        settings: Settings,
        gateway: SquareSchedulingGateway,
    ) -> None:
        """Handle a telephony WebSocket for the whole lifetime of its call.

        Args:
            websocket (WebSocket): The FastAPI WebSocket connection object
            settings (Settings): Application settings
            gateway (SquareSchedulingGateway): Shared scheduling gateway

        The connection is closed by the supervisor's teardown, whichever leg
        ends first.
        """
        await websocket.accept()
        supervisor = CallSupervisor(
            websocket,
            settings,
            gateway,
            realtime_factory=self.realtime_factory,
        )
        self.active_calls += 1
        logger.info(
            f"[{supervisor.session.call_id}] Telephony WebSocket accepted "
            f"({self.active_calls} active)"
        )

        try:
            await supervisor.run()
        except Exception as e:
            logger.error(f"[{supervisor.session.call_id}] Error in call session: {e}", exc_info=True)
            await supervisor.teardown("unexpected error")
        finally:
            self.active_calls -= 1
            logger.info(
                f"[{supervisor.session.call_id}] Telephony WebSocket closed "
                f"({self.active_calls} active)"
            )
