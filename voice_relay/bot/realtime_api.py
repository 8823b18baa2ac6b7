import asyncio
import json
import logging
import time
import traceback
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

from voice_relay.config.constants import (
    EVENT_INPUT_AUDIO_APPEND,
    EVENT_INPUT_AUDIO_COMMIT,
    EVENT_RESPONSE_CREATE,
    EVENT_SESSION_UPDATE,
    LOGGER_NAME,
    REALTIME_BETA_HEADER,
    REALTIME_URL_TEMPLATE,
)
from voice_relay.errors import RealtimeConnectionError
from voice_relay.models.realtime_schemas import (
    RealtimeEvent,
    SessionConfig,
    function_call_output_event,
    greeting_item_event,
    parse_realtime_event,
)

logger = logging.getLogger(LOGGER_NAME)

CONNECTION_TIMEOUT = 10  # seconds
SEND_TIMEOUT = 5  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32  # Small queue to prevent buffering
WS_PING_INTERVAL = 5  # 5 seconds between pings

EventHandler = Callable[[RealtimeEvent], Awaitable[None]]


class RealtimeSession:
    """
    Client for one OpenAI Realtime API conversation over WebSocket.

    The session configuration is sent exactly once, before any other client event.
    Generation requests are gated so that at most one response is in flight; a request
    made while one is active is deferred until ``response.done`` arrives.
    """

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model
        self.ws = None
        self._connection_active = False
        self._is_closing = False
        self._configured = False
        self._response_active = False
        self._response_deferred = False
        self._response_event_id: Optional[str] = None
        logger.info(f"RealtimeSession initialized with model: {model}")

    @property
    def url(self) -> str:
        return REALTIME_URL_TEMPLATE.format(model=self.model)

    @property
    def is_open(self) -> bool:
        return self._connection_active and self.ws is not None

    @property
    def closed_by_us(self) -> bool:
        """True once ``close()`` has been called, i.e. a normal end of call."""
        return self._is_closing

    @property
    def response_active(self) -> bool:
        return self._response_active

    async def connect(self) -> None:
        """
        Open the WebSocket to the Realtime endpoint.

        Raises:
            RealtimeConnectionError: On timeout or any connection failure
        """
        if self._is_closing:
            raise RealtimeConnectionError("Cannot connect - session is closing")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": REALTIME_BETA_HEADER,
        }

        try:
            logger.info(f"Connecting to OpenAI Realtime API with model: {self.model}")
            connection_start = time.time()
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,  # Disable compression for lower latency
                    additional_headers=headers
                ),
                timeout=CONNECTION_TIMEOUT
            )
            logger.debug(f"WebSocket connection established in {time.time() - connection_start:.2f} seconds")
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout while connecting to OpenAI Realtime API (after {CONNECTION_TIMEOUT}s)")
            raise RealtimeConnectionError("Timed out connecting to OpenAI Realtime API") from e
        except Exception as e:
            logger.error(f"Failed to connect to OpenAI Realtime API: {e}")
            logger.debug(f"Connection error details: {traceback.format_exc()}")
            raise RealtimeConnectionError(str(e)) from e

        self._connection_active = True
        logger.info("Successfully connected to OpenAI Realtime API")

    async def send_event(self, event: Dict[str, Any]) -> bool:
        """
        Send one client event.

        Returns:
            bool: True if the event was written to the socket, False otherwise
        """
        event_type = event.get("type")
        if not self.is_open:
            logger.debug(f"Cannot send {event_type} - connection not active")
            return False

        if not self._configured and event_type != EVENT_SESSION_UPDATE:
            logger.warning(f"Refusing to send {event_type} before session.update")
            return False

        try:
            await asyncio.wait_for(self.ws.send(json.dumps(event)), timeout=SEND_TIMEOUT)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Timeout while sending {event_type}")
            return False
        except ConnectionClosed as e:
            logger.info(f"Connection closed while sending {event_type}: {e}")
            self._connection_active = False
            return False

    async def configure(self, config: SessionConfig) -> bool:
        """Send the one and only ``session.update`` for this connection."""
        if self._configured:
            logger.warning("Session already configured; ignoring second session.update")
            return False

        # Mark first so send_event lets the session.update through
        self._configured = True
        if not await self.send_event(config.to_event()):
            self._configured = False
            return False

        logger.info(f"Session configured: voice={config.voice}, tools={len(config.tools)}")
        return True

    async def append_audio(self, payload: str) -> bool:
        return await self.send_event({"type": EVENT_INPUT_AUDIO_APPEND, "audio": payload})

    async def commit_audio(self) -> bool:
        return await self.send_event({"type": EVENT_INPUT_AUDIO_COMMIT})

    async def request_response(self) -> bool:
        """
        Ask the model to generate a response.

        If a response is already in flight the request is deferred and sent when
        that response completes, so requests never pile up. Each request carries an
        ``event_id`` so a server rejection can be matched back to it.
        """
        if self._response_active:
            logger.debug("Response in flight; deferring response.create")
            self._response_deferred = True
            return True

        event_id = f"evt_{uuid.uuid4().hex[:24]}"
        sent = await self.send_event({"type": EVENT_RESPONSE_CREATE, "event_id": event_id})
        if sent:
            self._response_active = True
            self._response_event_id = event_id
        return sent

    def mark_response_started(self) -> None:
        self._response_active = True

    async def mark_response_done(self, release_deferred: bool = True) -> None:
        """
        Clear the in-flight marker.

        Args:
            release_deferred: Send a deferred request now; when False it is dropped
        """
        self._response_active = False
        self._response_event_id = None
        deferred, self._response_deferred = self._response_deferred, False
        if deferred and release_deferred:
            await self.request_response()

    async def mark_response_rejected(self, event_id: Optional[str], release_deferred: bool = True) -> bool:
        """
        Reopen the gate when the server rejects our pending ``response.create``.

        No ``response.done`` follows a rejected request.

        Returns:
            bool: True if ``event_id`` matched the pending request
        """
        if event_id is None or event_id != self._response_event_id:
            return False
        logger.warning(f"response.create {event_id} rejected; reopening response gate")
        await self.mark_response_done(release_deferred)
        return True

    async def send_greeting(self, text: str) -> bool:
        """Seed a scripted assistant greeting and have the model speak."""
        if not await self.send_event(greeting_item_event(text)):
            return False
        return await self.request_response()

    async def send_function_output(self, call_id: str, output: str) -> bool:
        return await self.send_event(function_call_output_event(call_id, output))

    async def listen(self, handler: EventHandler) -> None:
        """
        Receive server events until the connection closes.

        Malformed messages are dropped, and an exception raised by ``handler`` for
        one event is logged without ending the loop.
        """
        if self.ws is None:
            raise RealtimeConnectionError("listen() called before connect()")

        try:
            async for message in self.ws:
                event = parse_realtime_event(message)
                if event is None:
                    continue
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(f"Error handling {event.type} event: {e}", exc_info=True)
        except ConnectionClosedOK:
            logger.info("OpenAI WebSocket connection closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"OpenAI WebSocket connection closed unexpectedly: {e}")
        finally:
            self._connection_active = False
            logger.info("Receive loop exited, connection marked as inactive")

    async def close(self) -> None:
        """Close the WebSocket connection. Safe to call more than once."""
        if self._is_closing:
            return
        logger.info("Closing OpenAI Realtime session")
        self._is_closing = True
        self._connection_active = False

        if self.ws is not None:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing OpenAI WebSocket: {e}")

        logger.info("OpenAI Realtime session closed")
