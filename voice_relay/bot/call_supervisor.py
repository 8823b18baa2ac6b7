"""
Per-call supervisor bridging a Twilio media stream with an OpenAI Realtime session.

The supervisor owns both connections, the buffer committer's timer and the tool
dispatcher for exactly one call. It relays both directions until either leg ends,
then runs a single idempotent teardown that closes the other leg, cancels the timer
and any in-flight tool calls.
"""

import asyncio
import functools
import logging
import time
from typing import Callable, Optional

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect
from starlette.websockets import WebSocketState

from voice_relay.bot.buffer_committer import BufferCommitter
from voice_relay.bot.realtime_api import RealtimeSession
from voice_relay.bot.tool_dispatcher import ToolDispatcher
from voice_relay.bot.tools import TOOL_SCHEMAS, gateway_handlers
from voice_relay.config.constants import LOGGER_NAME
from voice_relay.config.settings import Settings
from voice_relay.errors import RealtimeConnectionError, StreamIdentityError
from voice_relay.handlers.realtime_handlers import handle_realtime_event
from voice_relay.handlers.telephony_handlers import handle_telephony_message
from voice_relay.models.call_session import CallSession
from voice_relay.models.realtime_schemas import SessionConfig
from voice_relay.services.scheduling_gateway import SquareSchedulingGateway

logger = logging.getLogger(LOGGER_NAME)

RealtimeFactory = Callable[[Settings], RealtimeSession]


def default_realtime_factory(settings: Settings) -> RealtimeSession:
    return RealtimeSession(settings.openai_api_key, settings.realtime_model)


def build_session_config(settings: Settings) -> SessionConfig:
    """Session parameters for a call, derived from settings."""
    turn_detection = {"type": "server_vad"} if settings.turn_detection == "server_vad" else None
    return SessionConfig(
        instructions=settings.instructions,
        voice=settings.voice,
        turn_detection=turn_detection,
        tools=TOOL_SCHEMAS,
        temperature=settings.temperature,
    )


class CallSupervisor:
    """
    Owns one call from telephony accept to teardown.

    Args:
        websocket: Accepted telephony WebSocket
        settings: Application settings
        gateway: Scheduling gateway shared by all calls (stateless)
        realtime_factory: Builds the AI session client; tests pass a fake
        clock: Monotonic clock for the buffer committer
    """

    def __init__(
        self,
        websocket: WebSocket,
        settings: Settings,
        gateway: SquareSchedulingGateway,
        realtime_factory: RealtimeFactory = default_realtime_factory,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.session = CallSession(telephony=websocket, realtime=realtime_factory(settings))
        self.committer = BufferCommitter(
            self.session,
            silence_threshold=settings.silence_threshold,
            poll_interval=settings.commit_poll_interval,
            clock=clock,
        )
        self.dispatcher = ToolDispatcher(
            self.session,
            gateway_handlers(gateway),
            timeout=settings.tool_timeout_seconds,
            on_undeliverable=self._on_undeliverable,
        )
        self._legs = set()
        self._closing = False
        self._greeted = False
        self._teardown_task: Optional[asyncio.Task] = None
        self._torn_down = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closing

    async def run(self) -> None:
        """Relay until either leg closes, then tear down both."""
        call_id = self.session.call_id
        logger.info(f"[{call_id}] Call session starting")
        reason = "relay ended"

        try:
            await self._open_realtime()
        except RealtimeConnectionError as e:
            logger.error(f"[{call_id}] Could not open AI session: {e}")
            await self.teardown("AI connection failed")
            return

        telephony_task = asyncio.create_task(self._relay_telephony())
        realtime_task = asyncio.create_task(self._relay_realtime())
        self._legs = {telephony_task, realtime_task}

        # With server-side VAD the service commits on its own
        if self.settings.turn_detection == "none":
            self.committer.start()

        try:
            done, _ = await asyncio.wait(self._legs, return_when=asyncio.FIRST_COMPLETED)
            reason = "telephony leg closed" if telephony_task in done else "AI leg closed"
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.error(f"[{call_id}] Relay task failed: {task.exception()!r}")
        finally:
            await self.teardown(reason)

    async def _open_realtime(self) -> None:
        realtime = self.session.realtime
        await realtime.connect()
        if not await realtime.configure(build_session_config(self.settings)):
            await realtime.close()
            raise RealtimeConnectionError("session.update could not be sent")

    async def _maybe_greet(self) -> None:
        # Greet once the stream id is known so the first audio is not dropped
        if self._greeted or not self.settings.greeting or not self.session.stream_sid:
            return
        self._greeted = True
        if not await self.session.realtime.send_greeting(self.settings.greeting):
            logger.warning(f"[{self.session.call_id}] Greeting could not be sent")

    async def _relay_telephony(self) -> None:
        session = self.session
        websocket = session.telephony
        try:
            while not session.closed:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    logger.info(f"[{session.call_id}] Telephony socket disconnected ({message.get('code')})")
                    break
                raw = message.get("text")
                if raw is None:
                    continue
                if not await handle_telephony_message(raw, session, self.committer):
                    break
                await self._maybe_greet()
        except WebSocketDisconnect as e:
            logger.info(f"[{session.call_id}] Telephony socket disconnected ({e.code})")
        except StreamIdentityError as e:
            logger.error(f"[{session.call_id}] Aborting call: {e}")

    async def _relay_realtime(self) -> None:
        session = self.session
        handler = functools.partial(
            handle_realtime_event, session=session, dispatcher=self.dispatcher
        )
        await session.realtime.listen(handler)
        if session.realtime.closed_by_us:
            logger.info(f"[{session.call_id}] AI session ended with the call")
        else:
            logger.warning(f"[{session.call_id}] AI session closed remotely; ending call")

    def _on_undeliverable(self, call_id: str) -> None:
        # An unanswered tool call would stall the model indefinitely
        if self._teardown_task is None and not self._closing:
            self._teardown_task = asyncio.create_task(
                self.teardown(f"tool result {call_id} undeliverable")
            )

    async def teardown(self, reason: str) -> None:
        """
        Close both legs and release per-call resources. Runs at most once.

        The session is marked closed before the first await so no handler relays
        anything once teardown has begun. Later callers wait for the first one to finish.
        """
        if self._closing:
            await self._torn_down.wait()
            return
        self._closing = True
        self.session.closed = True
        call_id = self.session.call_id
        logger.info(f"[{call_id}] Tearing down call: {reason}")
        try:
            await self._release(call_id)
        finally:
            self._torn_down.set()

    async def _release(self, call_id: str) -> None:
        await self.committer.stop()
        await self.dispatcher.cancel_all()

        current = asyncio.current_task()
        for task in self._legs:
            if task is not current and not task.done():
                task.cancel()

        await self.session.realtime.close()
        await self._close_telephony()

        pending = [task for task in self._legs if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info(
            f"[{call_id}] Call session closed: frames={self.session.frames_appended}, "
            f"commits={self.session.commits_sent}, tool_calls={len(self.session.tool_calls)}"
        )

    async def _close_telephony(self) -> None:
        websocket = self.session.telephony
        if (
            websocket.application_state == WebSocketState.DISCONNECTED
            or websocket.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await websocket.close()
        except (RuntimeError, OSError, WebSocketDisconnect) as e:
            logger.debug(f"[{self.session.call_id}] Telephony socket already closing: {e}")
