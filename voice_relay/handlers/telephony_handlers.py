"""
Handles the Twilio Media Streams leg of a call.

Ingress turns text frames from the telephony socket into start / media / stop
events and routes them: ``start`` records the stream identifier, ``media`` goes to
the buffer committer, ``stop`` ends the stream. Egress wraps AI audio in the
outbound media envelope addressed by the stream identifier.
"""

import logging
from typing import Awaitable, Callable, Dict

from fastapi.websockets import WebSocketDisconnect
from starlette.websockets import WebSocketState

from voice_relay.bot.buffer_committer import BufferCommitter
from voice_relay.config.constants import (
    LOGGER_NAME,
    TELEPHONY_EVENT_CLOSED,
    TELEPHONY_EVENT_MEDIA,
    TELEPHONY_EVENT_START,
    TELEPHONY_EVENT_STOP,
)
from voice_relay.models.call_session import CallSession
from voice_relay.models.telephony_schemas import (
    MediaMessage,
    OutboundMediaMessage,
    StartMessage,
    StopMessage,
    TelephonyEvent,
    parse_telephony_event,
)

logger = logging.getLogger(LOGGER_NAME)

# Handlers return False when the stream has ended
TelephonyHandler = Callable[[TelephonyEvent, CallSession, BufferCommitter], Awaitable[bool]]


async def handle_start(
    message: StartMessage,
    session: CallSession,
    committer: BufferCommitter,
) -> bool:
    """
    Record the stream identifier carried by the ``start`` event.

    Raises:
        StreamIdentityError: If the call already has a different stream id
    """
    session.assign_stream_sid(message.stream_sid)
    logger.info(f"[{session.call_id}] Media stream started: {message.stream_sid}")
    return True


async def handle_media(
    message: MediaMessage,
    session: CallSession,
    committer: BufferCommitter,
) -> bool:
    """Forward one caller audio frame to the buffer committer."""
    track = message.media.track
    if track and track != "inbound":
        return True
    await committer.on_frame(message.payload)
    return True


async def handle_stop(
    message: StopMessage,
    session: CallSession,
    committer: BufferCommitter,
) -> bool:
    logger.info(f"[{session.call_id}] Media stream {message.event} received")
    return False


TELEPHONY_HANDLERS: Dict[str, TelephonyHandler] = {
    TELEPHONY_EVENT_START: handle_start,
    TELEPHONY_EVENT_MEDIA: handle_media,
    TELEPHONY_EVENT_STOP: handle_stop,
    TELEPHONY_EVENT_CLOSED: handle_stop,
}


async def handle_telephony_message(
    raw: str,
    session: CallSession,
    committer: BufferCommitter,
) -> bool:
    """
    Decode and route one frame from the telephony socket.

    Malformed frames and unknown events are dropped.

    Returns:
        bool: False once the stream has ended, True otherwise
    """
    event = parse_telephony_event(raw)
    if event is None:
        return True
    handler = TELEPHONY_HANDLERS.get(event.event)
    if handler is None:
        return True
    return await handler(event, session, committer)


def telephony_open(session: CallSession) -> bool:
    websocket = session.telephony
    if websocket is None or session.closed:
        return False
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


async def send_audio_to_telephony(session: CallSession, payload: str) -> bool:
    """
    Play one chunk of AI audio to the caller.

    The chunk is dropped (not an error) when no stream id is known yet or the
    telephony socket is no longer open.

    Returns:
        bool: True if the chunk was written to the socket
    """
    if not session.stream_sid:
        logger.debug(f"[{session.call_id}] Dropping audio delta, no stream id yet")
        return False
    if not telephony_open(session):
        return False

    message = OutboundMediaMessage.wrap(session.stream_sid, payload)
    try:
        await session.telephony.send_text(message.to_text())
    except (WebSocketDisconnect, RuntimeError) as e:
        # Teardown race: the socket closed between the state check and the send
        logger.debug(f"[{session.call_id}] Audio delta dropped, telephony socket closing: {e}")
        return False
    return True
