"""
Handles server events from the OpenAI Realtime API for one call.

Audio deltas are relayed straight to the caller in arrival order, function-call
items are handed to the tool dispatcher without waiting, and response lifecycle
events keep the generation gate in sync. Every other event type is a no-op.
"""

import logging
from typing import Awaitable, Callable, Dict

from voice_relay.bot.tool_dispatcher import ToolDispatcher
from voice_relay.config.constants import (
    EVENT_AUDIO_DELTA,
    EVENT_ERROR,
    EVENT_OUTPUT_ITEM_ADDED,
    EVENT_OUTPUT_ITEM_DONE,
    EVENT_RESPONSE_CREATED,
    EVENT_RESPONSE_DONE,
    EVENT_SESSION_CREATED,
    EVENT_SESSION_UPDATED,
    LOGGER_NAME,
)
from voice_relay.handlers.telephony_handlers import send_audio_to_telephony
from voice_relay.models.call_session import CallSession
from voice_relay.models.realtime_schemas import (
    AudioDeltaEvent,
    ErrorEvent,
    OutputItemEvent,
    RealtimeEvent,
    ResponseCreatedEvent,
    ResponseDoneEvent,
    UnknownEvent,
)

logger = logging.getLogger(LOGGER_NAME)

RealtimeHandler = Callable[[RealtimeEvent, CallSession, ToolDispatcher], Awaitable[None]]

# Expected when the committer fires on a buffer the server already consumed
BENIGN_ERROR_CODES = {"input_audio_buffer_commit_empty"}


async def handle_audio_delta(
    event: AudioDeltaEvent,
    session: CallSession,
    dispatcher: ToolDispatcher,
) -> None:
    payload = event.payload
    if payload:
        await send_audio_to_telephony(session, payload)


async def handle_output_item(
    event: OutputItemEvent,
    session: CallSession,
    dispatcher: ToolDispatcher,
) -> None:
    """
    Dispatch function-call items.

    ``added`` usually arrives before the arguments are complete, so a call is
    dispatched on ``done``, or on ``added`` only if it already carries arguments.
    The session's call registry makes the second notification a no-op.
    """
    item = event.item
    if not item.is_function_call:
        return
    if event.is_done or item.arguments:
        dispatcher.dispatch(item)


async def handle_response_created(
    event: ResponseCreatedEvent,
    session: CallSession,
    dispatcher: ToolDispatcher,
) -> None:
    session.realtime.mark_response_started()


async def handle_response_done(
    event: ResponseDoneEvent,
    session: CallSession,
    dispatcher: ToolDispatcher,
) -> None:
    status = event.response.get("status")
    if status and status != "completed":
        logger.info(f"[{session.call_id}] Response finished with status: {status}")
    # A deferred request must not overtake a pending tool result; delivery asks for its own response
    await session.realtime.mark_response_done(release_deferred=not session.has_pending_tool_calls)


async def handle_session_event(
    event: UnknownEvent,
    session: CallSession,
    dispatcher: ToolDispatcher,
) -> None:
    logger.info(f"[{session.call_id}] OpenAI {event.type}")


async def handle_error(
    event: ErrorEvent,
    session: CallSession,
    dispatcher: ToolDispatcher,
) -> None:
    error = event.error
    if error.code in BENIGN_ERROR_CODES:
        logger.debug(f"[{session.call_id}] OpenAI: {error.code}")
        return
    logger.error(
        f"[{session.call_id}] Received error from OpenAI: "
        f"{error.code or error.type}: {error.message}"
    )
    await session.realtime.mark_response_rejected(
        error.event_id, release_deferred=not session.has_pending_tool_calls
    )


REALTIME_HANDLERS: Dict[str, RealtimeHandler] = {
    EVENT_AUDIO_DELTA: handle_audio_delta,
    EVENT_OUTPUT_ITEM_ADDED: handle_output_item,
    EVENT_OUTPUT_ITEM_DONE: handle_output_item,
    EVENT_RESPONSE_CREATED: handle_response_created,
    EVENT_RESPONSE_DONE: handle_response_done,
    EVENT_ERROR: handle_error,
    EVENT_SESSION_CREATED: handle_session_event,
    EVENT_SESSION_UPDATED: handle_session_event,
}


async def handle_realtime_event(
    event: RealtimeEvent,
    session: CallSession,
    dispatcher: ToolDispatcher,
) -> None:
    """Route one server event; unrecognized types are ignored."""
    if session.closed:
        return
    handler = REALTIME_HANDLERS.get(event.type)
    if handler is None:
        logger.debug(f"[{session.call_id}] Ignoring OpenAI event: {event.type}")
        return
    await handler(event, session, dispatcher)
