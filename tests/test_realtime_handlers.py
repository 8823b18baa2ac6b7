"""
Tests for routing OpenAI Realtime server events.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from voice_relay.bot.buffer_committer import BufferCommitter
from voice_relay.bot.tool_dispatcher import ToolDispatcher
from voice_relay.handlers.realtime_handlers import handle_realtime_event
from voice_relay.models.realtime_schemas import (
    AudioDeltaEvent,
    ErrorEvent,
    OutputItemEvent,
    ResponseCreatedEvent,
    ResponseDoneEvent,
    UnknownEvent,
)


@pytest.fixture
def dispatcher():
    return MagicMock()


def function_call_event(kind, arguments=None):
    return OutputItemEvent(
        type=f"response.output_item.{kind}",
        item={
            "id": "item_1",
            "type": "function_call",
            "call_id": "call_1",
            "name": "lookup_bookings",
            "arguments": arguments,
        },
    )


@pytest.mark.asyncio
async def test_audio_before_stream_sid_is_dropped(session, telephony, dispatcher):
    await handle_realtime_event(AudioDeltaEvent(type="response.audio.delta", delta="AAEC"), session, dispatcher)

    assert telephony.sent == []


@pytest.mark.asyncio
async def test_audio_relayed_in_order(session, telephony, dispatcher):
    session.assign_stream_sid("MZ123")

    for payload in ["AAAA", "BBBB", "CCCC"]:
        await handle_realtime_event(
            AudioDeltaEvent(type="response.audio.delta", delta=payload), session, dispatcher
        )

    assert [m["media"]["payload"] for m in telephony.sent] == ["AAAA", "BBBB", "CCCC"]
    assert all(m["streamSid"] == "MZ123" for m in telephony.sent)


@pytest.mark.asyncio
async def test_empty_delta_is_ignored(session, telephony, dispatcher):
    session.assign_stream_sid("MZ123")
    await handle_realtime_event(AudioDeltaEvent(type="response.audio.delta"), session, dispatcher)

    assert telephony.sent == []


@pytest.mark.asyncio
async def test_function_call_dispatched_when_done(session, dispatcher):
    await handle_realtime_event(function_call_event("added"), session, dispatcher)
    dispatcher.dispatch.assert_not_called()

    await handle_realtime_event(function_call_event("done", '{"phone": "1"}'), session, dispatcher)
    dispatcher.dispatch.assert_called_once()
    assert dispatcher.dispatch.call_args.args[0].call_id == "call_1"


@pytest.mark.asyncio
async def test_added_with_complete_arguments_is_dispatched(session, dispatcher):
    await handle_realtime_event(function_call_event("added", '{"phone": "1"}'), session, dispatcher)

    dispatcher.dispatch.assert_called_once()


@pytest.mark.asyncio
async def test_non_function_items_are_ignored(session, dispatcher):
    event = OutputItemEvent(
        type="response.output_item.done",
        item={"id": "item_2", "type": "message", "role": "assistant"},
    )
    await handle_realtime_event(event, session, dispatcher)

    dispatcher.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_response_lifecycle_drives_gate(session, realtime, dispatcher):
    await handle_realtime_event(ResponseCreatedEvent(type="response.created"), session, dispatcher)
    assert realtime.response_active

    await realtime.request_response()
    assert realtime.socket.sent == []

    await handle_realtime_event(
        ResponseDoneEvent(type="response.done", response={"status": "completed"}), session, dispatcher
    )
    assert realtime.socket.sent_types() == ["response.create"]


@pytest.mark.asyncio
async def test_error_events_do_not_raise(session, dispatcher):
    for code in ["input_audio_buffer_commit_empty", "rate_limit_exceeded"]:
        event = ErrorEvent(type="error", error={"code": code, "message": "x"})
        await handle_realtime_event(event, session, dispatcher)


@pytest.mark.asyncio
async def test_unknown_events_are_ignored(session, telephony, dispatcher):
    await handle_realtime_event(UnknownEvent(type="rate_limits.updated"), session, dispatcher)

    assert telephony.sent == []
    dispatcher.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_nothing_relayed_after_close(session, telephony, dispatcher):
    session.assign_stream_sid("MZ123")
    session.closed = True

    await handle_realtime_event(AudioDeltaEvent(type="response.audio.delta", delta="AAEC"), session, dispatcher)
    await handle_realtime_event(function_call_event("done", "{}"), session, dispatcher)

    assert telephony.sent == []
    dispatcher.dispatch.assert_not_called()


@pytest.fixture
def blocking_lookup():
    """A lookup_bookings handler that waits until the test releases it."""
    release = asyncio.Event()

    async def lookup_bookings(**kwargs):
        await release.wait()
        return {"ok": True, "bookings": []}

    lookup_bookings.release = release
    return lookup_bookings


@pytest.mark.asyncio
async def test_commit_deferred_during_response_waits_for_tool_result(session, realtime, clock, blocking_lookup):
    committer = BufferCommitter(session, silence_threshold=0.6, poll_interval=0.2, clock=clock)
    tools = ToolDispatcher(session, {"lookup_bookings": blocking_lookup}, timeout=5)

    # The caller pauses while a response is playing; its request is deferred
    await realtime.request_response()
    await committer.on_frame("frame-0")
    clock.advance(1)
    assert await committer.tick() is True
    assert realtime.socket.sent_types() == [
        "response.create",
        "input_audio_buffer.append",
        "input_audio_buffer.commit",
    ]

    # The same response then issues a tool call and finishes
    await handle_realtime_event(function_call_event("done", '{"phone": "3135551212"}'), session, tools)
    await asyncio.sleep(0)
    await handle_realtime_event(
        ResponseDoneEvent(type="response.done", response={"status": "completed"}), session, tools
    )

    assert session.has_pending_tool_calls
    assert realtime.socket.sent_types().count("response.create") == 1
    assert not realtime.response_active

    blocking_lookup.release.set()
    await asyncio.gather(*list(tools._tasks))

    assert realtime.socket.sent_types()[-2:] == ["conversation.item.create", "response.create"]
    assert realtime.socket.sent_types().count("response.create") == 2


@pytest.mark.asyncio
async def test_tool_result_during_response_is_followed_by_one_request(session, realtime):
    lookup = AsyncMock(return_value={"ok": True, "bookings": []})
    tools = ToolDispatcher(session, {"lookup_bookings": lookup}, timeout=5)
    await handle_realtime_event(ResponseCreatedEvent(type="response.created"), session, tools)

    await handle_realtime_event(function_call_event("done", '{"phone": "3135551212"}'), session, tools)
    await asyncio.gather(*list(tools._tasks))
    assert realtime.socket.sent_types() == ["conversation.item.create"]

    await handle_realtime_event(
        ResponseDoneEvent(type="response.done", response={"status": "completed"}), session, tools
    )
    assert realtime.socket.sent_types() == ["conversation.item.create", "response.create"]


@pytest.mark.asyncio
async def test_rejected_response_request_does_not_stall_later_turns(session, realtime, dispatcher):
    await realtime.request_response()
    event_id = realtime.socket.sent[0]["event_id"]

    rejection = ErrorEvent(
        type="error",
        error={
            "type": "invalid_request_error",
            "code": "conversation_already_has_active_response",
            "message": "Conversation already has an active response",
            "event_id": event_id,
        },
    )
    await handle_realtime_event(rejection, session, dispatcher)
    assert not realtime.response_active

    await realtime.commit_audio()
    await realtime.request_response()
    assert realtime.socket.sent_types() == [
        "response.create",
        "input_audio_buffer.commit",
        "response.create",
    ]


@pytest.mark.asyncio
async def test_unrelated_error_keeps_response_in_flight(session, realtime, dispatcher):
    await realtime.request_response()

    await handle_realtime_event(
        ErrorEvent(type="error", error={"code": "rate_limit_exceeded", "event_id": "evt_other"}),
        session,
        dispatcher,
    )

    assert realtime.response_active
