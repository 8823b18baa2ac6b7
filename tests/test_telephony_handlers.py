"""
Tests for the Twilio Media Streams handlers.
"""

import json
from unittest.mock import AsyncMock

import pytest
from starlette.websockets import WebSocketState

from voice_relay.errors import StreamIdentityError
from voice_relay.handlers.telephony_handlers import (
    handle_telephony_message,
    send_audio_to_telephony,
    telephony_open,
)


def frame(message):
    return json.dumps(message)


def start_frame(stream_sid="MZ123"):
    return frame({"event": "start", "start": {"streamSid": stream_sid, "callSid": "CA1"}})


def media_frame(payload="AAEC", track="inbound"):
    return frame({"event": "media", "media": {"payload": payload, "track": track}})


@pytest.fixture
def committer():
    return AsyncMock()


@pytest.mark.asyncio
async def test_start_records_stream_sid(session, committer):
    assert await handle_telephony_message(start_frame(), session, committer) is True
    assert session.stream_sid == "MZ123"


@pytest.mark.asyncio
async def test_repeated_start_with_same_sid_is_accepted(session, committer):
    await handle_telephony_message(start_frame(), session, committer)
    assert await handle_telephony_message(start_frame(), session, committer) is True


@pytest.mark.asyncio
async def test_conflicting_start_raises(session, committer):
    await handle_telephony_message(start_frame("MZ123"), session, committer)

    with pytest.raises(StreamIdentityError):
        await handle_telephony_message(start_frame("MZ999"), session, committer)


@pytest.mark.asyncio
async def test_media_goes_to_committer(session, committer):
    await handle_telephony_message(media_frame("AAEC"), session, committer)

    committer.on_frame.assert_awaited_once_with("AAEC")


@pytest.mark.asyncio
async def test_outbound_track_is_ignored(session, committer):
    await handle_telephony_message(media_frame(track="outbound"), session, committer)

    committer.on_frame.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["stop", "closed"])
async def test_stop_ends_stream(session, committer, name):
    assert await handle_telephony_message(frame({"event": name}), session, committer) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    ["not json", frame({"event": "connected"}), frame({"event": "media", "media": {}})],
)
async def test_unusable_frames_are_dropped(session, committer, raw):
    assert await handle_telephony_message(raw, session, committer) is True
    committer.on_frame.assert_not_called()


@pytest.mark.asyncio
async def test_audio_dropped_without_stream_sid(session, telephony):
    assert await send_audio_to_telephony(session, "AAEC") is False
    assert telephony.sent == []


@pytest.mark.asyncio
async def test_audio_wrapped_in_media_envelope(session, telephony):
    session.assign_stream_sid("MZ123")

    assert await send_audio_to_telephony(session, "AAEC") is True
    assert telephony.sent == [{"event": "media", "streamSid": "MZ123", "media": {"payload": "AAEC"}}]


@pytest.mark.asyncio
async def test_audio_dropped_after_socket_closes(session, telephony):
    session.assign_stream_sid("MZ123")
    telephony.client_state = WebSocketState.DISCONNECTED

    assert not telephony_open(session)
    assert await send_audio_to_telephony(session, "AAEC") is False
    assert telephony.sent == []


@pytest.mark.asyncio
async def test_audio_dropped_once_session_closed(session, telephony):
    session.assign_stream_sid("MZ123")
    session.closed = True

    assert await send_audio_to_telephony(session, "AAEC") is False


@pytest.mark.asyncio
async def test_send_race_with_close_is_tolerated(session, telephony):
    session.assign_stream_sid("MZ123")
    telephony.send_text = AsyncMock(side_effect=RuntimeError("Cannot call send once a close message has been sent."))

    assert await send_audio_to_telephony(session, "AAEC") is False
