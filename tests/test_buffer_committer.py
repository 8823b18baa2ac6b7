"""
Unit tests for the silence-based buffer committer.

Time is driven by a fake clock and ``tick()`` is called directly, so no test
depends on real timer scheduling.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from voice_relay.bot.buffer_committer import BufferCommitter, CommitState
from voice_relay.models.call_session import CallSession, ToolCall


@pytest.fixture
def committer(session, clock):
    return BufferCommitter(session, silence_threshold=0.6, poll_interval=0.2, clock=clock)


async def feed_frames(committer, clock, count, spacing=0.02):
    for i in range(count):
        await committer.on_frame(f"frame-{i}")
        clock.advance(spacing)


@pytest.mark.asyncio
async def test_idle_call_sends_nothing(committer, realtime, clock):
    for _ in range(10):
        clock.advance(0.2)
        assert await committer.tick() is False

    assert committer.state == CommitState.IDLE
    assert realtime.socket.sent == []


@pytest.mark.asyncio
async def test_frames_are_appended_immediately(committer, session, realtime):
    await committer.on_frame("AAEC")

    assert realtime.socket.sent == [{"type": "input_audio_buffer.append", "audio": "AAEC"}]
    assert session.committed is False
    assert session.frames_appended == 1
    assert committer.state == CommitState.BUFFERING


@pytest.mark.asyncio
async def test_single_commit_after_silence(committer, session, realtime, clock):
    """Five frames then silence: exactly one commit followed by one response request."""
    await feed_frames(committer, clock, 5)

    # Ticks inside the threshold do nothing
    clock.advance(0.2)
    assert await committer.tick() is False
    clock.advance(0.2)
    assert await committer.tick() is False

    clock.advance(0.3)
    assert await committer.tick() is True

    # Further ticks while silent do not repeat the commit
    for _ in range(5):
        clock.advance(0.2)
        assert await committer.tick() is False

    assert realtime.socket.sent_types() == ["input_audio_buffer.append"] * 5 + [
        "input_audio_buffer.commit",
        "response.create",
    ]
    assert session.committed is True
    assert session.commits_sent == 1
    assert committer.state == CommitState.COMMITTED


@pytest.mark.asyncio
async def test_exactly_threshold_does_not_commit(committer, clock):
    await committer.on_frame("AAEC")
    clock.advance(0.6)

    assert await committer.tick() is False


@pytest.mark.asyncio
async def test_new_speech_rearms_commit(committer, session, realtime, clock):
    await feed_frames(committer, clock, 3)
    clock.advance(0.7)
    await committer.tick()

    await feed_frames(committer, clock, 2)
    assert committer.state == CommitState.BUFFERING
    clock.advance(0.7)
    assert await committer.tick() is True

    assert realtime.socket.sent_types().count("input_audio_buffer.commit") == 2
    assert session.commits_sent == 2


@pytest.mark.asyncio
async def test_failed_commit_is_retried_next_tick(clock):
    realtime = AsyncMock()
    realtime.append_audio.return_value = True
    realtime.commit_audio.side_effect = [False, True]
    realtime.request_response.return_value = True
    session = CallSession(realtime=realtime)
    committer = BufferCommitter(session, silence_threshold=0.6, clock=clock)

    await committer.on_frame("AAEC")
    clock.advance(0.7)
    assert await committer.tick() is False
    assert session.committed is False
    realtime.request_response.assert_not_called()

    clock.advance(0.2)
    assert await committer.tick() is True
    assert session.committed is True
    realtime.request_response.assert_awaited_once()


@pytest.mark.asyncio
async def test_dropped_append_does_not_arm_commit(clock):
    realtime = AsyncMock()
    realtime.append_audio.return_value = False
    session = CallSession(realtime=realtime)
    committer = BufferCommitter(session, clock=clock)

    await committer.on_frame("AAEC")

    assert session.committed is True
    assert session.last_append_at is None
    assert session.frames_appended == 0


@pytest.mark.asyncio
async def test_commit_held_while_tool_call_pending(committer, session, realtime, clock):
    session.register_tool_call(ToolCall(call_id="call_1", name="lookup_bookings"))
    await committer.on_frame("AAEC")
    clock.advance(0.7)

    assert await committer.tick() is False
    assert "input_audio_buffer.commit" not in realtime.socket.sent_types()

    session.tool_calls["call_1"].mark_delivered()
    assert await committer.tick() is True


@pytest.mark.asyncio
async def test_closed_session_is_inert(committer, session, realtime, clock):
    await committer.on_frame("AAEC")
    session.closed = True
    clock.advance(1.0)

    assert await committer.tick() is False
    await committer.on_frame("BBEC")
    assert realtime.socket.sent_types() == ["input_audio_buffer.append"]


@pytest.mark.asyncio
async def test_start_and_stop_timer(session, clock):
    committer = BufferCommitter(session, poll_interval=0.01, clock=clock)

    task = committer.start()
    assert committer.start() is task
    await asyncio.sleep(0.03)
    await committer.stop()

    assert task.done()
    # Stopping twice is harmless
    await committer.stop()
