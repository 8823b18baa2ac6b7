"""
Silence-based commit timing for the caller's audio.

Twilio delivers 20ms mu-law frames continuously with no utterance boundaries, while
the Realtime API wants "append many, then commit". The committer appends every frame
as it arrives and, from a short polling timer, commits the buffer and asks for a
response once no frame has arrived for ``silence_threshold`` seconds.

This is a heuristic: a long mid-sentence pause can trigger a commit early. Both the
threshold and the poll interval are configurable.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable

from voice_relay.config.constants import (
    DEFAULT_COMMIT_POLL_INTERVAL_MS,
    DEFAULT_SILENCE_THRESHOLD_MS,
    LOGGER_NAME,
)
from voice_relay.models.call_session import CallSession

logger = logging.getLogger(LOGGER_NAME)


class CommitState(str, Enum):
    IDLE = "idle"            # no frame received yet
    BUFFERING = "buffering"  # audio appended, awaiting commit
    COMMITTED = "committed"  # buffer flushed, waiting for the next frame


class BufferCommitter:
    """
    Owns ``session.committed`` and ``session.last_append_at``.

    Transitions:
        frame-received: any state -> BUFFERING
        timer-tick:     BUFFERING -> COMMITTED once silence exceeds the threshold
                        and the commit was accepted by the connection
    """

    def __init__(
        self,
        session: CallSession,
        silence_threshold: float = DEFAULT_SILENCE_THRESHOLD_MS / 1000,
        poll_interval: float = DEFAULT_COMMIT_POLL_INTERVAL_MS / 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session
        self.silence_threshold = silence_threshold
        self.poll_interval = poll_interval
        self.clock = clock
        self._task = None

    @property
    def state(self) -> CommitState:
        if self.session.last_append_at is None:
            return CommitState.IDLE
        return CommitState.COMMITTED if self.session.committed else CommitState.BUFFERING

    async def on_frame(self, payload: str) -> None:
        """Append one frame to the AI input buffer immediately."""
        session = self.session
        if session.closed:
            return

        if not await session.realtime.append_audio(payload):
            logger.debug(f"[{session.call_id}] Dropped audio frame, AI connection not open")
            return

        session.last_append_at = self.clock()
        session.committed = False
        session.frames_appended += 1

    async def tick(self) -> bool:
        """
        Run one timer step.

        Returns:
            bool: True if a commit was issued on this tick
        """
        session = self.session
        if session.closed or session.committed or session.last_append_at is None:
            return False

        elapsed = self.clock() - session.last_append_at
        if elapsed <= self.silence_threshold:
            return False

        # A generation requested now would run before the pending tool result lands
        if session.has_pending_tool_calls:
            logger.debug(f"[{session.call_id}] Holding commit while tool calls are in flight")
            return False

        if not await session.realtime.commit_audio():
            # Connection not open; try again on the next tick
            return False

        session.committed = True
        session.commits_sent += 1
        logger.debug(
            f"[{session.call_id}] Committed input after {elapsed * 1000:.0f}ms of silence"
        )

        if not await session.realtime.request_response():
            logger.warning(f"[{session.call_id}] Commit sent but response.create failed")
        return True

    async def run(self) -> None:
        """Poll until cancelled or the session closes."""
        logger.debug(
            f"[{self.session.call_id}] Buffer committer started "
            f"(threshold={self.silence_threshold * 1000:.0f}ms, poll={self.poll_interval * 1000:.0f}ms)"
        )
        while not self.session.closed:
            await asyncio.sleep(self.poll_interval)
            await self.tick()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Cancel the timer task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
