"""
Executes the model's function calls against the scheduling gateway.

Every function call the model issues gets exactly one ``function_call_output``: the
gateway result on success, or a structured ``{"ok": false, "error": ...}`` payload on
any failure. After the output is injected a new response is requested so the model
can speak the result. Calls run as separate tasks so audio relay never waits on them.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

from voice_relay.bot.tools import ARGUMENT_MODELS, ToolHandler, validate_arguments
from voice_relay.config.constants import DEFAULT_TOOL_TIMEOUT_SECONDS, LOGGER_NAME
from voice_relay.errors import SchedulingGatewayError, ToolArgumentError
from voice_relay.models.call_session import CallSession, ToolCall
from voice_relay.models.realtime_schemas import RealtimeItem

logger = logging.getLogger(LOGGER_NAME)


def parse_arguments(arguments: Optional[str]) -> Dict[str, Any]:
    """Decode the model's JSON argument string; anything unusable becomes ``{}``."""
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except (TypeError, ValueError):
        logger.warning(f"Malformed tool arguments treated as empty: {arguments[:100]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ToolDispatcher:
    """
    Runs tool calls for one call session.

    Args:
        session: The call the tool calls belong to
        handlers: Tool name -> coroutine function performing the gateway call
        timeout: Upper bound in seconds on a single gateway call
        on_undeliverable: Invoked with the call id when a result cannot be
            written to an open AI connection
    """

    def __init__(
        self,
        session: CallSession,
        handlers: Dict[str, ToolHandler],
        timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
        on_undeliverable: Optional[Callable[[str], None]] = None,
    ):
        self.session = session
        self.handlers = handlers
        self.timeout = timeout
        self.on_undeliverable = on_undeliverable
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, item: RealtimeItem) -> Optional[asyncio.Task]:
        """
        Start executing a function-call item without waiting for it.

        Returns:
            The task running the call, or None if the item was a duplicate or had no call id
        """
        call_id = item.function_call_id
        if not call_id:
            logger.warning(f"[{self.session.call_id}] Function call without a call id ignored")
            return None

        call = ToolCall(
            call_id=call_id,
            name=item.name or "",
            arguments=parse_arguments(item.arguments),
        )
        if not self.session.register_tool_call(call):
            logger.debug(f"[{self.session.call_id}] Tool call {call_id} already dispatched")
            return None

        logger.info(f"[{self.session.call_id}] Tool call {call.name} ({call_id}) issued")
        task = asyncio.create_task(self._execute(call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _execute(self, call: ToolCall) -> None:
        await self._invoke(call)
        await self._deliver(call)

    async def _invoke(self, call: ToolCall) -> None:
        handler = self.handlers.get(call.name)
        if handler is None or call.name not in ARGUMENT_MODELS:
            logger.warning(f"[{self.session.call_id}] Unknown tool requested: {call.name}")
            call.fail({"type": "unknown_tool", "message": f"Unknown tool: {call.name}"})
            return

        try:
            arguments = validate_arguments(call.name, call.arguments)
        except ToolArgumentError as e:
            logger.warning(f"[{self.session.call_id}] {e}: {e.details}")
            call.fail(e.to_payload())
            return

        try:
            result = await asyncio.wait_for(handler(**arguments), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.session.call_id}] Tool {call.name} timed out after {self.timeout}s")
            call.fail({"type": "timeout", "message": "The scheduling service did not respond in time"})
        except SchedulingGatewayError as e:
            call.fail(e.to_payload())
        except Exception as e:
            logger.error(f"[{self.session.call_id}] Tool {call.name} raised: {e}", exc_info=True)
            call.fail({"type": "internal_error", "message": "The request could not be completed"})
        else:
            call.resolve(result)
            logger.info(f"[{self.session.call_id}] Tool call {call.name} ({call.call_id}) resolved")

    async def _deliver(self, call: ToolCall) -> None:
        realtime = self.session.realtime
        output = json.dumps(call.result, default=str)

        if not await realtime.send_function_output(call.call_id, output):
            if not self.session.closed:
                logger.error(f"[{self.session.call_id}] Could not deliver result for {call.call_id}")
                if self.on_undeliverable:
                    self.on_undeliverable(call.call_id)
            return

        outcome = call.status.value
        call.mark_delivered()
        logger.info(f"[{self.session.call_id}] Tool call {call.call_id} delivered ({outcome})")
        await realtime.request_response()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def cancel_all(self) -> None:
        """Cancel every running tool call and wait for the tasks to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
