"""
Per-call state shared by the handlers of one relayed call.

A ``CallSession`` is created by the call supervisor when the telephony socket opens
and is passed explicitly to every handler; nothing here is global. It records the
stream identifier, the timing state written by the buffer committer, and the tool
calls issued by the AI during the call.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from voice_relay.errors import StreamIdentityError


class ToolCallStatus(str, Enum):
    """Lifecycle of a tool call: issued -> resolved|failed -> delivered."""
    ISSUED = "issued"
    RESOLVED = "resolved"
    FAILED = "failed"
    DELIVERED = "delivered"


@dataclass
class ToolCall:
    """A function call requested by the AI."""

    call_id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.ISSUED
    result: Optional[Dict[str, Any]] = None

    def resolve(self, result: Dict[str, Any]) -> None:
        self.result = result
        self.status = ToolCallStatus.RESOLVED

    def fail(self, error: Dict[str, Any]) -> None:
        self.result = {"ok": False, "error": error}
        self.status = ToolCallStatus.FAILED

    def mark_delivered(self) -> None:
        self.status = ToolCallStatus.DELIVERED

    @property
    def is_terminal(self) -> bool:
        return self.status == ToolCallStatus.DELIVERED


@dataclass
class CallSession:
    """
    State for one call.

    ``committed`` and ``last_append_at`` belong to the buffer committer; other
    components only read them. ``committed`` starts True because there is no
    audio awaiting commit before the first frame.
    """

    telephony: Any = None
    realtime: Any = None
    call_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    stream_sid: Optional[str] = None
    committed: bool = True
    last_append_at: Optional[float] = None
    closed: bool = False
    frames_appended: int = 0
    commits_sent: int = 0
    tool_calls: Dict[str, ToolCall] = field(default_factory=dict)

    def assign_stream_sid(self, stream_sid: str) -> None:
        """
        Record the telephony stream identifier.

        Raises:
            StreamIdentityError: If a different identifier was already assigned
        """
        if self.stream_sid is None:
            self.stream_sid = stream_sid
        elif self.stream_sid != stream_sid:
            raise StreamIdentityError(
                f"Stream id changed from {self.stream_sid} to {stream_sid}"
            )

    def register_tool_call(self, call: ToolCall) -> bool:
        """Track a new tool call. Returns False if the call id is already known."""
        if call.call_id in self.tool_calls:
            return False
        self.tool_calls[call.call_id] = call
        return True

    @property
    def pending_tool_calls(self) -> List[ToolCall]:
        return [call for call in self.tool_calls.values() if not call.is_terminal]

    @property
    def has_pending_tool_calls(self) -> bool:
        return any(not call.is_terminal for call in self.tool_calls.values())
