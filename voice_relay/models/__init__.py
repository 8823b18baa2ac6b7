"""
Models module for message schemas and per-call state.

Key components:
- telephony_schemas: Pydantic models for Twilio Media Streams events and the
  outbound media envelope.
- realtime_schemas: Pydantic models for the OpenAI Realtime session configuration,
  client events and the server events the relay reacts to.
- call_session: State of one call, including the tool calls it has issued.

Usage examples:
```python
from voice_relay.models import OutboundMediaMessage, parse_telephony_event

event = parse_telephony_event(raw_frame)
reply = OutboundMediaMessage.wrap(stream_sid, payload)
await websocket.send_text(reply.to_text())
```
"""

from voice_relay.models.call_session import CallSession, ToolCall, ToolCallStatus
from voice_relay.models.realtime_schemas import (
    AudioDeltaEvent,
    ErrorEvent,
    OutputItemEvent,
    RealtimeEvent,
    RealtimeItem,
    ResponseCreatedEvent,
    ResponseDoneEvent,
    SessionConfig,
    UnknownEvent,
    parse_realtime_event,
)
from voice_relay.models.telephony_schemas import (
    MediaMessage,
    OutboundMediaMessage,
    StartMessage,
    StopMessage,
    TelephonyEvent,
    parse_telephony_event,
)
