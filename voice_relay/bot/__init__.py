"""
Bot module bridging phone calls with the OpenAI Realtime API.

Key components:
- RealtimeSession: Client for one OpenAI Realtime conversation over WebSockets,
  sending the session configuration once and gating response requests.
- BufferCommitter: Forwards caller audio and commits the input buffer after a
  stretch of silence, then asks the model to respond.
- ToolDispatcher: Runs the model's function calls against the scheduling gateway
  and returns their results, one task per call.
- CallSupervisor: Owns both legs of one call and tears them down together.

Usage example:
```python
from voice_relay.bot import CallSupervisor

async def handle_call(websocket, settings, gateway):
    await websocket.accept()
    supervisor = CallSupervisor(websocket, settings, gateway)
    await supervisor.run()
```
"""

from voice_relay.bot.buffer_committer import BufferCommitter
from voice_relay.bot.call_supervisor import CallSupervisor
from voice_relay.bot.realtime_api import RealtimeSession
from voice_relay.bot.tool_dispatcher import ToolDispatcher

__all__ = ["BufferCommitter", "CallSupervisor", "RealtimeSession", "ToolDispatcher"]
