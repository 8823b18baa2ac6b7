"""
Handlers module for the two legs of a call.

Key components:
- telephony_handlers: Routes Twilio Media Streams events (start, media, stop) and
  writes AI audio back to the caller.
- realtime_handlers: Routes OpenAI Realtime server events (audio deltas, function
  calls, response lifecycle, errors).

Both modules dispatch through a dict keyed by event type; unknown events are ignored.
"""

# Handlers module initialization
