"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol names, defaults and timing values so the
telephony leg and the OpenAI Realtime leg agree on the same vocabulary.
"""

# Logger name used throughout the application
LOGGER_NAME = "voice_relay"

# OpenAI Realtime API defaults
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"
DEFAULT_VOICE = "verse"
DEFAULT_TEMPERATURE = 0.8
REALTIME_URL_TEMPLATE = "wss://api.openai.com/v1/realtime?model={model}"
REALTIME_BETA_HEADER = "realtime=v1"

# Audio format shared by both legs (8kHz mono mu-law)
AUDIO_FORMAT_G711_ULAW = "g711_ulaw"

DEFAULT_INSTRUCTIONS = (
    "You are a friendly, natural-sounding scheduling assistant. "
    "Use the tools to look up, book, cancel or reschedule appointments. "
    "Ask for the caller's phone number in full if you need it to find their bookings. "
    "If a tool reports an error, apologise briefly and offer another option."
)
DEFAULT_GREETING = "Hi! How can I help with appointments today?"

# Buffer committer timing (milliseconds)
DEFAULT_SILENCE_THRESHOLD_MS = 600
DEFAULT_COMMIT_POLL_INTERVAL_MS = 200

# Tool dispatch
DEFAULT_TOOL_TIMEOUT_SECONDS = 15.0

# Square scheduling gateway
SQUARE_PRODUCTION_URL = "https://connect.squareup.com"
SQUARE_SANDBOX_URL = "https://connect.squareupsandbox.com"
DEFAULT_SQUARE_API_VERSION = "2024-10-17"
SQUARE_HTTP_TIMEOUT = 10.0  # seconds

# Telephony (Twilio Media Streams) event names
TELEPHONY_EVENT_START = "start"
TELEPHONY_EVENT_MEDIA = "media"
TELEPHONY_EVENT_STOP = "stop"
TELEPHONY_EVENT_CLOSED = "closed"

# OpenAI Realtime client events
EVENT_SESSION_UPDATE = "session.update"
EVENT_CONVERSATION_ITEM_CREATE = "conversation.item.create"
EVENT_RESPONSE_CREATE = "response.create"
EVENT_INPUT_AUDIO_APPEND = "input_audio_buffer.append"
EVENT_INPUT_AUDIO_COMMIT = "input_audio_buffer.commit"

# OpenAI Realtime server events
EVENT_AUDIO_DELTA = "response.audio.delta"
EVENT_OUTPUT_ITEM_ADDED = "response.output_item.added"
EVENT_OUTPUT_ITEM_DONE = "response.output_item.done"
EVENT_RESPONSE_CREATED = "response.created"
EVENT_RESPONSE_DONE = "response.done"
EVENT_ERROR = "error"
EVENT_SESSION_CREATED = "session.created"
EVENT_SESSION_UPDATED = "session.updated"

ITEM_TYPE_FUNCTION_CALL = "function_call"
ITEM_TYPE_FUNCTION_CALL_OUTPUT = "function_call_output"
