"""
Pydantic models for OpenAI Realtime API message structures.

This module provides type-safe models for the messages exchanged with the OpenAI Realtime API,
including the one-time session configuration, the outbound client events the relay sends,
and the subset of server events the relay reacts to.
"""

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voice_relay.config.constants import (
    AUDIO_FORMAT_G711_ULAW,
    DEFAULT_TEMPERATURE,
    DEFAULT_VOICE,
    EVENT_AUDIO_DELTA,
    EVENT_CONVERSATION_ITEM_CREATE,
    EVENT_ERROR,
    EVENT_OUTPUT_ITEM_ADDED,
    EVENT_OUTPUT_ITEM_DONE,
    EVENT_RESPONSE_CREATED,
    EVENT_RESPONSE_DONE,
    EVENT_SESSION_UPDATE,
    ITEM_TYPE_FUNCTION_CALL,
    ITEM_TYPE_FUNCTION_CALL_OUTPUT,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)


class SessionConfig(BaseModel):
    """Session parameters sent once when the AI connection opens."""

    model_config = ConfigDict(frozen=True)

    instructions: str
    voice: str = DEFAULT_VOICE
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    input_audio_format: str = AUDIO_FORMAT_G711_ULAW
    output_audio_format: str = AUDIO_FORMAT_G711_ULAW
    turn_detection: Optional[Dict[str, Any]] = None
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    temperature: float = DEFAULT_TEMPERATURE

    def to_event(self) -> Dict[str, Any]:
        """Render as a ``session.update`` client event."""
        session = self.model_dump()
        session["tool_choice"] = "auto" if self.tools else "none"
        return {"type": EVENT_SESSION_UPDATE, "session": session}


def function_call_output_event(call_id: str, output: str) -> Dict[str, Any]:
    """Build the ``conversation.item.create`` event carrying a tool result."""
    return {
        "type": EVENT_CONVERSATION_ITEM_CREATE,
        "item": {
            "type": ITEM_TYPE_FUNCTION_CALL_OUTPUT,
            "call_id": call_id,
            "output": output,
        },
    }


def greeting_item_event(text: str) -> Dict[str, Any]:
    """Build the scripted assistant greeting item."""
    return {
        "type": EVENT_CONVERSATION_ITEM_CREATE,
        "item": {
            "type": "message",
            "role": "assistant",
            "content": [{"type": "text", "text": text}],
        },
    }


# Server events

class RealtimeBaseMessage(BaseModel):
    """Base model for Realtime API server events."""

    model_config = ConfigDict(extra="ignore")

    type: str
    event_id: Optional[str] = None


class AudioDeltaEvent(RealtimeBaseMessage):
    """A chunk of synthesized audio (base64, output audio format)."""

    type: Literal["response.audio.delta"]
    delta: Optional[str] = None
    audio: Optional[str] = None
    item_id: Optional[str] = None

    @property
    def payload(self) -> Optional[str]:
        return self.delta or self.audio


class RealtimeItem(BaseModel):
    """Conversation item reported by output_item notifications."""

    model_config = ConfigDict(extra="ignore")

    type: str
    id: Optional[str] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    status: Optional[str] = None

    @property
    def is_function_call(self) -> bool:
        return self.type == ITEM_TYPE_FUNCTION_CALL

    @property
    def function_call_id(self) -> Optional[str]:
        # call_id addresses the output; fall back to the item id for older servers
        return self.call_id or self.id


class OutputItemEvent(RealtimeBaseMessage):
    """``response.output_item.added`` or ``response.output_item.done``."""

    type: Literal["response.output_item.added", "response.output_item.done"]
    item: RealtimeItem

    @property
    def is_done(self) -> bool:
        return self.type == EVENT_OUTPUT_ITEM_DONE


class ResponseCreatedEvent(RealtimeBaseMessage):
    type: Literal["response.created"]
    response: Dict[str, Any] = Field(default_factory=dict)


class ResponseDoneEvent(RealtimeBaseMessage):
    type: Literal["response.done"]
    response: Dict[str, Any] = Field(default_factory=dict)


class ErrorDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None
    # Client event that caused the error, when there is one
    event_id: Optional[str] = None


class ErrorEvent(RealtimeBaseMessage):
    """Error reported by the Realtime API; the session stays open."""

    type: Literal["error"]
    error: ErrorDetails = Field(default_factory=ErrorDetails)


class UnknownEvent(RealtimeBaseMessage):
    """Any server event the relay does not act on."""


RealtimeEvent = Union[
    AudioDeltaEvent,
    OutputItemEvent,
    ResponseCreatedEvent,
    ResponseDoneEvent,
    ErrorEvent,
    UnknownEvent,
]

EVENT_MODELS = {
    EVENT_AUDIO_DELTA: AudioDeltaEvent,
    EVENT_OUTPUT_ITEM_ADDED: OutputItemEvent,
    EVENT_OUTPUT_ITEM_DONE: OutputItemEvent,
    EVENT_RESPONSE_CREATED: ResponseCreatedEvent,
    EVENT_RESPONSE_DONE: ResponseDoneEvent,
    EVENT_ERROR: ErrorEvent,
}


def parse_realtime_event(raw: Union[str, bytes]) -> Optional[RealtimeEvent]:
    """
    Decode one server message.

    Returns:
        A typed event, ``UnknownEvent`` for unrecognized types, or None if the
        message is malformed and should be dropped.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Received invalid JSON from OpenAI: {str(raw)[:100]}...")
        return None

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        logger.warning("Dropping OpenAI message without a type tag")
        return None

    model = EVENT_MODELS.get(data["type"], UnknownEvent)
    try:
        return model(**data)
    except ValidationError as e:
        logger.warning(f"Invalid {data['type']} event dropped: {e}")
        return None
