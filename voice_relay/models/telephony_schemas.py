"""
Pydantic models for the Twilio Media Streams WebSocket protocol.

This module defines the inbound events the relay understands (start, media, stop)
and the outbound media envelope used to play AI audio back to the caller. Anything
else on the socket is parsed to ``None`` and ignored by the ingress handlers.
"""

import json
import logging
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voice_relay.config.constants import (
    LOGGER_NAME,
    TELEPHONY_EVENT_CLOSED,
    TELEPHONY_EVENT_MEDIA,
    TELEPHONY_EVENT_START,
    TELEPHONY_EVENT_STOP,
)

logger = logging.getLogger(LOGGER_NAME)


class TelephonyMessage(BaseModel):
    """Base model for all Media Streams messages."""

    model_config = ConfigDict(extra="ignore")

    event: str = Field(..., description="Event discriminator")


class StartDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    streamSid: str = Field(..., min_length=1)
    callSid: Optional[str] = None


class StartMessage(TelephonyMessage):
    """Stream start; carries the stream identifier for the call."""

    event: Literal["start"]
    start: StartDetails

    @property
    def stream_sid(self) -> str:
        return self.start.streamSid


class MediaPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payload: str = Field(..., min_length=1, description="Base64 mu-law audio")
    track: Optional[str] = None
    timestamp: Optional[str] = None


class MediaMessage(TelephonyMessage):
    """One inbound audio frame."""

    event: Literal["media"]
    media: MediaPayload

    @property
    def payload(self) -> str:
        return self.media.payload


class StopMessage(TelephonyMessage):
    """End of stream. Twilio sends ``stop``; some proxies send ``closed``."""

    event: Literal["stop", "closed"]


class OutboundMediaMessage(BaseModel):
    """Envelope for audio sent back to the caller."""

    event: Literal["media"] = "media"
    streamSid: str
    media: MediaPayload

    @classmethod
    def wrap(cls, stream_sid: str, payload: str) -> "OutboundMediaMessage":
        return cls(streamSid=stream_sid, media=MediaPayload(payload=payload))

    def to_text(self) -> str:
        return self.model_dump_json(exclude_none=True)


TelephonyEvent = Union[StartMessage, MediaMessage, StopMessage]

EVENT_MODELS = {
    TELEPHONY_EVENT_START: StartMessage,
    TELEPHONY_EVENT_MEDIA: MediaMessage,
    TELEPHONY_EVENT_STOP: StopMessage,
    TELEPHONY_EVENT_CLOSED: StopMessage,
}


def parse_telephony_event(raw: str) -> Optional[TelephonyEvent]:
    """
    Decode one text frame from the telephony socket.

    Returns:
        The typed event, or None for malformed frames and event kinds the relay
        does not act on.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Dropping non-JSON telephony frame: {str(raw)[:100]}")
        return None

    if not isinstance(data, dict):
        logger.warning("Dropping telephony frame that is not a JSON object")
        return None

    model = EVENT_MODELS.get(data.get("event"))
    if model is None:
        logger.debug(f"Ignoring telephony event: {data.get('event')}")
        return None

    try:
        return model(**data)
    except ValidationError as e:
        logger.warning(f"Invalid {data.get('event')} event dropped: {e}")
        return None
