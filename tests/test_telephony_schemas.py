"""
Tests for the Twilio Media Streams message models.
"""

import json

import pytest

from voice_relay.models.telephony_schemas import (
    MediaMessage,
    OutboundMediaMessage,
    StartMessage,
    StopMessage,
    parse_telephony_event,
)


def test_parse_start():
    raw = json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "start": {"streamSid": "MZ123", "callSid": "CA456", "tracks": ["inbound"]},
        "streamSid": "MZ123",
    })

    event = parse_telephony_event(raw)

    assert isinstance(event, StartMessage)
    assert event.stream_sid == "MZ123"
    assert event.start.callSid == "CA456"


def test_parse_media():
    raw = json.dumps({
        "event": "media",
        "streamSid": "MZ123",
        "media": {"track": "inbound", "chunk": "2", "timestamp": "40", "payload": "//79/A=="},
    })

    event = parse_telephony_event(raw)

    assert isinstance(event, MediaMessage)
    assert event.payload == "//79/A=="
    assert event.media.track == "inbound"


@pytest.mark.parametrize("name", ["stop", "closed"])
def test_parse_stop_variants(name):
    event = parse_telephony_event(json.dumps({"event": name, "streamSid": "MZ123"}))
    assert isinstance(event, StopMessage)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps(["media"]),
        json.dumps({"event": "connected", "protocol": "Call"}),
        json.dumps({"event": "mark", "mark": {"name": "x"}}),
        json.dumps({"event": "start", "start": {}}),
        json.dumps({"event": "media", "media": {"payload": ""}}),
        json.dumps({"no_event": True}),
    ],
)
def test_unusable_frames_parse_to_none(raw):
    assert parse_telephony_event(raw) is None


def test_outbound_envelope_shape():
    message = OutboundMediaMessage.wrap("MZ123", "AAEC")

    assert json.loads(message.to_text()) == {
        "event": "media",
        "streamSid": "MZ123",
        "media": {"payload": "AAEC"},
    }
