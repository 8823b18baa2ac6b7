import asyncio
import json
import logging

import pytest
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosedOK

from voice_relay.bot.realtime_api import RealtimeSession
from voice_relay.config.settings import load_settings
from voice_relay.models.call_session import CallSession


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeTelephonySocket:
    """Stands in for the Starlette WebSocket Twilio connects to."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.close_count = 0
        self._inbox = None

    @property
    def inbox(self):
        if self._inbox is None:
            self._inbox = asyncio.Queue()
        return self._inbox

    def push(self, message):
        self.inbox.put_nowait({"type": "websocket.receive", "text": json.dumps(message)})

    def push_raw(self, text):
        self.inbox.put_nowait({"type": "websocket.receive", "text": text})

    def hang_up(self):
        self.inbox.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def accept(self):
        pass

    async def receive(self):
        message = await self.inbox.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def send_text(self, text):
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        self.close_count += 1
        self.application_state = WebSocketState.DISCONNECTED


class FakeRealtimeSocket:
    """Server side of an OpenAI Realtime connection, scripted by the test."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox = None

    @property
    def inbox(self):
        if self._inbox is None:
            self._inbox = asyncio.Queue()
        return self._inbox

    def push(self, event):
        self.inbox.put_nowait(json.dumps(event))

    def drop(self):
        """Simulate the server closing the connection."""
        self.inbox.put_nowait(None)

    def sent_types(self):
        return [event["type"] for event in self.sent]

    async def send(self, text):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(text))

    async def close(self):
        if not self.closed:
            self.closed = True
            self.inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self.inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message


class StubRealtimeSession(RealtimeSession):
    """RealtimeSession whose connect() attaches a FakeRealtimeSocket instead of dialing out."""

    def __init__(self, socket=None):
        super().__init__("test-api-key", "gpt-4o-realtime-preview-test")
        self.socket = socket or FakeRealtimeSocket()

    async def connect(self):
        self.ws = self.socket
        self._connection_active = True


def open_realtime_session():
    """A RealtimeSession that is connected and configured."""
    realtime = StubRealtimeSession()
    realtime.ws = realtime.socket
    realtime._connection_active = True
    realtime._configured = True
    return realtime


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def telephony():
    return FakeTelephonySocket()


@pytest.fixture
def realtime():
    return open_realtime_session()


@pytest.fixture
def session(telephony, realtime):
    return CallSession(telephony=telephony, realtime=realtime)


@pytest.fixture
def base_env():
    return {
        "OPENAI_API_KEY": "test-api-key",
        "SQUARE_ACCESS_TOKEN": "test-square-token",
        "SQUARE_LOCATION_ID": "LOC1",
        "SQUARE_TEAM_MEMBER_ID": "TM1",
        "AGENT_GREETING": "",
        "COMMIT_POLL_INTERVAL_MS": "10",
    }


@pytest.fixture
def settings(base_env):
    return load_settings(base_env)


@pytest.fixture
def server_socket():
    return FakeRealtimeSocket()


@pytest.fixture
def stub_realtime():
    """Factory for StubRealtimeSession; every session built is kept in ``.built``."""

    class Factory:
        def __init__(self):
            self.built = []

        def __call__(self, settings=None):
            realtime = StubRealtimeSession()
            self.built.append(realtime)
            return realtime

    return Factory()
