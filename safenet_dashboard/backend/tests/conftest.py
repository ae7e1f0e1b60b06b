import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from safenet.config import Settings
from safenet.database import create_database
from safenet.main import create_app
from safenet.websocket import ConnectionManager


class FakeWebSocket:
    """Stand-in for a UI socket: records what it is sent."""

    def __init__(self, state=WebSocketState.CONNECTED, fail=False, app_state=WebSocketState.CONNECTED):
        self.client_state = state
        self.application_state = app_state
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, message):
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(message)

    def close(self):
        self.client_state = WebSocketState.DISCONNECTED

    @property
    def messages(self):
        return [json.loads(m) for m in self.sent]


class StalledWebSocket(FakeWebSocket):
    """A peer that stopped reading: send_text never completes."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.attempts = 0

    async def send_text(self, message):
        self.attempts += 1
        await asyncio.Event().wait()


@pytest.fixture
def fake_socket():
    return FakeWebSocket


@pytest.fixture
def stalled_socket():
    return StalledWebSocket


@pytest.fixture
def db():
    return create_database(seed=False)


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def settings():
    return Settings(TELEMETRY_ENABLED=False, SEED_DEFAULT_DATA=False, LOG_FILE=None)


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def iphone():
    return {
        "name": "iPhone 14",
        "ip": "192.168.1.102",
        "mac": "AA:BB:CC:DD:EE:01",
        "deviceType": "phone",
    }
