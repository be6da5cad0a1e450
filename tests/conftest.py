"""
Shared fixtures: isolated coordinator instances and a recording connection
"""
import json

import pytest

from mock_stream.coordinator import SessionCoordinator
from mock_stream.gateway import ConnectionState
from mock_stream.state import ConnectionRegistry, SessionStore


class FakeConnection:
    """Records every message the coordinator sends it"""

    def __init__(self, is_open=True):
        self.session_id = None
        self.is_open = is_open
        self.sent = []

    @property
    def state(self):
        if not self.is_open:
            return ConnectionState.CLOSED
        if self.session_id is not None:
            return ConnectionState.JOINED
        return ConnectionState.CONNECTED

    def send(self, text):
        if not self.is_open:
            return False
        self.sent.append(json.loads(text))
        return True

    def send_json(self, message):
        return self.send(json.dumps(message))

    def types(self):
        return [m["type"] for m in self.sent]


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def coordinator(store, registry):
    return SessionCoordinator(store, registry)


@pytest.fixture
def session(coordinator):
    return coordinator.create_session("dj-1", "Friday Night")


@pytest.fixture
def make_connection():
    return FakeConnection
