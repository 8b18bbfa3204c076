"""Pytest configuration and shared fixtures."""
import pytest
from helpers import FakeClock, data_line

from fbc_chat.chat import SendThrottle, SessionContext


@pytest.fixture
def clock():
    return FakeClock(start=10_000.0)


@pytest.fixture
def throttle(clock):
    return SendThrottle(delay_ms=1000, clock=clock)


@pytest.fixture
def hello_script():
    """Reply that streams "Hi there" and finishes."""
    return [
        data_line({"content": "Hi"}),
        data_line({"content": " there"}),
        data_line({"done": True}),
    ]


@pytest.fixture
def context():
    return SessionContext(session_id="session-123")
