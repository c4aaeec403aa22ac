"""Shared fixtures for the PortalBot test suite."""

import os
import tempfile

# Keep the log file and user config out of the real home directory
os.environ.setdefault("PORTALBOT_HOME", tempfile.mkdtemp(prefix="portalbot-test-"))

import pytest
from fastapi.testclient import TestClient


_INSTANT_CHAT = {
    "min_delay_seconds": 0,
    "max_delay_seconds": 0,
    "welcome_delay_seconds": 0,
}


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "conversations.json"


@pytest.fixture
def app(state_file):
    """A fresh PortalBot app with no thinking delay and an isolated state file."""
    from portalbot.api import create_app
    return create_app({
        "sessions": {"state_file": str(state_file)},
        "chat": dict(_INSTANT_CHAT),
    })


@pytest.fixture
def client(app):
    """TestClient with the lifespan running (persistence and reaper started)."""
    with TestClient(app) as c:
        yield c
