"""
Shared pytest fixtures for devboard tests.
"""
import pytest
from fastapi.testclient import TestClient

from devboard.config import Settings
from devboard.main import create_app
from devboard.services.probe import DeviceInfo, ProbeResult
from devboard.services.store import DeviceStore


class FakeProbe:
    """Deterministic probe: succeeds unless the address is marked offline or raising."""

    def __init__(self):
        self.offline: set[str] = set()
        self.raising: set[str] = set()
        self.calls: list[str] = []
        self.version = "v2.4.1"
        self.uptime = "1d 16h"

    async def fetch_device_info(self, address: str) -> ProbeResult:
        self.calls.append(address)
        if address in self.raising:
            raise UnicodeError("encoding with 'idna' codec failed (UnicodeError: label empty or too long)")
        if address in self.offline:
            return ProbeResult.failed("Connection timeout")
        return ProbeResult(
            success=True,
            info=DeviceInfo(
                version=self.version,
                kernel="5.15.0",
                uptime=self.uptime,
                description="heads/master-0-g7e485ba597-dirty",
                commit="7e485ba597",
                timestamp="2026-10-19T10:00:00+00:00",
                is_online=True,
            ),
        )


class FakeWebSocket:
    """Minimal stand-in for fastapi.WebSocket used by the broadcaster."""

    def __init__(self, open_=True, fail=False):
        from fastapi.websockets import WebSocketState

        state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
        self.client_state = state
        self.application_state = WebSocketState.CONNECTED
        self.fail = fail
        self.sent: list[str] = []

    async def send_text(self, message: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def store():
    return DeviceStore(log_capacity=1000)


@pytest.fixture
def settings():
    return Settings(refresh_interval=0, jwt_secret="", seed_devices=False)


@pytest.fixture
def app(settings, probe):
    return create_app(settings=settings, probe=probe)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-token"}


@pytest.fixture
def fake_ws():
    return FakeWebSocket
