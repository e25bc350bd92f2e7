"""
Pytest configuration and fixtures for CO2 client tests.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from co2_client.models.reading import Reading  # noqa: E402
from co2_client.mqtt.transport import Credentials, Endpoint  # noqa: E402
from co2_client.services.storage import MemoryStore  # noqa: E402


class FakeTransportFactory:
    """Builds MagicMock transports and keeps the callbacks they were given."""

    def __init__(self):
        self.created = []

    def __call__(self, on_connect, on_message, on_connection_lost):
        transport = MagicMock()
        transport.is_connected.return_value = False
        transport.on_connect = on_connect
        transport.on_message = on_message
        transport.on_connection_lost = on_connection_lost
        self.created.append(transport)
        return transport

    @property
    def latest(self):
        return self.created[-1]


class FakeTimer:
    def __init__(self, delay, callback, args):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        """Run the callback the way the event loop would."""
        if not self.cancelled:
            self.callback(*self.args)


class FakeScheduler:
    """Drop-in for loop.call_later that records timers instead of waiting."""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback, *args):
        timer = FakeTimer(delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.timers if not t.cancelled]


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def endpoint():
    return Endpoint(host="broker.test", port=8884)


@pytest.fixture
def credentials():
    return Credentials(client_id="co2-client-test", username="esp32-device1", password="secret")


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def notifier():
    sink = MagicMock()
    sink.notify = AsyncMock()
    return sink


@pytest.fixture
def sample_payload():
    """Telemetry message as published by the ESP32."""
    return {
        "timestamp": 1000,
        "co2_1": 1500,
        "co2_2": 400,
        "wifi_rssi": -61,
        "heap_free": 182344,
        "device": "esp32-co2-01",
    }


@pytest.fixture
def make_reading():
    def _make(timestamp=1000, co2_1=650, co2_2=640, device="esp32-co2-01"):
        return Reading(
            timestamp=timestamp,
            co2_1=co2_1,
            co2_2=co2_2,
            wifi_rssi=-60,
            heap_free=180000,
            device=device,
        )

    return _make
