"""
CO2 Client - MQTT transport
Thin wrapper over paho-mqtt. Connection retries are NOT done here;
the connection manager decides when to try again.
"""

import logging
import random
import string
from dataclasses import dataclass
from typing import Callable, Protocol

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

ConnectCallback = Callable[[bool, str], None]
MessageCallback = Callable[[bytes], None]
LostCallback = Callable[[str], None]


@dataclass(frozen=True)
class Endpoint:
    """Where the broker lives."""

    host: str
    port: int
    transport: str = "websockets"
    path: str = "/mqtt"
    use_tls: bool = True
    keepalive: int = 60

    def __str__(self) -> str:
        scheme = ("wss" if self.use_tls else "ws") if self.transport == "websockets" else "mqtt"
        return f"{scheme}://{self.host}:{self.port}"


@dataclass(frozen=True)
class Credentials:
    client_id: str
    username: str = ""
    password: str = ""


def generate_client_id(prefix: str) -> str:
    """Random client id so several clients can share one broker account."""
    chars = string.ascii_lowercase + string.digits
    return f"{prefix}-{''.join(random.choices(chars, k=8))}"


class Transport(Protocol):
    """What the connection manager needs from a pub/sub client.

    connect() returns immediately; the outcome arrives through the
    on_connect callback given to the factory.
    """

    def connect(self, endpoint: Endpoint, credentials: Credentials) -> None: ...

    def subscribe(self, topic: str, qos: int) -> None: ...

    def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...


TransportFactory = Callable[[ConnectCallback, MessageCallback, LostCallback], Transport]


class PahoTransport:
    """One paho-mqtt client handle. Callbacks fire on paho's network thread."""

    def __init__(
        self,
        on_connect: ConnectCallback,
        on_message: MessageCallback,
        on_connection_lost: LostCallback,
    ):
        self.on_connect = on_connect
        self.on_message = on_message
        self.on_connection_lost = on_connection_lost
        self.client: mqtt.Client | None = None
        self._closed = False

    def connect(self, endpoint: Endpoint, credentials: Credentials) -> None:
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=credentials.client_id,
            transport=endpoint.transport,
            reconnect_on_failure=False,
        )
        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self.client = client

        try:
            if endpoint.transport == "websockets":
                client.ws_set_options(path=endpoint.path)
            if endpoint.use_tls:
                client.tls_set()
            if credentials.username:
                client.username_pw_set(credentials.username, credentials.password)

            client.connect_async(endpoint.host, endpoint.port, keepalive=endpoint.keepalive)
            client.loop_start()
        except (OSError, ValueError) as e:
            self.on_connect(False, str(e))

    def subscribe(self, topic: str, qos: int) -> None:
        if self.client is None:
            return
        result, _ = self.client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"❌ Subscribe to {topic} failed: {mqtt.error_string(result)}")

    def disconnect(self) -> None:
        """Release the handle. Safe to call in any state."""
        client = self.client
        if client is None:
            return

        self._closed = True
        if client.is_connected():
            client.disconnect()
        client.loop_stop()
        self.client = None

    def is_connected(self) -> bool:
        return self.client is not None and self.client.is_connected()

    # paho callbacks (network thread)

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if self._closed:
            return
        if reason_code.is_failure:
            self.on_connect(False, str(reason_code))
        else:
            self.on_connect(True, str(reason_code))

    def _on_connect_fail(self, client, userdata):
        if not self._closed:
            self.on_connect(False, "connection refused or unreachable")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if not self._closed:
            self.on_connection_lost(str(reason_code))

    def _on_message(self, client, userdata, msg):
        if not self._closed:
            self.on_message(msg.payload)
