"""
CO2 Client - MQTT connection manager

Keeps one subscription to the sensor topic alive:

    disconnected --start()--> connecting --handshake ok--> connected
    connecting --handshake failed--> error        (retry in 10s)
    connected --connection lost--> disconnected   (retry in 5s)
    any state --reconnect()--> connecting         (retry in 1s)

Transport callbacks arrive on another thread. They are turned into Events
and posted to the owner's queue; handle() must only be called from the
single worker that drains that queue.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from co2_client.models.reading import Reading
from co2_client.mqtt.transport import Credentials, Endpoint, Transport, TransportFactory

logger = logging.getLogger(__name__)

# Retry delays, seconds
CONNECT_FAILURE_DELAY = 10.0
CONNECTION_LOST_DELAY = 5.0
RECONNECT_DELAY = 1.0

# At-most-once delivery for telemetry
SUBSCRIBE_QOS = 0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class EventKind(str, Enum):
    CONNECT_RESULT = "connect_result"
    CONNECTION_LOST = "connection_lost"
    MESSAGE = "message"
    RETRY_DUE = "retry_due"
    RECONNECT = "reconnect"
    UPDATE_SETTINGS = "update_settings"


@dataclass(frozen=True)
class Event:
    """Something that happened; consumed one at a time by the worker."""

    kind: EventKind
    generation: int = 0  # transport handle the event came from
    token: int = 0  # retry timer that fired
    success: bool = False
    reason: str = ""
    payload: Any = None


class ConnectionManager:
    """Owns the transport handle and the pending-retry slot."""

    def __init__(
        self,
        transport_factory: TransportFactory,
        endpoint: Endpoint,
        credentials: Credentials,
        topic: str,
        post: Callable[[Event], None],
        call_later: Callable[..., Any] | None = None,
    ):
        self.transport_factory = transport_factory
        self.endpoint = endpoint
        self.credentials = credentials
        self.topic = topic
        self.post = post
        self._call_later = call_later

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self._transport: Transport | None = None
        self._generation = 0
        self._retry_token = 0
        self._pending_retry: tuple[int, Any] | None = None
        self._closed = False

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def retry_pending(self) -> bool:
        return self._pending_retry is not None

    # ==================== COMMANDS ====================

    def start(self) -> None:
        """Open the first connection."""
        self._closed = False
        self._cancel_retry()
        self._open()

    def reconnect(self) -> None:
        """Explicit reconnect: drop the current session and try again shortly."""
        if self._closed:
            logger.debug("Ignoring reconnect, manager is shut down")
            return

        logger.info("🔄 Reconnect requested")
        self._cancel_retry()
        self._release()
        self._set_state(ConnectionState.CONNECTING)
        self._schedule_retry(RECONNECT_DELAY)

    def shutdown(self) -> None:
        """Stop retrying and release the transport handle. Final until start()."""
        self._closed = True
        self._cancel_retry()
        self._release()
        self._set_state(ConnectionState.DISCONNECTED)

    # ==================== EVENTS ====================

    def handle(self, event: Event) -> Reading | None:
        """Apply one event. Returns the decoded Reading for message events."""
        if event.kind == EventKind.RETRY_DUE:
            self._on_retry_due(event.token)
            return None

        if event.kind == EventKind.RECONNECT:
            self.reconnect()
            return None

        if event.generation != self._generation or self._transport is None:
            # Left over from a handle that was already released
            logger.debug(f"Ignoring stale {event.kind.value} event")
            return None

        if event.kind == EventKind.CONNECT_RESULT:
            self._on_connect_result(event.success, event.reason)
        elif event.kind == EventKind.CONNECTION_LOST:
            self._on_connection_lost(event.reason)
        elif event.kind == EventKind.MESSAGE:
            return self._decode(event.payload)
        return None

    def _on_connect_result(self, success: bool, reason: str) -> None:
        if self.state != ConnectionState.CONNECTING:
            return

        if success:
            logger.info(f"✅ Connected to MQTT broker: {self.endpoint}")
            self._set_state(ConnectionState.CONNECTED)
            self._transport.subscribe(self.topic, SUBSCRIBE_QOS)
            logger.info(f"📡 Subscribed to: {self.topic}")
        else:
            self._fail(reason)

    def _on_connection_lost(self, reason: str) -> None:
        if self.state == ConnectionState.CONNECTING:
            # Dropped before the handshake finished
            self._fail(reason)
            return

        logger.warning(f"⚠️ Disconnected from MQTT broker: {reason}")
        self._release()
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_retry(CONNECTION_LOST_DELAY)

    def _on_retry_due(self, token: int) -> None:
        if self._pending_retry is None or self._pending_retry[0] != token:
            return
        self._pending_retry = None
        self._open()

    def _decode(self, payload: bytes | str) -> Reading | None:
        try:
            reading = Reading.decode(payload)
        except ValidationError as e:
            logger.warning(f"❌ Dropping malformed message: {e.error_count()} errors")
            return None

        logger.info(f"📩 Received from {reading.device}: CO2={reading.co2_1}/{reading.co2_2}ppm")
        return reading

    # ==================== INTERNALS ====================

    def _open(self) -> None:
        """Create a fresh transport handle and start the handshake."""
        if self._closed:
            return
        self._release()
        self._generation += 1
        generation = self._generation

        def on_connect(success: bool, reason: str) -> None:
            self.post(Event(EventKind.CONNECT_RESULT, generation, success=success, reason=reason))

        def on_message(payload: bytes) -> None:
            self.post(Event(EventKind.MESSAGE, generation, payload=payload))

        def on_connection_lost(reason: str) -> None:
            self.post(Event(EventKind.CONNECTION_LOST, generation, reason=reason))

        self._set_state(ConnectionState.CONNECTING)
        self.attempts += 1
        logger.info(f"📡 Connecting to {self.endpoint} (attempt {self.attempts})")

        transport = self.transport_factory(on_connect, on_message, on_connection_lost)
        self._transport = transport
        try:
            transport.connect(self.endpoint, self.credentials)
        except Exception as e:
            self._fail(str(e))

    def _fail(self, reason: str) -> None:
        logger.error(f"❌ MQTT connection failed: {reason}")
        self._release()
        self._set_state(ConnectionState.ERROR)
        self._schedule_retry(CONNECT_FAILURE_DELAY)

    def _release(self) -> None:
        """Disconnect and forget the current handle."""
        transport = self._transport
        self._transport = None
        self._generation += 1
        if transport is None:
            return

        try:
            transport.disconnect()
        except Exception as e:
            logger.warning(f"Error while disconnecting: {e}")

    def _schedule_retry(self, delay: float) -> None:
        self._cancel_retry()
        if self._closed:
            return
        self._retry_token += 1
        token = self._retry_token

        call_later = self._call_later or asyncio.get_running_loop().call_later
        handle = call_later(delay, self.post, Event(EventKind.RETRY_DUE, token=token))
        self._pending_retry = (token, handle)
        logger.info(f"⏳ Next connection attempt in {delay:.0f}s")

    def _cancel_retry(self) -> None:
        if self._pending_retry is not None:
            _, handle = self._pending_retry
            handle.cancel()
            self._pending_retry = None

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug(f"Connection state: {self.state.value} -> {state.value}")
            self.state = state
