"""
CO2 Client - Telemetry Context
Receives readings from the sensor feed, keeps current reading and history,
and raises high CO2 alerts.
"""

import asyncio
import logging
import signal
from collections.abc import Mapping
from typing import Any

from co2_client.core.config import Settings, settings
from co2_client.core.database import create_engine, create_session_maker, init_db
from co2_client.models.reading import Reading
from co2_client.models.settings import MonitorSettings
from co2_client.mqtt.connection import ConnectionManager, ConnectionState, Event, EventKind
from co2_client.mqtt.transport import Credentials, Endpoint, PahoTransport, TransportFactory, generate_client_id
from co2_client.services.alerts import Alert, evaluate_alert
from co2_client.services.history import HistoryBuffer
from co2_client.services.notifier import NotificationSink, build_notifier, safe_notify
from co2_client.services.settings_store import SettingsStore
from co2_client.services.storage import KeyValueStore

logger = logging.getLogger(__name__)


def endpoint_from_settings(config: Settings) -> Endpoint:
    return Endpoint(
        host=config.mqtt_broker,
        port=config.mqtt_port,
        transport=config.mqtt_transport,
        path=config.mqtt_ws_path,
        use_tls=config.mqtt_use_tls,
        keepalive=config.mqtt_keepalive,
    )


def credentials_from_settings(config: Settings) -> Credentials:
    return Credentials(
        client_id=generate_client_id(config.mqtt_client_prefix),
        username=config.mqtt_username,
        password=config.mqtt_password,
    )


class TelemetryContext:
    """Owns current reading, history and settings.

    Transport callbacks, settings updates and reconnect requests are all
    posted to one queue and applied by a single worker task.
    """

    def __init__(
        self,
        storage,
        notifier: NotificationSink,
        config: Settings = settings,
        transport_factory: TransportFactory = PahoTransport,
        call_later=None,
    ):
        self.config = config
        self.notifier = notifier
        self.settings_store = SettingsStore(storage)
        self.history_buffer = HistoryBuffer(storage)
        self.current_reading: Reading | None = None
        self.manager = ConnectionManager(
            transport_factory,
            endpoint_from_settings(config),
            credentials_from_settings(config),
            config.mqtt_topic,
            post=self.post,
            call_later=call_later,
        )
        self.running = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[Event | None] | None = None
        self._worker: asyncio.Task | None = None
        self._notify_tasks: set[asyncio.Task] = set()

    # ==================== SNAPSHOT ====================

    @property
    def connection_state(self) -> ConnectionState:
        return self.manager.state

    @property
    def is_connected(self) -> bool:
        return self.manager.state == ConnectionState.CONNECTED

    @property
    def history(self) -> tuple[Reading, ...]:
        return self.history_buffer.snapshot()

    @property
    def settings(self) -> MonitorSettings:
        return self.settings_store.current

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        """Load persisted state, start the worker and connect."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()

        await self.settings_store.load()
        await self.history_buffer.load()

        self._worker = asyncio.create_task(self._run_worker())
        self.manager.start()

    async def close(self) -> None:
        """Release the transport handle and stop the worker."""
        self.manager.shutdown()

        if self._worker is not None:
            self._queue.put_nowait(None)
            await self._worker
            self._worker = None

        # Nothing drains the queue from here on
        queue, self._queue, self._loop = self._queue, None, None
        while queue is not None and not queue.empty():
            event = queue.get_nowait()
            if event is not None and event.kind == EventKind.UPDATE_SETTINGS:
                _, future = event.payload
                if not future.done():
                    future.set_exception(RuntimeError("Telemetry context is closed"))

        if self._notify_tasks:
            await asyncio.gather(*self._notify_tasks)

        logger.info("⏹️ Telemetry context stopped")

    async def run(self) -> None:
        """Run until stop() is called."""
        await self.start()
        self.running = True
        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.close()

    def stop(self) -> None:
        self.running = False

    # ==================== ENTRY POINTS ====================

    def post(self, event: Event) -> None:
        """Queue an event. Safe to call from any thread."""
        if self._loop is None or self._queue is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropping {event.kind.value} event, loop is closed")

    def reconnect(self) -> None:
        self.post(Event(EventKind.RECONNECT))

    async def update_settings(self, partial: Mapping[str, Any]) -> MonitorSettings:
        """Merge and persist a settings change. Callers validate first."""
        if self._loop is None or self._worker is None:
            raise RuntimeError("Telemetry context is not running")

        future = self._loop.create_future()
        self.post(Event(EventKind.UPDATE_SETTINGS, payload=(dict(partial), future)))
        return await future

    async def ingest(self, reading: Reading) -> Alert | None:
        """Apply one decoded reading. Called only by the worker."""
        self.current_reading = reading
        await self.history_buffer.append(reading)

        alert = evaluate_alert(reading, self.settings_store.current)
        if alert is not None:
            logger.warning(f"🚨 CO2 {alert.level} ppm above {self.settings.high_threshold} ppm")
            task = asyncio.create_task(safe_notify(self.notifier, alert))
            self._notify_tasks.add(task)
            task.add_done_callback(self._notify_tasks.discard)
        return alert

    # ==================== WORKER ====================

    async def _run_worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    break
                await self._dispatch(event)
            except Exception as e:
                logger.error(f"❌ Error processing {event.kind.value} event: {e}")
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        if event.kind == EventKind.UPDATE_SETTINGS:
            partial, future = event.payload
            try:
                result = await self.settings_store.update(partial)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            return

        reading = self.manager.handle(event)
        if reading is not None:
            await self.ingest(reading)


async def main():
    """Entry point (headless: log and notify only)."""
    logging.basicConfig(level=settings.log_level)
    logger.info("🚀 Starting CO2 telemetry client...")

    engine = create_engine(settings.database_url)
    await init_db(engine)

    notifier = build_notifier(settings)
    context = TelemetryContext(KeyValueStore(create_session_maker(engine)), notifier)

    # Handle shutdown signals
    def signal_handler(sig, frame):
        logger.info("⏹️ Shutting down...")
        context.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await context.run()
    finally:
        if hasattr(notifier, "close"):
            await notifier.close()
        await engine.dispose()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
