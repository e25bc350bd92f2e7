"""
History Buffer - bounded, append-only record of past readings
Oldest readings are evicted once the buffer holds HISTORY_LIMIT entries.
"""

import logging
from collections import deque

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from co2_client.models.reading import Reading

logger = logging.getLogger(__name__)

HISTORY_KEY = "co2_historical_data"
HISTORY_LIMIT = 100


class HistoryBuffer:
    """Readings in arrival order, persisted after every append."""

    def __init__(self, storage, limit: int = HISTORY_LIMIT):
        self.storage = storage
        self.limit = limit
        self._readings: deque[Reading] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._readings)

    @property
    def latest(self) -> Reading | None:
        return self._readings[-1] if self._readings else None

    async def load(self) -> tuple[Reading, ...]:
        """Seed the buffer from storage, keeping only the newest entries."""
        try:
            saved = await self.storage.get(HISTORY_KEY)
        except (SQLAlchemyError, OSError, ValueError) as e:
            logger.error(f"Error loading historical data: {e}")
            saved = None

        self._readings.clear()
        if saved is None:
            return self.snapshot()

        if not isinstance(saved, list):
            logger.error(f"Stored history has unexpected type {type(saved).__name__}, starting empty")
            return self.snapshot()

        # Oversized blobs are cut down before decoding
        for item in saved[-self.limit:]:
            try:
                self._readings.append(Reading.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid stored reading: {e.error_count()} errors")

        logger.info(f"📚 Loaded {len(self._readings)} readings from history")
        return self.snapshot()

    async def append(self, reading: Reading) -> None:
        """Add a reading, evict the oldest beyond the limit and persist."""
        self._readings.append(reading)

        try:
            await self.storage.set(HISTORY_KEY, [r.model_dump() for r in self._readings])
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error saving historical data: {e}")

    def snapshot(self) -> tuple[Reading, ...]:
        """All readings, oldest first."""
        return tuple(self._readings)

    def slice(self, last_n: int) -> list[Reading]:
        """The most recent last_n readings, oldest first."""
        if last_n <= 0:
            return []
        return list(self._readings)[-last_n:]
