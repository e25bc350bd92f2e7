"""
Key-value storage - get/set JSON documents by key
Used by the settings store and the history buffer, each under its own key
"""

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from co2_client.models.kv import KeyValue

logger = logging.getLogger(__name__)


class KeyValueStore:
    """JSON documents stored in the kv_store table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, key: str) -> Any | None:
        """Return the decoded document, None if the key was never written."""
        async with self.session_maker() as session:
            result = await session.execute(select(KeyValue).where(KeyValue.key == key))
            row = result.scalar_one_or_none()

        if row is None:
            return None
        return json.loads(row.value)

    async def set(self, key: str, value: Any) -> None:
        """Write a document, replacing any previous value under the key."""
        payload = json.dumps(value)

        async with self.session_maker() as session:
            try:
                row = await session.get(KeyValue, key)
                if row is None:
                    session.add(KeyValue(key=key, value=payload))
                else:
                    row.value = payload
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.debug(f"💾 Saved {key} ({len(payload)} bytes)")


class MemoryStore:
    """In-process store with the same interface, for tests and dry runs."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {
            key: json.dumps(value) for key, value in (initial or {}).items()
        }

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)
