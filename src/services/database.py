"""
Key-value persistence: get/set of JSON payloads by key.
"""
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

import aiosqlite

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Minimal persistence interface. Writes are per key; there are no
    multi-key transactions.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so stored values have the same shape as SQLite's
        self._data[key] = json.loads(json.dumps(value))


class Database(KeyValueStore):
    def __init__(self, path: str):
        self.path = path
        self._initialized = False

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        try:
            yield conn
        finally:
            await conn.close()

    async def init_tables(self) -> None:
        if self._initialized:
            return

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)
            await conn.commit()
        self._initialized = True
        logger.info("Database tables initialized")

    async def get(self, key: str) -> Optional[Any]:
        await self.init_tables()
        async with self.connect() as conn:
            cursor = await conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, key: str, value: Any) -> None:
        await self.init_tables()
        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, json.dumps(value), datetime.now(timezone.utc).isoformat()),
            )
            await conn.commit()
