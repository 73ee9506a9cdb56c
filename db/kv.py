"""
Durable on-device key-value store.

Holds the local provider's collections, the persisted DatabaseConfig and the
schema version. Values are strings; JSON helpers sit on top.

SQLiteKeyValueStore is the on-device store. MemoryKeyValueStore keeps
everything in a dict and is used in tests.
"""

import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from utils.logging import get_logger

logger = get_logger("db.kv")


class KeyValueStore(ABC):
    """Async string key-value store."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    async def multi_remove(self, keys: list[str]) -> None:
        pass

    @abstractmethod
    async def get_all_keys(self) -> list[str]:
        pass

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""
        return None

    async def get_json(self, key: str) -> Any:
        raw = await self.get_item(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: Any) -> None:
        await self.set_item(key, json.dumps(value))


class MemoryKeyValueStore(KeyValueStore):
    """In-process store. Contents are lost when the object is dropped."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    @property
    def name(self) -> str:
        return "memory"

    async def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def multi_remove(self, keys: list[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def get_all_keys(self) -> list[str]:
        return list(self._data)


class SQLiteKeyValueStore(KeyValueStore):
    """
    Key-value store in a single SQLite table.

    Each call opens its own connection in a worker thread so the event loop
    never blocks on disk I/O.
    """

    TABLE = "kv_store"

    def __init__(self, db_path: str | Path):
        self._db_path = str(db_path)
        self._initialized = False

    @property
    def name(self) -> str:
        return "sqlite"

    def _conn(self) -> sqlite3.Connection:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path, timeout=5.0, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        if not self._initialized:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.TABLE} ("
                "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            self._initialized = True
            logger.debug(f"[KV] Opened {self._db_path}")
        return conn

    def _get_sync(self, key: str) -> str | None:
        conn = self._conn()
        try:
            row = conn.execute(
                f"SELECT value FROM {self.TABLE} WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _set_sync(self, key: str, value: str) -> None:
        conn = self._conn()
        try:
            conn.execute(
                f"INSERT INTO {self.TABLE} (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
        finally:
            conn.close()

    def _remove_sync(self, keys: list[str]) -> None:
        if not keys:
            return
        conn = self._conn()
        try:
            conn.executemany(
                f"DELETE FROM {self.TABLE} WHERE key = ?", [(k,) for k in keys]
            )
        finally:
            conn.close()

    def _keys_sync(self) -> list[str]:
        conn = self._conn()
        try:
            return [row[0] for row in conn.execute(f"SELECT key FROM {self.TABLE}")]
        finally:
            conn.close()

    async def get_item(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove_sync, [key])

    async def multi_remove(self, keys: list[str]) -> None:
        await asyncio.to_thread(self._remove_sync, list(keys))

    async def get_all_keys(self) -> list[str]:
        return await asyncio.to_thread(self._keys_sync)
