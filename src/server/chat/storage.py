from __future__ import annotations

import asyncio
import copy
import json
import logging
from typing import Any, Optional, Protocol

from .sqlite import SQLiteDatabase, utc_now_str

logger = logging.getLogger(__name__)


_KV_DDL = """
CREATE TABLE IF NOT EXISTS kv_entries (
    partition TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (partition, key)
);
"""


class KeyValueStorage(Protocol):
    """Durable per-partition key-value storage holding JSON-serialisable values."""

    async def init(self) -> None: ...

    async def get(self, partition: str, key: str) -> Optional[Any]: ...

    async def put(self, partition: str, key: str, value: Any) -> None: ...

    async def delete(self, partition: str, key: str) -> bool: ...

    async def close(self) -> None: ...


class SQLiteKeyValueStorage:
    """SQLite-backed key-value storage; values are stored as JSON text."""

    def __init__(self, db_path: str) -> None:
        self._db = SQLiteDatabase(db_path)
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db.db_path

    async def init(self) -> None:
        await asyncio.to_thread(self._db.executescript, _KV_DDL)
        logger.info("Key-value storage initialised at %s", self._db.db_path)

    async def close(self) -> None:  # pragma: no cover - nothing to release
        return None

    async def get(self, partition: str, key: str) -> Optional[Any]:
        row = await asyncio.to_thread(
            self._db.fetchone,
            "SELECT value FROM kv_entries WHERE partition = ? AND key = ?",
            (partition, key),
        )
        return json.loads(row["value"]) if row else None

    async def put(self, partition: str, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        async with self._write_lock:
            await asyncio.to_thread(
                self._db.execute,
                "INSERT INTO kv_entries (partition, key, value, updated_at) VALUES (?, ?, ?, ?)"
                " ON CONFLICT(partition, key) DO UPDATE SET value = excluded.value,"
                " updated_at = excluded.updated_at",
                (partition, key, payload, utc_now_str()),
            )

    async def delete(self, partition: str, key: str) -> bool:
        async with self._write_lock:
            deleted = await asyncio.to_thread(
                self._db.execute,
                "DELETE FROM kv_entries WHERE partition = ? AND key = ?",
                (partition, key),
            )
        return deleted > 0


class InMemoryKeyValueStorage:
    """Process-local storage, used for development and tests."""

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], Any] = {}

    async def init(self) -> None:
        logger.info("Using in-memory key-value storage; data is lost on restart")

    async def close(self) -> None:
        return None

    async def get(self, partition: str, key: str) -> Optional[Any]:
        value = self._data.get((partition, key))
        return copy.deepcopy(value)

    async def put(self, partition: str, key: str, value: Any) -> None:
        self._data[(partition, key)] = copy.deepcopy(value)

    async def delete(self, partition: str, key: str) -> bool:
        return self._data.pop((partition, key), None) is not None
