from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from src.server.errors import UpstreamError

from .models import TranscriptMessage
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

MESSAGES_KEY = "messages"


class TranscriptStore:
    """Per-session ordered message log kept under a single storage key.

    Every operation loads the stored list on entry and writes it back on exit.
    Operations on the same session are serialised; different sessions never
    share state. Storage failures surface as ``UpstreamError``.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        # session id -> (lock, number of operations holding or waiting on it)
        self._partition_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    async def append(self, session_id: str, message: TranscriptMessage) -> TranscriptMessage:
        async with self._partition(session_id):
            messages = await self._load(session_id)
            messages.append(message.to_dict())
            await self._call_storage(self._storage.put, session_id, MESSAGES_KEY, messages)
        logger.debug("Appended %s message to session %s (%d total)", message.role, session_id, len(messages))
        return message

    async def read_all(self, session_id: str) -> list[TranscriptMessage]:
        async with self._partition(session_id):
            messages = await self._load(session_id)
        return [TranscriptMessage.from_dict(item) for item in messages]

    async def clear(self, session_id: str) -> None:
        async with self._partition(session_id):
            await self._call_storage(self._storage.delete, session_id, MESSAGES_KEY)
        logger.info("Cleared transcript for session %s", session_id)

    @asynccontextmanager
    async def _partition(self, session_id: str) -> AsyncIterator[None]:
        lock, users = self._partition_locks.get(session_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._partition_locks[session_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._partition_locks[session_id]
            if users <= 1:
                del self._partition_locks[session_id]
            else:
                self._partition_locks[session_id] = (lock, users - 1)

    async def _load(self, session_id: str) -> list[dict]:
        stored = await self._call_storage(self._storage.get, session_id, MESSAGES_KEY)
        return list(stored) if stored else []

    @staticmethod
    async def _call_storage(operation, *args: Any) -> Any:
        try:
            return await operation(*args)
        except Exception as exc:
            logger.error("Storage call %s failed: %s", getattr(operation, "__name__", operation), exc)
            raise UpstreamError(f"Storage call failed: {exc}") from exc
