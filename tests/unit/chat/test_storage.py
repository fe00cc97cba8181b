import pytest

from src.server.chat.sqlite import resolve_db_path
from src.server.chat.storage import InMemoryKeyValueStorage, SQLiteKeyValueStorage


@pytest.mark.asyncio
async def test_sqlite_storage_round_trip(tmp_path):
    storage = SQLiteKeyValueStorage(str(tmp_path / "kv"))
    assert storage.db_path.endswith("kv.db")
    await storage.init()

    assert await storage.get("session-a", "messages") is None

    await storage.put("session-a", "messages", [{"role": "user", "content": "你好"}])
    await storage.put("session-a", "messages", [{"role": "user", "content": "hi"}])
    assert await storage.get("session-a", "messages") == [{"role": "user", "content": "hi"}]
    assert await storage.get("session-b", "messages") is None

    assert await storage.delete("session-a", "messages") is True
    assert await storage.delete("session-a", "messages") is False
    assert await storage.get("session-a", "messages") is None


@pytest.mark.asyncio
async def test_sqlite_storage_survives_new_instance(tmp_path):
    db_path = str(tmp_path / "kv.db")
    first = SQLiteKeyValueStorage(db_path)
    await first.init()
    await first.put("s", "messages", ["kept"])

    second = SQLiteKeyValueStorage(db_path)
    await second.init()
    assert await second.get("s", "messages") == ["kept"]


@pytest.mark.asyncio
async def test_in_memory_storage_copies_values():
    storage = InMemoryKeyValueStorage()
    await storage.init()

    value = [{"role": "user", "content": "one"}]
    await storage.put("s", "messages", value)
    value.append({"role": "user", "content": "two"})

    stored = await storage.get("s", "messages")
    assert stored == [{"role": "user", "content": "one"}]
    stored.append("mutated")
    assert await storage.get("s", "messages") == [{"role": "user", "content": "one"}]

    assert await storage.delete("s", "messages") is True
    assert await storage.get("s", "messages") is None


@pytest.mark.parametrize("db_path", [":memory:", ":memory"])
def test_in_memory_sqlite_path_is_rejected(db_path):
    with pytest.raises(ValueError, match="TRANSCRIPT_STORAGE=memory"):
        resolve_db_path(db_path)


def test_relative_path_gets_db_suffix(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert resolve_db_path("data/chat") == str(tmp_path / "data" / "chat.db")
