from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA foreign_keys = ON;")
    connection.execute("PRAGMA journal_mode = WAL;")


_MEMORY_NAMES = {":memory:", ":memory"}


def resolve_db_path(db_path: str) -> str:
    # Connections are opened per call, so an in-memory database would not persist.
    if db_path.strip() in _MEMORY_NAMES:
        raise ValueError("In-memory SQLite databases are not supported; use TRANSCRIPT_STORAGE=memory instead")
    path = Path(db_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    if path.suffix != ".db":
        path = path.with_suffix(".db")
    return str(path)


class SQLiteDatabase:
    """Small helper shared by the SQLite-backed repositories.

    Each call opens a short-lived connection, so the helpers are safe to run
    from ``asyncio.to_thread``.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = resolve_db_path(db_path)

    @property
    def db_path(self) -> str:
        return self._db_path

    def connect(self) -> sqlite3.Connection:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        ensure_pragmas(connection)
        return connection

    def executescript(self, *statements: str) -> None:
        with self.connect() as connection:
            for statement in statements:
                connection.execute(statement)
            connection.commit()

    def execute(self, query: str, params: tuple = ()) -> int:
        with self.connect() as connection:
            cursor = connection.execute(query, params)
            connection.commit()
            return cursor.rowcount

    def fetchall(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self.connect() as connection:
            return connection.execute(query, params).fetchall()

    def fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self.connect() as connection:
            return connection.execute(query, params).fetchone()


def utc_now_str() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"


def parse_ts(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1]
    return datetime.fromisoformat(value)
