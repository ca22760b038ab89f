from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from justdraw_workspace.errors import StoreLoadCorrupt


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._values)


class SqliteKeyValueStore:
    def __init__(self, db_path: str):
        self._db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialize_schema()

    def close(self) -> None:
        self._conn.close()

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ? LIMIT 1", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO kv (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._conn.commit()

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()


def read_json_list(storage: KeyValueStore, key: str) -> list[Any] | None:
    """Return the JSON array stored under ``key``, or None when the key is absent.

    Raises StoreLoadCorrupt when the stored text is not a JSON array.
    """
    raw = storage.get(key)
    if raw is None:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError as ex:
        raise StoreLoadCorrupt(key, str(ex)) from ex
    if not isinstance(parsed, list):
        raise StoreLoadCorrupt(key, f"expected a JSON array, got {type(parsed).__name__}")
    return parsed


def write_json(storage: KeyValueStore, key: str, payload: Any) -> None:
    storage.set(key, json.dumps(payload, ensure_ascii=True))
