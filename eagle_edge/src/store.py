"""
Persistent key-value variable store using async SQLite.

Every published metric and every billing counter is a string variable
addressed by ``(namespace, name)`` and scoped to one device id. Values
survive process restarts because the store is a SQLite database file in
WAL mode, so CLI actions and the running daemon share the same state.

Operations:
- get(namespace, name): Current value, or None if never set.
- set(namespace, name, value): Write only when the value changed.
- force_set(namespace, name, value): Always write (refreshes updated_at).
- define(namespace, name, default): Create with default if missing.
- close(): Close the underlying database connection.

Supports async context manager protocol for clean resource management.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS variables (
    device_id TEXT NOT NULL,
    namespace TEXT NOT NULL,
    name TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (device_id, namespace, name)
);
"""

_SELECT_SQL = """\
SELECT value FROM variables
WHERE device_id = ? AND namespace = ? AND name = ?;
"""

_UPSERT_SQL = """\
INSERT INTO variables (device_id, namespace, name, value)
VALUES (?, ?, ?, ?)
ON CONFLICT (device_id, namespace, name)
DO UPDATE SET value = excluded.value, updated_at = datetime('now');
"""


class VariableStore:
    """Durable namespaced variable store backed by a SQLite database.

    Values are stored as TEXT; callers convert to and from their own types
    (see :class:`~eagle_edge.src.repository.MeterRepository`).

    Args:
        path: Filesystem path for the SQLite database file.
              Accepts ``str`` or ``pathlib.Path``.
        device_id: Device the variables belong to.

    Usage::

        async with VariableStore("/data/eagle.db", device_id="eagle") as store:
            await store.set("energy", "Watts", "1105")
            watts = await store.get("energy", "Watts")
    """

    def __init__(self, path: str | Path, *, device_id: str) -> None:
        self._path = Path(path)
        self._device_id = device_id
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        """Open the SQLite connection and initialize the schema."""
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute(_CREATE_TABLE_SQL)
        await self._db.commit()

    async def close(self) -> None:
        """Close the underlying SQLite connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> VariableStore:
        """Enter async context manager: open the database."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager: close the database."""
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, namespace: str, name: str) -> str | None:
        """Return the stored value, or ``None`` if the variable does not exist."""
        assert self._db is not None, "Store not opened. Call open() or use async with."
        cursor = await self._db.execute(_SELECT_SQL, (self._device_id, namespace, name))
        row = await cursor.fetchone()
        return None if row is None else row[0]

    async def set(self, namespace: str, name: str, value: object) -> bool:
        """Store *value* only if it differs from the current value.

        ``None`` values are ignored.

        Returns:
            ``True`` if a write happened.
        """
        if value is None:
            return False
        text = str(value)
        if await self.get(namespace, name) == text:
            return False
        await self.force_set(namespace, name, text)
        return True

    async def force_set(self, namespace: str, name: str, value: object) -> None:
        """Store *value* unconditionally."""
        assert self._db is not None, "Store not opened. Call open() or use async with."
        await self._db.execute(
            _UPSERT_SQL, (self._device_id, namespace, name, str(value))
        )
        await self._db.commit()

    async def define(self, namespace: str, name: str, default: object = "") -> str:
        """Return the variable, creating it with *default* if it is missing."""
        value = await self.get(namespace, name)
        if value is None:
            value = str(default)
            await self.force_set(namespace, name, value)
        return value
