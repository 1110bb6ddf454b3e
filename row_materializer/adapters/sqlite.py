"""SQLite adapter: sqlite3 for blocking access, aiosqlite for asyncio."""

from __future__ import annotations

import sqlite3
from typing import Any

from row_materializer.core.connection import ConnectionConfig
from row_materializer.core.enums import IsolationLevel
from row_materializer.core.exceptions import UnsupportedCommandError
from row_materializer.core.params import DataParameter


class SqliteAdapter:
    """SQLite driver adapter.

    Connections are opened with ``isolation_level=None`` so sqlite3 never
    starts implicit transactions, and with ``check_same_thread=False`` so
    asynchronous operations may run them on a worker thread. The
    materializer serializes access to a connection.
    """

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def paramstyle(self) -> str:
        return "named"

    @property
    def parameter_type(self) -> type[DataParameter]:
        return DataParameter

    def connect(self, config: ConnectionConfig) -> sqlite3.Connection:
        conn = sqlite3.connect(
            config.database,
            timeout=config.timeout,
            isolation_level=None,
            check_same_thread=False,
            **config.extra,
        )
        if config.database != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    async def connect_async(self, config: ConnectionConfig) -> Any:
        import aiosqlite

        conn = await aiosqlite.connect(
            config.database,
            timeout=config.timeout,
            isolation_level=None,
            **config.extra,
        )
        if config.database != ":memory:":
            await conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def begin_statement(self, isolation_level: IsolationLevel) -> list[str]:
        # SQLite transactions are serializable; IMMEDIATE takes the write lock up front
        if isolation_level is IsolationLevel.SERIALIZABLE:
            return ["BEGIN IMMEDIATE"]
        return ["BEGIN"]

    def procedure_statement(self, procedure: str, parameter_keys: list[str]) -> str:
        raise UnsupportedCommandError(self.name, "stored procedure")

    def apply_timeout(self, cursor: Any, seconds: int) -> None:
        # sqlite3 has no per-statement timeout; the busy timeout is set at connect
        return None

    async def apply_timeout_async(self, connection: Any, seconds: int) -> None:
        return None
