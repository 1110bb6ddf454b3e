"""Provider collaborator protocols.

The materializer only talks to these interfaces. ``adapters.dbapi`` ships a
PEP 249 implementation; any other provider can plug in by satisfying them.
The ``Async*`` protocols are optional: a provider that implements them runs
async operations on the event loop instead of a worker thread.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from row_materializer.core.connection import ConnectionConfig
from row_materializer.core.enums import CommandType, ConnectionState, IsolationLevel
from row_materializer.core.params import DataParameter


@runtime_checkable
class DataReader(Protocol):
    """Forward-only, read-once cursor over one or more result sets."""

    @property
    def field_count(self) -> int: ...

    def get_name(self, ordinal: int) -> str: ...

    def get_ordinal(self, name: str) -> int:
        """Ordinal of column *name*; raises IndexError when absent."""
        ...

    def get_value(self, ordinal: int) -> Any: ...

    def is_null(self, ordinal: int) -> bool: ...

    def read(self) -> bool:
        """Advance to the next row; False when the result set is exhausted."""
        ...

    def next_result(self) -> bool:
        """Advance to the next result set; False when there is none."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class DbTransaction(Protocol):
    """An open transaction on a connection."""

    @property
    def isolation_level(self) -> IsolationLevel: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def dispose(self) -> None: ...


@runtime_checkable
class DbCommand(Protocol):
    """A provider command: text, type, timeout, transaction and parameters."""

    command_text: str
    command_type: CommandType
    command_timeout: int
    transaction: DbTransaction | None

    @property
    def parameters(self) -> list[DataParameter]: ...

    def create_parameter(self) -> DataParameter: ...

    def execute_reader(self) -> DataReader: ...

    def execute_scalar(self) -> Any: ...

    def execute_non_query(self) -> int: ...

    def dispose(self) -> None: ...


@runtime_checkable
class AsyncDbCommand(Protocol):
    """Commands that can execute natively without blocking the event loop."""

    async def execute_reader_async(self) -> DataReader: ...

    async def execute_scalar_async(self) -> Any: ...

    async def execute_non_query_async(self) -> int: ...


@runtime_checkable
class AsyncDbTransaction(Protocol):
    """Transactions that complete natively without blocking the event loop."""

    async def commit_async(self) -> None: ...

    async def rollback_async(self) -> None: ...


@runtime_checkable
class DbConnection(Protocol):
    """A provider connection."""

    @property
    def state(self) -> ConnectionState: ...

    @property
    def connection_string(self) -> str: ...

    def open(self) -> None: ...

    def close(self) -> None: ...

    def create_command(self) -> DbCommand: ...

    def begin_transaction(self, isolation_level: IsolationLevel) -> DbTransaction: ...

    def dispose(self) -> None: ...


@runtime_checkable
class AsyncDbConnection(Protocol):
    """Connections whose lifecycle runs natively on the event loop."""

    async def open_async(self) -> None: ...

    async def close_async(self) -> None: ...

    async def begin_transaction_async(self, isolation_level: IsolationLevel) -> DbTransaction: ...

    async def dispose_async(self) -> None: ...


@runtime_checkable
class DriverAdapter(Protocol):
    """Driver-specific behaviour behind the generic DB-API connection."""

    @property
    def name(self) -> str: ...

    @property
    def paramstyle(self) -> str:
        """Parameter binding style: 'named' (:name) or 'pyformat' (%(name)s)."""
        ...

    @property
    def parameter_type(self) -> type[DataParameter]: ...

    def connect(self, config: ConnectionConfig) -> Any:
        """Open a raw DB-API connection in autocommit mode."""
        ...

    def begin_statement(self, isolation_level: IsolationLevel) -> list[str]:
        """Statements that start a transaction at *isolation_level*."""
        ...

    def procedure_statement(self, procedure: str, parameter_keys: list[str]) -> str:
        """SQL that calls *procedure* with the given named placeholders."""
        ...

    def apply_timeout(self, cursor: Any, seconds: int) -> None: ...


@runtime_checkable
class AsyncDriverAdapter(Protocol):
    """Driver adapters that can also open a native asyncio connection."""

    @property
    def name(self) -> str: ...

    @property
    def paramstyle(self) -> str: ...

    async def connect_async(self, config: ConnectionConfig) -> Any:
        """Open a raw async connection in autocommit mode.

        The connection must offer ``await execute(sql, params)`` returning a
        cursor with ``description``, ``rowcount`` and awaitable ``fetchone``,
        ``fetchall`` and ``close``.
        """
        ...

    async def apply_timeout_async(self, connection: Any, seconds: int) -> None: ...
