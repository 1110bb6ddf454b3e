"""Generic PEP 249 provider.

Wraps a raw DB-API connection behind the collaborator protocols. Driver
specifics (connecting, paramstyle, transaction start, procedure calls and
timeouts) come from a :class:`DriverAdapter`. The raw connection runs in
autocommit mode; transactions are explicit ``BEGIN``/``COMMIT``/``ROLLBACK``.

The ``AsyncDbApi*`` classes do the same over asyncio drivers, so async
execution never leaves the event loop.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from row_materializer.core.data import DataColumn, DataTable, DataTableReader
from row_materializer.core.enums import (
    CommandType,
    ConnectionState,
    IsolationLevel,
    ParameterDirection,
)
from row_materializer.core.exceptions import (
    AsyncOnlyError,
    ConnectionNotOpenError,
    InvalidArgumentError,
)
from row_materializer.core.params import (
    DEFAULT_PARAMETER_PREFIX,
    DataParameter,
    normalize_params,
    strip_prefix,
)

if TYPE_CHECKING:
    from row_materializer.adapters.protocol import AsyncDriverAdapter, DriverAdapter
    from row_materializer.core.connection import ConnectionConfig

logger = logging.getLogger(__name__)

# Directions whose values are sent to the driver
_SENT_DIRECTIONS = (ParameterDirection.INPUT, ParameterDirection.INPUT_OUTPUT)


class DbApiConnection:
    """Provider connection over a DB-API driver.

    Args:
        config: Connection settings.
        adapter: Driver adapter that opens raw connections.
        parameter_prefix: Placeholder prefix used in command text.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        adapter: DriverAdapter,
        parameter_prefix: str = DEFAULT_PARAMETER_PREFIX,
    ) -> None:
        self._config = config
        self._adapter = adapter
        self._parameter_prefix = parameter_prefix
        self._raw: Any = None

    @property
    def adapter(self) -> DriverAdapter:
        return self._adapter

    @property
    def parameter_prefix(self) -> str:
        return self._parameter_prefix

    @property
    def state(self) -> ConnectionState:
        return ConnectionState.CLOSED if self._raw is None else ConnectionState.OPEN

    @property
    def connection_string(self) -> str:
        return self._config.describe()

    @property
    def raw_connection(self) -> Any:
        """The underlying driver connection.

        Raises:
            ConnectionNotOpenError: If the connection is closed.
        """
        if self._raw is None:
            raise ConnectionNotOpenError(self.state.value)
        return self._raw

    def open(self) -> None:
        if self._raw is not None:
            return
        self._raw = self._adapter.connect(self._config)
        logger.debug("Opened %s connection to %s", self._adapter.name, self.connection_string)

    def close(self) -> None:
        if self._raw is None:
            return
        raw, self._raw = self._raw, None
        raw.close()
        logger.debug("Closed %s connection", self._adapter.name)

    def create_command(self) -> DbApiCommand:
        return DbApiCommand(self)

    def begin_transaction(self, isolation_level: IsolationLevel) -> DbApiTransaction:
        for statement in self._adapter.begin_statement(isolation_level):
            self.execute_control(statement)
        return DbApiTransaction(self, isolation_level)

    def execute_control(self, statement: str) -> None:
        """Run a parameterless control statement (BEGIN, COMMIT, ...)."""
        cursor = self.raw_connection.cursor()
        try:
            cursor.execute(statement)
        finally:
            cursor.close()

    def dispose(self) -> None:
        self.close()


class DbApiTransaction:
    """Explicit transaction on a :class:`DbApiConnection`."""

    def __init__(self, connection: DbApiConnection, isolation_level: IsolationLevel) -> None:
        self._connection = connection
        self._isolation_level = isolation_level
        self._completed = False

    @property
    def isolation_level(self) -> IsolationLevel:
        return self._isolation_level

    @property
    def completed(self) -> bool:
        return self._completed

    def commit(self) -> None:
        self._connection.execute_control("COMMIT")
        self._completed = True

    def rollback(self) -> None:
        self._connection.execute_control("ROLLBACK")
        self._completed = True

    def dispose(self) -> None:
        """Roll back if still pending on an open connection."""
        if not self._completed and self._connection.state is ConnectionState.OPEN:
            self.rollback()
        self._completed = True


class DbApiCommand:
    """Command over a DB-API cursor."""

    def __init__(self, connection: DbApiConnection) -> None:
        self._connection = connection
        self._parameters: list[DataParameter] = []
        self.command_text = ""
        self.command_type = CommandType.TEXT
        self.command_timeout = 30
        self.transaction: DbApiTransaction | None = None

    @property
    def parameters(self) -> list[DataParameter]:
        return self._parameters

    def create_parameter(self) -> DataParameter:
        return self._connection.adapter.parameter_type()

    def statement(self) -> tuple[str, dict[str, Any]]:
        """The SQL and driver parameters this command executes.

        Output and return-value parameters are not sent to the driver.
        """
        adapter = self._connection.adapter
        prefix = self._connection.parameter_prefix
        params = {
            strip_prefix(parameter.name, prefix): parameter.driver_value
            for parameter in self._parameters
            if parameter.direction in _SENT_DIRECTIONS
        }

        if self.command_type is CommandType.STORED_PROCEDURE:
            return adapter.procedure_statement(self.command_text, list(params)), params
        if self.command_type is CommandType.TABLE_DIRECT:
            return f"SELECT * FROM {self.command_text}", {}
        return normalize_params(self.command_text, prefix, adapter.paramstyle), params

    def _execute(self) -> Any:
        cursor = self._connection.raw_connection.cursor()
        try:
            self._connection.adapter.apply_timeout(cursor, self.command_timeout)
            sql, params = self.statement()
            cursor.execute(sql, params)
        except BaseException:
            cursor.close()
            raise
        return cursor

    def execute_reader(self) -> DbApiDataReader:
        return DbApiDataReader(self._execute())

    def execute_scalar(self) -> Any:
        """First column of the first row, or None when there is no row."""
        cursor = self._execute()
        try:
            if cursor.description is None:
                return None
            row = cursor.fetchone()
            return None if row is None else row[0]
        finally:
            cursor.close()

    def execute_non_query(self) -> int:
        """Affected row count as reported by the driver (-1 when unknown)."""
        cursor = self._execute()
        try:
            return int(cursor.rowcount)
        finally:
            cursor.close()

    def dispose(self) -> None:
        self._parameters.clear()
        self.transaction = None


class DbApiDataReader:
    """Forward-only reader over a DB-API cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor
        self._row: tuple[Any, ...] | None = None
        self._closed = False
        self._columns = self._describe()

    def _describe(self) -> list[str]:
        description = self._cursor.description
        return [column[0] for column in description] if description else []

    @property
    def field_count(self) -> int:
        return len(self._columns)

    def get_name(self, ordinal: int) -> str:
        return self._columns[ordinal]

    def get_ordinal(self, name: str) -> int:
        try:
            return self._columns.index(name)
        except ValueError:
            raise IndexError(f"Column '{name}' not found") from None

    def get_value(self, ordinal: int) -> Any:
        if self._row is None:
            raise InvalidArgumentError("reader", "no current row")
        return self._row[ordinal]

    def is_null(self, ordinal: int) -> bool:
        return self.get_value(ordinal) is None

    def read(self) -> bool:
        if self._closed or not self._columns:
            self._row = None
            return False
        row = self._cursor.fetchone()
        if row is None:
            self._row = None
            return False
        self._row = tuple(row.values()) if isinstance(row, Mapping) else tuple(row)
        return True

    def next_result(self) -> bool:
        nextset = getattr(self._cursor, "nextset", None)
        if self._closed or nextset is None or not nextset():
            return False
        self._columns = self._describe()
        self._row = None
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._cursor.close()

    def __enter__(self) -> DbApiDataReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


# --- Native asyncio provider ---


class AsyncDbApiConnection(DbApiConnection):
    """Provider connection over an asyncio driver (aiosqlite, psycopg async).

    The blocking lifecycle methods raise :class:`AsyncOnlyError`; use the
    ``_async`` variants. The adapter must also satisfy ``AsyncDriverAdapter``.
    """

    @property
    def async_adapter(self) -> AsyncDriverAdapter:
        return self._adapter  # type: ignore[return-value]

    def open(self) -> None:
        raise AsyncOnlyError(self._adapter.name, "open")

    def close(self) -> None:
        raise AsyncOnlyError(self._adapter.name, "close")

    def begin_transaction(self, isolation_level: IsolationLevel) -> DbApiTransaction:
        raise AsyncOnlyError(self._adapter.name, "begin_transaction")

    def execute_control(self, statement: str) -> None:
        raise AsyncOnlyError(self._adapter.name, "execute_control")

    def dispose(self) -> None:
        # A driver coroutine cannot run here; drop the handle
        if self._raw is not None:
            logger.debug("Async %s connection released without close", self._adapter.name)
            self._raw = None

    async def open_async(self) -> None:
        if self._raw is not None:
            return
        self._raw = await self.async_adapter.connect_async(self._config)
        logger.debug("Opened async %s connection to %s", self._adapter.name, self.connection_string)

    async def close_async(self) -> None:
        if self._raw is None:
            return
        raw, self._raw = self._raw, None
        await raw.close()
        logger.debug("Closed async %s connection", self._adapter.name)

    def create_command(self) -> AsyncDbApiCommand:
        return AsyncDbApiCommand(self)

    async def begin_transaction_async(
        self, isolation_level: IsolationLevel
    ) -> AsyncDbApiTransaction:
        for statement in self._adapter.begin_statement(isolation_level):
            await self.execute_control_async(statement)
        return AsyncDbApiTransaction(self, isolation_level)

    async def execute_control_async(self, statement: str) -> None:
        cursor = await self.raw_connection.execute(statement)
        await cursor.close()

    async def dispose_async(self) -> None:
        await self.close_async()


class AsyncDbApiTransaction(DbApiTransaction):
    """Explicit transaction on an :class:`AsyncDbApiConnection`."""

    _connection: AsyncDbApiConnection

    def commit(self) -> None:
        raise AsyncOnlyError(self._connection.adapter.name, "commit")

    def rollback(self) -> None:
        raise AsyncOnlyError(self._connection.adapter.name, "rollback")

    async def commit_async(self) -> None:
        await self._connection.execute_control_async("COMMIT")
        self._completed = True

    async def rollback_async(self) -> None:
        await self._connection.execute_control_async("ROLLBACK")
        self._completed = True

    def dispose(self) -> None:
        if not self._completed:
            logger.debug("Async transaction released while still pending")
        self._completed = True

    async def dispose_async(self) -> None:
        """Roll back if still pending on an open connection."""
        if not self._completed and self._connection.state is ConnectionState.OPEN:
            await self.rollback_async()
        self._completed = True


class AsyncDbApiCommand(DbApiCommand):
    """Command over an asyncio driver cursor.

    Readers are buffered: every result set is fetched while the command
    runs and served through a :class:`DataTableReader`.
    """

    _connection: AsyncDbApiConnection

    def execute_reader(self) -> DataTableReader:
        raise AsyncOnlyError(self._connection.adapter.name, "execute_reader")

    def execute_scalar(self) -> Any:
        raise AsyncOnlyError(self._connection.adapter.name, "execute_scalar")

    def execute_non_query(self) -> int:
        raise AsyncOnlyError(self._connection.adapter.name, "execute_non_query")

    async def _execute_async(self) -> Any:
        raw = self._connection.raw_connection
        await self._connection.async_adapter.apply_timeout_async(raw, self.command_timeout)
        sql, params = self.statement()
        return await raw.execute(sql, params)

    async def execute_reader_async(self) -> DataTableReader:
        cursor = await self._execute_async()
        try:
            return DataTableReader(*await _fetch_result_sets(cursor))
        finally:
            await cursor.close()

    async def execute_scalar_async(self) -> Any:
        cursor = await self._execute_async()
        try:
            if cursor.description is None:
                return None
            row = await cursor.fetchone()
            return None if row is None else row[0]
        finally:
            await cursor.close()

    async def execute_non_query_async(self) -> int:
        cursor = await self._execute_async()
        try:
            return int(cursor.rowcount)
        finally:
            await cursor.close()


async def _fetch_result_sets(cursor: Any) -> list[DataTable]:
    tables: list[DataTable] = []
    while True:
        if cursor.description is not None:
            name = "Table" if not tables else f"Table{len(tables)}"
            table = DataTable(name, [DataColumn(column[0]) for column in cursor.description])
            for row in await cursor.fetchall():
                table.add_row(list(row.values()) if isinstance(row, Mapping) else list(row))
            tables.append(table)
        # aiosqlite cursors expose a single result set
        nextset = getattr(cursor, "nextset", None)
        if nextset is None or not nextset():
            return tables
