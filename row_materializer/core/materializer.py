"""SqlMaterializer: connection lifecycle, command factory and execution.

The materializer owns one provider connection and at most one active
transaction. Every command it creates is configured the same way (text,
type, timeout, active transaction, bound parameters, SQL trace) and every
execution family comes in a synchronous and an ``_async`` flavour. Async
calls run natively on the event loop when the provider implements the
``Async*`` protocols and on a worker thread otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from row_materializer.adapters.protocol import (
    AsyncDbCommand,
    AsyncDbConnection,
    AsyncDbTransaction,
    DataReader,
    DbCommand,
    DbConnection,
    DbTransaction,
)
from row_materializer.core.connection import (
    ConnectionConfig,
    create_async_connection,
    create_connection,
)
from row_materializer.core.data import DataSet, DataTable
from row_materializer.core.enums import CommandType, ConnectionState, IsolationLevel
from row_materializer.core.exceptions import (
    ConnectionNotOpenError,
    InvalidArgumentError,
    NoActiveTransactionError,
    ObjectDisposedError,
    OperationCancelledError,
    TransactionAlreadyActiveError,
)
from row_materializer.core.params import (
    DEFAULT_PARAMETER_PREFIX,
    bind_parameter_list,
    bind_parameters_from_object,
    bind_procedure_parameters,
    describe_command,
    is_parameter_list,
)
from row_materializer.core.transaction import AsyncTransactionScope, TransactionScope
from row_materializer.mapping import model
from row_materializer.mapping.metadata import get_procedure_metadata

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_TIMEOUT = 30

_CommandBinder = Callable[[DbCommand], None]


class SqlMaterializer:
    """Runs SQL against one connection and materializes the results.

    Args:
        connection: Provider connection; it may be open or closed.
        timeout: Command timeout in seconds, must be greater than zero.
        parameter_prefix: Placeholder prefix used in command text.
        enable_sql_logging: Emit a DEBUG trace of every created command.

    Usage::

        with SqlMaterializer.from_config(config) as db:
            db.open_connection()
            customers = db.query(Customer, "SELECT * FROM customer WHERE id IN (@ids)",
                                 {"ids": [1, 2, 3]})
    """

    def __init__(
        self,
        connection: DbConnection,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        parameter_prefix: str = DEFAULT_PARAMETER_PREFIX,
        enable_sql_logging: bool = True,
    ) -> None:
        if connection is None:
            raise InvalidArgumentError("connection", "a connection is required")
        if not parameter_prefix:
            raise InvalidArgumentError("parameter_prefix", "must not be empty")

        self._connection: DbConnection | None = connection
        self._transaction: DbTransaction | None = None
        self._connection_lock = threading.RLock()
        self._transaction_lock = threading.RLock()
        self._parameter_prefix = parameter_prefix
        self._timeout = DEFAULT_TIMEOUT
        self.timeout = timeout
        self.enable_sql_logging = enable_sql_logging
        self._is_disposed = False
        self._is_disposing = False
        self._async_lifecycle_lock = asyncio.Lock()
        # Worker-thread calls abandoned by cancellation, kept until they finish
        self._pending_calls: set[asyncio.Future[Any]] = set()

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> SqlMaterializer:
        """Create a materializer from a ConnectionConfig.

        Args:
            config: ConnectionConfig instance

        Returns:
            SqlMaterializer instance, open when ``config.open_on_create`` is set
        """
        materializer = cls(
            create_connection(config),
            timeout=config.timeout,
            parameter_prefix=config.parameter_prefix,
            enable_sql_logging=config.enable_sql_logging,
        )
        if config.open_on_create:
            materializer.open_connection()
        return materializer

    # --- Properties ---

    @property
    def connection(self) -> DbConnection:
        connection = self._connection
        if self._is_disposed or connection is None:
            raise ObjectDisposedError()
        return connection

    @property
    def connection_string(self) -> str:
        return self.connection.connection_string

    @property
    def state(self) -> ConnectionState:
        if self._connection is None:
            return ConnectionState.CLOSED
        return self._connection.state

    @property
    def timeout(self) -> int:
        return self._timeout

    @timeout.setter
    def timeout(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidArgumentError("timeout", f"must be an integer greater than zero, got {value!r}")
        self._timeout = value

    @property
    def parameter_prefix(self) -> str:
        return self._parameter_prefix

    @property
    def current_transaction(self) -> DbTransaction | None:
        return self._transaction

    @property
    def is_transaction_active(self) -> bool:
        return self._transaction is not None

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    @property
    def is_disposing(self) -> bool:
        return self._is_disposing

    # --- Connection / transaction lifecycle ---

    def _ensure_not_disposed(self) -> None:
        if self._is_disposed:
            raise ObjectDisposedError()

    def _ensure_open(self) -> None:
        self._ensure_not_disposed()
        if self.state is not ConnectionState.OPEN:
            raise ConnectionNotOpenError(self.state.value)

    def open_connection(self) -> None:
        """Open the connection; a no-op when it is already open."""
        connection = self.connection
        with self._connection_lock:
            if connection.state is ConnectionState.OPEN:
                return
            connection.open()
        logger.debug("Connection opened")

    def close_connection(self) -> None:
        """Close the connection; a no-op when it is already closed."""
        connection = self.connection
        with self._connection_lock:
            if connection.state is ConnectionState.CLOSED:
                return
            connection.close()
        logger.debug("Connection closed")

    def begin_transaction(
        self,
        isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED,
    ) -> DbTransaction:
        """Begin a transaction that later commands join automatically.

        Raises:
            ObjectDisposedError: If the materializer is disposed.
            TransactionAlreadyActiveError: If a transaction is already active.
        """
        connection = self.connection
        with self._connection_lock, self._transaction_lock:
            if self._transaction is not None:
                raise TransactionAlreadyActiveError()
            self._transaction = connection.begin_transaction(isolation_level)
        logger.debug("Transaction started (%s)", isolation_level.value)
        return self._transaction

    def commit_transaction(self) -> None:
        """Commit the active transaction.

        Raises:
            NoActiveTransactionError: If no transaction is active.
        """
        self._ensure_not_disposed()
        with self._transaction_lock:
            if self._transaction is None:
                raise NoActiveTransactionError("commit")
            self._transaction.commit()
            self._transaction.dispose()
            self._transaction = None
        logger.debug("Transaction committed")

    def rollback_transaction(self) -> None:
        """Roll back the active transaction.

        Without an active transaction this raises, except while the
        materializer is disposing, where it does nothing.
        """
        self._ensure_not_disposed()
        with self._transaction_lock:
            if self._transaction is None:
                if self._is_disposing:
                    return
                raise NoActiveTransactionError("rollback")
            self._transaction.rollback()
            self._transaction.dispose()
            self._transaction = None
        logger.debug("Transaction rolled back")

    def transaction(
        self,
        isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED,
    ) -> TransactionScope:
        """Transaction context manager: commit on success, rollback on error."""
        return TransactionScope(self, isolation_level)

    def transaction_async(
        self,
        isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED,
    ) -> AsyncTransactionScope:
        return AsyncTransactionScope(self, isolation_level)

    def dispose(self) -> None:
        """Release the connection. Safe to call more than once.

        A pending transaction is rolled back and the connection closed; a
        failure in either step is logged and does not stop the teardown.
        """
        if self._is_disposed or self._is_disposing:
            return
        self._is_disposing = True

        try:
            self.rollback_transaction()
        except Exception:
            logger.debug("Rollback during dispose failed", exc_info=True)
        try:
            self.close_connection()
        except Exception:
            logger.debug("Closing the connection during dispose failed", exc_info=True)

        try:
            with self._connection_lock:
                connection, self._connection = self._connection, None
                if connection is not None:
                    connection.dispose()
        except Exception:
            logger.debug("Releasing the connection during dispose failed", exc_info=True)
        finally:
            self._is_disposed = True
        logger.debug("SqlMaterializer disposed")

    close = dispose

    def __enter__(self) -> SqlMaterializer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    # --- Async connection / transaction lifecycle ---

    @classmethod
    async def from_config_async(cls, config: ConnectionConfig) -> SqlMaterializer:
        """Create a materializer over the driver's asyncio client.

        Args:
            config: ConnectionConfig instance

        Returns:
            SqlMaterializer instance, open when ``config.open_on_create`` is set

        Raises:
            AdapterError: If the driver has no asyncio support.
        """
        materializer = cls(
            create_async_connection(config),
            timeout=config.timeout,
            parameter_prefix=config.parameter_prefix,
            enable_sql_logging=config.enable_sql_logging,
        )
        if config.open_on_create:
            await materializer.open_connection_async()
        return materializer

    async def open_connection_async(self) -> None:
        connection = self.connection
        if not isinstance(connection, AsyncDbConnection):
            await asyncio.to_thread(self.open_connection)
            return
        async with self._async_lifecycle_lock:
            if connection.state is ConnectionState.OPEN:
                return
            await connection.open_async()
        logger.debug("Connection opened")

    async def close_connection_async(self) -> None:
        connection = self.connection
        if not isinstance(connection, AsyncDbConnection):
            await asyncio.to_thread(self.close_connection)
            return
        async with self._async_lifecycle_lock:
            if connection.state is ConnectionState.CLOSED:
                return
            await connection.close_async()
        logger.debug("Connection closed")

    async def begin_transaction_async(
        self,
        isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED,
    ) -> DbTransaction:
        """Asynchronous :meth:`begin_transaction`."""
        connection = self.connection
        if not isinstance(connection, AsyncDbConnection):
            return await asyncio.to_thread(self.begin_transaction, isolation_level)
        async with self._async_lifecycle_lock:
            if self._transaction is not None:
                raise TransactionAlreadyActiveError()
            self._transaction = await connection.begin_transaction_async(isolation_level)
        logger.debug("Transaction started (%s)", isolation_level.value)
        return self._transaction

    async def commit_transaction_async(self) -> None:
        """Asynchronous :meth:`commit_transaction`."""
        self._ensure_not_disposed()
        if not isinstance(self._transaction, AsyncDbTransaction):
            await asyncio.to_thread(self.commit_transaction)
            return
        async with self._async_lifecycle_lock:
            transaction = self._transaction
            if transaction is None:
                raise NoActiveTransactionError("commit")
            await transaction.commit_async()
            transaction.dispose()
            self._transaction = None
        logger.debug("Transaction committed")

    async def rollback_transaction_async(self) -> None:
        """Asynchronous :meth:`rollback_transaction`, silent while disposing."""
        self._ensure_not_disposed()
        if not isinstance(self._transaction, AsyncDbTransaction):
            await asyncio.to_thread(self.rollback_transaction)
            return
        async with self._async_lifecycle_lock:
            transaction = self._transaction
            if transaction is None:
                if self._is_disposing:
                    return
                raise NoActiveTransactionError("rollback")
            await transaction.rollback_async()
            transaction.dispose()
            self._transaction = None
        logger.debug("Transaction rolled back")

    async def dispose_async(self) -> None:
        """Asynchronous :meth:`dispose`; the only full teardown for a native async connection."""
        if self._is_disposed or self._is_disposing:
            return
        if not isinstance(self._connection, AsyncDbConnection):
            await asyncio.to_thread(self.dispose)
            return
        self._is_disposing = True

        try:
            await self.rollback_transaction_async()
        except Exception:
            logger.debug("Rollback during dispose failed", exc_info=True)
        try:
            await self.close_connection_async()
        except Exception:
            logger.debug("Closing the connection during dispose failed", exc_info=True)

        try:
            connection, self._connection = self._connection, None
            if connection is not None:
                await connection.dispose_async()
        except Exception:
            logger.debug("Releasing the connection during dispose failed", exc_info=True)
        finally:
            self._is_disposed = True
        logger.debug("SqlMaterializer disposed")

    async def __aenter__(self) -> SqlMaterializer:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose_async()

    # --- Command factory ---

    def _create_command_core(
        self,
        command_type: CommandType,
        sql: str,
        binder: _CommandBinder | None,
        transaction: DbTransaction | None,
    ) -> DbCommand:
        self._ensure_open()
        connection = self.connection

        with self._connection_lock:
            command = connection.create_command()

        command.command_type = command_type
        command.command_text = sql
        command.command_timeout = self._timeout

        if transaction is None and self._transaction is not None:
            transaction = self._transaction
        if transaction is not None:
            command.transaction = transaction

        if binder is not None:
            binder(command)

        if self.enable_sql_logging and logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s", describe_command(command))

        return command

    def create_command(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> DbCommand:
        """Create a configured, unexecuted command.

        Args:
            sql: SQL text, or a ``SqlProcedure``-declared object whose
                declared members become the command's parameters.
            parameters: An object whose public members bind by name
                (collections are expanded), or a list of DataParameter
                objects added verbatim. Ignored for procedure objects.
            command_type: How a string *sql* is interpreted.
            transaction: Explicit transaction; defaults to the active one.

        Returns:
            The command. The caller owns it.

        Raises:
            ObjectDisposedError: If the materializer is disposed.
            ConnectionNotOpenError: If the connection is not open.
            MissingDeclarationError: If a procedure object lacks SqlProcedure.
        """
        if sql is None:
            raise InvalidArgumentError("sql", "SQL text or a procedure object is required")
        if not isinstance(sql, str):
            return self._create_procedure_command(sql, transaction)

        if is_parameter_list(parameters):
            return self._create_command_core(
                command_type,
                sql,
                lambda command: bind_parameter_list(command, parameters),
                transaction,
            )
        return self._create_command_core(
            command_type,
            sql,
            lambda command: bind_parameters_from_object(
                command, parameters, self._parameter_prefix
            ),
            transaction,
        )

    def _create_procedure_command(
        self,
        procedure: Any,
        transaction: DbTransaction | None,
    ) -> DbCommand:
        self._ensure_open()
        metadata = get_procedure_metadata(type(procedure))
        return self._create_command_core(
            metadata.command_type,
            metadata.command_text,
            lambda command: bind_procedure_parameters(command, procedure),
            transaction,
        )

    # --- Execution ---

    def execute_reader(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> DataReader:
        """Execute and return a reader over the results. The caller closes it."""
        command = self.create_command(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        return command.execute_reader()

    def execute_scalar(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> Any:
        """First column of the first row, or None."""
        command = self.create_command(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        try:
            return command.execute_scalar()
        finally:
            command.dispose()

    def execute_non_query(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> int:
        """Execute a statement and return the number of rows affected."""
        command = self.create_command(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        try:
            return command.execute_non_query()
        finally:
            command.dispose()

    def execute_table(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> DataTable:
        """Load the first result set into a DataTable."""
        reader = self.execute_reader(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        return _load_table(reader)

    def execute_data_set(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> DataSet:
        """Load every result set into a DataSet, one table each."""
        reader = self.execute_reader(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        return _load_data_set(reader)

    def query(
        self,
        entity_type: type[T],
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> list[T]:
        """Execute and materialize every row as an *entity_type* instance.

        Raises:
            MissingDeclarationError: If *entity_type* is not a SqlEntity.
        """
        if not model.validate_entity_request(entity_type):
            return []
        reader = self.execute_reader(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        try:
            return model.convert_data_reader_to_entities(entity_type, reader)
        finally:
            reader.close()

    def single_or_default(
        self,
        entity_type: type[T],
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
    ) -> T | None:
        """First materialized row, or None when there is none."""
        entities = self.query(
            entity_type, sql, parameters, command_type=command_type, transaction=transaction
        )
        return entities[0] if entities else None

    # --- Async execution ---

    async def _execute_async(
        self,
        operation: str,
        command: DbCommand,
        cancel_event: asyncio.Event | None,
        *,
        dispose_command: bool,
    ) -> Any:
        """Run *operation* natively when the command supports it, else on a worker thread.

        A worker thread cannot be interrupted. When the caller stops waiting
        for one, the command is disposed (and a reader it returns closed)
        only after the thread finishes.
        """
        if isinstance(command, AsyncDbCommand):
            call: Awaitable[Any] = getattr(command, f"{operation}_async")()
            on_thread = False
        else:
            call = asyncio.to_thread(getattr(command, operation))
            on_thread = True

        task = asyncio.ensure_future(call)
        try:
            result = await _cancellable(task, cancel_event, operation, abandon=on_thread)
        except BaseException:
            self._release_when_done(
                task,
                command if dispose_command else None,
                operation=operation,
                close_result=operation == "execute_reader",
            )
            raise
        if dispose_command:
            command.dispose()
        return result

    def _release_when_done(
        self,
        task: asyncio.Future[Any],
        command: DbCommand | None,
        *,
        operation: str,
        close_result: bool,
    ) -> None:
        abandoned = not task.done()

        def _release(finished: asyncio.Future[Any]) -> None:
            self._pending_calls.discard(finished)
            try:
                error = None if finished.cancelled() else finished.exception()
                if error is not None:
                    if abandoned:
                        logger.debug("%s failed after it was abandoned", operation, exc_info=error)
                elif close_result and not finished.cancelled():
                    finished.result().close()
            except Exception:
                logger.debug("Closing the result of abandoned %s failed", operation, exc_info=True)
            if command is not None:
                try:
                    command.dispose()
                except Exception:
                    logger.debug("Disposing the command of %s failed", operation, exc_info=True)

        if not abandoned:
            _release(task)
            return
        self._pending_calls.add(task)
        task.add_done_callback(_release)

    async def execute_reader_async(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DataReader:
        _raise_if_cancelled(cancel_event, "execute_reader")
        command = self.create_command(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        return await self._execute_async(  # type: ignore[no-any-return]
            "execute_reader", command, cancel_event, dispose_command=False
        )

    async def execute_scalar_async(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        _raise_if_cancelled(cancel_event, "execute_scalar")
        command = self.create_command(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        return await self._execute_async(
            "execute_scalar", command, cancel_event, dispose_command=True
        )

    async def execute_non_query_async(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        _raise_if_cancelled(cancel_event, "execute_non_query")
        command = self.create_command(
            sql, parameters, command_type=command_type, transaction=transaction
        )
        return int(
            await self._execute_async(
                "execute_non_query", command, cancel_event, dispose_command=True
            )
        )

    async def execute_table_async(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DataTable:
        reader = await self.execute_reader_async(
            sql,
            parameters,
            command_type=command_type,
            transaction=transaction,
            cancel_event=cancel_event,
        )
        return _load_table(reader)

    async def execute_data_set_async(
        self,
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DataSet:
        reader = await self.execute_reader_async(
            sql,
            parameters,
            command_type=command_type,
            transaction=transaction,
            cancel_event=cancel_event,
        )
        return _load_data_set(reader)

    async def query_async(
        self,
        entity_type: type[T],
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[T]:
        if not model.validate_entity_request(entity_type):
            return []
        reader = await self.execute_reader_async(
            sql,
            parameters,
            command_type=command_type,
            transaction=transaction,
            cancel_event=cancel_event,
        )
        try:
            return model.convert_data_reader_to_entities(entity_type, reader)
        finally:
            reader.close()

    async def single_or_default_async(
        self,
        entity_type: type[T],
        sql: Any,
        parameters: Any = None,
        *,
        command_type: CommandType = CommandType.TEXT,
        transaction: DbTransaction | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> T | None:
        entities = await self.query_async(
            entity_type,
            sql,
            parameters,
            command_type=command_type,
            transaction=transaction,
            cancel_event=cancel_event,
        )
        return entities[0] if entities else None

    # --- Converters ---

    convert_data_reader_to_entities = staticmethod(model.convert_data_reader_to_entities)
    convert_data_table_to_entities = staticmethod(model.convert_data_table_to_entities)
    convert_entities_to_data_table = staticmethod(model.convert_entities_to_data_table)


def _load_table(reader: DataReader, name: str = "Table") -> DataTable:
    try:
        return DataTable(name).load(reader)
    finally:
        reader.close()


def _load_data_set(reader: DataReader) -> DataSet:
    data_set = DataSet()
    try:
        while True:
            # Table, Table1, Table2, ...
            name = "Table" if not data_set.tables else f"Table{len(data_set.tables)}"
            data_set.add(DataTable(name).load(reader))
            if not reader.next_result():
                break
    finally:
        reader.close()
    return data_set


def _raise_if_cancelled(cancel_event: asyncio.Event | None, operation: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(operation)


async def _cancellable(
    task: asyncio.Future[R],
    cancel_event: asyncio.Event | None,
    operation: str,
    *,
    abandon: bool,
) -> R:
    """Await *task*, giving up when *cancel_event* is set first.

    With *abandon* the task is left running when the caller gives up;
    otherwise it is cancelled and awaited.
    """
    if cancel_event is None:
        return await (asyncio.shield(task) if abandon else task)

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _pending = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        if not abandon:
            task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    if not abandon:
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug("%s failed after cancellation", operation, exc_info=task.exception())
    raise OperationCancelledError(operation)
