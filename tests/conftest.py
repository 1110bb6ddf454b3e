"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterator
from typing import Any

import pytest

from row_materializer.core.connection import ConnectionConfig
from row_materializer.core.data import DataTable, DataTableReader
from row_materializer.core.enums import CommandType, ConnectionState, IsolationLevel
from row_materializer.core.materializer import SqlMaterializer
from row_materializer.core.params import DataParameter

# --- Fake provider collaborators ---


class FakeTransaction:
    def __init__(self, isolation_level: IsolationLevel, fail_rollback: bool = False) -> None:
        self.isolation_level = isolation_level
        self.fail_rollback = fail_rollback
        self.committed = False
        self.rolled_back = False
        self.disposed = False

    def commit(self) -> None:
        self.committed = True

    def rollback(self) -> None:
        if self.fail_rollback:
            raise RuntimeError("rollback failed")
        self.rolled_back = True

    def dispose(self) -> None:
        self.disposed = True


class FakeCommand:
    def __init__(self, connection: FakeConnection) -> None:
        self.connection = connection
        self.command_text = ""
        self.command_type = CommandType.TEXT
        self.command_timeout = 0
        self.transaction: Any = None
        self._parameters: list[DataParameter] = []
        self.executed: list[str] = []
        self.readers: list[DataTableReader] = []
        self.disposed = False
        # Whether dispose() had already run when the driver call returned
        self.disposed_on_return: bool | None = None

    @property
    def parameters(self) -> list[DataParameter]:
        return self._parameters

    def create_parameter(self) -> DataParameter:
        return DataParameter()

    def execute_reader(self) -> DataTableReader:
        self.executed.append("execute_reader")
        time.sleep(self.connection.delay)
        return self._reader()

    def execute_scalar(self) -> Any:
        self.executed.append("execute_scalar")
        time.sleep(self.connection.delay)
        self.disposed_on_return = self.disposed
        return self.connection.scalar_result

    def execute_non_query(self) -> int:
        self.executed.append("execute_non_query")
        time.sleep(self.connection.delay)
        self.disposed_on_return = self.disposed
        return self.connection.non_query_result

    def _reader(self) -> DataTableReader:
        self.disposed_on_return = self.disposed
        reader = DataTableReader(*self.connection.result_tables)
        self.readers.append(reader)
        return reader

    def dispose(self) -> None:
        self.disposed = True


class FakeAsyncCommand(FakeCommand):
    async def execute_reader_async(self) -> DataTableReader:
        self.executed.append("execute_reader_async")
        await asyncio.sleep(self.connection.delay)
        return self._reader()

    async def execute_scalar_async(self) -> Any:
        self.executed.append("execute_scalar_async")
        await asyncio.sleep(self.connection.delay)
        return self.connection.scalar_result

    async def execute_non_query_async(self) -> int:
        self.executed.append("execute_non_query_async")
        await asyncio.sleep(self.connection.delay)
        return self.connection.non_query_result


class FakeConnection:
    """In-memory provider connection that records every interaction."""

    def __init__(self, *, native_async: bool = False) -> None:
        self.native_async = native_async
        self._state = ConnectionState.CLOSED
        self.open_calls = 0
        self.close_calls = 0
        self.dispose_calls = 0
        self.commands: list[FakeCommand] = []
        self.transactions: list[FakeTransaction] = []
        self.result_tables: list[DataTable] = []
        self.scalar_result: Any = None
        self.non_query_result = 0
        self.delay = 0.0
        self.fail_close = False
        self.fail_rollback = False
        self.fail_dispose = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connection_string(self) -> str:
        return "fake://test"

    def open(self) -> None:
        self.open_calls += 1
        self._state = ConnectionState.OPEN

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("close failed")
        self._state = ConnectionState.CLOSED

    def create_command(self) -> FakeCommand:
        command = FakeAsyncCommand(self) if self.native_async else FakeCommand(self)
        self.commands.append(command)
        return command

    def begin_transaction(self, isolation_level: IsolationLevel) -> FakeTransaction:
        transaction = FakeTransaction(isolation_level, self.fail_rollback)
        self.transactions.append(transaction)
        return transaction

    def dispose(self) -> None:
        self.dispose_calls += 1
        if self.fail_dispose:
            raise RuntimeError("provider dispose failed")
        self._state = ConnectionState.CLOSED



class FakeAsyncTransaction(FakeTransaction):
    async def commit_async(self) -> None:
        await asyncio.sleep(0)
        self.commit()

    async def rollback_async(self) -> None:
        await asyncio.sleep(0)
        self.rollback()


class FakeNativeConnection(FakeConnection):
    """Fake connection whose whole lifecycle is natively async.

    The blocking lifecycle methods fail, so any worker-thread fallback shows up.
    """

    def __init__(self) -> None:
        super().__init__(native_async=True)
        self.async_calls: list[str] = []

    def open(self) -> None:
        raise AssertionError("blocking open on a native async connection")

    def close(self) -> None:
        raise AssertionError("blocking close on a native async connection")

    def begin_transaction(self, isolation_level: IsolationLevel) -> FakeTransaction:
        raise AssertionError("blocking begin on a native async connection")

    async def open_async(self) -> None:
        self.async_calls.append("open")
        super().open()

    async def close_async(self) -> None:
        self.async_calls.append("close")
        super().close()

    async def begin_transaction_async(self, isolation_level: IsolationLevel) -> FakeAsyncTransaction:
        self.async_calls.append("begin")
        transaction = FakeAsyncTransaction(isolation_level, self.fail_rollback)
        self.transactions.append(transaction)
        return transaction

    async def dispose_async(self) -> None:
        self.async_calls.append("dispose")
        self.dispose()


# --- Fixtures ---


@pytest.fixture
def sqlite_config() -> ConnectionConfig:
    """SQLite in-memory connection config."""
    return ConnectionConfig(driver="sqlite", database=":memory:")


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def fake_async_connection() -> FakeConnection:
    """Fake connection whose commands execute natively async."""
    return FakeConnection(native_async=True)


@pytest.fixture
def materializer(fake_connection: FakeConnection) -> Iterator[SqlMaterializer]:
    """Open materializer over a fake connection."""
    m = SqlMaterializer(fake_connection)
    m.open_connection()
    yield m
    m.dispose()


@pytest.fixture
def async_materializer(fake_async_connection: FakeConnection) -> Iterator[SqlMaterializer]:
    m = SqlMaterializer(fake_async_connection)
    m.open_connection()
    yield m
    m.dispose()


@pytest.fixture
def native_connection() -> FakeNativeConnection:
    return FakeNativeConnection()
