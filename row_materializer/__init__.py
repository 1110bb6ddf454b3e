"""row_materializer - metadata-driven SQL execution and entity materialization."""

from __future__ import annotations

from row_materializer.core.connection import (
    ConnectionConfig,
    create_async_connection,
    create_connection,
)
from row_materializer.core.data import DataColumn, DataRow, DataSet, DataTable, DataTableReader
from row_materializer.core.enums import (
    CommandType,
    ConnectionState,
    DatabaseBackend,
    DbType,
    IsolationLevel,
    ParameterDirection,
)
from row_materializer.core.exceptions import (
    AdapterError,
    ConnectionNotOpenError,
    InvalidArgumentError,
    LifecycleError,
    MaterializerError,
    MissingDeclarationError,
    NoActiveTransactionError,
    ObjectDisposedError,
    OperationCancelledError,
    TransactionAlreadyActiveError,
    TransactionError,
    TransactionStateError,
    UnsupportedCommandError,
    AsyncOnlyError,
)
from row_materializer.core.materializer import SqlMaterializer
from row_materializer.core.params import DB_NULL, DataParameter, format_parameter_value
from row_materializer.core.transaction import AsyncTransactionScope, TransactionScope
from row_materializer.mapping.declarations import SqlEntity, SqlField, SqlParameter, SqlProcedure
from row_materializer.mapping.model import EntityMapper

__all__ = [
    # Materializer
    "SqlMaterializer",
    "TransactionScope",
    "AsyncTransactionScope",
    # Connection
    "ConnectionConfig",
    "create_connection",
    "create_async_connection",
    # Declarations
    "SqlEntity",
    "SqlField",
    "SqlProcedure",
    "SqlParameter",
    # Mapping
    "EntityMapper",
    # Parameters
    "DataParameter",
    "DB_NULL",
    "format_parameter_value",
    # Tabular buffers
    "DataColumn",
    "DataRow",
    "DataTable",
    "DataSet",
    "DataTableReader",
    # Enums
    "CommandType",
    "ConnectionState",
    "DatabaseBackend",
    "DbType",
    "IsolationLevel",
    "ParameterDirection",
    # Exceptions
    "MaterializerError",
    "LifecycleError",
    "ObjectDisposedError",
    "ConnectionNotOpenError",
    "TransactionError",
    "TransactionAlreadyActiveError",
    "NoActiveTransactionError",
    "TransactionStateError",
    "MissingDeclarationError",
    "InvalidArgumentError",
    "OperationCancelledError",
    "AdapterError",
    "UnsupportedCommandError",
    "AsyncOnlyError",
]
