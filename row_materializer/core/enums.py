"""Provider-neutral enumerations shared by commands, parameters and connections."""

from __future__ import annotations

from enum import Enum, IntEnum


class DatabaseBackend(Enum):
    """Supported database backends."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class CommandType(Enum):
    """How a command's text is interpreted."""

    TEXT = "text"
    STORED_PROCEDURE = "stored_procedure"
    TABLE_DIRECT = "table_direct"


class ParameterDirection(Enum):
    """Direction of a bound parameter relative to the command."""

    INPUT = "input"
    OUTPUT = "output"
    INPUT_OUTPUT = "input_output"
    RETURN_VALUE = "return_value"


class DbType(IntEnum):
    """Provider-neutral parameter type codes.

    The numeric values are stable and shared with the declarations, so a raw
    integer in a ``SqlParameter`` resolves to a member here when it is one of
    these codes. Code 24 is intentionally unassigned.
    """

    ANSI_STRING = 0
    BINARY = 1
    BYTE = 2
    BOOLEAN = 3
    CURRENCY = 4
    DATE = 5
    DATETIME = 6
    DECIMAL = 7
    DOUBLE = 8
    GUID = 9
    INT16 = 10
    INT32 = 11
    INT64 = 12
    OBJECT = 13
    SBYTE = 14
    SINGLE = 15
    STRING = 16
    TIME = 17
    UINT16 = 18
    UINT32 = 19
    UINT64 = 20
    VAR_NUMERIC = 21
    ANSI_STRING_FIXED_LENGTH = 22
    STRING_FIXED_LENGTH = 23
    XML = 25
    DATETIME2 = 26
    DATETIME_OFFSET = 27


class IsolationLevel(Enum):
    """Transaction isolation levels."""

    UNSPECIFIED = "unspecified"
    READ_UNCOMMITTED = "read uncommitted"
    READ_COMMITTED = "read committed"
    REPEATABLE_READ = "repeatable read"
    SERIALIZABLE = "serializable"


class ConnectionState(Enum):
    """Open/closed state of a connection."""

    CLOSED = "closed"
    OPEN = "open"
