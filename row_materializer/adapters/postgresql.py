"""PostgreSQL adapter using psycopg (v3+), sync and async connections."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, ClassVar

from row_materializer.core.connection import ConnectionConfig
from row_materializer.core.enums import IsolationLevel
from row_materializer.core.params import DataParameter


class PgType(IntEnum):
    """PostgreSQL type oids usable as raw ``SqlParameter`` type codes."""

    BOOL = 16
    BYTEA = 17
    INT8 = 20
    INT2 = 21
    INT4 = 23
    TEXT = 25
    JSON = 114
    XML = 142
    FLOAT4 = 700
    FLOAT8 = 701
    BPCHAR = 1042
    VARCHAR = 1043
    DATE = 1082
    TIME = 1083
    TIMESTAMP = 1114
    TIMESTAMPTZ = 1184
    NUMERIC = 1700
    UUID = 2950
    JSONB = 3802


class PostgresParameter(DataParameter):
    """Parameter whose provider type codes resolve against :class:`PgType`."""

    provider_type_enum: ClassVar[type[IntEnum] | None] = PgType


def _build_conninfo(config: ConnectionConfig) -> str:
    """Build a libpq connection string from config fields."""
    parts: list[str] = []
    if config.host is not None:
        parts.append(f"host={config.host}")
    if config.port is not None:
        parts.append(f"port={config.port}")
    if config.user is not None:
        parts.append(f"user={config.user}")
    if config.password is not None:
        parts.append(f"password={config.password}")
    parts.append(f"dbname={config.database}")
    return " ".join(parts)


class PostgresqlAdapter:
    """PostgreSQL driver adapter."""

    @property
    def name(self) -> str:
        return "postgresql"

    @property
    def paramstyle(self) -> str:
        return "pyformat"

    @property
    def parameter_type(self) -> type[DataParameter]:
        return PostgresParameter

    def connect(self, config: ConnectionConfig) -> Any:
        import psycopg

        return psycopg.connect(
            _build_conninfo(config),
            autocommit=True,
            connect_timeout=config.timeout,
            **config.extra,
        )

    async def connect_async(self, config: ConnectionConfig) -> Any:
        import psycopg

        return await psycopg.AsyncConnection.connect(
            _build_conninfo(config),
            autocommit=True,
            connect_timeout=config.timeout,
            **config.extra,
        )

    def begin_statement(self, isolation_level: IsolationLevel) -> list[str]:
        if isolation_level is IsolationLevel.UNSPECIFIED:
            return ["BEGIN"]
        return [f"BEGIN ISOLATION LEVEL {isolation_level.value.upper()}"]

    def procedure_statement(self, procedure: str, parameter_keys: list[str]) -> str:
        arguments = ", ".join(f"%({key})s" for key in parameter_keys)
        return f"CALL {procedure}({arguments})"

    def apply_timeout(self, cursor: Any, seconds: int) -> None:
        cursor.execute(f"SET statement_timeout = {int(seconds) * 1000}")

    async def apply_timeout_async(self, connection: Any, seconds: int) -> None:
        await connection.execute(f"SET statement_timeout = {int(seconds) * 1000}")
