"""Connection configuration and driver adapter loading.

ConnectionConfig is a Pydantic model for type-safe connection config.
``create_connection`` resolves the driver adapter by name and wraps the
driver in the generic DB-API connection used by the materializer;
``create_async_connection`` does the same over the driver's asyncio client.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from row_materializer.core.enums import DatabaseBackend
from row_materializer.core.exceptions import AdapterError
from row_materializer.core.params import DEFAULT_PARAMETER_PREFIX

if TYPE_CHECKING:
    from row_materializer.adapters.dbapi import AsyncDbApiConnection, DbApiConnection


class ConnectionConfig(BaseModel):
    """Configuration for database connections and materializer defaults."""

    driver: str
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str
    timeout: int = Field(default=30, gt=0)
    parameter_prefix: str = Field(default=DEFAULT_PARAMETER_PREFIX, min_length=1)
    enable_sql_logging: bool = True
    open_on_create: bool = False
    extra: dict[str, Any] = {}

    def describe(self) -> str:
        """Connection string with the password masked."""
        parts = [f"driver={self.driver}"]
        if self.host is not None:
            parts.append(f"host={self.host}")
        if self.port is not None:
            parts.append(f"port={self.port}")
        if self.user is not None:
            parts.append(f"user={self.user}")
        if self.password is not None:
            parts.append("password=***")
        parts.append(f"database={self.database}")
        return ";".join(parts)


# Adapter module mapping: backend → (module_path, class_name)
_ADAPTER_MAP: dict[DatabaseBackend, tuple[str, str]] = {
    DatabaseBackend.SQLITE: ("row_materializer.adapters.sqlite", "SqliteAdapter"),
    DatabaseBackend.POSTGRESQL: ("row_materializer.adapters.postgresql", "PostgresqlAdapter"),
}


def load_adapter(driver: str) -> Any:
    """Load a driver adapter by name."""
    try:
        backend = DatabaseBackend(driver.lower())
    except ValueError:
        raise AdapterError(f"Unsupported database driver: {driver}") from None

    module_path, cls_name = _ADAPTER_MAP[backend]
    try:
        module = importlib.import_module(module_path)
        return getattr(module, cls_name)()
    except (ImportError, AttributeError) as e:
        raise AdapterError(f"Failed to load adapter for '{driver}': {e}") from e


def create_connection(config: ConnectionConfig) -> DbApiConnection:
    """Build a closed DB-API connection for *config*."""
    from row_materializer.adapters.dbapi import DbApiConnection

    return DbApiConnection(
        config=config,
        adapter=load_adapter(config.driver),
        parameter_prefix=config.parameter_prefix,
    )


def create_async_connection(config: ConnectionConfig) -> AsyncDbApiConnection:
    """Build a closed asyncio-native connection for *config*.

    Raises:
        AdapterError: If the driver's adapter has no asyncio support.
    """
    from row_materializer.adapters.dbapi import AsyncDbApiConnection

    adapter = load_adapter(config.driver)
    if not hasattr(adapter, "connect_async"):
        raise AdapterError(f"Driver '{config.driver}' has no asyncio support")
    return AsyncDbApiConnection(
        config=config,
        adapter=adapter,
        parameter_prefix=config.parameter_prefix,
    )
