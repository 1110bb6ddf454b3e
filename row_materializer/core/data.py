"""In-memory tabular buffers.

``DataTable`` holds a column schema and rows loaded from a cursor or built
from entities; ``DataSet`` groups the tables of a multi-result-set command.
``DataTableReader`` exposes tables through the same cursor interface the
provider readers implement, so one materialization pass serves both.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from row_materializer.core.exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from row_materializer.adapters.protocol import DataReader


@dataclass(frozen=True)
class DataColumn:
    """A named column. ``data_type`` is None when the type is unknown."""

    name: str
    data_type: type | None = None


class DataRow:
    """One row of a DataTable, addressable by ordinal or column name."""

    __slots__ = ("_table", "_values")

    def __init__(self, table: DataTable, values: list[Any]) -> None:
        self._table = table
        self._values = values

    @property
    def table(self) -> DataTable:
        return self._table

    def _resolve(self, key: int | str) -> int:
        return key if isinstance(key, int) else self._table.ordinal(key)

    def __getitem__(self, key: int | str) -> Any:
        return self._values[self._resolve(key)]

    def __setitem__(self, key: int | str, value: Any) -> None:
        self._values[self._resolve(key)] = value

    def __len__(self) -> int:
        return len(self._values)

    def get(self, name: str, default: Any = None) -> Any:
        if not self._table.has_column(name):
            return default
        return self[name]

    def values(self) -> tuple[Any, ...]:
        return tuple(self._values)

    def to_dict(self) -> dict[str, Any]:
        return dict(zip(self._table.column_names, self._values, strict=True))

    def __repr__(self) -> str:
        return f"DataRow({self.to_dict()!r})"


class DataTable:
    """A column schema plus rows."""

    def __init__(self, name: str = "Table", columns: Iterable[DataColumn] = ()) -> None:
        self.name = name
        self._columns: list[DataColumn] = []
        self._ordinals: dict[str, int] = {}
        self._rows: list[DataRow] = []
        for column in columns:
            self._append_column(column)

    # --- schema ---

    def _append_column(self, column: DataColumn) -> None:
        if column.name in self._ordinals:
            raise InvalidArgumentError("column", f"duplicate column name '{column.name}'")
        self._ordinals[column.name] = len(self._columns)
        self._columns.append(column)
        for row in self._rows:
            row._values.append(None)

    def add_column(self, name: str, data_type: type | None = None) -> DataColumn:
        column = DataColumn(name, data_type)
        self._append_column(column)
        return column

    @property
    def columns(self) -> tuple[DataColumn, ...]:
        return tuple(self._columns)

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self._columns]

    def has_column(self, name: str) -> bool:
        return name in self._ordinals

    def ordinal(self, name: str) -> int:
        try:
            return self._ordinals[name]
        except KeyError:
            raise IndexError(f"Column '{name}' not found") from None

    # --- rows ---

    @property
    def rows(self) -> list[DataRow]:
        return self._rows

    def new_row(self) -> DataRow:
        """A detached row matching this table's schema; add it with add_row."""
        return DataRow(self, [None] * len(self._columns))

    def add_row(self, row: DataRow | Mapping[str, Any] | Sequence[Any]) -> DataRow:
        """Append a row given as a DataRow, a column-name mapping or a value sequence."""
        if isinstance(row, DataRow):
            if row.table is not self:
                raise InvalidArgumentError("row", "row belongs to another table")
            new_row = row
        elif isinstance(row, Mapping):
            new_row = self.new_row()
            for name, value in row.items():
                new_row[name] = value
        else:
            values = list(row)
            if len(values) != len(self._columns):
                raise InvalidArgumentError(
                    "row", f"expected {len(self._columns)} values, got {len(values)}"
                )
            new_row = DataRow(self, values)
        self._rows.append(new_row)
        return new_row

    def load(self, reader: DataReader) -> DataTable:
        """Append the rows of the reader's current result set.

        Columns missing from the schema are added (untyped) first.
        """
        names = [reader.get_name(i) for i in range(reader.field_count)]
        for name in names:
            if not self.has_column(name):
                self.add_column(name)
        ordinals = [self.ordinal(name) for name in names]

        while reader.read():
            row = self.new_row()
            for source, target in enumerate(ordinals):
                row[target] = None if reader.is_null(source) else reader.get_value(source)
            self._rows.append(row)
        return self

    def to_dicts(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self._rows]

    def create_reader(self) -> DataTableReader:
        return DataTableReader(self)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[DataRow]:
        return iter(self._rows)

    def __repr__(self) -> str:
        return f"DataTable(name={self.name!r}, columns={self.column_names!r}, rows={len(self)})"


class DataSet:
    """An ordered collection of DataTables, one per result set."""

    def __init__(self, name: str = "DataSet", tables: Iterable[DataTable] = ()) -> None:
        self.name = name
        self.tables: list[DataTable] = list(tables)

    def add(self, table: DataTable) -> DataTable:
        self.tables.append(table)
        return table

    def __getitem__(self, key: int | str) -> DataTable:
        if isinstance(key, int):
            return self.tables[key]
        for table in self.tables:
            if table.name == key:
                return table
        raise KeyError(key)

    def __len__(self) -> int:
        return len(self.tables)

    def __iter__(self) -> Iterator[DataTable]:
        return iter(self.tables)


class DataTableReader:
    """Cursor over the rows of one or more DataTables."""

    def __init__(self, *tables: DataTable) -> None:
        self._tables = tables
        self._table_index = 0
        self._row_index = -1
        self._closed = False

    @property
    def _table(self) -> DataTable:
        return self._tables[self._table_index]

    @property
    def _row(self) -> DataRow:
        if self._row_index < 0:
            raise InvalidArgumentError("reader", "read() has not been called")
        return self._table.rows[self._row_index]

    @property
    def field_count(self) -> int:
        return len(self._table.columns) if self._tables else 0

    def get_name(self, ordinal: int) -> str:
        return self._table.columns[ordinal].name

    def get_ordinal(self, name: str) -> int:
        return self._table.ordinal(name)

    def get_value(self, ordinal: int) -> Any:
        return self._row[ordinal]

    def is_null(self, ordinal: int) -> bool:
        return self._row[ordinal] is None

    def read(self) -> bool:
        if self._closed or not self._tables:
            return False
        if self._row_index + 1 >= len(self._table.rows):
            self._row_index = len(self._table.rows)
            return False
        self._row_index += 1
        return True

    def next_result(self) -> bool:
        if self._closed or self._table_index + 1 >= len(self._tables):
            return False
        self._table_index += 1
        self._row_index = -1
        return True

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> DataTableReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
