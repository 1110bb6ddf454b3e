"""Row-to-entity materialization.

Converts cursors and DataTables into instances of ``SqlEntity``-declared
classes, and entities back into DataTables. Entity classes must be
constructible without arguments (a dataclass whose fields all have defaults,
a Pydantic model with defaults, or a plain class).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from row_materializer.core.data import DataColumn, DataTable
from row_materializer.core.exceptions import InvalidArgumentError, MissingDeclarationError
from row_materializer.mapping.declarations import get_entity_declaration
from row_materializer.mapping.metadata import EntityMetadata, get_entity_metadata

if TYPE_CHECKING:
    from row_materializer.adapters.protocol import DataReader

T = TypeVar("T")


def _column_ordinals(reader: DataReader) -> dict[str, int]:
    return {reader.get_name(i): i for i in range(reader.field_count)}


def _set_fields(
    entity: Any,
    reader: DataReader,
    metadata: EntityMetadata,
    prefix: str,
    ordinals: dict[str, int],
) -> None:
    for mapping in metadata.fields:
        ordinal = ordinals.get(prefix + mapping.column)
        if ordinal is None:
            continue
        if reader.is_null(ordinal):
            mapping.setter(entity, mapping.default_value)
            continue
        mapping.setter(entity, mapping.convert(reader.get_value(ordinal)))


def set_entity(
    entity: Any,
    reader: DataReader,
    metadata: EntityMetadata,
    ordinals: dict[str, int],
) -> None:
    """Populate *entity* from the reader's current row.

    Nested entities are read from ``"{member}.{column}"`` columns and only
    their own fields are populated; nesting deeper than one level is not
    materialized.
    """
    _set_fields(entity, reader, metadata, "", ordinals)

    for nested in metadata.entities:
        key_column = nested.key_column
        if key_column is not None:
            key_ordinal = ordinals.get(key_column)
            if key_ordinal is None or reader.is_null(key_ordinal):
                continue

        nested_entity = nested.factory()
        nested.setter(entity, nested_entity)
        _set_fields(
            nested_entity,
            reader,
            get_entity_metadata(nested.entity_type),
            nested.prefix,
            ordinals,
        )


def convert_data_reader_to_entities(entity_type: type[T], reader: DataReader | None) -> list[T]:
    """Materialize every remaining row of the reader's current result set.

    Raises:
        InvalidArgumentError: If *reader* is None.
    """
    if reader is None:
        raise InvalidArgumentError("reader", "a data reader is required")

    metadata = get_entity_metadata(entity_type)
    ordinals = _column_ordinals(reader)

    entities: list[T] = []
    while reader.read():
        entity = entity_type()
        set_entity(entity, reader, metadata, ordinals)
        entities.append(entity)
    return entities


def convert_data_table_to_entities(entity_type: type[T], table: DataTable | None) -> list[T]:
    """Materialize the rows of *table*; None or an empty table yields []."""
    if table is None or len(table) == 0:
        return []
    with table.create_reader() as reader:
        return convert_data_reader_to_entities(entity_type, reader)


def convert_entities_to_data_table(
    entity_type: type[T],
    entities: Iterable[T] | None,
) -> DataTable:
    """Build a DataTable from the mapped fields of *entities*.

    The column schema comes from the mapping metadata, so it is complete even
    when *entities* is None or empty. Nested entities are not flattened.
    """
    metadata = get_entity_metadata(entity_type)
    declaration = get_entity_declaration(entity_type)
    table = DataTable(
        name=declaration.name if declaration and declaration.name else entity_type.__name__,
        columns=[
            DataColumn(
                mapping.column,
                mapping.target_type if isinstance(mapping.target_type, type) else None,
            )
            for mapping in metadata.fields
        ],
    )

    for entity in entities or ():
        table.add_row([getattr(entity, mapping.attribute, None) for mapping in metadata.fields])
    return table


def validate_entity_request(entity_type: type) -> bool:
    """Return whether *entity_type* maps at least one field.

    Raises:
        MissingDeclarationError: If the class is not decorated with SqlEntity.
    """
    if get_entity_declaration(entity_type) is None:
        raise MissingDeclarationError(entity_type.__name__, "SqlEntity")
    return len(get_entity_metadata(entity_type).fields) > 0


class EntityMapper(Generic[T]):
    """Materializer bound to one entity class.

    Besides cursors and tables it maps plain ``dict`` rows, the shape
    produced by ``DataTable.to_dicts()``.

    Args:
        target_class: The SqlEntity-declared class to construct.
    """

    def __init__(self, target_class: type[T]) -> None:
        self._target_class = target_class
        self._metadata = get_entity_metadata(target_class)

    @property
    def metadata(self) -> EntityMetadata:
        return self._metadata

    def map_reader(self, reader: DataReader | None) -> list[T]:
        return convert_data_reader_to_entities(self._target_class, reader)

    def map_table(self, table: DataTable | None) -> list[T]:
        return convert_data_table_to_entities(self._target_class, table)

    def to_table(self, entities: Iterable[T] | None) -> DataTable:
        return convert_entities_to_data_table(self._target_class, entities)

    def map_one(self, row: Mapping[str, Any]) -> T:
        """Map a single row dict to a target_class instance."""
        return self.map_many([row])[0]

    def map_many(self, rows: Iterable[Mapping[str, Any]]) -> list[T]:
        """Map row dicts; columns are the union of the rows' keys."""
        rows = list(rows)
        names: dict[str, None] = {}
        for row in rows:
            names.update(dict.fromkeys(row))
        table = DataTable(columns=[DataColumn(name) for name in names])
        for row in rows:
            table.add_row(row)
        return self.map_table(table)
