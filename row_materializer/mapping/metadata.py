"""Mapping metadata.

Frozen descriptors built once per class from its declarations, and the
process-wide cache that owns them. Nothing here touches a database.
"""

from __future__ import annotations

import threading
import types
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Annotated, Any, ClassVar, TypeVar, Union, get_args, get_origin, get_type_hints

from pydantic import PydanticSchemaGenerationError, TypeAdapter

from row_materializer.core.enums import CommandType, ParameterDirection
from row_materializer.core.exceptions import MissingDeclarationError
from row_materializer.core.params import DataParameter
from row_materializer.mapping.declarations import (
    SqlEntity,
    SqlField,
    SqlParameter,
    SqlProcedure,
    get_procedure_declaration,
)

K = TypeVar("K")
V = TypeVar("V")

# Values assigned for database nulls on non-optional fields of these types
_VALUE_TYPE_DEFAULTS: dict[type, Any] = {
    int: 0,
    float: 0.0,
    bool: False,
    Decimal: Decimal(0),
}


def _setter(attribute: str) -> Callable[[Any, Any], None]:
    # object.__setattr__ so frozen dataclasses can be populated too
    def _set(instance: Any, value: Any) -> None:
        object.__setattr__(instance, attribute, value)

    return _set


def _type_adapter(target_type: Any) -> TypeAdapter[Any] | None:
    try:
        return TypeAdapter(target_type)
    except PydanticSchemaGenerationError:
        return None


@dataclass(frozen=True)
class FieldMapping:
    """One member <-> column correspondence."""

    attribute: str
    column: str
    target_type: Any
    nullable: bool
    default_value: Any
    setter: Callable[[Any, Any], None] = field(repr=False, compare=False)
    adapter: TypeAdapter[Any] | None = field(default=None, repr=False, compare=False)

    def convert(self, value: Any) -> Any:
        """Convert a raw column value to the target type."""
        if isinstance(self.target_type, type) and isinstance(value, self.target_type):
            return value
        if self.target_type is str:
            return str(value)
        if self.adapter is None:
            return value
        return self.adapter.validate_python(value)


@dataclass(frozen=True)
class NestedEntityMapping:
    """One member <-> nested entity correspondence."""

    attribute: str
    entity_type: type
    declaration: SqlEntity
    factory: Callable[[], Any] = field(repr=False, compare=False)
    setter: Callable[[Any, Any], None] = field(repr=False, compare=False)

    @property
    def prefix(self) -> str:
        return f"{self.attribute}."

    @property
    def key_column(self) -> str | None:
        """Column deciding whether the nested entity is present in a row."""
        if not self.declaration.primary_key:
            return None
        return f"{self.prefix}{self.declaration.primary_key}"


@dataclass(frozen=True)
class EntityMetadata:
    """Mapping descriptor of an entity class."""

    entity_type: type
    fields: tuple[FieldMapping, ...] = ()
    entities: tuple[NestedEntityMapping, ...] = ()


@dataclass(frozen=True)
class ProcedureParameterMapping:
    """One member <-> procedure argument correspondence."""

    attribute: str
    parameter_name: str
    direction: ParameterDirection
    type_code: int


@dataclass(frozen=True)
class ProcedureMetadata:
    """Procedure descriptor of a procedure argument class."""

    procedure_type: type
    declaration: SqlProcedure
    parameters: tuple[ProcedureParameterMapping, ...] = ()

    @property
    def command_type(self) -> CommandType:
        return self.declaration.command_type

    @property
    def command_text(self) -> str:
        return self.declaration.command_text

    @property
    def parameter_type(self) -> type[DataParameter]:
        return self.declaration.parameter_type


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Return ``(inner_type, was_optional)`` for ``X | None`` / ``Optional[X]``."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        non_none = tuple(arg for arg in args if arg is not type(None))
        if len(non_none) != len(args):
            if len(non_none) == 1:
                return non_none[0], True
            return Union[non_none], True  # noqa: UP007
    return annotation, False


def _declared_members(cls: type) -> list[tuple[str, Any, tuple[Any, ...]]]:
    """``(name, annotation, markers)`` for every Annotated member, base classes first."""
    members: list[tuple[str, Any, tuple[Any, ...]]] = []
    for name, hint in get_type_hints(cls, include_extras=True).items():
        if get_origin(hint) is ClassVar:
            continue
        if get_origin(hint) is not Annotated:
            # Optional[Annotated[X, ...]]
            inner, optional = unwrap_optional(hint)
            if not optional or get_origin(inner) is not Annotated:
                continue
            base, *markers = get_args(inner)
            members.append((name, base | None, tuple(markers)))
            continue
        base, *markers = get_args(hint)
        members.append((name, base, tuple(markers)))
    return members


def _first(markers: tuple[Any, ...], kind: type[K]) -> K | None:
    for marker in markers:
        if isinstance(marker, kind):
            return marker
    return None


def build_entity_metadata(cls: type) -> EntityMetadata:
    """Scan *cls* once and describe its field and nested-entity mappings."""
    fields: list[FieldMapping] = []
    entities: list[NestedEntityMapping] = []

    for name, annotation, markers in _declared_members(cls):
        target_type, nullable = unwrap_optional(annotation)

        sql_field = _first(markers, SqlField)
        if sql_field is not None:
            fields.append(
                FieldMapping(
                    attribute=name,
                    column=sql_field.name or name,
                    target_type=target_type,
                    nullable=nullable,
                    default_value=None if nullable else _VALUE_TYPE_DEFAULTS.get(target_type),
                    setter=_setter(name),
                    adapter=_type_adapter(target_type),
                )
            )
            continue

        nested = _first(markers, SqlEntity)
        if nested is not None:
            entities.append(
                NestedEntityMapping(
                    attribute=name,
                    entity_type=target_type,
                    declaration=nested,
                    factory=target_type,
                    setter=_setter(name),
                )
            )

    return EntityMetadata(entity_type=cls, fields=tuple(fields), entities=tuple(entities))


def build_procedure_metadata(cls: type) -> ProcedureMetadata:
    """Describe the declared procedure arguments of *cls*.

    Raises:
        MissingDeclarationError: If *cls* is not decorated with SqlProcedure.
    """
    declaration = get_procedure_declaration(cls)
    if declaration is None:
        raise MissingDeclarationError(cls.__name__, "SqlProcedure")

    parameters = tuple(
        ProcedureParameterMapping(
            attribute=name,
            parameter_name=marker.name,
            direction=marker.direction,
            type_code=int(marker.db_type),
        )
        for name, _annotation, markers in _declared_members(cls)
        if (marker := _first(markers, SqlParameter)) is not None
    )
    return ProcedureMetadata(procedure_type=cls, declaration=declaration, parameters=parameters)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class MetadataCache:
    """Process-wide, build-once store keyed by class.

    ``get_or_add`` runs the factory at most once per key even when several
    threads ask for an unseen key at the same time; latecomers wait for the
    first build and receive the same instance. Entries are never evicted.
    """

    def __init__(self) -> None:
        self._entries: dict[Any, Any] = {}
        self._lock = threading.RLock()

    def get_or_add(self, key: K, factory: Callable[[K], V]) -> V:
        entry = self._entries.get(key)
        if entry is not None:
            return entry  # type: ignore[no-any-return]

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = factory(key)
                self._entries[key] = entry
            return entry  # type: ignore[no-any-return]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


entity_metadata_cache = MetadataCache()
procedure_metadata_cache = MetadataCache()


def get_entity_metadata(cls: type) -> EntityMetadata:
    """Cached mapping descriptor for *cls*."""
    return entity_metadata_cache.get_or_add(cls, build_entity_metadata)


def get_procedure_metadata(cls: type) -> ProcedureMetadata:
    """Cached procedure descriptor for *cls*; raises if undeclared."""
    return procedure_metadata_cache.get_or_add(cls, build_procedure_metadata)
