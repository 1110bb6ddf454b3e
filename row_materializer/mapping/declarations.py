"""Mapping declarations.

Classes opt in to mapping with class decorators, and members declare their
columns and procedure arguments through ``typing.Annotated`` markers::

    @SqlEntity("main", "customer", primary_key="id")
    @dataclass
    class Customer:
        id: Annotated[int | None, SqlField()] = None
        name: Annotated[str | None, SqlField("full_name")] = None
        address: Annotated[Address | None, SqlEntity(primary_key="id")] = None

All declarations are frozen; they are configuration, read once when the
mapping metadata for a class is built.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeVar

from row_materializer.core.enums import CommandType, DbType, ParameterDirection
from row_materializer.core.params import DataParameter

C = TypeVar("C", bound=type)

ENTITY_ATTRIBUTE = "__sql_entity__"
PROCEDURE_ATTRIBUTE = "__sql_procedure__"


@dataclass(frozen=True)
class SqlEntity:
    """Marks a class as a mapped entity, or a member as a nested entity.

    Args:
        schema: Schema holding the table.
        name: Table name.
        primary_key: Key column. On a nested member it decides whether the
            nested entity exists in a row: ``"{member}.{primary_key}"`` must
            be present and non-null.
    """

    schema: str = ""
    name: str = ""
    primary_key: str = ""

    def __call__(self, cls: C) -> C:
        setattr(cls, ENTITY_ATTRIBUTE, self)
        return cls


@dataclass(frozen=True)
class SqlField:
    """Maps a member to a column. A blank name means the member name."""

    name: str = ""


@dataclass(frozen=True)
class SqlProcedure:
    """Marks a class as a stored-procedure argument object."""

    schema: str
    name: str
    parameter_type: type[DataParameter] = DataParameter

    @property
    def command_type(self) -> CommandType:
        return CommandType.STORED_PROCEDURE

    @property
    def command_text(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    def __call__(self, cls: C) -> C:
        setattr(cls, PROCEDURE_ATTRIBUTE, self)
        return cls


@dataclass(frozen=True)
class SqlParameter:
    """Declares a member as a procedure argument.

    ``db_type`` may be a :class:`DbType` or a raw provider type code.
    """

    name: str
    db_type: DbType | int = DbType.STRING
    direction: ParameterDirection = ParameterDirection.INPUT


def get_entity_declaration(cls: type) -> SqlEntity | None:
    """The class's own SqlEntity declaration, if any."""
    declaration = cls.__dict__.get(ENTITY_ATTRIBUTE)
    return declaration if isinstance(declaration, SqlEntity) else None


def get_procedure_declaration(cls: type) -> SqlProcedure | None:
    """The class's own SqlProcedure declaration, if any.

    Declarations are not inherited: a procedure class deriving from an
    entity class carries its own decorator.
    """
    declaration = cls.__dict__.get(PROCEDURE_ATTRIBUTE)
    return declaration if isinstance(declaration, SqlProcedure) else None
