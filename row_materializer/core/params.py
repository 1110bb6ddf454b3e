"""Parameter binding.

Turns plain objects, explicit parameter lists and declared procedure objects
into bound command parameters. Collection values are expanded into one
parameter per element and the matching placeholder in the command text is
rewritten, so ``IN (@ids)`` becomes ``IN (@ids_0, @ids_1, @ids_2)``.

Also converts prefix-style placeholders (``@name``) into the driver's
paramstyle right before execution.
"""

from __future__ import annotations

import dataclasses
import datetime
import inspect
import re
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import IntEnum
from functools import lru_cache
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel

from row_materializer.core.enums import DbType, ParameterDirection
from row_materializer.core.exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from row_materializer.adapters.protocol import DbCommand

DEFAULT_PARAMETER_PREFIX = "@"

# str and the binary types are iterable but always bind as a single value
_SCALAR_ITERABLES = (str, bytes, bytearray, memoryview)

# Matches single-quoted string literals ('' escapes included)
_STRING_LITERAL_PATTERN = re.compile(r"'(?:[^']|'')*'")


class _DBNull:
    """Database null marker carried by bound parameters."""

    _instance: _DBNull | None = None

    def __new__(cls) -> _DBNull:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DB_NULL"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "DB_NULL"


DB_NULL = _DBNull()


@dataclass
class DataParameter:
    """A named, typed value attached to a command.

    Subclasses may set ``provider_type_enum`` to a driver-specific code
    enumeration; declared type codes outside :class:`DbType` are then
    resolved against it and stored in ``provider_type``.
    """

    name: str = ""
    value: Any = DB_NULL
    direction: ParameterDirection = ParameterDirection.INPUT
    db_type: DbType | None = None
    provider_type: IntEnum | None = None

    provider_type_enum: ClassVar[type[IntEnum] | None] = None

    def __post_init__(self) -> None:
        if self.value is None:
            self.value = DB_NULL

    @property
    def driver_value(self) -> Any:
        """The value as handed to a DB-API driver (``DB_NULL`` becomes ``None``)."""
        return None if self.value is DB_NULL else self.value


# ---------------------------------------------------------------------------
# Scalar / collection binding
# ---------------------------------------------------------------------------


def is_enumerable_parameter(value: Any) -> bool:
    """Return True if *value* should be expanded into one parameter per element."""
    if value is None:
        return False
    if isinstance(value, _SCALAR_ITERABLES) or isinstance(value, Mapping):
        return False
    return isinstance(value, Iterable)


def add_scalar_parameter(
    command: DbCommand,
    name: str,
    value: Any,
    prefix: str = DEFAULT_PARAMETER_PREFIX,
) -> DataParameter:
    """Add a single parameter named ``prefix + name``. Text is left unchanged."""
    parameter = command.create_parameter()
    parameter.name = f"{prefix}{name}"
    parameter.value = DB_NULL if value is None else value
    _append_unique(command, parameter)
    return parameter


def expand_enumerable_parameter(
    command: DbCommand,
    name: str,
    values: Iterable[Any],
    prefix: str = DEFAULT_PARAMETER_PREFIX,
) -> list[str]:
    """Bind each element of *values* as ``prefix + name + '_' + i``.

    The placeholder ``prefix + name`` in the command text is then replaced by
    the comma-joined generated names. Only that exact placeholder token is
    rewritten; ``@ids_extra`` survives a rewrite of ``@ids``. An empty
    collection rewrites the placeholder to ``NULL``.

    Raises:
        InvalidArgumentError: If a generated name is already bound, e.g. a
            sibling member called ``ids_0``.

    Returns:
        The generated parameter names, in element order.
    """
    parameter_names: list[str] = []
    for index, item in enumerate(values):
        parameter = command.create_parameter()
        parameter.name = f"{prefix}{name}_{index}"
        parameter.value = DB_NULL if item is None else item
        _append_unique(command, parameter)
        parameter_names.append(parameter.name)

    replacement = ", ".join(parameter_names) if parameter_names else "NULL"
    command.command_text = _placeholder_pattern(f"{prefix}{name}").sub(
        lambda _match: replacement, command.command_text
    )
    return parameter_names


def _append_unique(command: DbCommand, parameter: DataParameter) -> None:
    # Expanded names (ids_0, ids_1, ...) can clash with a sibling member
    if any(existing.name == parameter.name for existing in command.parameters):
        raise InvalidArgumentError("parameters", f"duplicate parameter name '{parameter.name}'")
    command.parameters.append(parameter)


@lru_cache(maxsize=256)
def _placeholder_pattern(placeholder: str) -> re.Pattern[str]:
    return re.compile(re.escape(placeholder) + r"(?!\w)")


def add_parameter(
    command: DbCommand,
    name: str,
    value: Any,
    prefix: str = DEFAULT_PARAMETER_PREFIX,
) -> None:
    """Bind *value* as a scalar or expand it as a collection."""
    if is_enumerable_parameter(value):
        expand_enumerable_parameter(command, name, value, prefix)
        return
    add_scalar_parameter(command, name, value, prefix)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _public_members(obj: Any) -> list[tuple[str, Any]]:
    """Public readable members of *obj*, in a stable order."""
    if isinstance(obj, Mapping):
        return [(str(key), value) for key, value in obj.items()]

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return [(f.name, getattr(obj, f.name)) for f in dataclasses.fields(obj)]

    # namedtuple
    if isinstance(obj, tuple) and hasattr(obj, "_asdict"):
        return list(obj._asdict().items())

    if isinstance(obj, BaseModel):
        return [(name, getattr(obj, name)) for name in type(obj).model_fields]

    members = [
        (name, value)
        for name, value in getattr(obj, "__dict__", {}).items()
        if not name.startswith("_")
    ]
    seen = {name for name, _ in members}
    for name, attr in inspect.getmembers(type(obj)):
        if isinstance(attr, property) and not name.startswith("_") and name not in seen:
            members.append((name, getattr(obj, name)))
    return members


def bind_parameters_from_object(
    command: DbCommand,
    parameters: Any,
    prefix: str = DEFAULT_PARAMETER_PREFIX,
) -> None:
    """Bind every public member of *parameters*, using member names as parameter names."""
    if parameters is None:
        return
    for name, value in _public_members(parameters):
        add_parameter(command, name, value, prefix)


def is_parameter_list(parameters: Any) -> bool:
    """Return True for a list/tuple of parameters (named tuples are objects)."""
    return isinstance(parameters, (list, tuple)) and not hasattr(parameters, "_fields")


def bind_parameter_list(
    command: DbCommand,
    parameters: Iterable[DataParameter] | None,
) -> None:
    """Add caller-built parameters verbatim, without collection expansion."""
    if parameters is None:
        return
    for parameter in parameters:
        if not isinstance(parameter, DataParameter):
            raise InvalidArgumentError(
                "parameters",
                f"expected DataParameter instances, got {type(parameter).__name__}",
            )
        command.parameters.append(parameter)


def resolve_type_code(parameter: DataParameter, code: int) -> None:
    """Apply a declared type code to *parameter*.

    A code that is a :class:`DbType` member sets ``db_type``. Otherwise the
    parameter class's ``provider_type_enum`` is consulted and, if it defines the
    code, ``provider_type`` is set. Unknown codes leave both unset.
    """
    if _defines(DbType, code):
        parameter.db_type = DbType(code)
        return

    provider_enum = getattr(type(parameter), "provider_type_enum", None)
    if provider_enum is not None and _defines(provider_enum, code):
        parameter.provider_type = provider_enum(code)


def _defines(enum_cls: type[IntEnum], code: int) -> bool:
    return any(member.value == code for member in enum_cls)


def bind_procedure_parameters(command: DbCommand, procedure: Any) -> None:
    """Bind the ``SqlParameter``-declared members of a procedure object.

    Raises:
        MissingDeclarationError: If the object's class has no SqlProcedure declaration.
    """
    from row_materializer.mapping.metadata import get_procedure_metadata

    metadata = get_procedure_metadata(type(procedure))
    for mapping in metadata.parameters:
        parameter = metadata.parameter_type()
        parameter.name = mapping.parameter_name
        parameter.direction = mapping.direction
        value = getattr(procedure, mapping.attribute, None)
        parameter.value = DB_NULL if value is None else value
        resolve_type_code(parameter, int(mapping.type_code))
        command.parameters.append(parameter)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def format_parameter_value(value: Any) -> str:
    """Render a parameter value for diagnostic output. Never use it to build SQL."""
    if value is None or value is DB_NULL:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, str):
        return f"'{value}'"
    if isinstance(value, datetime.datetime):
        return f"'{value.strftime('%Y-%m-%d %H:%M:%S.')}{value.microsecond // 1000:03d}'"
    if isinstance(value, uuid.UUID):
        return f"'{value}'"
    return str(value)


def describe_command(command: DbCommand) -> str:
    """Human-readable rendering of a command's text and parameters."""
    lines = ["Executing command", "", command.command_text, ""]
    if command.parameters:
        lines.append("Parameters:")
        for parameter in command.parameters:
            type_name = parameter.db_type.name if parameter.db_type is not None else "UNSET"
            lines.append(
                f"  {parameter.name} = {format_parameter_value(parameter.value)} ({type_name})"
            )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Driver paramstyle conversion
# ---------------------------------------------------------------------------


def normalize_params(sql: str, prefix: str, paramstyle: str) -> str:
    """Convert ``prefix``-style placeholders to the target paramstyle.

    Args:
        sql: SQL text using ``@name`` (or another prefix) placeholders.
        prefix: The placeholder prefix used in *sql*.
        paramstyle: Target style - 'named' (:name) or 'pyformat' (%(name)s).

    Returns:
        SQL with parameters converted to the target style. String literals
        are left untouched; for 'pyformat' every literal ``%`` is doubled.
    """
    if paramstyle == "named" and prefix == ":":
        return sql
    return _convert(sql, prefix, paramstyle)


@lru_cache(maxsize=256)
def _convert(sql: str, prefix: str, paramstyle: str) -> str:
    escaped = re.escape(prefix)
    pattern = re.compile(rf"(?<![{escaped}\w]){escaped}([a-zA-Z_]\w*)")
    template = r"%(\1)s" if paramstyle == "pyformat" else r":\1"
    pyformat = paramstyle == "pyformat"

    parts: list[str] = []
    last_end = 0

    def _code(segment: str) -> str:
        if pyformat:
            segment = segment.replace("%", "%%")
        return pattern.sub(template, segment)

    for match in _STRING_LITERAL_PATTERN.finditer(sql):
        start, end = match.span()
        if start > last_end:
            parts.append(_code(sql[last_end:start]))
        literal = match.group()
        parts.append(literal.replace("%", "%%") if pyformat else literal)
        last_end = end

    if last_end < len(sql):
        parts.append(_code(sql[last_end:]))

    return "".join(parts)


def strip_prefix(name: str, prefix: str) -> str:
    """Parameter name as a driver key (``@ids_0`` -> ``ids_0``)."""
    if prefix and name.startswith(prefix):
        return name[len(prefix):]
    return name
