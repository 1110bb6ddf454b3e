"""Unit tests for mapping declarations, metadata building and the metadata cache."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated, ClassVar, Optional

import pytest

from row_materializer.core.enums import CommandType, DbType, ParameterDirection
from row_materializer.core.exceptions import MissingDeclarationError
from row_materializer.core.params import DataParameter
from row_materializer.mapping.declarations import (
    SqlEntity,
    SqlField,
    SqlParameter,
    SqlProcedure,
    get_entity_declaration,
    get_procedure_declaration,
)
from row_materializer.mapping.metadata import (
    MetadataCache,
    build_entity_metadata,
    get_entity_metadata,
    get_procedure_metadata,
    unwrap_optional,
)

# --- Test models ---


@SqlEntity(name="address", primary_key="id")
@dataclass
class Address:
    id: Annotated[int | None, SqlField()] = None
    city: Annotated[str | None, SqlField()] = None


@SqlEntity(name="country")
@dataclass
class Country:
    code: Annotated[str | None, SqlField()] = None


@SqlEntity("sales", "customer", primary_key="id")
@dataclass
class Customer:
    id: Annotated[int, SqlField()] = 0
    name: Annotated[str | None, SqlField("full_name")] = None
    balance: Annotated[Decimal, SqlField()] = Decimal(0)
    legacy: Optional[Annotated[int, SqlField("legacy_id")]] = None  # noqa: UP007
    address: Annotated[Address | None, SqlEntity(primary_key="id")] = None
    country: Annotated[Country | None, SqlEntity()] = None
    note: str = ""
    registry: ClassVar[str] = "ignored"


@SqlProcedure("sales", "get_customer")
@dataclass
class GetCustomer(Customer):
    customer_id: Annotated[int | None, SqlParameter("@id", DbType.INT32)] = None
    total: Annotated[
        Decimal | None,
        SqlParameter("@total", DbType.DECIMAL, ParameterDirection.OUTPUT),
    ] = None


@dataclass
class DerivedCustomer(Customer):
    pass


@SqlEntity()
@dataclass(frozen=True)
class FrozenPoint:
    x: Annotated[int, SqlField()] = 0


class TestDeclarations:
    def test_entity_declaration(self) -> None:
        declaration = get_entity_declaration(Customer)
        assert declaration == SqlEntity("sales", "customer", primary_key="id")

    def test_declarations_are_frozen(self) -> None:
        declaration = SqlField("x")
        with pytest.raises(AttributeError):
            declaration.name = "y"  # type: ignore[misc]

    def test_procedure_command_text(self) -> None:
        assert SqlProcedure("sales", "get").command_text == "sales.get"
        assert SqlProcedure("", "get").command_text == "get"
        assert SqlProcedure("sales", "get").command_type is CommandType.STORED_PROCEDURE
        assert SqlProcedure("sales", "get").parameter_type is DataParameter

    def test_declarations_are_not_inherited(self) -> None:
        assert get_entity_declaration(DerivedCustomer) is None
        assert get_entity_declaration(GetCustomer) is None
        assert get_procedure_declaration(GetCustomer) is not None
        assert get_procedure_declaration(Customer) is None


class TestUnwrapOptional:
    def test_pipe_union(self) -> None:
        assert unwrap_optional(int | None) == (int, True)

    def test_typing_optional(self) -> None:
        assert unwrap_optional(Optional[str]) == (str, True)  # noqa: UP007

    def test_plain_type(self) -> None:
        assert unwrap_optional(int) == (int, False)

    def test_multi_member_union_keeps_the_rest(self) -> None:
        inner, optional = unwrap_optional(int | str | None)
        assert optional is True
        assert set(inner.__args__) == {int, str}


class TestEntityMetadata:
    def test_field_and_nested_counts(self) -> None:
        metadata = build_entity_metadata(Customer)
        assert len(metadata.fields) == 4
        assert len(metadata.entities) == 2

    def test_field_columns_types_and_defaults(self) -> None:
        fields = {f.attribute: f for f in build_entity_metadata(Customer).fields}

        assert fields["id"].column == "id"
        assert fields["id"].target_type is int
        assert fields["id"].nullable is False
        assert fields["id"].default_value == 0

        assert fields["name"].column == "full_name"
        assert fields["name"].target_type is str
        assert fields["name"].nullable is True
        assert fields["name"].default_value is None

        assert fields["balance"].default_value == Decimal(0)

        assert fields["legacy"].column == "legacy_id"
        assert fields["legacy"].target_type is int
        assert fields["legacy"].nullable is True

    def test_nested_mappings(self) -> None:
        nested = {e.attribute: e for e in build_entity_metadata(Customer).entities}

        assert nested["address"].entity_type is Address
        assert nested["address"].prefix == "address."
        assert nested["address"].key_column == "address.id"
        assert nested["country"].key_column is None

    def test_unannotated_and_classvar_members_are_skipped(self) -> None:
        attributes = {f.attribute for f in build_entity_metadata(Customer).fields}
        assert "note" not in attributes
        assert "registry" not in attributes

    def test_field_conversion(self) -> None:
        fields = {f.attribute: f for f in build_entity_metadata(Customer).fields}
        assert fields["id"].convert("42") == 42
        assert fields["balance"].convert(12.5) == Decimal("12.5")
        assert fields["name"].convert(7) == "7"

    def test_setter_populates_frozen_dataclass(self) -> None:
        (field,) = build_entity_metadata(FrozenPoint).fields
        point = FrozenPoint()
        field.setter(point, 5)
        assert point.x == 5


class TestProcedureMetadata:
    def test_parameters(self) -> None:
        metadata = get_procedure_metadata(GetCustomer)

        assert metadata.command_text == "sales.get_customer"
        assert metadata.command_type is CommandType.STORED_PROCEDURE
        assert [p.parameter_name for p in metadata.parameters] == ["@id", "@total"]
        assert metadata.parameters[0].attribute == "customer_id"
        assert metadata.parameters[0].type_code == int(DbType.INT32)
        assert metadata.parameters[1].direction is ParameterDirection.OUTPUT

    def test_missing_declaration(self) -> None:
        with pytest.raises(MissingDeclarationError) as exc_info:
            get_procedure_metadata(Customer)
        assert exc_info.value.declaration == "SqlProcedure"
        assert exc_info.value.target_class == "Customer"


class TestMetadataCache:
    def test_same_instance_for_repeated_lookups(self) -> None:
        assert get_entity_metadata(Customer) is get_entity_metadata(Customer)

    def test_concurrent_first_build_yields_one_descriptor(self) -> None:
        cache = MetadataCache()
        calls = 0
        calls_lock = threading.Lock()
        barrier = threading.Barrier(8)

        def slow_build(cls: type) -> object:
            nonlocal calls
            with calls_lock:
                calls += 1
            time.sleep(0.05)
            return build_entity_metadata(cls)

        def lookup() -> object:
            barrier.wait()
            return cache.get_or_add(Customer, slow_build)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: lookup(), range(8)))

        assert calls == 1
        assert all(result is results[0] for result in results)
        assert Customer in cache
        assert len(cache) == 1
