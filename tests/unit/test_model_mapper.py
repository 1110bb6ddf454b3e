"""Unit tests for entity materialization."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated

import pytest

from row_materializer.core.data import DataColumn, DataTable
from row_materializer.core.exceptions import InvalidArgumentError, MissingDeclarationError
from row_materializer.mapping.declarations import SqlEntity, SqlField
from row_materializer.mapping.model import (
    EntityMapper,
    convert_data_reader_to_entities,
    convert_data_table_to_entities,
    convert_entities_to_data_table,
    validate_entity_request,
)

# --- Test models ---


@SqlEntity(name="city", primary_key="id")
@dataclass
class City:
    id: Annotated[int | None, SqlField()] = None
    name: Annotated[str | None, SqlField()] = None


@SqlEntity(name="address", primary_key="id")
@dataclass
class Address:
    id: Annotated[int | None, SqlField()] = None
    street: Annotated[str | None, SqlField()] = None
    city: Annotated[City | None, SqlEntity(primary_key="id")] = None


@SqlEntity(name="tag")
@dataclass
class Tag:
    label: Annotated[str | None, SqlField()] = None


@SqlEntity(name="customer", primary_key="id")
@dataclass
class Customer:
    id: Annotated[int, SqlField()] = 0
    name: Annotated[str | None, SqlField("full_name")] = None
    balance: Annotated[Decimal, SqlField()] = Decimal(0)
    active: Annotated[bool, SqlField()] = False
    address: Annotated[Address | None, SqlEntity(primary_key="id")] = None
    tag: Annotated[Tag | None, SqlEntity()] = None


@SqlEntity(name="empty")
@dataclass
class NoFields:
    note: str = ""


@dataclass
class Undeclared:
    id: Annotated[int, SqlField()] = 0


def _table(columns: list[str], *rows: list[object]) -> DataTable:
    table = DataTable(columns=[DataColumn(name) for name in columns])
    for row in rows:
        table.add_row(list(row))
    return table


class TestConvertDataReader:
    def test_none_reader(self) -> None:
        with pytest.raises(InvalidArgumentError):
            convert_data_reader_to_entities(Customer, None)

    def test_maps_and_converts_fields(self) -> None:
        table = _table(["id", "full_name", "balance", "active"], ["7", "Ann", 12.5, 1])

        (customer,) = convert_data_reader_to_entities(Customer, table.create_reader())

        assert customer.id == 7
        assert customer.name == "Ann"
        assert customer.balance == Decimal("12.5")
        assert customer.active is True

    def test_null_uses_defaults(self) -> None:
        table = _table(["id", "full_name", "balance", "active"], [None, None, None, None])

        (customer,) = convert_data_reader_to_entities(Customer, table.create_reader())

        assert customer.id == 0
        assert customer.name is None
        assert customer.balance == Decimal(0)
        assert customer.active is False

    def test_missing_columns_leave_members_untouched(self) -> None:
        (customer,) = convert_data_reader_to_entities(
            Customer, _table(["id"], [3]).create_reader()
        )
        assert customer.id == 3
        assert customer.name is None
        assert customer.balance == Decimal(0)
        assert customer.address is None

    def test_extra_columns_are_ignored(self) -> None:
        (customer,) = convert_data_reader_to_entities(
            Customer, _table(["id", "unmapped"], [3, "x"]).create_reader()
        )
        assert customer.id == 3


class TestNestedEntities:
    def test_nested_entity_is_populated_from_prefixed_columns(self) -> None:
        table = _table(
            ["id", "address.id", "address.street"],
            [1, 10, "Main St"],
        )

        (customer,) = convert_data_table_to_entities(Customer, table)

        assert customer.address == Address(id=10, street="Main St")

    def test_null_key_skips_nested_entity(self) -> None:
        table = _table(["id", "address.id", "address.street"], [1, None, "Main St"])
        (customer,) = convert_data_table_to_entities(Customer, table)
        assert customer.address is None

    def test_missing_key_column_skips_nested_entity(self) -> None:
        table = _table(["id", "address.street"], [1, "Main St"])
        (customer,) = convert_data_table_to_entities(Customer, table)
        assert customer.address is None

    def test_nested_without_primary_key_is_always_built(self) -> None:
        (customer,) = convert_data_table_to_entities(Customer, _table(["id"], [1]))
        assert customer.tag == Tag()

    def test_nesting_stops_at_one_level(self) -> None:
        table = _table(
            ["id", "address.id", "address.city.id", "address.city.name"],
            [1, 10, 100, "Lisbon"],
        )
        (customer,) = convert_data_table_to_entities(Customer, table)
        assert customer.address is not None
        assert customer.address.city is None


class TestConvertDataTable:
    def test_none_and_empty(self) -> None:
        assert convert_data_table_to_entities(Customer, None) == []
        assert convert_data_table_to_entities(Customer, _table(["id"])) == []

    def test_round_trip(self) -> None:
        customers = [
            Customer(id=1, name="Ann", balance=Decimal("1.5"), active=True),
            Customer(id=2, name=None, balance=Decimal(0), active=False),
        ]

        table = convert_entities_to_data_table(Customer, customers)
        again = convert_data_table_to_entities(Customer, table)

        assert [(c.id, c.name, c.balance, c.active) for c in again] == [
            (c.id, c.name, c.balance, c.active) for c in customers
        ]


class TestConvertEntitiesToDataTable:
    def test_schema_without_entities(self) -> None:
        for entities in (None, []):
            table = convert_entities_to_data_table(Customer, entities)
            assert table.name == "customer"
            assert len(table) == 0
            assert table.columns == (
                DataColumn("id", int),
                DataColumn("full_name", str),
                DataColumn("balance", Decimal),
                DataColumn("active", bool),
            )

    def test_rows(self) -> None:
        table = convert_entities_to_data_table(Customer, [Customer(id=1, name="Ann")])
        assert table.to_dicts() == [
            {"id": 1, "full_name": "Ann", "balance": Decimal(0), "active": False}
        ]


class TestValidateEntityRequest:
    def test_declared_with_fields(self) -> None:
        assert validate_entity_request(Customer) is True

    def test_declared_without_fields(self) -> None:
        assert validate_entity_request(NoFields) is False

    def test_undeclared(self) -> None:
        with pytest.raises(MissingDeclarationError):
            validate_entity_request(Undeclared)


class TestEntityMapper:
    def test_map_one(self) -> None:
        mapper = EntityMapper(Customer)
        customer = mapper.map_one({"id": 5, "full_name": "Eve"})
        assert customer.id == 5
        assert customer.name == "Eve"

    def test_map_many_with_uneven_rows(self) -> None:
        mapper = EntityMapper(Customer)
        customers = mapper.map_many([{"id": 1}, {"id": 2, "full_name": "Bo"}])
        assert [(c.id, c.name) for c in customers] == [(1, None), (2, "Bo")]

    def test_map_many_empty(self) -> None:
        assert EntityMapper(Customer).map_many([]) == []

    def test_table_helpers(self) -> None:
        mapper = EntityMapper(Customer)
        table = mapper.to_table([Customer(id=4)])
        assert [c.id for c in mapper.map_table(table)] == [4]
        assert [c.id for c in mapper.map_reader(table.create_reader())] == [4]
        assert len(mapper.metadata.fields) == 4
