"""Unit tests for DataTable, DataSet and DataTableReader."""

from __future__ import annotations

import pytest

from row_materializer.adapters.protocol import DataReader
from row_materializer.core.data import DataColumn, DataSet, DataTable, DataTableReader
from row_materializer.core.exceptions import InvalidArgumentError


@pytest.fixture
def people() -> DataTable:
    table = DataTable("people", [DataColumn("id", int), DataColumn("name", str)])
    table.add_row([1, "Ann"])
    table.add_row({"id": 2, "name": "Bob"})
    return table


class TestDataTable:
    def test_schema(self, people: DataTable) -> None:
        assert people.column_names == ["id", "name"]
        assert people.columns[0] == DataColumn("id", int)
        assert people.ordinal("name") == 1
        assert people.has_column("id")
        assert not people.has_column("email")

    def test_rows(self, people: DataTable) -> None:
        assert len(people) == 2
        assert people.rows[0]["name"] == "Ann"
        assert people.rows[1][0] == 2
        assert people.to_dicts() == [{"id": 1, "name": "Ann"}, {"id": 2, "name": "Bob"}]

    def test_mapping_rows_leave_missing_columns_null(self, people: DataTable) -> None:
        row = people.add_row({"id": 3})
        assert row["name"] is None

    def test_new_row_is_detached_until_added(self, people: DataTable) -> None:
        row = people.new_row()
        row["id"] = 9
        assert len(people) == 2
        people.add_row(row)
        assert people.rows[-1].get("id") == 9

    def test_duplicate_column(self, people: DataTable) -> None:
        with pytest.raises(InvalidArgumentError):
            people.add_column("id")

    def test_wrong_value_count(self, people: DataTable) -> None:
        with pytest.raises(InvalidArgumentError):
            people.add_row([1])

    def test_unknown_column(self, people: DataTable) -> None:
        with pytest.raises(IndexError):
            people.ordinal("email")
        assert people.rows[0].get("email", "n/a") == "n/a"

    def test_added_column_extends_existing_rows(self, people: DataTable) -> None:
        people.add_column("email")
        assert people.rows[0]["email"] is None
        assert len(people.rows[0]) == 3


class TestDataTableReader:
    def test_implements_reader_protocol(self, people: DataTable) -> None:
        assert isinstance(people.create_reader(), DataReader)

    def test_reads_rows(self, people: DataTable) -> None:
        reader = people.create_reader()
        assert reader.field_count == 2
        assert reader.get_name(1) == "name"
        assert reader.get_ordinal("id") == 0

        names = []
        while reader.read():
            names.append(reader.get_value(1))
        assert names == ["Ann", "Bob"]
        assert reader.read() is False

    def test_is_null(self) -> None:
        table = DataTable(columns=[DataColumn("a")])
        table.add_row([None])
        reader = table.create_reader()
        assert reader.read()
        assert reader.is_null(0)

    def test_value_before_read(self, people: DataTable) -> None:
        with pytest.raises(InvalidArgumentError):
            people.create_reader().get_value(0)

    def test_next_result(self, people: DataTable) -> None:
        other = DataTable("other", [DataColumn("x")])
        other.add_row([10])
        reader = DataTableReader(people, other)

        assert reader.next_result() is True
        assert reader.get_name(0) == "x"
        assert reader.read()
        assert reader.get_value(0) == 10
        assert reader.next_result() is False

    def test_closed_reader_reads_nothing(self, people: DataTable) -> None:
        with people.create_reader() as reader:
            pass
        assert reader.read() is False

    def test_load_copies_rows_into_a_new_table(self, people: DataTable) -> None:
        copy = DataTable("copy").load(people.create_reader())
        assert copy.column_names == ["id", "name"]
        assert copy.to_dicts() == people.to_dicts()


class TestDataSet:
    def test_lookup_by_index_and_name(self, people: DataTable) -> None:
        data_set = DataSet(tables=[people])
        extra = data_set.add(DataTable("extra"))

        assert len(data_set) == 2
        assert data_set[0] is people
        assert data_set["extra"] is extra
        assert list(data_set) == [people, extra]
        with pytest.raises(KeyError):
            data_set["missing"]
