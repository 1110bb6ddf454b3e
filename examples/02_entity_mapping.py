"""
Example 02: Entity Mapping

This example demonstrates materializing declared entities, including a
nested entity populated from dotted column aliases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from row_materializer import ConnectionConfig, SqlEntity, SqlField, SqlMaterializer


@SqlEntity(name="departments", primary_key="id")
@dataclass
class Department:
    id: Annotated[int | None, SqlField()] = None
    name: Annotated[str | None, SqlField()] = None


@SqlEntity("main", "employees", primary_key="id")
@dataclass
class Employee:
    id: Annotated[int, SqlField()] = 0
    name: Annotated[str | None, SqlField("full_name")] = None
    salary: Annotated[float, SqlField()] = 0.0
    department: Annotated[Department | None, SqlEntity(primary_key="id")] = None


def main():
    config = ConnectionConfig(driver="sqlite", database=":memory:", open_on_create=True)

    with SqlMaterializer.from_config(config) as db:
        db.execute_non_query("CREATE TABLE departments (id INTEGER PRIMARY KEY, name TEXT)")
        db.execute_non_query(
            "CREATE TABLE employees (id INTEGER PRIMARY KEY, full_name TEXT, "
            "salary REAL, department_id INTEGER)"
        )
        db.execute_non_query("INSERT INTO departments VALUES (1, 'Engineering')")
        db.execute_non_query("INSERT INTO employees VALUES (1, 'Alice', 95000, 1)")
        db.execute_non_query("INSERT INTO employees VALUES (2, 'Bob', 60000, NULL)")

        print("=== Entity Mapping ===\n")

        employees = db.query(
            Employee,
            """
            SELECT e.id, e.full_name, e.salary,
                   d.id AS "department.id", d.name AS "department.name"
            FROM employees e LEFT JOIN departments d ON d.id = e.department_id
            ORDER BY e.id
            """,
        )
        for employee in employees:
            department = employee.department.name if employee.department else "(none)"
            print(f"  - {employee.name}: {employee.salary:.0f} in {department}")
        print()

        # single_or_default: the first entity, or None
        bob = db.single_or_default(
            Employee, "SELECT id, full_name, salary FROM employees WHERE id = @id", {"id": 2}
        )
        print(f"single_or_default result: {bob}\n")

        # Entities back to a table
        table = SqlMaterializer.convert_entities_to_data_table(Employee, employees)
        print(f"DataTable '{table.name}' columns: {table.column_names}")


if __name__ == "__main__":
    main()
