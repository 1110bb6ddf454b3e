"""
Example 01: Basic Command Execution

This example demonstrates scalar, non-query and tabular execution with
@-prefixed placeholders, including collection expansion for IN lists.
"""

from row_materializer import ConnectionConfig, DataParameter, DbType, SqlMaterializer


def main():
    config = ConnectionConfig(driver="sqlite", database=":memory:", open_on_create=True)

    with SqlMaterializer.from_config(config) as db:
        db.execute_non_query(
            """
            CREATE TABLE users (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                active INTEGER DEFAULT 1
            )
            """
        )
        for name, email, active in [
            ("Alice", "alice@example.com", True),
            ("Bob", "bob@example.com", True),
            ("Charlie", "charlie@example.com", False),
        ]:
            db.execute_non_query(
                "INSERT INTO users (name, email, active) VALUES (@name, @email, @active)",
                {"name": name, "email": email, "active": active},
            )

        print("=== Basic Command Execution ===\n")

        # execute_scalar: first column of the first row
        count = db.execute_scalar("SELECT COUNT(*) FROM users")
        print(f"execute_scalar result: {count} total users\n")

        # execute_table: buffered rows, addressable by column name
        users = db.execute_table("SELECT * FROM users WHERE active = @active", {"active": True})
        print(f"execute_table result ({len(users)} rows):")
        for row in users:
            print(f"  - {row['name']} ({row['email']})")
        print()

        # A collection expands to one placeholder per element
        names = db.execute_table(
            "SELECT name FROM users WHERE id IN (@ids) ORDER BY id", {"ids": [1, 3]}
        )
        print(f"IN list result: {[row['name'] for row in names]}\n")

        # Explicit parameter objects are bound as given
        email = db.execute_scalar(
            "SELECT email FROM users WHERE id = @id",
            [DataParameter("@id", 2, db_type=DbType.INT32)],
        )
        print(f"parameter list result: {email}")


if __name__ == "__main__":
    main()
