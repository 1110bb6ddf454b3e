"""
Example 03: Transactions

This example demonstrates explicit transactions and transaction scopes
with automatic rollback on errors.
"""

import sqlite3
import tempfile
from pathlib import Path

from row_materializer import ConnectionConfig, IsolationLevel, SqlMaterializer


def main():
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    config = ConnectionConfig(driver="sqlite", database=db_path, open_on_create=True)

    with SqlMaterializer.from_config(config) as db:
        db.execute_non_query(
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL, "
            "email TEXT NOT NULL UNIQUE)"
        )

        print("=== Transaction Management ===\n")

        # Example 1: Explicit begin / commit
        print("1. Explicit transaction:")
        db.begin_transaction()
        db.execute_non_query(
            "INSERT INTO users (name, email) VALUES (@name, @email)",
            {"name": "Alice", "email": "alice@example.com"},
        )
        db.commit_transaction()
        print(f"   Users after commit: {db.execute_scalar('SELECT COUNT(*) FROM users')}\n")

        # Example 2: Scope with rollback on error
        print("2. Transaction scope with error (automatic rollback):")
        try:
            with db.transaction(IsolationLevel.SERIALIZABLE):
                db.execute_non_query(
                    "INSERT INTO users (name, email) VALUES (@name, @email)",
                    {"name": "Bob", "email": "bob@example.com"},
                )
                # Duplicate email
                db.execute_non_query(
                    "INSERT INTO users (name, email) VALUES (@name, @email)",
                    {"name": "Charlie", "email": "alice@example.com"},
                )
        except sqlite3.IntegrityError as e:
            print(f"   Error occurred: {type(e).__name__}")
            print("   Transaction was rolled back automatically\n")

        count = db.execute_scalar("SELECT COUNT(*) FROM users")
        print(f"   Users after rollback: {count} (Bob was not added)")

    Path(db_path).unlink()


if __name__ == "__main__":
    main()
