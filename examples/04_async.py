"""
Example 04: Async Execution

This example demonstrates the async execution methods and cooperative
cancellation through an asyncio.Event. The materializer runs over
aiosqlite, so every call stays on the event loop.

Requires: pip install row-materializer[sqlite]
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Annotated

from row_materializer import (
    ConnectionConfig,
    OperationCancelledError,
    SqlEntity,
    SqlField,
    SqlMaterializer,
)


@SqlEntity(name="products", primary_key="id")
@dataclass
class Product:
    id: Annotated[int, SqlField()] = 0
    name: Annotated[str | None, SqlField()] = None


async def main():
    config = ConnectionConfig(driver="sqlite", database=":memory:", open_on_create=True)

    async with await SqlMaterializer.from_config_async(config) as db:
        await db.execute_non_query_async("CREATE TABLE products (id INTEGER PRIMARY KEY, name TEXT)")

        async with db.transaction_async():
            for name in ["Laptop", "Mouse", "Keyboard"]:
                await db.execute_non_query_async(
                    "INSERT INTO products (name) VALUES (@name)", {"name": name}
                )

        print("=== Async Execution ===\n")

        products = await db.query_async(Product, "SELECT id, name FROM products ORDER BY id")
        print(f"query_async result ({len(products)} products):")
        for product in products:
            print(f"  - {product.id}: {product.name}")
        print()

        cancel = asyncio.Event()
        cancel.set()
        try:
            await db.execute_scalar_async("SELECT COUNT(*) FROM products", cancel_event=cancel)
        except OperationCancelledError as e:
            print(f"Cancelled before execution: {e}")


if __name__ == "__main__":
    asyncio.run(main())
