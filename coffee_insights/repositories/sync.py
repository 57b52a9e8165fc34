"""
Upsert operations that load source data into the store.

The engines never call these; loaders and tests do.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from coffee_insights.models import OrderStatus
from coffee_insights.observability import get_logger

logger = get_logger(__name__)

# Line item ids are derived from the order id so re-syncing an order is idempotent
ITEM_ID_FACTOR = 10000


class SyncMixin:

    async def upsert_customers(self, customers: List[Dict[str, Any]]) -> int:
        if not customers:
            return 0

        async with self.connection() as conn:
            conn.executemany("""
                INSERT OR REPLACE INTO customers (id, name, email, created_at)
                VALUES (?, ?, ?, ?)
            """, [
                [c["id"], c.get("name"), c.get("email"), c.get("created_at") or datetime.now()]
                for c in customers
            ])
        logger.debug(f"Upserted {len(customers)} customers")
        return len(customers)

    async def upsert_categories(self, categories: List[Dict[str, Any]]) -> int:
        if not categories:
            return 0

        async with self.connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO categories (id, name) VALUES (?, ?)",
                [[c["id"], c["name"]] for c in categories],
            )
        return len(categories)

    async def upsert_products(self, products: List[Dict[str, Any]]) -> int:
        if not products:
            return 0

        async with self.connection() as conn:
            conn.executemany("""
                INSERT OR REPLACE INTO products
                    (id, category_id, name, description, price, is_available, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, [
                [
                    p["id"],
                    p.get("category_id"),
                    p["name"],
                    p.get("description"),
                    float(p.get("price", 0) or 0),
                    bool(p.get("is_available", True)),
                    p.get("created_at") or datetime.now(),
                ]
                for p in products
            ])
        logger.debug(f"Upserted {len(products)} products")
        return len(products)

    async def upsert_orders(self, orders: List[Dict[str, Any]]) -> int:
        """
        Upsert orders and replace their line items.

        Each order dict carries ``items``: [{"product_id", "quantity", "unit_price"}].
        ``total_amount`` defaults to the sum of the line totals.

        Returns:
            Number of orders upserted
        """
        if not orders:
            return 0

        order_rows = []
        item_rows = []
        for order in orders:
            items = order.get("items", [])
            total = order.get("total_amount")
            if total is None:
                total = sum(float(i["unit_price"]) * int(i.get("quantity", 1)) for i in items)

            order_rows.append([
                order["id"],
                order["customer_id"],
                order.get("status", OrderStatus.COMPLETED.value),
                float(total),
                order["created_at"],
            ])
            for i, item in enumerate(items):
                item_rows.append([
                    order["id"] * ITEM_ID_FACTOR + i,
                    order["id"],
                    item["product_id"],
                    int(item.get("quantity", 1)),
                    float(item["unit_price"]),
                ])

        async with self.connection() as conn:
            conn.execute("BEGIN TRANSACTION")
            try:
                conn.executemany("""
                    INSERT OR REPLACE INTO orders (id, customer_id, status, total_amount, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, order_rows)
                conn.executemany(
                    "DELETE FROM order_items WHERE order_id = ?",
                    [[row[0]] for row in order_rows],
                )
                if item_rows:
                    conn.executemany("""
                        INSERT INTO order_items (id, order_id, product_id, quantity, unit_price)
                        VALUES (?, ?, ?, ?, ?)
                    """, item_rows)
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(f"Upserted {len(order_rows)} orders with {len(item_rows)} items")
        return len(order_rows)

    async def update_order_status(self, order_id: int, status: str) -> None:
        async with self.connection() as conn:
            conn.execute("UPDATE orders SET status = ? WHERE id = ?", [status, order_id])

    async def upsert_coffee_beans(self, beans: List[Dict[str, Any]]) -> int:
        if not beans:
            return 0

        async with self.connection() as conn:
            conn.executemany("""
                INSERT OR REPLACE INTO coffee_beans
                    (id, name, origin_country, region, processing_method, tasting_notes,
                     elevation, variety, is_featured, stock_quantity)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                [
                    b["id"],
                    b["name"],
                    b["origin_country"],
                    b.get("region"),
                    b.get("processing_method"),
                    b.get("tasting_notes"),
                    b.get("elevation"),
                    b.get("variety"),
                    bool(b.get("is_featured", False)),
                    int(b.get("stock_quantity", 0)),
                ]
                for b in beans
            ])
        return len(beans)

    async def upsert_taste_profile(
        self,
        customer_id: int,
        favorite_roast: Optional[str] = None,
        flavor_preferences: Optional[List[str]] = None,
    ) -> None:
        async with self.connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO taste_profiles (customer_id, favorite_roast, flavor_preferences)
                VALUES (?, ?, ?)
            """, [customer_id, favorite_roast, list(flavor_preferences or [])])
