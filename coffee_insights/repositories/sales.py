"""Cross-customer read queries used by collaborative and popularity strategies."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List

from coffee_insights.models import Product, _to_float
from coffee_insights.repositories.base import COMPLETED, _placeholders
from coffee_insights.repositories.catalog import PRODUCT_COLUMNS

PRODUCT_GROUP_BY = "p.id, p.name, p.category_id, p.description, p.price, p.is_available"


class SalesMixin:

    async def get_similar_customers(
        self,
        customer_id: int,
        product_ids: Iterable[int],
        limit: int = 20,
    ) -> List[int]:
        """
        Other customers sharing at least one purchased product.

        Ranked by number of distinct shared products, then by customer id.
        """
        product_ids = list(product_ids)
        if not product_ids:
            return []

        rows = await self.fetchall(f"""
            SELECT o.customer_id, COUNT(DISTINCT oi.product_id) AS common_products
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            WHERE oi.product_id IN ({_placeholders(product_ids)})
              AND o.customer_id != ?
              AND o.status = ?
            GROUP BY o.customer_id
            ORDER BY common_products DESC, o.customer_id
            LIMIT ?
        """, [*product_ids, customer_id, COMPLETED, limit])
        return [row[0] for row in rows]

    async def get_products_bought_by(
        self,
        customer_ids: List[int],
        exclude_product_ids: Iterable[int] = (),
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        Available products the given customers bought, minus excluded ids.

        Returns:
            [{"product": Product, "purchase_count": int, "total_quantity": int}]
            ranked by purchase_count, then product id
        """
        if not customer_ids:
            return []

        exclude = list(exclude_product_ids)
        params: list = [*customer_ids, COMPLETED]
        exclude_sql = ""
        if exclude:
            exclude_sql = f"AND oi.product_id NOT IN ({_placeholders(exclude)})"
            params.extend(exclude)
        params.append(limit)

        rows = await self.fetchall(f"""
            SELECT {PRODUCT_COLUMNS},
                   COUNT(oi.id) AS purchase_count,
                   SUM(oi.quantity) AS total_quantity
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            WHERE o.customer_id IN ({_placeholders(customer_ids)})
              AND o.status = ?
              AND p.is_available
              {exclude_sql}
            GROUP BY {PRODUCT_GROUP_BY}
            ORDER BY purchase_count DESC, p.id
            LIMIT ?
        """, params)
        return [
            {
                "product": Product.from_row(row[:6]),
                "purchase_count": int(row[6]),
                "total_quantity": int(row[7] or 0),
            }
            for row in rows
        ]

    async def get_trending_products(self, since: datetime, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Available products ranked by completed order lines since a moment.

        Returns:
            [{"product": Product, "order_count": int, "total_sold": int}]
        """
        rows = await self.fetchall(f"""
            SELECT {PRODUCT_COLUMNS},
                   COUNT(oi.id) AS order_count,
                   SUM(oi.quantity) AS total_sold
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            WHERE o.created_at >= ?
              AND o.status = ?
              AND p.is_available
            GROUP BY {PRODUCT_GROUP_BY}
            ORDER BY order_count DESC, p.id
            LIMIT ?
        """, [since, COMPLETED, limit])
        return [
            {
                "product": Product.from_row(row[:6]),
                "order_count": int(row[6]),
                "total_sold": int(row[7] or 0),
            }
            for row in rows
        ]

    async def get_average_order_value(self, since: datetime) -> float:
        """Average completed order total across all customers since a moment (0 if none)."""
        row = await self.fetchone("""
            SELECT AVG(total_amount)
            FROM orders
            WHERE status = ? AND created_at >= ?
        """, [COMPLETED, since])
        return _to_float(row[0])
