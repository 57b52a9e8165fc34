"""Per-customer read queries. Only completed orders are ever returned."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from coffee_insights.models import Order, OrderItem, TasteProfile, _to_float
from coffee_insights.repositories.base import COMPLETED


class CustomersMixin:

    async def customer_exists(self, customer_id: int) -> bool:
        row = await self.fetchone("SELECT 1 FROM customers WHERE id = ?", [customer_id])
        return row is not None

    async def count_completed_orders(self, customer_id: int) -> int:
        row = await self.fetchone(
            "SELECT COUNT(*) FROM orders WHERE customer_id = ? AND status = ?",
            [customer_id, COMPLETED],
        )
        return int(row[0] or 0)

    async def get_completed_orders(
        self,
        customer_id: int,
        since: Optional[datetime] = None,
    ) -> List[Order]:
        """
        Get a customer's completed orders with their line items.

        Args:
            customer_id: Customer to read
            since: Only orders created at or after this moment

        Returns:
            Orders sorted oldest first (ties broken by id)
        """
        params: list = [customer_id, COMPLETED]
        since_sql = ""
        if since is not None:
            since_sql = "AND o.created_at >= ?"
            params.append(since)

        order_rows = await self.fetchall(f"""
            SELECT o.id, o.customer_id, o.status, o.total_amount, o.created_at
            FROM orders o
            WHERE o.customer_id = ? AND o.status = ? {since_sql}
            ORDER BY o.created_at, o.id
        """, params)

        orders = [
            Order(
                id=row[0],
                customer_id=row[1],
                status=row[2],
                total_amount=_to_float(row[3]),
                created_at=row[4],
            )
            for row in order_rows
        ]
        if not orders:
            return orders

        item_rows = await self.fetchall(f"""
            SELECT oi.order_id, oi.product_id, oi.quantity, oi.unit_price,
                   p.name, p.description, p.category_id, c.name
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            LEFT JOIN products p ON oi.product_id = p.id
            LEFT JOIN categories c ON p.category_id = c.id
            WHERE o.customer_id = ? AND o.status = ? {since_sql}
            ORDER BY oi.order_id, oi.id
        """, params)

        by_order = {order.id: order for order in orders}
        for row in item_rows:
            by_order[row[0]].items.append(OrderItem(
                order_id=row[0],
                product_id=row[1],
                quantity=int(row[2]),
                unit_price=_to_float(row[3]),
                product_name=row[4],
                description=row[5],
                category_id=row[6],
                category_name=row[7],
            ))
        return orders

    async def get_purchased_product_ids(self, customer_id: int) -> Set[int]:
        rows = await self.fetchall("""
            SELECT DISTINCT oi.product_id
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            WHERE o.customer_id = ? AND o.status = ?
        """, [customer_id, COMPLETED])
        return {row[0] for row in rows}

    async def get_top_categories(self, customer_id: int, limit: int = 3) -> List[int]:
        """Category ids ranked by number of purchased line items (ties: lower id first)."""
        rows = await self.fetchall("""
            SELECT p.category_id, COUNT(*) AS purchase_count
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            WHERE o.customer_id = ? AND o.status = ? AND p.category_id IS NOT NULL
            GROUP BY p.category_id
            ORDER BY purchase_count DESC, p.category_id
            LIMIT ?
        """, [customer_id, COMPLETED, limit])
        return [row[0] for row in rows]

    async def get_category_stats(self, customer_id: int) -> List[Dict[str, Any]]:
        """Per-category order count, spend and last purchase for a customer."""
        rows = await self.fetchall("""
            SELECT c.id, c.name,
                   COUNT(DISTINCT oi.order_id) AS order_count,
                   SUM(oi.quantity * oi.unit_price) AS total_spent,
                   MAX(o.created_at) AS last_purchase
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            JOIN categories c ON p.category_id = c.id
            WHERE o.customer_id = ? AND o.status = ?
            GROUP BY c.id, c.name
            ORDER BY c.id
        """, [customer_id, COMPLETED])
        return [
            {
                "category_id": row[0],
                "category": row[1],
                "order_count": int(row[2]),
                "total_spent": _to_float(row[3]),
                "last_purchase": row[4],
            }
            for row in rows
        ]

    async def get_product_stats(self, customer_id: int) -> List[Dict[str, Any]]:
        """Per-product line count, quantity and last purchase for a customer."""
        rows = await self.fetchall("""
            SELECT p.id, p.name, p.price,
                   COUNT(oi.id) AS order_count,
                   SUM(oi.quantity) AS total_quantity,
                   MAX(o.created_at) AS last_purchase
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            WHERE o.customer_id = ? AND o.status = ?
            GROUP BY p.id, p.name, p.price
            ORDER BY order_count DESC, p.id
        """, [customer_id, COMPLETED])
        return [
            {
                "id": row[0],
                "name": row[1],
                "price": _to_float(row[2]),
                "order_count": int(row[3]),
                "total_quantity": int(row[4] or 0),
                "last_purchase": row[5],
            }
            for row in rows
        ]

    async def get_product_purchase_stats(self, customer_id: int, product_id: int) -> Dict[str, Any]:
        """Purchase count, total quantity and last purchase of one product by one customer."""
        row = await self.fetchone("""
            SELECT COUNT(oi.id), COALESCE(SUM(oi.quantity), 0), MAX(o.created_at)
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            WHERE o.customer_id = ? AND o.status = ? AND oi.product_id = ?
        """, [customer_id, COMPLETED, product_id])
        return {
            "purchase_count": int(row[0] or 0),
            "total_quantity": int(row[1] or 0),
            "last_purchase": row[2],
        }

    async def get_coffee_purchase_lines(self, customer_id: int) -> List[Dict[str, Optional[str]]]:
        """
        Name and description of every coffee-related line item.

        A line is coffee-related when its category or product name mentions
        coffee, or its description mentions a roast.
        """
        rows = await self.fetchall("""
            SELECT p.name, p.description
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            LEFT JOIN categories c ON p.category_id = c.id
            WHERE o.customer_id = ? AND o.status = ?
              AND (c.name ILIKE '%coffee%'
                   OR p.name ILIKE '%coffee%'
                   OR p.description ILIKE '%roast%')
            ORDER BY oi.order_id, oi.id
        """, [customer_id, COMPLETED])
        return [{"name": row[0], "description": row[1]} for row in rows]

    async def get_coffee_category_descriptions(self, customer_id: int) -> List[str]:
        """Descriptions of purchased products filed under a coffee category."""
        rows = await self.fetchall("""
            SELECT p.description
            FROM order_items oi
            JOIN orders o ON oi.order_id = o.id
            JOIN products p ON oi.product_id = p.id
            JOIN categories c ON p.category_id = c.id
            WHERE o.customer_id = ? AND o.status = ? AND c.name ILIKE '%coffee%'
            ORDER BY oi.order_id, oi.id
        """, [customer_id, COMPLETED])
        return [row[0] for row in rows if row[0]]

    async def get_taste_profile(self, customer_id: int) -> Optional[TasteProfile]:
        row = await self.fetchone("""
            SELECT customer_id, favorite_roast, flavor_preferences
            FROM taste_profiles
            WHERE customer_id = ?
        """, [customer_id])
        if row is None:
            return None
        return TasteProfile(
            customer_id=row[0],
            favorite_roast=row[1],
            flavor_preferences=list(row[2] or []),
        )
