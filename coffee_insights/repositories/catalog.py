"""Catalog read queries: products and coffee beans."""
from __future__ import annotations

from typing import Iterable, List

from coffee_insights.models import CoffeeBean, Product
from coffee_insights.repositories.base import _placeholders

PRODUCT_COLUMNS = "p.id, p.name, p.category_id, p.description, p.price, p.is_available"

BEAN_COLUMNS = (
    "id, name, origin_country, region, processing_method, tasting_notes, "
    "elevation, variety, is_featured, stock_quantity"
)


class CatalogMixin:

    async def product_exists(self, product_id: int) -> bool:
        row = await self.fetchone("SELECT 1 FROM products WHERE id = ?", [product_id])
        return row is not None

    async def count_available_products(self) -> int:
        row = await self.fetchone("SELECT COUNT(*) FROM products WHERE is_available")
        return int(row[0] or 0)

    async def get_available_products_in_categories(
        self,
        category_ids: List[int],
        exclude_ids: Iterable[int] = (),
        limit: int = 10,
    ) -> List[Product]:
        """Available products in any of the categories, minus excluded ids, by id."""
        if not category_ids:
            return []

        exclude = list(exclude_ids)
        params: list = list(category_ids)
        where = [f"p.category_id IN ({_placeholders(category_ids)})", "p.is_available"]
        if exclude:
            where.append(f"p.id NOT IN ({_placeholders(exclude)})")
            params.extend(exclude)
        params.append(limit)

        rows = await self.fetchall(f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p
            WHERE {" AND ".join(where)}
            ORDER BY p.id
            LIMIT ?
        """, params)
        return [Product.from_row(row) for row in rows]

    async def search_available_products(self, keywords: List[str], limit: int = 10) -> List[Product]:
        """Available products whose name or description contains any keyword (case-insensitive)."""
        if not keywords:
            return []

        clauses = []
        params: list = []
        for keyword in keywords:
            clauses.append("p.name ILIKE ? OR p.description ILIKE ?")
            params.extend([f"%{keyword}%", f"%{keyword}%"])
        params.append(limit)

        rows = await self.fetchall(f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p
            WHERE p.is_available AND ({" OR ".join(clauses)})
            ORDER BY p.id
            LIMIT ?
        """, params)
        return [Product.from_row(row) for row in rows]

    async def get_newest_available_products(self, limit: int = 4) -> List[Product]:
        rows = await self.fetchall(f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p
            WHERE p.is_available
            ORDER BY p.created_at DESC, p.id DESC
            LIMIT ?
        """, [limit])
        return [Product.from_row(row) for row in rows]

    async def get_coffee_beans_in_stock(self) -> List[CoffeeBean]:
        rows = await self.fetchall(f"""
            SELECT {BEAN_COLUMNS}
            FROM coffee_beans
            WHERE stock_quantity > 0
            ORDER BY id
        """)
        return [CoffeeBean.from_row(row) for row in rows]

    async def get_featured_coffee_beans(self, limit: int = 3) -> List[CoffeeBean]:
        rows = await self.fetchall(f"""
            SELECT {BEAN_COLUMNS}
            FROM coffee_beans
            WHERE is_featured AND stock_quantity > 0
            ORDER BY id
            LIMIT ?
        """, [limit])
        return [CoffeeBean.from_row(row) for row in rows]
