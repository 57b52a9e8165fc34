"""
Repository layer for the DuckDB analytics store.

The store is split into focused mixins over one connection:
- BaseRepository: Connection management and schema initialization
- CustomersMixin: Per-customer orders, aggregates and taste profile
- CatalogMixin: Products and coffee beans
- SalesMixin: Cross-customer queries (neighbors, trending, market average)
- SyncMixin: Upserts used to load data
"""
from coffee_insights.repositories.base import BaseRepository
from coffee_insights.repositories.customers import CustomersMixin
from coffee_insights.repositories.catalog import CatalogMixin
from coffee_insights.repositories.sales import SalesMixin
from coffee_insights.repositories.sync import SyncMixin

__all__ = [
    "BaseRepository",
    "CustomersMixin",
    "CatalogMixin",
    "SalesMixin",
    "SyncMixin",
]
