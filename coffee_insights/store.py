"""
DuckDB-backed data access gateway for the analytics engines.

Mixin composition:
- CustomersMixin: Per-customer completed orders and aggregates
- CatalogMixin: Product and coffee bean catalog
- SalesMixin: Cross-customer aggregates
- SyncMixin: Data loading
"""
import asyncio
from typing import Optional

from coffee_insights.config import config
from coffee_insights.repositories import (
    BaseRepository,
    CatalogMixin,
    CustomersMixin,
    SalesMixin,
    SyncMixin,
)


class AnalyticsStore(
    CustomersMixin, CatalogMixin, SalesMixin, SyncMixin, BaseRepository
):
    """Read-mostly gateway over orders, products, coffee beans and taste profiles."""


_store_instance: Optional[AnalyticsStore] = None
_store_lock = asyncio.Lock()


async def get_store() -> AnalyticsStore:
    """Get singleton store instance (coroutine-safe)."""
    global _store_instance
    async with _store_lock:
        if _store_instance is None:
            _store_instance = AnalyticsStore(config.database.path)
            await _store_instance.connect()
    return _store_instance


async def close_store() -> None:
    """Close singleton store instance."""
    global _store_instance
    if _store_instance:
        await _store_instance.close()
        _store_instance = None
