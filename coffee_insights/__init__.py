"""
Rule-based customer analytics and recommendations for the coffee shop.

Modules:
- analytics_service: AnalyticsService facade (entry point for callers)
- recommendation_service: product and coffee bean recommendations
- insights_service: customer insight bundle
- store / repositories: DuckDB data access
- cache: memoization (memory or Redis)
- config, exceptions, validators, observability: shared plumbing
"""

from coffee_insights.exceptions import (
    InsightsError,
    CustomerNotFoundError,
    ProductNotFoundError,
    ValidationError,
)

from coffee_insights.config import config, VERSION

from coffee_insights.cache import (
    BaseCache,
    MemoryCache,
    RedisCache,
    create_cache,
)

from coffee_insights.store import AnalyticsStore, get_store, close_store

from coffee_insights.analytics_service import (
    AnalyticsService,
    create_analytics_service,
    get_analytics_service,
    shutdown_analytics_service,
)

__version__ = VERSION

__all__ = [
    # Exceptions
    "InsightsError",
    "CustomerNotFoundError",
    "ProductNotFoundError",
    "ValidationError",
    # Config
    "config",
    # Cache
    "BaseCache",
    "MemoryCache",
    "RedisCache",
    "create_cache",
    # Store
    "AnalyticsStore",
    "get_store",
    "close_store",
    # Facade
    "AnalyticsService",
    "create_analytics_service",
    "get_analytics_service",
    "shutdown_analytics_service",
]
