"""
Customer analytics facade.

Single entry point over the recommendation and insights engines. Callers
(web controllers, jobs, the homepage widget) talk to AnalyticsService only;
it owns the shared store and cache and adds a few composite reports:

- affinity report: affinity score plus a human-readable interpretation
- personalization level: how much we know about a customer
- homepage recommendations: personalized for customers, trending for guests
- single insight sections and bulk insights
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from coffee_insights.cache import BaseCache, RedisCache, create_cache
from coffee_insights.config import AppConfig, config, validate_config
from coffee_insights.exceptions import CustomerNotFoundError, ProductNotFoundError, ValidationError
from coffee_insights.insights_service import SECTIONS, CustomerInsightsService
from coffee_insights.models import PersonalizationLevel
from coffee_insights.observability import get_logger, metrics, setup_logging
from coffee_insights.recommendation_service import (
    FEATURED_POINTS,
    POPULARITY_POINTS_PER_ORDER,
    RecommendationService,
    interpret_affinity_score,
)
from coffee_insights.store import AnalyticsStore, get_store
from coffee_insights.validators import (
    validate_customer_id,
    validate_customer_ids,
    validate_product_id,
)

logger = get_logger(__name__)


class AnalyticsService:
    """Orchestrates the engines over one store and one cache."""

    def __init__(
        self,
        store: AnalyticsStore,
        cache: BaseCache,
        clock: Callable[[], datetime] = datetime.now,
        app_config: AppConfig = config,
    ):
        self.store = store
        self.cache = cache
        self.clock = clock
        self.config = app_config
        ttl = app_config.cache.ttl_seconds

        self.recommendations = RecommendationService(
            store, cache, clock=clock, settings=app_config.recommendations, ttl=ttl
        )
        self.insights = CustomerInsightsService(
            store, cache, clock=clock, settings=app_config.insights, ttl=ttl
        )

    # ─── Recommendations ─────────────────────────────────────────────────────

    async def get_product_recommendations(self, customer_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        validate_customer_id(customer_id)
        return await self.recommendations.get_product_recommendations(customer_id, limit)

    async def get_coffee_bean_recommendations(self, customer_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        validate_customer_id(customer_id)
        return await self.recommendations.get_coffee_bean_recommendations(customer_id, limit)

    async def calculate_customer_affinity_score(self, customer_id: int, product_id: int) -> float:
        validate_customer_id(customer_id)
        validate_product_id(product_id)
        return await self.recommendations.calculate_customer_affinity_score(customer_id, product_id)

    async def get_affinity_report(self, customer_id: int, product_id: int) -> Dict[str, Any]:
        """
        Affinity score with its interpretation.

        Raises:
            CustomerNotFoundError: If the customer does not exist
            ProductNotFoundError: If the product does not exist
        """
        validate_customer_id(customer_id)
        validate_product_id(product_id)
        if not await self.store.product_exists(product_id):
            metrics.record_error("ProductNotFoundError")
            raise ProductNotFoundError(product_id)

        score = await self.recommendations.calculate_customer_affinity_score(customer_id, product_id)
        return {
            "customer_id": customer_id,
            "product_id": product_id,
            "affinity_score": score,
            "interpretation": interpret_affinity_score(score),
        }

    async def get_homepage_recommendations(self, customer_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Products and coffee beans for the storefront homepage.

        Known customers get their personalized rankings. Guests (no id) get
        products trending over the popularity window, or the newest
        available products when nothing sold recently, plus featured beans.
        """
        settings = self.config.recommendations

        if customer_id is not None:
            validate_customer_id(customer_id)
            return {
                "personalized": True,
                "products": await self.recommendations.get_product_recommendations(
                    customer_id, settings.homepage_product_limit
                ),
                "coffee_beans": await self.recommendations.get_coffee_bean_recommendations(
                    customer_id, settings.homepage_bean_limit
                ),
            }

        since = self.clock() - timedelta(days=settings.popularity_window_days)
        trending = await self.store.get_trending_products(since, limit=settings.homepage_product_limit)
        if trending:
            products = [
                {
                    "item": row["product"].to_dict(),
                    "score": row["order_count"] * POPULARITY_POINTS_PER_ORDER,
                    "reasons": [f"Trending now - {row['total_sold']} sold this month"],
                }
                for row in trending
            ]
        else:
            newest = await self.store.get_newest_available_products(limit=settings.homepage_product_limit)
            products = [
                {"item": product.to_dict(), "score": 0, "reasons": ["New arrival"]}
                for product in newest
            ]

        beans = await self.store.get_featured_coffee_beans(limit=settings.homepage_bean_limit)
        return {
            "personalized": False,
            "products": products,
            "coffee_beans": [
                {"item": bean.to_dict(), "score": FEATURED_POINTS, "reasons": ["Featured selection"]}
                for bean in beans
            ],
        }

    async def clear_recommendation_cache(self, customer_id: int) -> int:
        return await self.recommendations.clear_customer_recommendation_cache(customer_id)

    # ─── Insights ────────────────────────────────────────────────────────────

    async def generate_customer_insights(self, customer_id: int) -> Dict[str, Any]:
        validate_customer_id(customer_id)
        return await self.insights.generate_customer_insights(customer_id)

    async def get_insight_section(self, customer_id: int, section: str) -> Any:
        """
        One named section of the (cached) insight bundle.

        Raises:
            ValidationError: If section is not one of the bundle's sections
        """
        if section not in SECTIONS:
            raise ValidationError("section", f"Must be one of: {', '.join(SECTIONS)}", section)
        bundle = await self.generate_customer_insights(customer_id)
        return bundle[section]

    async def get_bulk_insights(self, customer_ids: Iterable[int]) -> Dict[str, Any]:
        """
        Insight bundles for up to 50 customers.

        Unknown customers are reported under ``not_found`` rather than
        failing the whole batch.

        Returns:
            {"insights": {customer_id: bundle}, "not_found": [customer_id, ...]}
        """
        ids = validate_customer_ids(customer_ids)

        async def one(cid: int) -> Optional[Dict[str, Any]]:
            try:
                return await self.insights.generate_customer_insights(cid)
            except CustomerNotFoundError:
                return None

        bundles = await asyncio.gather(*(one(cid) for cid in ids))

        insights = {}
        not_found = []
        for cid, bundle in zip(ids, bundles):
            if bundle is None:
                not_found.append(cid)
            else:
                insights[cid] = bundle

        logger.info(f"Bulk insights: {len(insights)} computed, {len(not_found)} not found")
        return {"insights": insights, "not_found": not_found}

    async def get_personalization_level(self, customer_id: int) -> str:
        """
        How much history backs this customer's personalization.

        HIGH: 10+ orders and a taste profile; MEDIUM: 3+ orders or a taste
        profile; LOW: any order; NONE otherwise.
        """
        validate_customer_id(customer_id)
        if not await self.store.customer_exists(customer_id):
            metrics.record_error("CustomerNotFoundError")
            raise CustomerNotFoundError(customer_id)

        order_count = await self.store.count_completed_orders(customer_id)
        has_profile = await self.store.get_taste_profile(customer_id) is not None

        if order_count >= 10 and has_profile:
            return PersonalizationLevel.HIGH.value
        if order_count >= 3 or has_profile:
            return PersonalizationLevel.MEDIUM.value
        if order_count >= 1:
            return PersonalizationLevel.LOW.value
        return PersonalizationLevel.NONE.value

    async def clear_customer_insights_cache(self, customer_id: int) -> bool:
        return await self.insights.clear_customer_insights_cache(customer_id)

    async def clear_customer_cache(self, customer_id: int) -> None:
        """Drop everything cached for a customer, e.g. after a new order."""
        await self.clear_customer_insights_cache(customer_id)
        await self.clear_recommendation_cache(customer_id)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.get_stats(),
            "engine": metrics.get_stats(),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_service: Optional[AnalyticsService] = None


async def create_analytics_service(
    store: Optional[AnalyticsStore] = None,
    cache: Optional[BaseCache] = None,
    app_config: AppConfig = config,
) -> AnalyticsService:
    """Build a service over the given store/cache, or the configured ones."""
    validate_config(app_config)
    if store is None:
        store = await get_store()
    if cache is None:
        cache = create_cache(app_config.cache)
        if isinstance(cache, RedisCache):
            await cache.connect()
    return AnalyticsService(store, cache, app_config=app_config)


async def get_analytics_service() -> AnalyticsService:
    """Get singleton analytics service instance, configuring logging on first use."""
    global _service
    if _service is None:
        setup_logging(config.logging.level, config.logging.json_format)
        _service = await create_analytics_service()
    return _service


async def shutdown_analytics_service() -> None:
    """Release the singleton's cache connection."""
    global _service
    if _service is not None:
        if isinstance(_service.cache, RedisCache):
            await _service.cache.disconnect()
        _service = None
