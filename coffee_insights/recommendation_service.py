"""
Rule-based product and coffee bean recommendations.

Four independent candidate strategies feed a weighted merge:
- collaborative: products bought by customers with overlapping purchases
- content_based: unpurchased products from the customer's favorite categories
- popular: products trending over the last 30 days
- time_based: products matching keywords for the current time of day

Coffee beans are scored by additive rules over the customer's taste profile,
origin history, featured flag and growing elevation. Results are memoized
per customer for an hour.
"""
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from coffee_insights.cache import BaseCache
from coffee_insights.config import RecommendationConfig, config
from coffee_insights.exceptions import CustomerNotFoundError
from coffee_insights.models import CoffeeBean, TasteProfile
from coffee_insights.observability import customer_context, get_logger, metrics, timed
from coffee_insights.validators import validate_limit

logger = get_logger(__name__)

# Additive coffee bean rules
ROAST_MATCH_POINTS = 20
FLAVOR_MATCH_POINTS = 10
NEW_ORIGIN_POINTS = 15
FEATURED_POINTS = 25
HIGH_ELEVATION_POINTS = 5
HIGH_ELEVATION_METERS = 1500

# Fixed strategy scores
COLLABORATIVE_POINTS_PER_PURCHASE = 10
FAVORITE_CATEGORY_POINTS = 10
OTHER_CATEGORY_POINTS = 5
POPULARITY_POINTS_PER_ORDER = 5
TIME_CONTEXT_POINTS = 8

# (start_hour, end_hour_exclusive, bucket, keywords); first match wins
TIME_CONTEXT_RULES: List[Tuple[int, int, str, List[str]]] = [
    (6, 11, "morning", ["breakfast", "morning", "espresso", "latte", "croissant"]),
    (14, 17, "afternoon", ["snack", "cake", "pastry", "iced", "cold brew"]),
    (17, 21, "evening", ["dessert", "decaf", "tea"]),
]
DEFAULT_TIME_CONTEXT = ("default", ["coffee", "beverage"])


def product_cache_key(customer_id: int, limit: int) -> str:
    return f"product_recommendations:{customer_id}:{limit}"


def bean_cache_key(customer_id: int, limit: int) -> str:
    return f"coffee_bean_recommendations:{customer_id}:{limit}"


class RecommendationSource(NamedTuple):
    """One strategy's candidates and its weight in the merge."""
    name: str
    candidates: List[Dict[str, Any]]
    weight: float


def merge_and_rank(sources: Iterable[RecommendationSource], limit: int) -> List[Dict[str, Any]]:
    """
    Fold weighted candidate lists into one ranking.

    Each candidate is ``{"product": Product, "score": float, "reason": str}``.
    A product's combined score is the sum of ``score * weight`` over every
    source it appears in; reasons accumulate in source order. Ties keep
    first-seen order.

    Returns:
        Up to ``limit`` entries ``{"item", "score", "reasons", "sources"}``,
        scores non-increasing
    """
    combined: Dict[int, Dict[str, Any]] = {}

    for source in sources:
        for candidate in source.candidates:
            product = candidate["product"]
            entry = combined.setdefault(product.id, {
                "item": product.to_dict(),
                "score": 0.0,
                "reasons": [],
                "sources": {},
            })
            entry["score"] += candidate["score"] * source.weight
            entry["reasons"].append(candidate["reason"])
            entry["sources"][source.name] = candidate["score"]

    ranked = sorted(combined.values(), key=lambda e: e["score"], reverse=True)
    return [
        {**entry, "score": round(entry["score"], 4)}
        for entry in ranked[:limit]
    ]


def time_context_keywords(hour: int) -> Tuple[str, List[str]]:
    """Time-of-day bucket and its product keywords for an hour (0-23)."""
    for start, end, bucket, keywords in TIME_CONTEXT_RULES:
        if start <= hour < end:
            return bucket, keywords
    return DEFAULT_TIME_CONTEXT


def parse_elevation(text: Optional[str]) -> Optional[int]:
    """
    Leading integer of a free-text elevation.

    Everything but digits and signs is dropped first, so "1,800 masl"
    reads as 1800 and "1,200-1,900m" as 1200.
    """
    if not text:
        return None
    digits = re.sub(r"[^0-9+\-]", "", text)
    match = re.match(r"[+-]?\d+", digits)
    return int(match.group()) if match else None


def score_coffee_bean(
    bean: CoffeeBean,
    taste_profile: Optional[TasteProfile],
    previous_descriptions: List[str],
) -> Tuple[int, List[str]]:
    """
    Additive rule score for one bean.

    Returns:
        (score, reasons)
    """
    score = 0
    reasons: List[str] = []

    if taste_profile:
        roast = taste_profile.favorite_roast
        if roast and bean.processing_method and roast.lower() in bean.processing_method.lower():
            score += ROAST_MATCH_POINTS
            reasons.append("Matches your roast preference")

        notes = (bean.tasting_notes or "").lower()
        for preference in taste_profile.flavor_preferences:
            if preference and preference.lower() in notes:
                score += FLAVOR_MATCH_POINTS
                reasons.append(f"Matches your taste for {preference}")
                break

    origin = (bean.origin_country or "").lower()
    has_tried_origin = any(origin in text.lower() for text in previous_descriptions)
    if not has_tried_origin:
        score += NEW_ORIGIN_POINTS
        reasons.append("Discover a new origin")

    if bean.is_featured:
        score += FEATURED_POINTS
        reasons.append("Featured selection")

    elevation = parse_elevation(bean.elevation)
    if elevation is not None and elevation > HIGH_ELEVATION_METERS:
        score += HIGH_ELEVATION_POINTS

    return score, reasons


def compute_affinity_score(
    purchase_count: int,
    total_quantity: int,
    days_since_last_purchase: Optional[int],
) -> float:
    """
    RFM-style customer/product affinity in [0, 100].

    recency = max(0, 100 - days) (0 when never purchased),
    frequency = min(100, count * 20), monetary = min(100, quantity * 10),
    weighted 0.3 / 0.4 / 0.3.
    """
    recency = 0
    if days_since_last_purchase is not None:
        recency = max(0, 100 - max(0, days_since_last_purchase))
    frequency = min(100, purchase_count * 20)
    monetary = min(100, total_quantity * 10)

    return round(recency * 0.3 + frequency * 0.4 + monetary * 0.3, 2)


def interpret_affinity_score(score: float) -> str:
    if score >= 80:
        return "Highly Recommended - Strong Match"
    if score >= 60:
        return "Recommended - Good Match"
    if score >= 40:
        return "May Like - Moderate Match"
    if score >= 20:
        return "Consider - Low Match"
    return "New - No History"


class RecommendationService:
    """
    Product and coffee bean recommendations for one customer at a time.

    Stateless apart from the injected cache; all data comes from the store
    at call time.
    """

    def __init__(
        self,
        store,
        cache: BaseCache,
        clock: Callable[[], datetime] = datetime.now,
        settings: RecommendationConfig = config.recommendations,
        ttl: int = config.cache.ttl_seconds,
    ):
        self.store = store
        self.cache = cache
        self.clock = clock
        self.settings = settings
        self.ttl = ttl

    async def _ensure_customer(self, customer_id: int) -> None:
        if not await self.store.customer_exists(customer_id):
            metrics.record_error("CustomerNotFoundError")
            raise CustomerNotFoundError(customer_id)

    # ─── Products ────────────────────────────────────────────────────────────

    async def get_product_recommendations(self, customer_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        """
        Ranked product recommendations.

        Raises:
            ValidationError: If limit is outside [1, 20]
            CustomerNotFoundError: If the customer does not exist
        """
        validate_limit(limit, max_value=self.settings.max_limit)
        await self._ensure_customer(customer_id)

        async def compute():
            return await self._build_product_recommendations(customer_id, limit)

        return await self.cache.get_or_set(product_cache_key(customer_id, limit), compute, self.ttl)

    @timed("product_recommendations")
    async def _build_product_recommendations(self, customer_id: int, limit: int) -> List[Dict[str, Any]]:
        metrics.record_computation("product_recommendations")
        weights = self.settings.strategy_weights

        with customer_context(customer_id):
            sources = [
                RecommendationSource("collaborative", await self.collaborative_candidates(customer_id, limit), weights["collaborative"]),
                RecommendationSource("content_based", await self.content_based_candidates(customer_id, limit), weights["content_based"]),
                RecommendationSource("popular", await self.popular_candidates(limit), weights["popular"]),
                RecommendationSource("time_based", await self.time_based_candidates(limit), weights["time_based"]),
            ]
            ranked = merge_and_rank(sources, limit)
            logger.info(
                "Product recommendations computed",
                extra={"candidates": {s.name: len(s.candidates) for s in sources}, "returned": len(ranked)},
            )
        return ranked

    async def collaborative_candidates(self, customer_id: int, limit: int) -> List[Dict[str, Any]]:
        """Products bought by the 20 customers sharing the most purchased products."""
        purchased = await self.store.get_purchased_product_ids(customer_id)
        if not purchased:
            return []

        neighbors = await self.store.get_similar_customers(
            customer_id, sorted(purchased), limit=self.settings.neighbor_limit
        )
        if not neighbors:
            return []

        rows = await self.store.get_products_bought_by(neighbors, sorted(purchased), limit=limit)
        return [
            {
                "product": row["product"],
                "score": row["purchase_count"] * COLLABORATIVE_POINTS_PER_PURCHASE,
                "reason": "Customers who bought similar items also purchased this",
            }
            for row in rows
        ]

    async def content_based_candidates(self, customer_id: int, limit: int) -> List[Dict[str, Any]]:
        """Unpurchased available products in the customer's top categories."""
        favorite_categories = await self.store.get_top_categories(
            customer_id, limit=self.settings.favorite_category_limit
        )
        if not favorite_categories:
            return []

        purchased = await self.store.get_purchased_product_ids(customer_id)
        products = await self.store.get_available_products_in_categories(
            favorite_categories, exclude_ids=sorted(purchased), limit=limit * 2
        )

        candidates = [
            {
                "product": product,
                "score": FAVORITE_CATEGORY_POINTS if product.category_id == favorite_categories[0] else OTHER_CATEGORY_POINTS,
                "reason": "Based on your favorite categories",
            }
            for product in products
        ]
        candidates.sort(key=lambda c: c["score"], reverse=True)
        return candidates[:limit]

    async def popular_candidates(self, limit: int) -> List[Dict[str, Any]]:
        """Products with the most completed order lines in the popularity window."""
        since = self.clock() - timedelta(days=self.settings.popularity_window_days)
        rows = await self.store.get_trending_products(since, limit=limit)
        return [
            {
                "product": row["product"],
                "score": row["order_count"] * POPULARITY_POINTS_PER_ORDER,
                "reason": f"Trending now - {row['total_sold']} sold this month",
            }
            for row in rows
        ]

    async def time_based_candidates(self, limit: int) -> List[Dict[str, Any]]:
        """Products matching keywords for the current hour."""
        _, keywords = time_context_keywords(self.clock().hour)
        products = await self.store.search_available_products(keywords, limit=limit)
        return [
            {
                "product": product,
                "score": TIME_CONTEXT_POINTS,
                "reason": "Perfect for this time of day",
            }
            for product in products
        ]

    # ─── Coffee beans ────────────────────────────────────────────────────────

    async def get_coffee_bean_recommendations(self, customer_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        """
        In-stock coffee beans ranked by rule score; zero-score beans are dropped.

        Raises:
            ValidationError: If limit is outside [1, 20]
            CustomerNotFoundError: If the customer does not exist
        """
        validate_limit(limit, max_value=self.settings.max_limit)
        await self._ensure_customer(customer_id)

        async def compute():
            return await self._build_coffee_bean_recommendations(customer_id, limit)

        return await self.cache.get_or_set(bean_cache_key(customer_id, limit), compute, self.ttl)

    @timed("coffee_bean_recommendations")
    async def _build_coffee_bean_recommendations(self, customer_id: int, limit: int) -> List[Dict[str, Any]]:
        metrics.record_computation("coffee_bean_recommendations")

        taste_profile = await self.store.get_taste_profile(customer_id)
        previous_descriptions = await self.store.get_coffee_category_descriptions(customer_id)
        beans = await self.store.get_coffee_beans_in_stock()

        scored = []
        for bean in beans:
            score, reasons = score_coffee_bean(bean, taste_profile, previous_descriptions)
            if score > 0:
                scored.append({"item": bean.to_dict(), "score": score, "reasons": reasons})

        scored.sort(key=lambda r: r["score"], reverse=True)

        with customer_context(customer_id):
            logger.debug(
                "Coffee bean recommendations computed",
                extra={"beans_in_stock": len(beans), "scored": len(scored), "has_taste_profile": taste_profile is not None},
            )
        return scored[:limit]

    # ─── Affinity ────────────────────────────────────────────────────────────

    async def calculate_customer_affinity_score(self, customer_id: int, product_id: int) -> float:
        """
        Affinity of a customer for a product, in [0, 100].

        Raises:
            CustomerNotFoundError: If the customer does not exist
        """
        await self._ensure_customer(customer_id)

        stats = await self.store.get_product_purchase_stats(customer_id, product_id)
        days_since = None
        if stats["last_purchase"] is not None:
            days_since = (self.clock() - stats["last_purchase"]).days

        return compute_affinity_score(stats["purchase_count"], stats["total_quantity"], days_since)

    # ─── Cache ───────────────────────────────────────────────────────────────

    async def clear_customer_recommendation_cache(self, customer_id: int) -> int:
        """Drop every cached product and bean ranking for a customer; returns keys removed."""
        removed = await self.cache.invalidate_pattern(f"product_recommendations:{customer_id}:*")
        removed += await self.cache.invalidate_pattern(f"coffee_bean_recommendations:{customer_id}:*")
        logger.debug(f"Cleared {removed} recommendation cache entries for customer {customer_id}")
        return removed
