"""
Rule-based customer insights.

Seven analyses over a customer's completed order history, composed into one
JSON-shaped bundle and memoized for an hour:

    purchase_behavior    totals, frequency/spending tiers, trend, time patterns
    product_affinity     favorite categories/products, basket pairs, taste profile
    engagement           Customer Engagement Index (CEI) over the last 90 days
    satisfaction         additive score from repeat/frequency/value/gap signals
    predictions          next purchase date with a confidence band
    lifecycle            relationship stage from an ordered rule cascade
    recommended_actions  independent marketing triggers

Every analysis is a module-level function of already-fetched data and the
current time, so the service only fetches and composes.
"""
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, TypeVar

import numpy as np

from coffee_insights.cache import BaseCache
from coffee_insights.config import InsightsConfig, config
from coffee_insights.exceptions import CustomerNotFoundError
from coffee_insights.models import (
    ActionPriority,
    DayPreference,
    EngagementLevel,
    FrequencyTier,
    LifecycleStage,
    Order,
    PredictionConfidence,
    SatisfactionLevel,
    SpendingTier,
    SpendingTrend,
    TasteProfileType,
    TimePreference,
)
from coffee_insights.observability import customer_context, get_logger, metrics, timed

logger = get_logger(__name__)

T = TypeVar("T")

INSUFFICIENT_DATA = {"status": "insufficient_data"}
NO_COFFEE_PURCHASES = {"status": "no_coffee_purchases"}

SECTIONS = (
    "purchase_behavior",
    "product_affinity",
    "engagement",
    "satisfaction",
    "predictions",
    "lifecycle",
    "recommended_actions",
)

FLAVOR_KEYWORDS = (
    "chocolaty", "nutty", "fruity", "floral",
    "bright", "smooth", "bold", "mild",
    "rich", "sweet", "citrus", "berry",
)
ROAST_KEYWORDS = ("light", "medium", "dark")


def insights_cache_key(customer_id: int) -> str:
    return f"customer_insights:{customer_id}"


# ═══════════════════════════════════════════════════════════════════════════════
# RULE CASCADES
# ═══════════════════════════════════════════════════════════════════════════════

def first_match(rules: Sequence[Tuple[Callable[[Any], bool], T]], value: Any, default: T) -> T:
    """Result of the first rule whose predicate accepts value, else default."""
    for predicate, result in rules:
        if predicate(value):
            return result
    return default


FREQUENCY_TIER_RULES = [
    (lambda per_month: per_month >= 20, FrequencyTier.DAILY),
    (lambda per_month: per_month >= 8, FrequencyTier.WEEKLY),
    (lambda per_month: per_month >= 4, FrequencyTier.BI_WEEKLY),
    (lambda per_month: per_month >= 2, FrequencyTier.MONTHLY),
    (lambda per_month: per_month >= 1, FrequencyTier.OCCASIONAL),
]

SPENDING_TIER_RULES = [
    (lambda aov: aov > 50, SpendingTier.PREMIUM),
    (lambda aov: aov >= 20, SpendingTier.STANDARD),
    (lambda aov: aov >= 10, SpendingTier.BUDGET),
]

ENGAGEMENT_LEVEL_RULES = [
    (lambda cei: cei >= 90, EngagementLevel.HIGHLY_ENGAGED),
    (lambda cei: cei >= 70, EngagementLevel.ENGAGED),
    (lambda cei: cei >= 50, EngagementLevel.MODERATELY_ENGAGED),
    (lambda cei: cei >= 30, EngagementLevel.LOW_ENGAGEMENT),
]

SATISFACTION_LEVEL_RULES = [
    (lambda score: score >= 80, SatisfactionLevel.DELIGHTED),
    (lambda score: score >= 50, SatisfactionLevel.SATISFIED),
    (lambda score: score >= 20, SatisfactionLevel.NEUTRAL),
    (lambda score: score >= 0, SatisfactionLevel.DISSATISFIED),
]


def determine_frequency_tier(orders_per_month: float) -> str:
    return first_match(FREQUENCY_TIER_RULES, orders_per_month, FrequencyTier.RARE).value


def determine_spending_tier(avg_order_value: float) -> str:
    return first_match(SPENDING_TIER_RULES, avg_order_value, SpendingTier.MINIMAL).value


def determine_engagement_level(cei: float) -> str:
    return first_match(ENGAGEMENT_LEVEL_RULES, cei, EngagementLevel.DISENGAGED).value


def determine_satisfaction_level(score: float) -> str:
    return first_match(SATISFACTION_LEVEL_RULES, score, SatisfactionLevel.UNHAPPY).value


# ═══════════════════════════════════════════════════════════════════════════════
# DATE HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days from earlier to later, never negative."""
    return max(0, (later - earlier).days)


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months from start to end, never negative."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if (end.day, end.time()) < (start.day, start.time()):
        months -= 1
    return max(0, months)


def order_intervals(orders: Sequence[Order]) -> List[int]:
    """Whole days between consecutive orders (orders sorted oldest first)."""
    return [
        days_between(orders[i - 1].created_at, orders[i].created_at)
        for i in range(1, len(orders))
    ]


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    return float(np.mean(values)) if values else 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# 1. PURCHASE BEHAVIOR
# ═══════════════════════════════════════════════════════════════════════════════

def analyze_spending_trend(orders: Sequence[Order]) -> str:
    """Compare the mean of the last 3 orders to the first 3 (needs 4+ orders)."""
    if len(orders) < 4:
        return SpendingTrend.INSUFFICIENT_DATA.value

    recent_avg = _mean(o.total_amount for o in orders[-3:])
    older_avg = _mean(o.total_amount for o in orders[:3])

    percent_change = ((recent_avg - older_avg) / older_avg * 100) if older_avg > 0 else 0.0

    if percent_change > 10:
        return SpendingTrend.INCREASING.value
    if percent_change < -10:
        return SpendingTrend.DECREASING.value
    return SpendingTrend.STABLE.value


def analyze_time_patterns(orders: Sequence[Order]) -> Dict[str, str]:
    """
    Time-of-day and day-of-week preference.

    Morning is 06-10h, afternoon 12-16h, evening 17-20h; one bucket holding
    more than 60% of orders sets the time preference. Weekdays holding more
    than 70%, or weekends more than 60%, set the day preference.
    """
    total = len(orders)
    time_preference = TimePreference.FLEXIBLE
    day_preference = DayPreference.CONSISTENT

    if total > 0:
        hours = [o.created_at.hour for o in orders]
        morning = sum(1 for h in hours if 6 <= h <= 10)
        afternoon = sum(1 for h in hours if 12 <= h <= 16)
        evening = sum(1 for h in hours if 17 <= h <= 20)

        if morning / total > 0.6:
            time_preference = TimePreference.MORNING_PERSON
        elif afternoon / total > 0.6:
            time_preference = TimePreference.AFTERNOON_REGULAR
        elif evening / total > 0.6:
            time_preference = TimePreference.EVENING_VISITOR

        weekday = sum(1 for o in orders if o.created_at.weekday() < 5)
        weekend = total - weekday

        if weekday / total > 0.7:
            day_preference = DayPreference.WEEKDAY_CUSTOMER
        elif weekend / total > 0.6:
            day_preference = DayPreference.WEEKEND_WARRIOR

    return {
        "time_preference": time_preference.value,
        "day_preference": day_preference.value,
    }


def analyze_purchase_behavior(orders: Sequence[Order], now: datetime) -> Dict[str, Any]:
    if not orders:
        return dict(INSUFFICIENT_DATA)

    total_orders = len(orders)
    total_spent = sum(o.total_amount for o in orders)
    avg_order_value = total_spent / total_orders

    first_order, last_order = orders[0], orders[-1]
    orders_per_month = total_orders / max(1, months_between(first_order.created_at, now))

    intervals = order_intervals(orders)
    avg_interval = round(_mean(intervals), 1) if intervals else None

    return {
        "total_orders": total_orders,
        "total_spent": round(total_spent, 2),
        "avg_order_value": round(avg_order_value, 2),
        "orders_per_month": round(orders_per_month, 2),
        "frequency_tier": determine_frequency_tier(orders_per_month),
        "spending_tier": determine_spending_tier(avg_order_value),
        "spending_trend": analyze_spending_trend(orders),
        "time_pattern": analyze_time_patterns(orders),
        "avg_days_between_orders": avg_interval,
        "first_order_date": first_order.created_at.date().isoformat(),
        "last_order_date": last_order.created_at.date().isoformat(),
        "days_since_last_order": days_between(last_order.created_at, now),
    }


# ═══════════════════════════════════════════════════════════════════════════════
# 2. PRODUCT AFFINITY
# ═══════════════════════════════════════════════════════════════════════════════

def _recency_factor(last_purchase: datetime, now: datetime) -> float:
    return max(0, 100 - days_between(last_purchase, now)) / 100


def score_favorite_categories(
    category_stats: List[Dict[str, Any]],
    now: datetime,
    limit: int = 3,
) -> List[Dict[str, Any]]:
    """Categories scored orders*0.4 + (spend/10)*0.4 + recency*0.2, best first."""
    favorites = []
    for stat in category_stats:
        if stat.get("category_id") is None:
            continue
        recency = _recency_factor(stat["last_purchase"], now)
        score = stat["order_count"] * 0.4 + (stat["total_spent"] / 10) * 0.4 + recency * 0.2
        favorites.append({
            "category_id": stat["category_id"],
            "category": stat["category"],
            "score": round(score, 2),
            "order_count": stat["order_count"],
            "total_spent": round(stat["total_spent"], 2),
            "days_since_last_purchase": days_between(stat["last_purchase"], now),
        })

    favorites.sort(key=lambda f: f["score"], reverse=True)
    return favorites[:limit]


def score_favorite_products(
    product_stats: List[Dict[str, Any]],
    now: datetime,
    limit: int = 5,
) -> List[Dict[str, Any]]:
    """Products scored orders*0.5 + quantity*0.3 + recency*0.2, best first."""
    favorites = []
    for stat in product_stats:
        recency = _recency_factor(stat["last_purchase"], now)
        score = stat["order_count"] * 0.5 + stat["total_quantity"] * 0.3 + recency * 0.2
        favorites.append({
            "id": stat["id"],
            "name": stat["name"],
            "price": round(stat["price"], 2),
            "score": round(score, 2),
            "order_count": stat["order_count"],
            "total_quantity": stat["total_quantity"],
            "days_since_last_purchase": days_between(stat["last_purchase"], now),
        })

    favorites.sort(key=lambda f: f["score"], reverse=True)
    return favorites[:limit]


def analyze_product_combinations(orders: Sequence[Order], limit: int = 5) -> List[Dict[str, Any]]:
    """
    Product pairs bought together in orders with 2+ items.

    Strength is the share of all completed orders containing the pair.
    """
    pair_counts: Counter = Counter()
    for order in orders:
        if len(order.items) < 2:
            continue
        names = [item.product_name or f"Product {item.product_id}" for item in order.items]
        for i in range(len(names)):
            for j in range(i + 1, len(names)):
                pair_counts[" + ".join(sorted((names[i], names[j])))] += 1

    total_orders = len(orders)
    results = [
        {
            "combination": combination,
            "times_bought_together": count,
            "strength": round(count / max(1, total_orders) * 100, 1),
        }
        for combination, count in pair_counts.items()
    ]
    results.sort(key=lambda r: r["times_bought_together"], reverse=True)
    return results[:limit]


def discover_taste_profile(coffee_lines: List[Dict[str, Optional[str]]]) -> Dict[str, Any]:
    """
    Classify coffee taste from the text of coffee purchases.

    Every flavor and roast keyword is counted once per line it appears in.
    Fruity/bright among the top flavors reads ADVENTUROUS, then smooth/mild
    GENTLE, then bold/rich INTENSE, otherwise TRADITIONAL.
    """
    if not coffee_lines:
        return dict(NO_COFFEE_PURCHASES)

    flavor_counts = {keyword: 0 for keyword in FLAVOR_KEYWORDS}
    roast_counts = {roast: 0 for roast in ROAST_KEYWORDS}

    for line in coffee_lines:
        text = f"{line.get('name') or ''} {line.get('description') or ''}".lower()
        for keyword in FLAVOR_KEYWORDS:
            if keyword in text:
                flavor_counts[keyword] += 1
        for roast in ROAST_KEYWORDS:
            if roast in text:
                roast_counts[roast] += 1

    # Stable sort keeps keyword order for ties
    ranked_flavors = sorted(FLAVOR_KEYWORDS, key=lambda k: flavor_counts[k], reverse=True)
    top_flavors = [k for k in ranked_flavors[:5] if flavor_counts[k] > 0]

    favorite_roast = max(ROAST_KEYWORDS, key=lambda r: roast_counts[r])
    if roast_counts[favorite_roast] == 0:
        favorite_roast = "unknown"

    profile_rules = [
        (lambda flavors: "fruity" in flavors or "bright" in flavors, TasteProfileType.ADVENTUROUS),
        (lambda flavors: "smooth" in flavors or "mild" in flavors, TasteProfileType.GENTLE),
        (lambda flavors: "bold" in flavors or "rich" in flavors, TasteProfileType.INTENSE),
    ]
    profile = first_match(profile_rules, top_flavors, TasteProfileType.TRADITIONAL)

    return {
        "profile_type": profile.value,
        "favorite_roast": favorite_roast,
        "flavor_preferences": top_flavors,
        "roast_counts": roast_counts,
    }


# ═══════════════════════════════════════════════════════════════════════════════
# 3. ENGAGEMENT (CEI)
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_engagement_score(
    window_orders: Sequence[Order],
    market_avg_order_value: float,
    available_products: int,
    now: datetime,
    settings: InsightsConfig = config.insights,
) -> Dict[str, Any]:
    """
    Customer Engagement Index over the engagement window.

    Components (weight): frequency (30%), monetary (25%), recency (20%),
    diversity (15%), interaction (10%, fixed placeholder).

    The monetary baseline is the market's average order value times 10, a
    rough stand-in for average spend per customer.
    """
    window_days = settings.engagement_window_days

    frequency = min(100.0, (len(window_orders) / window_days) * 100 * 10)

    total_spent = sum(o.total_amount for o in window_orders)
    avg_customer_spent = market_avg_order_value * settings.market_spend_multiplier
    monetary = min(100.0, (total_spent / max(1.0, avg_customer_spent)) * 100)

    recency = 0.0
    if window_orders:
        last_order = max(window_orders, key=lambda o: o.created_at)
        recency = float(max(0, 100 - days_between(last_order.created_at, now)))

    unique_products = {item.product_id for order in window_orders for item in order.items}
    diversity = len(unique_products) / max(1, available_products) * 100

    interaction = float(settings.interaction_score)

    cei = (
        frequency * 0.30
        + monetary * 0.25
        + recency * 0.20
        + diversity * 0.15
        + interaction * 0.10
    )

    return {
        "cei_score": round(cei, 2),
        "engagement_level": determine_engagement_level(cei),
        "components": {
            "frequency": round(frequency, 2),
            "monetary": round(monetary, 2),
            "recency": round(recency, 2),
            "diversity": round(diversity, 2),
            "interaction": round(interaction, 2),
        },
    }


# ═══════════════════════════════════════════════════════════════════════════════
# 4. SATISFACTION
# ═══════════════════════════════════════════════════════════════════════════════

def analyze_satisfaction(orders: Sequence[Order], long_gap_days: int = 60) -> Dict[str, Any]:
    if not orders:
        return dict(INSUFFICIENT_DATA)

    score = 0
    signals = []

    # Products appearing on more than one order line
    line_counts = Counter(item.product_id for order in orders for item in order.items)
    repeat_products = sum(1 for count in line_counts.values() if count > 1)
    if repeat_products > 0:
        points = repeat_products * 10
        score += points
        signals.append({"type": "positive", "signal": "Repeat purchases", "points": points})

    # Order frequency, first half of history vs second half
    mid_point = math.ceil(len(orders) / 2)
    first_half, second_half = orders[:mid_point], orders[mid_point:]
    if second_half:
        first_days = days_between(first_half[0].created_at, first_half[-1].created_at)
        second_days = days_between(second_half[0].created_at, second_half[-1].created_at)
        if first_days > 0 and second_days > 0:
            if len(second_half) / second_days > len(first_half) / first_days:
                score += 5
                signals.append({"type": "positive", "signal": "Increasing order frequency", "points": 5})

    # Order value, last 4 vs first 4
    if len(orders) >= 4:
        recent_aov = _mean(o.total_amount for o in orders[-4:])
        older_aov = _mean(o.total_amount for o in orders[:4])
        if recent_aov > older_aov * 1.1:
            score += 5
            signals.append({"type": "positive", "signal": "Increasing order value", "points": 5})

    long_gaps = [gap for gap in order_intervals(orders) if gap > long_gap_days]
    if long_gaps:
        points = len(long_gaps) * -5
        score += points
        signals.append({"type": "negative", "signal": "Long gaps between orders", "points": points})

    return {
        "satisfaction_score": score,
        "satisfaction_level": determine_satisfaction_level(score),
        "signals": signals,
    }


# ═══════════════════════════════════════════════════════════════════════════════
# 5. PREDICTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def determine_prediction_confidence(order_count: int, std_dev: float) -> str:
    if order_count < 3:
        return PredictionConfidence.UNCERTAIN.value
    if std_dev < 3:
        return PredictionConfidence.HIGH.value
    if std_dev < 7:
        return PredictionConfidence.MEDIUM.value
    return PredictionConfidence.LOW.value


def generate_predictions(orders: Sequence[Order], now: datetime) -> Dict[str, Any]:
    if len(orders) < 2:
        return dict(INSUFFICIENT_DATA)

    intervals = np.array(order_intervals(orders), dtype=float)
    avg_interval = float(intervals.mean())
    std_dev = float(intervals.std())  # population standard deviation

    predicted = orders[-1].created_at + timedelta(days=avg_interval)

    return {
        "next_purchase": {
            "predicted_date": predicted.date().isoformat(),
            "days_until": (predicted.date() - now.date()).days,
            "confidence": determine_prediction_confidence(len(orders), std_dev),
            "avg_interval_days": round(avg_interval, 1),
            "interval_std_dev": round(std_dev, 1),
        },
    }


# ═══════════════════════════════════════════════════════════════════════════════
# 6. LIFECYCLE STAGE
# ═══════════════════════════════════════════════════════════════════════════════

class LifecycleFacts(NamedTuple):
    total_orders: int
    days_since_first: int
    days_since_last: int
    highly_engaged: bool


# Order matters: a customer can satisfy several predicates at once
LIFECYCLE_RULES: List[Tuple[Callable[[LifecycleFacts], bool], Tuple[LifecycleStage, str]]] = [
    (lambda f: f.total_orders == 1 and f.days_since_first <= 30,
     (LifecycleStage.ACQUISITION, LifecycleStage.ACQUISITION.description)),
    (lambda f: 2 <= f.total_orders <= 5 and f.days_since_first <= 90,
     (LifecycleStage.RETENTION, LifecycleStage.RETENTION.description)),
    (lambda f: f.total_orders >= 6 and f.days_since_first > 90 and f.highly_engaged,
     (LifecycleStage.LOYALTY, LifecycleStage.LOYALTY.description)),
    (lambda f: f.highly_engaged and f.total_orders >= 10,
     (LifecycleStage.ADVOCACY, LifecycleStage.ADVOCACY.description)),
    (lambda f: 60 < f.days_since_last <= 90 and f.total_orders >= 3,
     (LifecycleStage.AT_RISK, LifecycleStage.AT_RISK.description)),
    (lambda f: f.days_since_last > 90,
     (LifecycleStage.DORMANT, LifecycleStage.DORMANT.description)),
]
DEFAULT_LIFECYCLE = (LifecycleStage.RETENTION, "Active customer")


def identify_lifecycle_stage(orders: Sequence[Order], cei_score: float, now: datetime) -> Dict[str, Any]:
    if not orders:
        return {
            "stage": LifecycleStage.AWARENESS.value,
            "description": LifecycleStage.AWARENESS.description,
            "total_orders": 0,
        }

    facts = LifecycleFacts(
        total_orders=len(orders),
        days_since_first=days_between(orders[0].created_at, now),
        days_since_last=days_between(orders[-1].created_at, now),
        highly_engaged=cei_score >= 70,
    )
    stage, description = first_match(LIFECYCLE_RULES, facts, DEFAULT_LIFECYCLE)

    return {
        "stage": stage.value,
        "description": description,
        "total_orders": facts.total_orders,
        "days_since_first_order": facts.days_since_first,
        "days_since_last_order": facts.days_since_last,
    }


# ═══════════════════════════════════════════════════════════════════════════════
# 7. RECOMMENDED ACTIONS
# ═══════════════════════════════════════════════════════════════════════════════

ACTIONS: Dict[str, Tuple[ActionPriority, str]] = {
    "WIN_BACK_CAMPAIGN": (ActionPriority.HIGH, "Send personalized win-back offer with 20% discount"),
    "ENGAGEMENT_BOOST": (ActionPriority.MEDIUM, "Send product recommendations and exclusive offer"),
    "VIP_PROGRAM": (ActionPriority.HIGH, "Invite to VIP/subscription program with exclusive benefits"),
    "SECOND_PURCHASE_INCENTIVE": (ActionPriority.HIGH, "Send welcome series with 15% off second purchase"),
    "REENGAGEMENT": (ActionPriority.HIGH, "Send \"We miss you\" campaign with personalized offers"),
    "REACTIVATION": (ActionPriority.CRITICAL, "Launch win-back campaign with major incentive and survey"),
    "LOYALTY_REWARD": (ActionPriority.MEDIUM, "Provide exclusive perks and early access to new products"),
}

# (predicate over (behavior, engagement, lifecycle), action); every match fires
ACTION_TRIGGERS = [
    (lambda b, e, l: e.get("engagement_level") == EngagementLevel.DISENGAGED.value, "WIN_BACK_CAMPAIGN"),
    (lambda b, e, l: e.get("engagement_level") == EngagementLevel.LOW_ENGAGEMENT.value, "ENGAGEMENT_BOOST"),
    (lambda b, e, l: b.get("frequency_tier") in (FrequencyTier.DAILY.value, FrequencyTier.WEEKLY.value), "VIP_PROGRAM"),
    (lambda b, e, l: l.get("stage") == LifecycleStage.ACQUISITION.value, "SECOND_PURCHASE_INCENTIVE"),
    (lambda b, e, l: l.get("stage") == LifecycleStage.AT_RISK.value, "REENGAGEMENT"),
    (lambda b, e, l: l.get("stage") == LifecycleStage.DORMANT.value, "REACTIVATION"),
    (lambda b, e, l: l.get("stage") == LifecycleStage.LOYALTY.value, "LOYALTY_REWARD"),
]


def get_actionable_recommendations(
    purchase_behavior: Dict[str, Any],
    engagement: Dict[str, Any],
    lifecycle: Dict[str, Any],
) -> List[Dict[str, str]]:
    actions = []
    for predicate, action in ACTION_TRIGGERS:
        if predicate(purchase_behavior, engagement, lifecycle):
            priority, message = ACTIONS[action]
            actions.append({"action": action, "priority": priority.value, "message": message})
    return actions


# ═══════════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════════

class CustomerInsightsService:
    """Fetches a customer's snapshot from the store and composes the insight bundle."""

    def __init__(
        self,
        store,
        cache: BaseCache,
        clock: Callable[[], datetime] = datetime.now,
        settings: InsightsConfig = config.insights,
        ttl: int = config.cache.ttl_seconds,
    ):
        self.store = store
        self.cache = cache
        self.clock = clock
        self.settings = settings
        self.ttl = ttl

    async def generate_customer_insights(self, customer_id: int) -> Dict[str, Any]:
        """
        Full insight bundle for a customer, memoized for the cache TTL.

        Raises:
            CustomerNotFoundError: If the customer does not exist
        """
        if not await self.store.customer_exists(customer_id):
            metrics.record_error("CustomerNotFoundError")
            raise CustomerNotFoundError(customer_id)

        async def compute():
            return await self._build_insights(customer_id)

        return await self.cache.get_or_set(insights_cache_key(customer_id), compute, self.ttl)

    async def clear_customer_insights_cache(self, customer_id: int) -> bool:
        removed = await self.cache.delete(insights_cache_key(customer_id))
        logger.debug(f"Cleared insights cache for customer {customer_id}", extra={"removed": removed})
        return removed

    @timed("customer_insights")
    async def _build_insights(self, customer_id: int) -> Dict[str, Any]:
        metrics.record_computation("customer_insights")
        now = self.clock()
        window_start = now - timedelta(days=self.settings.engagement_window_days)

        with customer_context(customer_id):
            orders = await self.store.get_completed_orders(customer_id)
            category_stats = await self.store.get_category_stats(customer_id)
            product_stats = await self.store.get_product_stats(customer_id)
            coffee_lines = await self.store.get_coffee_purchase_lines(customer_id)
            market_avg = await self.store.get_average_order_value(window_start)
            available_products = await self.store.count_available_products()

            window_orders = [o for o in orders if o.created_at >= window_start]

            purchase_behavior = analyze_purchase_behavior(orders, now)
            engagement = calculate_engagement_score(
                window_orders, market_avg, available_products, now, self.settings
            )
            lifecycle = identify_lifecycle_stage(orders, engagement["cei_score"], now)

            bundle = {
                "purchase_behavior": purchase_behavior,
                "product_affinity": {
                    "favorite_categories": score_favorite_categories(category_stats, now),
                    "favorite_products": score_favorite_products(product_stats, now),
                    "product_combinations": analyze_product_combinations(orders),
                    "taste_profile": discover_taste_profile(coffee_lines),
                },
                "engagement": engagement,
                "satisfaction": analyze_satisfaction(orders, self.settings.long_gap_days),
                "predictions": generate_predictions(orders, now),
                "lifecycle": lifecycle,
                "recommended_actions": get_actionable_recommendations(
                    purchase_behavior, engagement, lifecycle
                ),
            }

            logger.info(
                "Customer insights computed",
                extra={
                    "orders": len(orders),
                    "stage": lifecycle["stage"],
                    "cei": engagement["cei_score"],
                },
            )
        return bundle
