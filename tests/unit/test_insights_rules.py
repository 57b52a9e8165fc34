"""
Tests for the pure insight rules in coffee_insights.insights_service.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import pytest

from coffee_insights.insights_service import (
    analyze_product_combinations,
    analyze_purchase_behavior,
    analyze_satisfaction,
    analyze_spending_trend,
    analyze_time_patterns,
    calculate_engagement_score,
    determine_engagement_level,
    determine_frequency_tier,
    determine_prediction_confidence,
    determine_satisfaction_level,
    determine_spending_tier,
    discover_taste_profile,
    first_match,
    generate_predictions,
    get_actionable_recommendations,
    identify_lifecycle_stage,
    months_between,
    score_favorite_categories,
    score_favorite_products,
)
from coffee_insights.models import Order, OrderItem


NOW = datetime(2025, 6, 16, 9, 30)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _order(
    order_id: int,
    created_at: datetime,
    total: float = 10.0,
    product_ids: Sequence[int] = (),
    names: Optional[Sequence[str]] = None,
) -> Order:
    names = names or [f"Product {pid}" for pid in product_ids]
    items = [
        OrderItem(order_id=order_id, product_id=pid, quantity=1, unit_price=total, product_name=name)
        for pid, name in zip(product_ids, names)
    ]
    return Order(
        id=order_id,
        customer_id=1,
        status="completed",
        total_amount=total,
        created_at=created_at,
        items=items,
    )


def _orders_days_ago(days_ago: Sequence[int], total: float = 10.0) -> List[Order]:
    """Orders placed the given numbers of days before NOW, oldest first."""
    ordered = sorted(days_ago, reverse=True)
    return [
        _order(i + 1, NOW - timedelta(days=d), total, product_ids=[i + 1])
        for i, d in enumerate(ordered)
    ]


def _alice_orders() -> List[Order]:
    """Four Monday-morning orders matching the seeded store's customer 1."""
    return [
        _order(101, datetime(2025, 3, 3, 8, 15), 28.0, [1, 3], ["House Espresso", "Butter Croissant"]),
        _order(102, datetime(2025, 4, 7, 8, 30), 16.0, [1, 3], ["House Espresso", "Butter Croissant"]),
        _order(103, datetime(2025, 5, 5, 8, 45), 18.0, [2], ["Ethiopia Yirgacheffe Coffee"]),
        _order(104, datetime(2025, 6, 2, 9, 0), 20.0, [1, 3], ["House Espresso", "Butter Croissant"]),
    ]


# ---------------------------------------------------------------------------
# Rule cascades
# ---------------------------------------------------------------------------

class TestFirstMatch:
    """Tests for the ordered (predicate, result) evaluator."""

    def test_first_matching_rule_wins(self):
        """Earlier rules shadow later ones that also match."""
        rules = [(lambda x: x > 10, "big"), (lambda x: x > 0, "positive")]
        assert first_match(rules, 50, "other") == "big"
        assert first_match(rules, 5, "other") == "positive"

    def test_default_when_nothing_matches(self):
        rules = [(lambda x: x > 10, "big")]
        assert first_match(rules, -1, "other") == "other"


class TestFrequencyTier:
    """Tests for determine_frequency_tier thresholds."""

    def test_exactly_twenty_is_daily(self):
        """20 orders/month is the inclusive DAILY boundary."""
        assert determine_frequency_tier(20) == "DAILY"

    def test_just_below_twenty_is_weekly(self):
        assert determine_frequency_tier(19.999) == "WEEKLY"

    @pytest.mark.parametrize("per_month,tier", [
        (8, "WEEKLY"),
        (7.99, "BI_WEEKLY"),
        (4, "BI_WEEKLY"),
        (2, "MONTHLY"),
        (1, "OCCASIONAL"),
        (0.99, "RARE"),
        (0, "RARE"),
    ])
    def test_thresholds(self, per_month, tier):
        assert determine_frequency_tier(per_month) == tier


class TestSpendingTier:
    """Tests for determine_spending_tier thresholds."""

    @pytest.mark.parametrize("aov,tier", [
        (150, "PREMIUM"),
        (50.01, "PREMIUM"),
        (50, "STANDARD"),
        (20, "STANDARD"),
        (19.99, "BUDGET"),
        (10, "BUDGET"),
        (9.99, "MINIMAL"),
    ])
    def test_thresholds(self, aov, tier):
        assert determine_spending_tier(aov) == tier


class TestLevelThresholds:
    """Tests for engagement and satisfaction level cascades."""

    @pytest.mark.parametrize("cei,level", [
        (95, "HIGHLY_ENGAGED"),
        (90, "HIGHLY_ENGAGED"),
        (89.99, "ENGAGED"),
        (70, "ENGAGED"),
        (50, "MODERATELY_ENGAGED"),
        (30, "LOW_ENGAGEMENT"),
        (29.99, "DISENGAGED"),
    ])
    def test_engagement_levels(self, cei, level):
        assert determine_engagement_level(cei) == level

    @pytest.mark.parametrize("score,level", [
        (80, "DELIGHTED"),
        (50, "SATISFIED"),
        (20, "NEUTRAL"),
        (0, "DISSATISFIED"),
        (-5, "UNHAPPY"),
    ])
    def test_satisfaction_levels(self, score, level):
        assert determine_satisfaction_level(score) == level


# ---------------------------------------------------------------------------
# Purchase behavior
# ---------------------------------------------------------------------------

class TestMonthsBetween:
    """Tests for whole-month differences."""

    def test_partial_month_is_zero(self):
        assert months_between(datetime(2025, 1, 31), datetime(2025, 2, 28)) == 0

    def test_counts_only_completed_months(self):
        assert months_between(datetime(2025, 1, 15, 10, 0), datetime(2025, 3, 15, 9, 0)) == 1
        assert months_between(datetime(2025, 1, 15), datetime(2025, 3, 15)) == 2

    def test_never_negative(self):
        assert months_between(datetime(2025, 3, 1), datetime(2025, 1, 1)) == 0


class TestSpendingTrend:
    """Tests for analyze_spending_trend."""

    def test_needs_four_orders(self):
        orders = _orders_days_ago([30, 20, 10])
        assert analyze_spending_trend(orders) == "INSUFFICIENT_DATA"

    def test_increasing(self):
        orders = [_order(i, NOW - timedelta(days=60 - i), t) for i, t in enumerate([10, 10, 10, 20, 20, 20])]
        assert analyze_spending_trend(orders) == "INCREASING"

    def test_decreasing(self):
        orders = [_order(i, NOW - timedelta(days=60 - i), t) for i, t in enumerate([20, 20, 20, 10, 10, 10])]
        assert analyze_spending_trend(orders) == "DECREASING"

    def test_small_change_is_stable(self):
        orders = [_order(i, NOW - timedelta(days=60 - i), t) for i, t in enumerate([10, 10, 10, 10.5])]
        assert analyze_spending_trend(orders) == "STABLE"

    def test_zero_older_average_is_stable(self):
        """A zero baseline gives no percent change."""
        orders = [_order(i, NOW - timedelta(days=60 - i), t) for i, t in enumerate([0, 0, 0, 5])]
        assert analyze_spending_trend(orders) == "STABLE"


class TestTimePatterns:
    """Tests for analyze_time_patterns."""

    def test_weekday_mornings(self):
        result = analyze_time_patterns(_alice_orders())
        assert result == {"time_preference": "MORNING_PERSON", "day_preference": "WEEKDAY_CUSTOMER"}

    def test_mixed_hours_are_flexible(self):
        orders = [
            _order(1, datetime(2025, 6, 2, 8, 0)),
            _order(2, datetime(2025, 6, 3, 13, 0)),
            _order(3, datetime(2025, 6, 4, 18, 0)),
        ]
        assert analyze_time_patterns(orders)["time_preference"] == "FLEXIBLE"

    def test_late_morning_is_outside_every_bucket(self):
        """11h is neither morning (6-10) nor afternoon (12-16)."""
        orders = [_order(i, datetime(2025, 6, 2 + i, 11, 0)) for i in range(3)]
        assert analyze_time_patterns(orders)["time_preference"] == "FLEXIBLE"

    def test_evening(self):
        orders = [_order(i, datetime(2025, 6, 2 + i, 19, 0)) for i in range(3)]
        assert analyze_time_patterns(orders)["time_preference"] == "EVENING_VISITOR"

    def test_weekend_warrior(self):
        # 2025-06-14 and 2025-06-15 are a Saturday and a Sunday
        orders = [
            _order(1, datetime(2025, 6, 7, 13, 0)),
            _order(2, datetime(2025, 6, 14, 13, 0)),
            _order(3, datetime(2025, 6, 15, 13, 0)),
            _order(4, datetime(2025, 6, 16, 13, 0)),
        ]
        result = analyze_time_patterns(orders)
        assert result["time_preference"] == "AFTERNOON_REGULAR"
        assert result["day_preference"] == "WEEKEND_WARRIOR"

    def test_even_split_is_consistent(self):
        orders = [
            _order(1, datetime(2025, 6, 14, 8, 0)),
            _order(2, datetime(2025, 6, 15, 8, 0)),
            _order(3, datetime(2025, 6, 16, 8, 0)),
            _order(4, datetime(2025, 6, 17, 8, 0)),
        ]
        assert analyze_time_patterns(orders)["day_preference"] == "CONSISTENT"


class TestPurchaseBehavior:
    """Tests for analyze_purchase_behavior."""

    def test_no_orders(self):
        assert analyze_purchase_behavior([], NOW) == {"status": "insufficient_data"}

    def test_premium_customer(self):
        """5 orders totaling 750 average 150 per order."""
        orders = _orders_days_ago([40, 30, 20, 10, 4], total=150.0)

        result = analyze_purchase_behavior(orders, NOW)

        assert result["total_orders"] == 5
        assert result["total_spent"] == 750.0
        assert result["avg_order_value"] == 150.0
        assert result["spending_tier"] == "PREMIUM"
        assert result["avg_days_between_orders"] == 9.0
        assert result["days_since_last_order"] == 4

    def test_orders_per_month_uses_whole_months_since_first(self):
        """First order 40 days ago is one whole month; 5 orders/month is BI_WEEKLY."""
        orders = _orders_days_ago([40, 30, 20, 10, 4])
        result = analyze_purchase_behavior(orders, NOW)
        assert result["orders_per_month"] == 5.0
        assert result["frequency_tier"] == "BI_WEEKLY"

    def test_first_month_counts_as_one(self):
        """Orders within the first month divide by 1, not 0."""
        orders = _orders_days_ago([3, 2, 1])
        assert analyze_purchase_behavior(orders, NOW)["orders_per_month"] == 3.0

    def test_single_order_has_no_interval(self):
        result = analyze_purchase_behavior(_orders_days_ago([5]), NOW)
        assert result["avg_days_between_orders"] is None
        assert result["spending_trend"] == "INSUFFICIENT_DATA"

    def test_reference_customer(self):
        result = analyze_purchase_behavior(_alice_orders(), NOW)

        assert result["total_orders"] == 4
        assert result["total_spent"] == 82.0
        assert result["avg_order_value"] == 20.5
        assert result["spending_tier"] == "STANDARD"
        assert result["orders_per_month"] == pytest.approx(1.33)
        assert result["frequency_tier"] == "OCCASIONAL"
        assert result["spending_trend"] == "DECREASING"
        assert result["avg_days_between_orders"] == 30.3
        assert result["first_order_date"] == "2025-03-03"
        assert result["last_order_date"] == "2025-06-02"
        assert result["days_since_last_order"] == 14


# ---------------------------------------------------------------------------
# Product affinity
# ---------------------------------------------------------------------------

class TestFavoriteCategories:
    """Tests for score_favorite_categories."""

    def test_score_formula(self):
        """orders*0.4 + (spend/10)*0.4 + recency*0.2, recency = (100 - days)/100."""
        stats = [{
            "category_id": 1, "category": "Coffee", "order_count": 4,
            "total_spent": 66.0, "last_purchase": NOW - timedelta(days=14),
        }]
        result = score_favorite_categories(stats, NOW)
        assert result[0]["score"] == pytest.approx(4.41)
        assert result[0]["days_since_last_purchase"] == 14

    def test_keeps_top_three_best_first(self):
        stats = [
            {"category_id": i, "category": f"C{i}", "order_count": i,
             "total_spent": 0.0, "last_purchase": NOW - timedelta(days=200)}
            for i in range(1, 6)
        ]
        result = score_favorite_categories(stats, NOW)
        assert [c["category_id"] for c in result] == [5, 4, 3]

    def test_old_purchases_have_no_recency_bonus(self):
        stats = [{
            "category_id": 1, "category": "Coffee", "order_count": 1,
            "total_spent": 0.0, "last_purchase": NOW - timedelta(days=365),
        }]
        assert score_favorite_categories(stats, NOW)[0]["score"] == pytest.approx(0.4)


class TestFavoriteProducts:
    """Tests for score_favorite_products."""

    def test_score_formula_and_limit(self):
        stats = [
            {"id": i, "name": f"P{i}", "price": 5.0, "order_count": i,
             "total_quantity": i, "last_purchase": NOW}
            for i in range(1, 8)
        ]
        result = score_favorite_products(stats, NOW)

        assert len(result) == 5
        assert [p["id"] for p in result] == [7, 6, 5, 4, 3]
        # 7*0.5 + 7*0.3 + 1.0*0.2
        assert result[0]["score"] == pytest.approx(5.8)


class TestProductCombinations:
    """Tests for analyze_product_combinations."""

    def test_counts_pairs_in_multi_item_orders(self):
        orders = [
            _order(1, NOW, product_ids=[1, 2], names=["Latte", "Croissant"]),
            _order(2, NOW, product_ids=[1, 2, 3], names=["Latte", "Croissant", "Cake"]),
            _order(3, NOW, product_ids=[3], names=["Cake"]),
        ]
        result = analyze_product_combinations(orders)

        assert result[0] == {
            "combination": "Croissant + Latte",
            "times_bought_together": 2,
            "strength": 66.7,
        }
        assert {r["combination"] for r in result[1:]} == {"Cake + Latte", "Cake + Croissant"}

    def test_single_item_orders_have_no_pairs(self):
        assert analyze_product_combinations(_orders_days_ago([3, 2, 1])) == []


class TestTasteProfile:
    """Tests for discover_taste_profile."""

    def test_no_coffee_purchases(self):
        assert discover_taste_profile([]) == {"status": "no_coffee_purchases"}

    def test_fruity_lead_is_adventurous(self):
        lines = [
            {"name": "House Espresso", "description": "Medium roast, chocolaty and smooth"},
            {"name": "House Espresso", "description": "Medium roast, chocolaty and smooth"},
            {"name": "Ethiopia Yirgacheffe Coffee", "description": "Light roast from Ethiopia, fruity and bright"},
        ]
        result = discover_taste_profile(lines)

        assert result["profile_type"] == "ADVENTUROUS"
        assert result["favorite_roast"] == "medium"
        assert result["flavor_preferences"] == ["chocolaty", "smooth", "fruity", "bright"]
        assert result["roast_counts"] == {"light": 1, "medium": 2, "dark": 0}

    def test_gentle(self):
        result = discover_taste_profile([{"name": "Breakfast Blend", "description": "smooth and mild"}])
        assert result["profile_type"] == "GENTLE"

    def test_intense(self):
        result = discover_taste_profile([{"name": "Colombia", "description": "Dark roast, bold and rich"}])
        assert result["profile_type"] == "INTENSE"
        assert result["favorite_roast"] == "dark"

    def test_no_keywords_is_traditional(self):
        result = discover_taste_profile([{"name": "Espresso", "description": None}])
        assert result["profile_type"] == "TRADITIONAL"
        assert result["favorite_roast"] == "unknown"
        assert result["flavor_preferences"] == []


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------

class TestEngagementScore:
    """Tests for calculate_engagement_score."""

    def test_no_recent_orders_leaves_only_interaction(self):
        result = calculate_engagement_score([], 20.0, 10, NOW)

        assert result["cei_score"] == 5.0
        assert result["engagement_level"] == "DISENGAGED"
        assert result["components"]["interaction"] == 50.0

    def test_components_are_capped(self):
        orders = [_order(i, NOW, 100.0, product_ids=[1]) for i in range(30)]

        result = calculate_engagement_score(orders, 0.0, 1, NOW)

        assert result["components"] == {
            "frequency": 100.0,
            "monetary": 100.0,
            "recency": 100.0,
            "diversity": 100.0,
            "interaction": 50.0,
        }
        assert result["cei_score"] == 95.0
        assert result["engagement_level"] == "HIGHLY_ENGAGED"

    def test_reference_customer(self):
        window_orders = _alice_orders()[1:]
        market_avg = 123.0 / 7

        result = calculate_engagement_score(window_orders, market_avg, 7, NOW)

        assert result["components"]["frequency"] == pytest.approx(33.33)
        assert result["components"]["monetary"] == pytest.approx(30.73)
        assert result["components"]["recency"] == 86.0
        assert result["components"]["diversity"] == pytest.approx(42.86)
        assert result["cei_score"] == pytest.approx(46.31)
        assert result["engagement_level"] == "LOW_ENGAGEMENT"


# ---------------------------------------------------------------------------
# Satisfaction
# ---------------------------------------------------------------------------

class TestSatisfaction:
    """Tests for analyze_satisfaction."""

    def test_no_orders(self):
        assert analyze_satisfaction([]) == {"status": "insufficient_data"}

    def test_repeat_purchases_and_faster_ordering(self):
        result = analyze_satisfaction(_alice_orders())

        assert result["satisfaction_score"] == 25
        assert result["satisfaction_level"] == "NEUTRAL"
        assert [s["signal"] for s in result["signals"]] == [
            "Repeat purchases",
            "Increasing order frequency",
        ]
        assert result["signals"][0]["points"] == 20

    def test_long_gaps_are_negative(self):
        orders = _orders_days_ago([200, 130, 50])

        result = analyze_satisfaction(orders)

        assert result["satisfaction_score"] == -10
        assert result["satisfaction_level"] == "UNHAPPY"
        assert result["signals"] == [
            {"type": "negative", "signal": "Long gaps between orders", "points": -10}
        ]

    def test_rising_order_value(self):
        """Last four orders average more than 110% of the first four."""
        orders = [
            _order(i + 1, NOW - timedelta(days=7 * (8 - i)), 10.0 if i < 4 else 20.0, product_ids=[i + 1])
            for i in range(8)
        ]
        result = analyze_satisfaction(orders)

        assert result["satisfaction_score"] == 5
        assert result["signals"][0]["signal"] == "Increasing order value"


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

class TestPredictions:
    """Tests for generate_predictions."""

    def test_needs_two_orders(self):
        assert generate_predictions(_orders_days_ago([5]), NOW) == {"status": "insufficient_data"}

    def test_two_orders_are_uncertain(self):
        orders = [
            _order(1, datetime(2025, 5, 31, 12, 0)),
            _order(2, datetime(2025, 6, 10, 12, 0)),
        ]
        prediction = generate_predictions(orders, NOW)["next_purchase"]

        assert prediction["predicted_date"] == "2025-06-20"
        assert prediction["days_until"] == 4
        assert prediction["confidence"] == "UNCERTAIN"

    def test_reference_customer(self):
        prediction = generate_predictions(_alice_orders(), NOW)["next_purchase"]

        assert prediction["avg_interval_days"] == 30.3
        assert prediction["interval_std_dev"] == 3.3
        assert prediction["confidence"] == "MEDIUM"
        assert prediction["predicted_date"] == "2025-07-02"
        assert prediction["days_until"] == 16

    def test_regular_intervals_are_high_confidence(self):
        orders = _orders_days_ago([28, 21, 14, 7])
        assert generate_predictions(orders, NOW)["next_purchase"]["confidence"] == "HIGH"

    def test_irregular_intervals_are_low_confidence(self):
        orders = _orders_days_ago([35, 30, 0])
        assert generate_predictions(orders, NOW)["next_purchase"]["confidence"] == "LOW"

    @pytest.mark.parametrize("count,std_dev,confidence", [
        (2, 0.0, "UNCERTAIN"),
        (3, 2.99, "HIGH"),
        (3, 3.0, "MEDIUM"),
        (3, 6.99, "MEDIUM"),
        (3, 7.0, "LOW"),
    ])
    def test_confidence_bands(self, count, std_dev, confidence):
        assert determine_prediction_confidence(count, std_dev) == confidence


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycleStage:
    """Tests for the ordered lifecycle cascade."""

    def test_no_orders_is_awareness(self):
        result = identify_lifecycle_stage([], 0.0, NOW)
        assert result["stage"] == "AWARENESS"
        assert result["total_orders"] == 0

    def test_first_order_is_acquisition(self):
        result = identify_lifecycle_stage(_orders_days_ago([10]), 0.0, NOW)
        assert result["stage"] == "ACQUISITION"
        assert result["description"] == "New customer - made first purchase"

    def test_single_old_order_falls_through_to_default(self):
        result = identify_lifecycle_stage(_orders_days_ago([40]), 0.0, NOW)
        assert result["stage"] == "RETENTION"
        assert result["description"] == "Active customer"

    def test_few_recent_orders_is_retention(self):
        result = identify_lifecycle_stage(_orders_days_ago([50, 30, 5]), 0.0, NOW)
        assert result["stage"] == "RETENTION"
        assert result["description"] == "Repeat customer - building relationship"

    def test_loyalty_precedes_dormant(self):
        """Loyal customers 95 days quiet still read LOYALTY: the earlier rule wins."""
        orders = _orders_days_ago([200, 180, 160, 140, 120, 95])
        result = identify_lifecycle_stage(orders, 75.0, NOW)
        assert result["stage"] == "LOYALTY"

    def test_advocacy(self):
        orders = _orders_days_ago(range(60, 0, -5))
        assert len(orders) == 12
        result = identify_lifecycle_stage(orders, 80.0, NOW)
        assert result["stage"] == "ADVOCACY"

    def test_at_risk(self):
        orders = _orders_days_ago([150, 120, 100, 70])
        result = identify_lifecycle_stage(orders, 20.0, NOW)
        assert result["stage"] == "AT_RISK"
        assert result["days_since_last_order"] == 70

    def test_dormant(self):
        orders = _orders_days_ago([200, 100])
        assert identify_lifecycle_stage(orders, 20.0, NOW)["stage"] == "DORMANT"


# ---------------------------------------------------------------------------
# Recommended actions
# ---------------------------------------------------------------------------

class TestRecommendedActions:
    """Tests for get_actionable_recommendations."""

    def test_independent_triggers_accumulate_in_order(self):
        actions = get_actionable_recommendations(
            {"frequency_tier": "OCCASIONAL"},
            {"engagement_level": "DISENGAGED"},
            {"stage": "ACQUISITION"},
        )
        assert [a["action"] for a in actions] == ["WIN_BACK_CAMPAIGN", "SECOND_PURCHASE_INCENTIVE"]
        assert all(a["priority"] == "HIGH" for a in actions)

    def test_frequent_loyal_customer(self):
        actions = get_actionable_recommendations(
            {"frequency_tier": "WEEKLY"},
            {"engagement_level": "ENGAGED"},
            {"stage": "LOYALTY"},
        )
        assert [(a["action"], a["priority"]) for a in actions] == [
            ("VIP_PROGRAM", "HIGH"),
            ("LOYALTY_REWARD", "MEDIUM"),
        ]

    def test_dormant_is_critical(self):
        actions = get_actionable_recommendations(
            {"status": "insufficient_data"},
            {"engagement_level": "LOW_ENGAGEMENT"},
            {"stage": "DORMANT"},
        )
        assert [(a["action"], a["priority"]) for a in actions] == [
            ("ENGAGEMENT_BOOST", "MEDIUM"),
            ("REACTIVATION", "CRITICAL"),
        ]

    def test_no_triggers(self):
        actions = get_actionable_recommendations(
            {"frequency_tier": "MONTHLY"},
            {"engagement_level": "ENGAGED"},
            {"stage": "RETENTION"},
        )
        assert actions == []
