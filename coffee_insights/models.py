"""
Domain models for the analytics engines.

Provides dataclasses for orders, products, coffee beans and taste profiles
as read from the store, plus the enums used as labels in computed output.
Computed output itself is plain JSON-shaped dicts.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


def _to_float(value: Any) -> float:
    """DuckDB returns DECIMAL columns as Decimal; normalize to float."""
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class OrderStatus(str, Enum):
    """Order lifecycle statuses. Only COMPLETED orders count for analytics."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class FrequencyTier(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BI_WEEKLY = "BI_WEEKLY"
    MONTHLY = "MONTHLY"
    OCCASIONAL = "OCCASIONAL"
    RARE = "RARE"


class SpendingTier(str, Enum):
    PREMIUM = "PREMIUM"
    STANDARD = "STANDARD"
    BUDGET = "BUDGET"
    MINIMAL = "MINIMAL"


class SpendingTrend(str, Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


class TimePreference(str, Enum):
    MORNING_PERSON = "MORNING_PERSON"
    AFTERNOON_REGULAR = "AFTERNOON_REGULAR"
    EVENING_VISITOR = "EVENING_VISITOR"
    FLEXIBLE = "FLEXIBLE"


class DayPreference(str, Enum):
    WEEKDAY_CUSTOMER = "WEEKDAY_CUSTOMER"
    WEEKEND_WARRIOR = "WEEKEND_WARRIOR"
    CONSISTENT = "CONSISTENT"


class TasteProfileType(str, Enum):
    ADVENTUROUS = "ADVENTUROUS"
    GENTLE = "GENTLE"
    INTENSE = "INTENSE"
    TRADITIONAL = "TRADITIONAL"


class EngagementLevel(str, Enum):
    HIGHLY_ENGAGED = "HIGHLY_ENGAGED"
    ENGAGED = "ENGAGED"
    MODERATELY_ENGAGED = "MODERATELY_ENGAGED"
    LOW_ENGAGEMENT = "LOW_ENGAGEMENT"
    DISENGAGED = "DISENGAGED"


class SatisfactionLevel(str, Enum):
    DELIGHTED = "DELIGHTED"
    SATISFIED = "SATISFIED"
    NEUTRAL = "NEUTRAL"
    DISSATISFIED = "DISSATISFIED"
    UNHAPPY = "UNHAPPY"


class PredictionConfidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNCERTAIN = "UNCERTAIN"


class LifecycleStage(str, Enum):
    AWARENESS = "AWARENESS"
    ACQUISITION = "ACQUISITION"
    RETENTION = "RETENTION"
    LOYALTY = "LOYALTY"
    ADVOCACY = "ADVOCACY"
    AT_RISK = "AT_RISK"
    DORMANT = "DORMANT"

    @property
    def description(self) -> str:
        descriptions = {
            LifecycleStage.AWARENESS: "Registered but no purchases yet",
            LifecycleStage.ACQUISITION: "New customer - made first purchase",
            LifecycleStage.RETENTION: "Repeat customer - building relationship",
            LifecycleStage.LOYALTY: "Loyal customer - high engagement",
            LifecycleStage.ADVOCACY: "Brand advocate - potential referrer",
            LifecycleStage.AT_RISK: "Was active but engagement declining",
            LifecycleStage.DORMANT: "Inactive customer - needs reactivation",
        }
        return descriptions[self]


class ActionPriority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class PersonalizationLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"


# ═══════════════════════════════════════════════════════════════════════════════
# DATACLASSES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Customer:
    """Registered customer."""
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Product:
    """Catalog product."""
    id: int
    name: str
    category_id: Optional[int] = None
    description: Optional[str] = None
    price: float = 0.0
    is_available: bool = True

    @classmethod
    def from_row(cls, row: tuple) -> "Product":
        """Create Product from a (id, name, category_id, description, price, is_available) row."""
        return cls(
            id=row[0],
            name=row[1],
            category_id=row[2],
            description=row[3],
            price=_to_float(row[4]),
            is_available=bool(row[5]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "description": self.description,
            "price": round(self.price, 2),
            "is_available": self.is_available,
        }


@dataclass
class OrderItem:
    """Line item within an order, joined to its product and category."""
    order_id: int
    product_id: int
    quantity: int
    unit_price: float
    product_name: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None

    @property
    def total(self) -> float:
        """Calculate line total."""
        return self.unit_price * self.quantity


@dataclass
class Order:
    """Order with its line items."""
    id: int
    customer_id: int
    status: str
    total_amount: float
    created_at: datetime
    items: List[OrderItem] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.status == OrderStatus.COMPLETED.value

    @property
    def product_ids(self) -> List[int]:
        return [item.product_id for item in self.items]


@dataclass
class CoffeeBean:
    """Coffee bean offered in the shop."""
    id: int
    name: str
    origin_country: str
    region: Optional[str] = None
    processing_method: Optional[str] = None
    tasting_notes: Optional[str] = None
    elevation: Optional[str] = None
    variety: Optional[str] = None
    is_featured: bool = False
    stock_quantity: int = 0

    @classmethod
    def from_row(cls, row: tuple) -> "CoffeeBean":
        """Create CoffeeBean from a row in coffee_beans column order."""
        return cls(
            id=row[0],
            name=row[1],
            origin_country=row[2],
            region=row[3],
            processing_method=row[4],
            tasting_notes=row[5],
            elevation=row[6],
            variety=row[7],
            is_featured=bool(row[8]),
            stock_quantity=int(row[9] or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "origin_country": self.origin_country,
            "region": self.region,
            "processing_method": self.processing_method,
            "tasting_notes": self.tasting_notes,
            "elevation": self.elevation,
            "variety": self.variety,
            "is_featured": self.is_featured,
            "stock_quantity": self.stock_quantity,
        }


@dataclass
class TasteProfile:
    """Customer-declared coffee taste profile."""
    customer_id: int
    favorite_roast: Optional[str] = None
    flavor_preferences: List[str] = field(default_factory=list)
