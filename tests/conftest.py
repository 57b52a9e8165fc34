"""
Pytest configuration and shared fixtures.

The seeded store is a small coffee shop on an in-memory DuckDB database.
"Now" is fixed at Monday 2025-06-16 09:30 (a morning hour) for every test.

Customers:
    1 Alice  regular: 4 completed weekday-morning orders + 1 cancelled, taste profile
    2 Bob    shares House Espresso with Alice, buys cake and lattes
    3 Carol  shares House Espresso with Alice, buys Colombia coffee
    4 Dave   registered, never ordered
    5 Erin   single order six days ago
"""
from datetime import datetime
from typing import Any, Dict

import pytest
import pytest_asyncio

from coffee_insights.cache import MemoryCache
from coffee_insights.observability import metrics
from coffee_insights.store import AnalyticsStore


NOW = datetime(2025, 6, 16, 9, 30)


CATEGORIES = [
    {"id": 1, "name": "Coffee"},
    {"id": 2, "name": "Pastries"},
    {"id": 3, "name": "Tea"},
]

PRODUCTS = [
    {"id": 1, "category_id": 1, "name": "House Espresso",
     "description": "Medium roast, chocolaty and smooth", "price": 12.00,
     "created_at": datetime(2024, 1, 1)},
    {"id": 2, "category_id": 1, "name": "Ethiopia Yirgacheffe Coffee",
     "description": "Light roast from Ethiopia, fruity and bright", "price": 18.00,
     "created_at": datetime(2024, 1, 2)},
    {"id": 3, "category_id": 2, "name": "Butter Croissant",
     "description": "Flaky breakfast pastry", "price": 4.00,
     "created_at": datetime(2024, 1, 3)},
    {"id": 4, "category_id": 2, "name": "Chocolate Cake",
     "description": "Rich dessert cake", "price": 6.00,
     "created_at": datetime(2024, 1, 4)},
    {"id": 5, "category_id": 3, "name": "Green Tea",
     "description": "Evening tea", "price": 5.00,
     "created_at": datetime(2024, 1, 5)},
    {"id": 6, "category_id": 1, "name": "Colombia Supremo Coffee",
     "description": "Dark roast from Colombia, bold and rich", "price": 16.00,
     "created_at": datetime(2024, 1, 6)},
    {"id": 7, "category_id": 1, "name": "Vanilla Latte",
     "description": "Sweet morning latte", "price": 5.50,
     "created_at": datetime(2024, 1, 7)},
    {"id": 8, "category_id": 1, "name": "Discontinued Blend",
     "description": "No longer sold", "price": 9.00, "is_available": False,
     "created_at": datetime(2024, 1, 8)},
]

CUSTOMERS = [
    {"id": 1, "name": "Alice", "email": "alice@example.com", "created_at": datetime(2025, 1, 10)},
    {"id": 2, "name": "Bob", "email": "bob@example.com", "created_at": datetime(2025, 2, 1)},
    {"id": 3, "name": "Carol", "email": "carol@example.com", "created_at": datetime(2025, 2, 1)},
    {"id": 4, "name": "Dave", "email": "dave@example.com", "created_at": datetime(2025, 5, 1)},
    {"id": 5, "name": "Erin", "email": "erin@example.com", "created_at": datetime(2025, 6, 1)},
]


def _item(product_id: int, quantity: int, unit_price: float) -> Dict[str, Any]:
    return {"product_id": product_id, "quantity": quantity, "unit_price": unit_price}


ORDERS = [
    # Alice: every order on a Monday morning
    {"id": 101, "customer_id": 1, "created_at": datetime(2025, 3, 3, 8, 15),
     "items": [_item(1, 2, 12.00), _item(3, 1, 4.00)]},                       # 28.00
    {"id": 102, "customer_id": 1, "created_at": datetime(2025, 4, 7, 8, 30),
     "items": [_item(1, 1, 12.00), _item(3, 1, 4.00)]},                       # 16.00
    {"id": 103, "customer_id": 1, "created_at": datetime(2025, 5, 5, 8, 45),
     "items": [_item(2, 1, 18.00)]},                                          # 18.00
    {"id": 104, "customer_id": 1, "created_at": datetime(2025, 6, 2, 9, 0),
     "items": [_item(1, 1, 12.00), _item(3, 2, 4.00)]},                       # 20.00
    {"id": 105, "customer_id": 1, "created_at": datetime(2025, 6, 10, 9, 0),
     "status": "cancelled", "items": [_item(6, 1, 16.00)]},
    # Bob
    {"id": 201, "customer_id": 2, "created_at": datetime(2025, 6, 1, 14, 0),
     "items": [_item(1, 1, 12.00), _item(4, 1, 6.00)]},                       # 18.00
    {"id": 202, "customer_id": 2, "created_at": datetime(2025, 6, 5, 15, 0),
     "items": [_item(4, 2, 6.00), _item(7, 1, 5.50)]},                        # 17.50
    # Carol
    {"id": 301, "customer_id": 3, "created_at": datetime(2025, 6, 3, 11, 0),
     "items": [_item(1, 1, 12.00), _item(6, 1, 16.00)]},                      # 28.00
    # Erin
    {"id": 501, "customer_id": 5, "created_at": datetime(2025, 6, 10, 10, 0),
     "items": [_item(7, 1, 5.50)]},                                           # 5.50
]

COFFEE_BEANS = [
    {"id": 1, "name": "Ethiopia Guji", "origin_country": "Ethiopia", "region": "Guji",
     "processing_method": "Washed Light Roast", "tasting_notes": "floral, citrus",
     "elevation": "2,000 masl", "variety": "Heirloom", "is_featured": False, "stock_quantity": 10},
    {"id": 2, "name": "Colombia Huila", "origin_country": "Colombia", "region": "Huila",
     "processing_method": "Medium Roast Natural", "tasting_notes": "chocolaty, caramel",
     "elevation": "1,600m", "variety": "Caturra", "is_featured": True, "stock_quantity": 5},
    {"id": 3, "name": "Brazil Santos", "origin_country": "Brazil", "region": "Santos",
     "processing_method": "Dark roast", "tasting_notes": "nutty",
     "elevation": "900m", "variety": "Bourbon", "is_featured": True, "stock_quantity": 0},
    {"id": 4, "name": "Sumatra Mandheling", "origin_country": "Sumatra", "region": "Aceh",
     "processing_method": "Wet-hulled dark roast", "tasting_notes": "earthy",
     "elevation": None, "variety": "Typica", "is_featured": False, "stock_quantity": 3},
]


async def seed_store(store: AnalyticsStore) -> None:
    """Load the reference coffee shop into a store."""
    await store.upsert_categories(CATEGORIES)
    await store.upsert_products(PRODUCTS)
    await store.upsert_customers(CUSTOMERS)
    await store.upsert_orders(ORDERS)
    await store.upsert_coffee_beans(COFFEE_BEANS)
    await store.upsert_taste_profile(1, favorite_roast="medium", flavor_preferences=["chocolaty", "fruity"])


@pytest.fixture(autouse=True)
def reset_metrics():
    """Engine metrics are process-global; isolate them per test."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock(now):
    """Fixed wall clock."""
    return lambda: now


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache(default_ttl=3600)


@pytest_asyncio.fixture
async def store():
    """Empty in-memory store."""
    store = AnalyticsStore(":memory:")
    await store.connect()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def seeded_store(store):
    """In-memory store holding the reference coffee shop."""
    await seed_store(store)
    return store
