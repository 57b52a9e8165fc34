"""
Tests for coffee_insights.models module.
"""
from datetime import datetime
from decimal import Decimal

from coffee_insights.models import (
    CoffeeBean,
    LifecycleStage,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    _to_float,
)


class TestToFloat:
    """Tests for DECIMAL normalization."""

    def test_decimal(self):
        assert _to_float(Decimal("12.50")) == 12.5

    def test_none_is_zero(self):
        assert _to_float(None) == 0.0

    def test_int(self):
        assert _to_float(3) == 3.0


class TestLifecycleStage:
    """Tests for LifecycleStage enum."""

    def test_every_stage_has_description(self):
        for stage in LifecycleStage:
            assert stage.description

    def test_str_enum_value(self):
        assert LifecycleStage.AT_RISK == "AT_RISK"


class TestProduct:
    """Tests for Product dataclass."""

    def test_from_row(self):
        product = Product.from_row((1, "House Espresso", 2, "Medium roast", Decimal("12.00"), True))
        assert product.id == 1
        assert product.category_id == 2
        assert product.price == 12.0
        assert product.is_available is True

    def test_to_dict_is_json_shaped(self):
        product = Product(id=1, name="Latte", price=5.499999)
        d = product.to_dict()
        assert d["price"] == 5.5
        assert set(d) == {"id", "name", "category_id", "description", "price", "is_available"}


class TestOrder:
    """Tests for Order and OrderItem dataclasses."""

    def test_line_total(self):
        item = OrderItem(order_id=1, product_id=2, quantity=3, unit_price=4.5)
        assert item.total == 13.5

    def test_completed_flag_and_product_ids(self):
        order = Order(
            id=1,
            customer_id=1,
            status=OrderStatus.COMPLETED.value,
            total_amount=10.0,
            created_at=datetime(2025, 6, 1),
            items=[
                OrderItem(order_id=1, product_id=5, quantity=1, unit_price=5.0),
                OrderItem(order_id=1, product_id=6, quantity=1, unit_price=5.0),
            ],
        )
        assert order.is_completed is True
        assert order.product_ids == [5, 6]

    def test_cancelled_is_not_completed(self):
        order = Order(id=1, customer_id=1, status="cancelled", total_amount=0.0,
                      created_at=datetime(2025, 6, 1))
        assert order.is_completed is False
        assert order.items == []


class TestCoffeeBean:
    """Tests for CoffeeBean dataclass."""

    def test_from_row(self):
        row = (3, "Colombia Huila", "Colombia", "Huila", "Medium Roast", "chocolaty",
               "1,600m", "Caturra", True, 5)
        bean = CoffeeBean.from_row(row)
        assert bean.origin_country == "Colombia"
        assert bean.is_featured is True
        assert bean.stock_quantity == 5
        assert bean.to_dict()["elevation"] == "1,600m"

    def test_null_stock_is_zero(self):
        row = (3, "X", "Kenya", None, None, None, None, None, False, None)
        assert CoffeeBean.from_row(row).stock_quantity == 0
