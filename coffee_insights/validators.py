"""
Input validation for the public entry points.

All validators raise ValidationError on invalid input.
"""
from typing import Iterable, List

from coffee_insights.exceptions import ValidationError


# Recommendation limits are bounded to [1, 20]
MIN_RECOMMENDATION_LIMIT = 1
MAX_RECOMMENDATION_LIMIT = 20

# Bulk insight requests
MAX_BULK_CUSTOMERS = 50


def validate_limit(
    value: int,
    field: str = "limit",
    min_value: int = MIN_RECOMMENDATION_LIMIT,
    max_value: int = MAX_RECOMMENDATION_LIMIT
) -> int:
    """
    Validate a limit/count parameter.

    Args:
        value: Limit value to validate
        field: Field name for error messages
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        Validated limit

    Raises:
        ValidationError: If limit is out of range
    """
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(field, "Must be an integer", value)

    if value < min_value:
        raise ValidationError(
            field,
            f"Must be at least {min_value}",
            value
        )

    if value > max_value:
        raise ValidationError(
            field,
            f"Must be at most {max_value}",
            value
        )

    return value


def validate_id(value: int, field: str = "id") -> int:
    """
    Validate a database identifier (positive integer).

    Raises:
        ValidationError: If id is not a positive integer
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(field, "Must be an integer", value)

    if value < 1:
        raise ValidationError(field, "Must be a positive integer", value)

    return value


def validate_customer_id(value: int) -> int:
    """Validate a customer id."""
    return validate_id(value, "customer_id")


def validate_product_id(value: int) -> int:
    """Validate a product id."""
    return validate_id(value, "product_id")


def validate_customer_ids(values: Iterable[int], max_count: int = MAX_BULK_CUSTOMERS) -> List[int]:
    """
    Validate a list of customer ids for bulk requests.

    Duplicates are dropped, first occurrence order is kept.

    Raises:
        ValidationError: If the list is empty, too long, or holds invalid ids
    """
    if values is None or isinstance(values, (str, bytes)):
        raise ValidationError("customer_ids", "Must be a list of integers", values)

    ids = list(values)
    if not ids:
        raise ValidationError("customer_ids", "At least one customer id is required")

    if len(ids) > max_count:
        raise ValidationError(
            "customer_ids",
            f"At most {max_count} customers per request",
            len(ids)
        )

    seen = []
    for value in ids:
        validate_id(value, "customer_ids")
        if value not in seen:
            seen.append(value)
    return seen
