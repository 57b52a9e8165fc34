"""
Custom exception hierarchy for the analytics engines.

Exception Hierarchy:
    InsightsError (base)
    ├── CustomerNotFoundError  - Unknown customer id
    └── ProductNotFoundError   - Unknown product id

    ValidationError            - Input validation failed

Errors raised by DuckDB itself are not wrapped; they reach the caller as-is.
"""


class InsightsError(Exception):
    """Base exception for all analytics-engine errors."""

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class CustomerNotFoundError(InsightsError):
    """
    Customer id does not exist.

    Raised before any cache lookup so an unknown id is never
    answered with a substituted or stale result.
    """

    def __init__(self, customer_id: int, details: str = None):
        super().__init__(f"Customer {customer_id} not found", details)
        self.customer_id = customer_id


class ProductNotFoundError(InsightsError):
    """Product id does not exist in the catalog."""

    def __init__(self, product_id: int, details: str = None):
        super().__init__(f"Product {product_id} not found", details)
        self.product_id = product_id


class ValidationError(Exception):
    """
    Input validation failed.

    Used for validating caller input before any computation.
    """

    def __init__(self, field: str, message: str, value: any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value!r})"
        return f"{self.field}: {self.message}"
