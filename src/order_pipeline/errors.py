"""
Exception Taxonomy for the Order Pipeline

Every failure the pipeline can surface is one of these types. The drain loop
and the consumer pick their reaction by exception class.

ERROR KINDS:
- DecodeError: payload is not a decodable order (bad JSON, wrong types)
- MissingFieldError: order decoded but is structurally incomplete
- DuplicateOrderError: order_uid already committed (unique-key violation)
- StoreError: any other database / transaction failure
  - InvalidOrderError: per-message content the store rejects before writing

A read miss is NOT an error: lookups return None.
"""

from enum import Enum
from typing import Optional


class OrderPipelineError(Exception):
    """Base class for all order pipeline errors."""


class DecodeError(OrderPipelineError):
    """Payload could not be decoded into an Order."""


class FieldCategory(str, Enum):
    """Validation categories, in the order they are checked."""

    ORDER = "order"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    ITEMS = "items"


class MissingFieldError(OrderPipelineError):
    """
    Order failed structural validation.

    Attributes:
        category: First category that failed
        item_index: Index of the offending item (ITEMS category only, None
            when the item list itself is empty)
    """

    def __init__(self, category: FieldCategory, item_index: Optional[int] = None):
        self.category = category
        self.item_index = item_index

        if category is FieldCategory.ITEMS and item_index is None:
            message = "items is empty"
        elif category is FieldCategory.ITEMS:
            message = f"missing required item fields in item {item_index}"
        else:
            message = f"missing required {category.value} fields"

        super().__init__(message)


class DuplicateOrderError(OrderPipelineError):
    """Order with this order_uid is already stored."""

    def __init__(self, order_uid: str):
        self.order_uid = order_uid
        super().__init__(f"order already exists: {order_uid}")


class StoreError(OrderPipelineError):
    """Transactional or connection failure in the order store."""


class InvalidOrderError(StoreError):
    """
    Order content the store cannot accept (e.g. unparseable date_created).

    Raised before any database access; the same payload always fails the
    same way.
    """
