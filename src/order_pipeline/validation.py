"""
Order Validation

Structural completeness checks for decoded orders.

CHECK ORDER (short-circuit on first failing category):
1. Order-level fields
2. Delivery
3. Payment
4. Items (empty list, or any item missing a field)

Validation never mutates its input.
"""

from typing import Iterable, List

from src.order_pipeline.domain import Delivery, Item, Order, Payment
from src.order_pipeline.errors import FieldCategory, MissingFieldError

# Fields that must be non-empty / non-zero. Fields not listed here
# (internal_signature, request_id, delivery_cost, sale, ...) may be blank.
ORDER_REQUIRED = (
    "order_uid",
    "track_number",
    "entry",
    "locale",
    "customer_id",
    "delivery_service",
    "shardkey",
    "sm_id",
    "date_created",
    "oof_shard",
)

DELIVERY_REQUIRED = ("name", "phone", "zip", "city", "address", "region", "email")

PAYMENT_REQUIRED = ("transaction", "currency", "provider", "amount", "payment_dt", "bank")

ITEM_REQUIRED = (
    "chrt_id",
    "track_number",
    "price",
    "rid",
    "name",
    "size",
    "total_price",
    "nm_id",
    "brand",
    "status",
)


def _has_all(record: object, fields: Iterable[str]) -> bool:
    # "" and 0 are both falsy, which is exactly the zero-value rule
    return all(getattr(record, field) for field in fields)


def validate_order(order: Order) -> None:
    """
    Check that an order is structurally complete.

    Args:
        order: Decoded order

    Raises:
        MissingFieldError: With the first failing category
    """
    if not _has_all(order, ORDER_REQUIRED):
        raise MissingFieldError(FieldCategory.ORDER)
    validate_delivery(order.delivery)
    validate_payment(order.payment)
    validate_items(order.items)


def validate_delivery(delivery: Delivery) -> None:
    if not _has_all(delivery, DELIVERY_REQUIRED):
        raise MissingFieldError(FieldCategory.DELIVERY)


def validate_payment(payment: Payment) -> None:
    if not _has_all(payment, PAYMENT_REQUIRED):
        raise MissingFieldError(FieldCategory.PAYMENT)


def validate_items(items: List[Item]) -> None:
    if not items:
        raise MissingFieldError(FieldCategory.ITEMS)
    for index, item in enumerate(items):
        if not _has_all(item, ITEM_REQUIRED):
            raise MissingFieldError(FieldCategory.ITEMS, item_index=index)
