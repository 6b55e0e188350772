"""
Order Store

Owns the four-table order schema, the transactional writer and the
cache-aside reader.

WRITE PATH (add_order):
1. Parse date_created (InvalidOrderError, database untouched)
2. BEGIN
3. INSERT orders          ← unique violation here = DuplicateOrderError
4. INSERT delivery
5. INSERT payment
6. INSERT items (one per item, ids generated by the database)
7. COMMIT                 ← any failure above rolls everything back

add_order never populates the cache.

READ PATH (get_order_by_id):
┌──────────┐ hit  ┌────────────────────┐
│  cache   │─────▶│ return copy, no DB │
└────┬─────┘      └────────────────────┘
     │ miss
     ▼
 one transaction: orders → delivery → payment → items
     │
     ├─ order/delivery/payment row missing → None (cache untouched)
     └─ complete → cache.put (last write wins) → return order
"""

import logging
import sqlite3
from datetime import datetime
from typing import List, Optional

from psycopg2 import errorcodes
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.order_pipeline.cache import OrderCache
from src.order_pipeline.database import DatabaseManager
from src.order_pipeline.domain import (
    Delivery,
    Item,
    Order,
    Payment,
    format_date_created,
    parse_date_created,
)
from src.order_pipeline.errors import DuplicateOrderError, InvalidOrderError, StoreError
from src.order_pipeline.models import DeliveryRecord, ItemRecord, OrderRecord, PaymentRecord
from src.shared.logger import CorrelationAdapter

_SQLITE_UNIQUE_ERRORS = {"SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE"}


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == errorcodes.UNIQUE_VIOLATION:
        return True
    if isinstance(orig, sqlite3.IntegrityError):
        return getattr(orig, "sqlite_errorname", None) in _SQLITE_UNIQUE_ERRORS
    return False


# ==============================================================================
# ROW MAPPING
# ==============================================================================


def _order_row(order: Order, date_created: datetime) -> OrderRecord:
    return OrderRecord(
        order_uid=order.order_uid,
        track_number=order.track_number,
        entry=order.entry,
        locale=order.locale,
        internal_signature=order.internal_signature,
        customer_id=order.customer_id,
        delivery_service=order.delivery_service,
        shardkey=order.shardkey,
        sm_id=order.sm_id,
        date_created=date_created,
        oof_shard=order.oof_shard,
    )


def _delivery_row(order_uid: str, delivery: Delivery) -> DeliveryRecord:
    return DeliveryRecord(order_uid=order_uid, **delivery.model_dump())


def _payment_row(order_uid: str, payment: Payment) -> PaymentRecord:
    values = payment.model_dump()
    values["custom_fee"] = str(payment.custom_fee)
    return PaymentRecord(order_uid=order_uid, **values)


def _item_row(order_uid: str, item: Item) -> ItemRecord:
    return ItemRecord(order_uid=order_uid, **item.model_dump())


def _assemble(
    order_row: OrderRecord,
    delivery_row: DeliveryRecord,
    payment_row: PaymentRecord,
    item_rows: List[ItemRecord],
) -> Order:
    return Order(
        order_uid=order_row.order_uid,
        track_number=order_row.track_number,
        entry=order_row.entry,
        delivery=Delivery(
            name=delivery_row.name,
            phone=delivery_row.phone,
            zip=delivery_row.zip,
            city=delivery_row.city,
            address=delivery_row.address,
            region=delivery_row.region,
            email=delivery_row.email,
        ),
        payment=Payment(
            transaction=payment_row.transaction,
            request_id=payment_row.request_id,
            currency=payment_row.currency,
            provider=payment_row.provider,
            amount=payment_row.amount,
            payment_dt=payment_row.payment_dt,
            bank=payment_row.bank,
            delivery_cost=payment_row.delivery_cost,
            goods_total=payment_row.goods_total,
            custom_fee=int(payment_row.custom_fee),
        ),
        items=[
            Item(
                chrt_id=row.chrt_id,
                track_number=row.track_number,
                price=row.price,
                rid=row.rid,
                name=row.name,
                sale=row.sale,
                size=row.size,
                total_price=row.total_price,
                nm_id=row.nm_id,
                brand=row.brand,
                status=row.status,
            )
            for row in item_rows
        ],
        locale=order_row.locale,
        internal_signature=order_row.internal_signature,
        customer_id=order_row.customer_id,
        delivery_service=order_row.delivery_service,
        shardkey=order_row.shardkey,
        sm_id=order_row.sm_id,
        date_created=format_date_created(order_row.date_created),
        oof_shard=order_row.oof_shard,
    )


# ==============================================================================
# ORDER STORE
# ==============================================================================


class OrderStore:
    """
    Relational order store with a cache-aside reader.

    Attributes:
        db: Database manager (connection pool + sessions)
        cache: Shared order cache
    """

    def __init__(self, db: DatabaseManager, cache: Optional[OrderCache] = None):
        self.db = db
        self.cache = cache if cache is not None else OrderCache()
        self.logger = logging.getLogger(__name__)

    def add_order(self, order: Order) -> None:
        """
        Persist an order atomically across the four tables.

        Raises:
            DuplicateOrderError: order_uid already stored
            InvalidOrderError: date_created is not RFC 3339 (nothing written)
            StoreError: Any other database failure
        """
        order_logger = CorrelationAdapter(self.logger, {"correlation_id": order.order_uid})

        try:
            date_created = parse_date_created(order.date_created)
        except ValueError as e:
            order_logger.error(
                "Failed to parse date_created", extra={"date_created": order.date_created}
            )
            raise InvalidOrderError(f"invalid date_created {order.date_created!r}: {e}") from e

        stage = "begin"
        try:
            with self.db.get_session() as session:
                stage = "orders"
                session.add(_order_row(order, date_created))
                try:
                    session.flush()
                except IntegrityError as e:
                    if _is_unique_violation(e):
                        order_logger.error("Order already exists")
                        raise DuplicateOrderError(order.order_uid) from e
                    raise

                stage = "delivery"
                session.add(_delivery_row(order.order_uid, order.delivery))
                session.flush()

                stage = "payment"
                session.add(_payment_row(order.order_uid, order.payment))
                session.flush()

                stage = "items"
                for item in order.items:
                    session.add(_item_row(order.order_uid, item))
                    session.flush()

                stage = "commit"
        except SQLAlchemyError as e:
            order_logger.error(
                f"Failed to insert {stage}", exc_info=True, extra={"stage": stage}
            )
            raise StoreError(f"failed to add order {order.order_uid} at {stage}: {e}") from e

        order_logger.info("Order successfully added", extra={"items": len(order.items)})

    def get_order_by_id(self, order_uid: str) -> Optional[Order]:
        """
        Cache-aside lookup of a fully assembled order.

        Returns:
            The order, or None if the order row or its delivery/payment row
            is missing

        Raises:
            StoreError: Database failure or unreadable stored values
        """
        cached = self.cache.get(order_uid)
        if cached is not None:
            self.logger.debug("Order found in cache", extra={"correlation_id": order_uid})
            return cached

        order_logger = CorrelationAdapter(self.logger, {"correlation_id": order_uid})

        try:
            with self.db.get_session() as session:
                order_row = session.get(OrderRecord, order_uid)
                if order_row is None:
                    order_logger.warning("Order not found")
                    return None

                delivery_row = session.get(DeliveryRecord, order_uid)
                if delivery_row is None:
                    order_logger.warning("Delivery not found")
                    return None

                payment_row = session.get(PaymentRecord, order_uid)
                if payment_row is None:
                    order_logger.warning("Payment not found")
                    return None

                item_rows = session.scalars(
                    select(ItemRecord)
                    .where(ItemRecord.order_uid == order_uid)
                    .order_by(ItemRecord.id)
                ).all()

                order = _assemble(order_row, delivery_row, payment_row, list(item_rows))
        except (SQLAlchemyError, ValueError) as e:
            order_logger.error("Failed to load order", exc_info=True)
            raise StoreError(f"failed to load order {order_uid}: {e}") from e

        self.cache.put(order)
        order_logger.info("Order retrieved successfully", extra={"items": len(order.items)})
        return order

    def load_all_orders_to_cache(self) -> int:
        """
        Eagerly load every stored order into the cache.

        Orders that fail to load are logged and skipped. Never runs on its
        own; callers opt in explicitly.

        Returns:
            Number of cached orders afterwards

        Raises:
            StoreError: If the order_uid scan itself fails
        """
        try:
            with self.db.get_session() as session:
                order_uids = list(session.scalars(select(OrderRecord.order_uid)).all())
        except SQLAlchemyError as e:
            self.logger.error("Failed to load orders for cache", exc_info=True)
            raise StoreError(f"failed to scan orders: {e}") from e

        for order_uid in order_uids:
            try:
                order = self.get_order_by_id(order_uid)
            except StoreError:
                order = None
            if order is None:
                self.logger.error(
                    "Failed to load order for cache", extra={"correlation_id": order_uid}
                )

        cached = len(self.cache)
        self.logger.info("Order cache initialized", extra={"count": cached})
        return cached
