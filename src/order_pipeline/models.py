"""
SQLAlchemy ORM Models for Order Storage

This module defines the normalized relational schema the order store writes
to and reads from. One order document is split across four tables:

┌──────────────┐
│   orders     │  order_uid (PK)
└──────┬───────┘
       │ 1:1  ┌──────────────┐
       ├─────▶│  delivery    │  order_uid (PK, FK)
       │ 1:1  ├──────────────┤
       ├─────▶│  payment     │  order_uid (PK, FK)
       │ 1:N  ├──────────────┤
       └─────▶│  items       │  id (PK, store-generated), order_uid (FK)
              └──────────────┘

NOTES:
- delivery/payment use order_uid as their primary key: exactly one per order.
- items.id is an identity column generated by the database; reading items
  back ordered by id reproduces the original item order.
- Integer columns are BIGINT: domain integers are signed 64-bit.
- payment.custom_fee is TEXT on disk although it is an integer in the domain
  model. Existing databases store it as text; the store converts both ways.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only auto-increments INTEGER PRIMARY KEY columns
ItemIdType = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ==============================================================================
# ORDERS
# ==============================================================================


class OrderRecord(Base):
    """Root row of an order. order_uid is the natural business key."""

    __tablename__ = "orders"

    order_uid: Mapped[str] = mapped_column(
        String(255), primary_key=True, comment="Unique order identifier from the broker message"
    )
    track_number: Mapped[str] = mapped_column(String(255), nullable=False)
    entry: Mapped[str] = mapped_column(String(255), nullable=False)
    locale: Mapped[str] = mapped_column(String(16), nullable=False)
    internal_signature: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    delivery_service: Mapped[str] = mapped_column(String(255), nullable=False)
    shardkey: Mapped[str] = mapped_column(String(32), nullable=False)
    sm_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    date_created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, comment="Parsed from RFC 3339 text"
    )
    oof_shard: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = ({"comment": "Orders consumed from the order topic"},)

    def __repr__(self) -> str:
        return f"<OrderRecord(order_uid={self.order_uid}, customer_id={self.customer_id})>"


# ==============================================================================
# DELIVERY
# ==============================================================================


class DeliveryRecord(Base):
    __tablename__ = "delivery"

    order_uid: Mapped[str] = mapped_column(
        String(255), ForeignKey("orders.order_uid", ondelete="CASCADE"), primary_key=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(64), nullable=False)
    zip: Mapped[str] = mapped_column(String(32), nullable=False)
    city: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)


# ==============================================================================
# PAYMENT
# ==============================================================================


class PaymentRecord(Base):
    __tablename__ = "payment"

    order_uid: Mapped[str] = mapped_column(
        String(255), ForeignKey("orders.order_uid", ondelete="CASCADE"), primary_key=True
    )
    transaction: Mapped[str] = mapped_column(String(255), nullable=False)
    request_id: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    provider: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_dt: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="Epoch seconds")
    bank: Mapped[str] = mapped_column(String(255), nullable=False)
    delivery_cost: Mapped[int] = mapped_column(BigInteger, nullable=False)
    goods_total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    custom_fee: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Integer fee stored as decimal text"
    )


# ==============================================================================
# ITEMS
# ==============================================================================


class ItemRecord(Base):
    __tablename__ = "items"

    id: Mapped[int] = mapped_column(ItemIdType, primary_key=True, autoincrement=True)
    order_uid: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("orders.order_uid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chrt_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    track_number: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    rid: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sale: Mapped[int] = mapped_column(BigInteger, nullable=False)
    size: Mapped[str] = mapped_column(String(64), nullable=False)
    total_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    nm_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    brand: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return f"<ItemRecord(id={self.id}, order_uid={self.order_uid}, chrt_id={self.chrt_id})>"
