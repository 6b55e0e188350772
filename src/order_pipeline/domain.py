"""
Order Domain Model

Pydantic models for the order documents carried on the broker topic.

DECODING SEMANTICS:
- Absent keys take zero values ("" / 0 / empty nested object / empty list).
  Completeness is the validator's job, not the decoder's.
- Unknown keys are ignored.
- JSON null reads as an absent key.
- Non-JSON payloads and type-incompatible values raise DecodeError. Types are
  strict: "99", 99.0 and true are not integers, 123 is not a string.
  Integers outside the signed 64-bit range are rejected.

MESSAGE SHAPE:
{
  "order_uid": "b563feb7b2b84b6test",
  "delivery": {...},
  "payment": {...},
  "items": [{...}, ...],
  ...
}
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, List, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    ValidationError,
    model_validator,
)

from src.order_pipeline.errors import DecodeError

# Integers are 64-bit signed, matching the BIGINT columns they are stored in
Int64 = Annotated[int, Field(strict=True, ge=-(2**63), le=2**63 - 1)]

# ==============================================================================
# NESTED RECORDS
# ==============================================================================


class _Document(BaseModel):
    """Base for the broker document models: unknown keys ignored, null = absent."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _null_as_absent(cls, data: Any) -> Any:
        if data is None:
            return {}
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class Delivery(_Document):
    """Delivery address and contact for an order."""

    name: StrictStr = ""
    phone: StrictStr = ""
    zip: StrictStr = ""
    city: StrictStr = ""
    address: StrictStr = ""
    region: StrictStr = ""
    email: StrictStr = ""


class Payment(_Document):
    """Payment details. Amounts are integer minor units."""

    transaction: StrictStr = ""
    request_id: StrictStr = ""
    currency: StrictStr = ""
    provider: StrictStr = ""
    amount: Int64 = 0
    payment_dt: Int64 = 0  # epoch seconds
    bank: StrictStr = ""
    delivery_cost: Int64 = 0
    goods_total: Int64 = 0
    custom_fee: Int64 = 0


class Item(_Document):
    """Single line item of an order."""

    chrt_id: Int64 = 0
    track_number: StrictStr = ""
    price: Int64 = 0
    rid: StrictStr = ""
    name: StrictStr = ""
    sale: Int64 = 0
    size: StrictStr = ""
    total_price: Int64 = 0
    nm_id: Int64 = 0
    brand: StrictStr = ""
    status: Int64 = 0


# ==============================================================================
# ORDER (AGGREGATE ROOT)
# ==============================================================================


class Order(_Document):
    """
    Order aggregate: one delivery, one payment, one or more items.

    order_uid is the natural key and must be unique across the store.
    date_created is kept as the RFC 3339 text received from the broker; it is
    parsed only when the order is written.
    """

    order_uid: StrictStr = ""
    track_number: StrictStr = ""
    entry: StrictStr = ""
    delivery: Delivery = Field(default_factory=Delivery)
    payment: Payment = Field(default_factory=Payment)
    items: List[Item] = Field(default_factory=list)
    locale: StrictStr = ""
    internal_signature: StrictStr = ""
    customer_id: StrictStr = ""
    delivery_service: StrictStr = ""
    shardkey: StrictStr = ""
    sm_id: Int64 = 0
    date_created: StrictStr = ""
    oof_shard: StrictStr = ""

    def __str__(self) -> str:
        return f"Order {self.order_uid} - {self.customer_id} - {len(self.items)} item(s)"


def decode_order(payload: Union[bytes, str]) -> Order:
    """
    Decode a raw broker payload into a fresh Order.

    Args:
        payload: JSON document (bytes as received from Kafka, or str)

    Returns:
        Newly allocated Order

    Raises:
        DecodeError: If payload is not valid JSON or has incompatible types
    """
    try:
        return Order.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError(f"failed to decode order: {e.error_count()} error(s): {e}") from e


# ==============================================================================
# TIMESTAMP HELPERS
# ==============================================================================
# date_created travels as RFC 3339 text ("2021-11-26T06:22:19Z") and is stored
# as a timezone-aware timestamp normalized to UTC.

_RFC3339 = re.compile(
    r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"T(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?:(?P<utc>Z)|(?P<sign>[+-])(?P<off_hour>\d{2}):(?P<off_minute>\d{2}))",
    re.ASCII,
)


def parse_date_created(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into an aware UTC datetime.

    Raises:
        ValueError: If value is not RFC 3339 (date-only, missing offset,
            space separator and basic format included) or out of range
    """
    match = _RFC3339.fullmatch(value)
    if match is None:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")

    if match["utc"]:
        tz = timezone.utc
    else:
        off_hour, off_minute = int(match["off_hour"]), int(match["off_minute"])
        if off_hour > 23 or off_minute > 59:
            raise ValueError(f"UTC offset out of range: {value!r}")
        offset = timedelta(hours=off_hour, minutes=off_minute)
        tz = timezone(-offset if match["sign"] == "-" else offset)

    # Sub-microsecond digits are truncated
    fraction = (match["fraction"] or "")[:6].ljust(6, "0")
    parsed = datetime(
        int(match["year"]),
        int(match["month"]),
        int(match["day"]),
        int(match["hour"]),
        int(match["minute"]),
        int(match["second"]),
        int(fraction),
        tzinfo=tz,
    )
    return parsed.astimezone(timezone.utc)


def format_date_created(value: datetime) -> str:
    """Format a stored timestamp back to RFC 3339 with a Z suffix."""
    if value.tzinfo is None:
        # Backends without timezone support hand back naive UTC values
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
