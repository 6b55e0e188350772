"""
Unit Tests for the Order Domain Model

Tests decoding of broker payloads into Order values and the date_created
timestamp helpers. No database or broker required.

TEST STRATEGY:
- Decode the reference order document
- Lenient shape: absent keys and nulls → zero values, unknown keys ignored
- Strict types: no coercion, malformed payloads → DecodeError
- RFC 3339 parsing / formatting
"""

import json
from datetime import datetime, timezone

import pytest

from src.order_pipeline.domain import (
    Delivery,
    Item,
    Order,
    decode_order,
    format_date_created,
    parse_date_created,
)
from src.order_pipeline.errors import DecodeError, FieldCategory, MissingFieldError
from src.order_pipeline.validation import validate_order

# ==============================================================================
# DECODING TESTS
# ==============================================================================


@pytest.mark.unit
def test_decode_reference_order(sample_payload, sample_order_data):
    """Test decoding the reference order document field for field."""
    order = decode_order(sample_payload)

    assert order.order_uid == "b563feb7b2b84b6test"
    assert order.entry == "WBIL"
    assert order.delivery.city == "Kiryat Mozkin"
    assert order.payment.amount == 1817
    assert order.payment.payment_dt == 1637907727
    assert order.items[0].chrt_id == 9934930
    assert order.items[0].brand == "Vivienne Sabo"
    assert order.sm_id == 99
    assert order.date_created == "2021-11-26T06:22:19Z"
    assert order.model_dump() == sample_order_data


@pytest.mark.unit
def test_decode_accepts_str_payload(sample_payload):
    order = decode_order(sample_payload.decode("utf-8"))
    assert order.order_uid == "b563feb7b2b84b6test"


@pytest.mark.unit
def test_decode_missing_keys_take_zero_values():
    """Absent fields decode to zero values so the validator can judge them."""
    order = decode_order(b'{"order_uid": "only-uid"}')

    assert order.order_uid == "only-uid"
    assert order.track_number == ""
    assert order.sm_id == 0
    assert order.delivery.name == ""
    assert order.payment.amount == 0
    assert order.items == []


@pytest.mark.unit
def test_decode_ignores_unknown_keys(sample_order_data):
    sample_order_data["unexpected"] = {"nested": True}
    sample_order_data["items"][0]["color"] = "black"

    order = decode_order(json.dumps(sample_order_data))

    assert not hasattr(order, "unexpected")
    assert "color" not in order.items[0].model_dump()


@pytest.mark.unit
@pytest.mark.parametrize(
    "payload",
    [
        b"not json at all",
        b"",
        b'{"order_uid": "x"',  # truncated
        b"\xff\xfe\x00",  # not utf-8
        b"[1, 2, 3]",  # JSON, but not an object
    ],
)
def test_decode_malformed_payload_raises(payload):
    with pytest.raises(DecodeError):
        decode_order(payload)


@pytest.mark.unit
@pytest.mark.parametrize(
    "path, value",
    [
        (("sm_id",), "ninety-nine"),
        (("sm_id",), "99"),
        (("sm_id",), 99.0),
        (("sm_id",), True),
        (("sm_id",), 2**63),
        (("order_uid",), 123),
        (("payment", "amount"), "1817"),
        (("payment", "custom_fee"), 0.5),
        (("delivery", "zip"), 2639809),
        (("items", 0, "price"), False),
        (("delivery",), "Kiryat Mozkin"),
    ],
)
def test_decode_incompatible_type_raises(sample_order_data, path, value):
    """Values are never coerced: a type mismatch anywhere rejects the payload."""
    target = sample_order_data
    for key in path[:-1]:
        target = target[key]
    target[path[-1]] = value

    with pytest.raises(DecodeError):
        decode_order(json.dumps(sample_order_data))


@pytest.mark.unit
def test_decode_null_reads_as_zero_value(sample_order_data):
    sample_order_data["delivery"] = None
    sample_order_data["locale"] = None
    sample_order_data["payment"]["amount"] = None
    sample_order_data["items"].append(None)

    order = decode_order(json.dumps(sample_order_data))

    assert order.delivery == Delivery()
    assert order.locale == ""
    assert order.payment.amount == 0
    assert order.items[1] == Item()


@pytest.mark.unit
def test_null_sections_fail_validation_not_decoding(sample_order_data):
    sample_order_data["delivery"] = None

    with pytest.raises(MissingFieldError) as exc_info:
        validate_order(decode_order(json.dumps(sample_order_data)))

    assert exc_info.value.category is FieldCategory.DELIVERY


@pytest.mark.unit
def test_decode_null_items_is_empty(sample_order_data):
    sample_order_data["items"] = None
    assert decode_order(json.dumps(sample_order_data)).items == []


@pytest.mark.unit
def test_decode_accepts_64bit_integers(sample_order_data):
    sample_order_data["payment"]["amount"] = 2**63 - 1
    sample_order_data["items"][0]["nm_id"] = -(2**63)

    order = decode_order(json.dumps(sample_order_data))

    assert order.payment.amount == 2**63 - 1
    assert order.items[0].nm_id == -(2**63)


@pytest.mark.unit
def test_decode_allocates_fresh_values(sample_payload):
    """Each decode returns an independent Order (no shared target)."""
    first = decode_order(sample_payload)
    second = decode_order(sample_payload)

    first.items.append(first.items[0])
    first.delivery.name = "changed"

    assert len(second.items) == 1
    assert second.delivery.name == "Test Testov"


@pytest.mark.unit
def test_order_str(sample_order):
    text = str(sample_order)
    assert "b563feb7b2b84b6test" in text
    assert "1 item(s)" in text


# ==============================================================================
# TIMESTAMP TESTS
# ==============================================================================


@pytest.mark.unit
def test_parse_date_created_with_z_suffix():
    parsed = parse_date_created("2021-11-26T06:22:19Z")
    assert parsed == datetime(2021, 11, 26, 6, 22, 19, tzinfo=timezone.utc)


@pytest.mark.unit
def test_parse_date_created_normalizes_offset_to_utc():
    parsed = parse_date_created("2021-11-26T09:22:19+03:00")
    assert parsed == datetime(2021, 11, 26, 6, 22, 19, tzinfo=timezone.utc)
    assert parsed.utcoffset().total_seconds() == 0


@pytest.mark.unit
@pytest.mark.parametrize(
    "value",
    [
        "",
        "26.11.2021",
        "2021-11-26",
        "2021-11-26T06:22:19",
        "2021-11-26 06:22:19Z",
        "20211126T062219Z",
        "2021-11-26T06:22Z",
        "2021-11-26T06:22:19+0300",
        "2021-11-26T06:22:19+24:00",
        "2021-13-26T06:22:19Z",
        "2021-11-26T06:22:19.Z",
        "yesterday",
    ],
)
def test_parse_date_created_rejects_non_rfc3339(value):
    with pytest.raises(ValueError):
        parse_date_created(value)


@pytest.mark.unit
def test_parse_date_created_fractional_seconds():
    parsed = parse_date_created("2021-11-26T06:22:19.123456789Z")
    assert parsed.microsecond == 123456

    assert parse_date_created("2021-11-26T06:22:19.5-01:30") == datetime(
        2021, 11, 26, 7, 52, 19, 500000, tzinfo=timezone.utc
    )


@pytest.mark.unit
def test_format_date_created_round_trip():
    value = "2021-11-26T06:22:19Z"
    assert format_date_created(parse_date_created(value)) == value


@pytest.mark.unit
def test_format_date_created_treats_naive_as_utc():
    assert format_date_created(datetime(2021, 11, 26, 6, 22, 19)) == "2021-11-26T06:22:19Z"


@pytest.mark.unit
def test_order_defaults_are_independent():
    a, b = Order(), Order()
    a.delivery.name = "x"
    assert b.delivery.name == ""
