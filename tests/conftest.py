"""
Pytest Configuration and Shared Fixtures

Unit tests run the order store against a SQLite file per test (fast, no
Docker). Integration tests use testcontainers to spin up real Kafka and
PostgreSQL instances.

FIXTURE SCOPES:
- session: containers (started once, shared across all tests)
- function: configs, database files, stores (fresh for each test)
"""

import copy
import json
from typing import Callable, Generator

import pytest
from sqlalchemy import event
from testcontainers.kafka import KafkaContainer
from testcontainers.postgres import PostgresContainer

from src.order_pipeline.config import PipelineConfig
from src.order_pipeline.database import DatabaseManager
from src.order_pipeline.domain import Order
from src.order_pipeline.models import Base
from src.order_pipeline.storage import OrderStore

# ==============================================================================
# ORDER DATA FIXTURES
# ==============================================================================

SAMPLE_ORDER = {
    "order_uid": "b563feb7b2b84b6test",
    "track_number": "WBILMTESTTRACK",
    "entry": "WBIL",
    "delivery": {
        "name": "Test Testov",
        "phone": "+9720000000",
        "zip": "2639809",
        "city": "Kiryat Mozkin",
        "address": "Ploshad Mira 15",
        "region": "Kraiot",
        "email": "test@gmail.com",
    },
    "payment": {
        "transaction": "b563feb7b2b84b6test",
        "request_id": "",
        "currency": "USD",
        "provider": "wbpay",
        "amount": 1817,
        "payment_dt": 1637907727,
        "bank": "alpha",
        "delivery_cost": 1500,
        "goods_total": 317,
        "custom_fee": 0,
    },
    "items": [
        {
            "chrt_id": 9934930,
            "track_number": "WBILMTESTTRACK",
            "price": 453,
            "rid": "ab4219087a764ae0btest",
            "name": "Mascaras",
            "sale": 30,
            "size": "0",
            "total_price": 317,
            "nm_id": 2389212,
            "brand": "Vivienne Sabo",
            "status": 202,
        }
    ],
    "locale": "en",
    "internal_signature": "",
    "customer_id": "test",
    "delivery_service": "meest",
    "shardkey": "9",
    "sm_id": 99,
    "date_created": "2021-11-26T06:22:19Z",
    "oof_shard": "1",
}


@pytest.fixture
def sample_order_data() -> dict:
    """Order document as published on the topic."""
    return copy.deepcopy(SAMPLE_ORDER)


@pytest.fixture
def sample_payload(sample_order_data) -> bytes:
    return json.dumps(sample_order_data).encode("utf-8")


@pytest.fixture
def sample_order(sample_order_data) -> Order:
    return Order.model_validate(sample_order_data)


@pytest.fixture
def make_order_data() -> Callable[..., dict]:
    """
    Factory for order documents with a given order_uid.

    Usage:
        data = make_order_data("uid-2", items=[...])
    """

    def _make(order_uid: str, **overrides) -> dict:
        data = copy.deepcopy(SAMPLE_ORDER)
        data["order_uid"] = order_uid
        data["payment"]["transaction"] = order_uid
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def make_payload(make_order_data) -> Callable[..., bytes]:
    def _make(order_uid: str, **overrides) -> bytes:
        return json.dumps(make_order_data(order_uid, **overrides)).encode("utf-8")

    return _make


# ==============================================================================
# SQLITE-BACKED STORE FIXTURES (unit)
# ==============================================================================


@pytest.fixture
def pipeline_config(tmp_path) -> PipelineConfig:
    """Config pointing at a throwaway SQLite file."""
    return PipelineConfig(
        database_url=f"sqlite:///{tmp_path / 'orders.db'}",
        kafka_topic_orders="test-orders",
        consumer_group_id="test-consumer-group",
        poll_timeout_s=0.05,
    )


@pytest.fixture
def db_manager(pipeline_config) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(pipeline_config)
    manager.create_schema()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture
def order_store(db_manager) -> OrderStore:
    return OrderStore(db_manager)


class StatementCounter:
    """Counts SQL statements executed on an engine."""

    def __init__(self):
        self.count = 0

    def __call__(self, conn, cursor, statement, parameters, context, executemany):
        self.count += 1

    def reset(self) -> None:
        self.count = 0


@pytest.fixture
def statement_counter(db_manager) -> Generator[StatementCounter, None, None]:
    counter = StatementCounter()
    event.listen(db_manager.engine, "before_cursor_execute", counter)
    try:
        yield counter
    finally:
        event.remove(db_manager.engine, "before_cursor_execute", counter)


# ==============================================================================
# CONTAINER FIXTURES (integration)
# ==============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """PostgreSQL testcontainer shared by the whole session."""
    with PostgresContainer("postgres:15") as postgres:
        postgres.get_connection_url()
        yield postgres


@pytest.fixture(scope="session")
def kafka_container() -> Generator[KafkaContainer, None, None]:
    """Kafka testcontainer shared by the whole session."""
    with KafkaContainer() as kafka:
        kafka.get_bootstrap_server()
        yield kafka


@pytest.fixture
def postgres_db_manager(postgres_container) -> Generator[DatabaseManager, None, None]:
    """Fresh schema on the PostgreSQL container for each test."""
    config = PipelineConfig(database_url=postgres_container.get_connection_url())
    manager = DatabaseManager(config)
    manager.create_schema()
    try:
        yield manager
    finally:
        Base.metadata.drop_all(manager.engine)
        manager.close()
