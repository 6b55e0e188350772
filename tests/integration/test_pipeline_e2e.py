"""
End-to-End Pipeline Tests

Tests the complete pipeline: Kafka → BrokerConsumer → HandoffQueue →
PersistenceService → PostgreSQL → cached lookup.

TEST STRATEGY:
- Publish a mix of valid, malformed and incomplete documents
- Run the consumer and the drain loop on their own threads, as main() does
- Verify the valid order reads back intact and bad messages were dropped

DEPENDENCIES:
- All testcontainers (Kafka, PostgreSQL)
"""

import json
import threading
import time
import uuid

import pytest
from confluent_kafka import Producer

from src.order_pipeline.cache import OrderCache
from src.order_pipeline.config import PipelineConfig
from src.order_pipeline.consumer import BrokerConsumer
from src.order_pipeline.handoff import HandoffQueue
from src.order_pipeline.service import PersistenceService
from src.order_pipeline.storage import OrderStore


def _wait_for(predicate, timeout: float = 30.0, interval: float = 0.2) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return False


@pytest.fixture
def e2e_config(kafka_container, postgres_container) -> PipelineConfig:
    """Unique topic and group per test so runs never see each other's offsets."""
    suffix = uuid.uuid4().hex[:8]
    return PipelineConfig(
        kafka_bootstrap_servers=kafka_container.get_bootstrap_server(),
        kafka_topic_orders=f"orders-{suffix}",
        consumer_group_id=f"order-service-{suffix}",
        database_url=postgres_container.get_connection_url(),
        poll_timeout_s=0.5,
    )


def _publish(config: PipelineConfig, payloads) -> None:
    producer = Producer({"bootstrap.servers": config.kafka_bootstrap_servers})
    for payload in payloads:
        producer.produce(config.kafka_topic_orders, value=payload)
    assert producer.flush(10) == 0


@pytest.mark.integration
@pytest.mark.slow
def test_end_to_end_valid_and_rejected_messages(
    e2e_config, postgres_db_manager, sample_payload, sample_order_data, make_order_data
):
    """Only the valid document reaches the store; rejected ones are skipped."""
    incomplete = json.dumps(make_order_data("incomplete", items=[])).encode("utf-8")
    _publish(e2e_config, [b"not json", incomplete, sample_payload])

    store = OrderStore(postgres_db_manager, OrderCache())
    service = PersistenceService(store)
    handoff = HandoffQueue(maxsize=e2e_config.handoff_queue_size)
    consumer = BrokerConsumer(e2e_config, handoff)

    persister = threading.Thread(target=service.store_orders, args=(handoff,), daemon=True)
    persister.start()
    consumer.consume()

    try:
        assert _wait_for(lambda: service.orders_stored == 1)
    finally:
        consumer.stop()
        handoff.close()
        persister.join(timeout=10)
        consumer.close()

    assert consumer.messages_forwarded == 1
    assert consumer.messages_rejected == 2

    loaded = service.get_order_by_id(sample_order_data["order_uid"])
    assert loaded.model_dump() == sample_order_data
    assert service.get_order_by_id("incomplete") is None

    # Second lookup is served from the cache
    service.get_order_by_id(sample_order_data["order_uid"])
    assert store.cache.stats()["hits"] == 1


@pytest.mark.integration
@pytest.mark.slow
def test_end_to_end_many_orders(e2e_config, postgres_db_manager, make_payload):
    uids = [f"order-{i}" for i in range(20)]
    _publish(e2e_config, [make_payload(uid) for uid in uids])

    store = OrderStore(postgres_db_manager)
    service = PersistenceService(store)
    handoff = HandoffQueue(maxsize=5)
    consumer = BrokerConsumer(e2e_config, handoff)

    persister = threading.Thread(target=service.store_orders, args=(handoff,), daemon=True)
    persister.start()
    consumer.consume()

    try:
        assert _wait_for(lambda: service.orders_stored == len(uids))
    finally:
        consumer.stop()
        handoff.close()
        persister.join(timeout=10)
        consumer.close()

    assert store.load_all_orders_to_cache() == len(uids)
