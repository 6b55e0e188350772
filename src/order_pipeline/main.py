"""
Order Pipeline - Main Entry Point

Command-line interface and wiring for the order ingestion pipeline.

USAGE:
    python -m src.order_pipeline.main [options]

THREADS:
┌──────────────────┐   HandoffQueue   ┌────────────────────┐
│  order-consumer  │ ───────────────▶ │   order-persister  │
│  (BrokerConsumer)│                  │  (store_orders)    │
└──────────────────┘                  └────────────────────┘
The main thread waits for a shutdown signal.

GRACEFUL SHUTDOWN (SIGINT / SIGTERM):
1. Stop the consumer loop (no more messages forwarded)
2. Close the hand-off queue
3. Persistence thread drains the backlog, then exits
4. Leave the consumer group, close the database pool

If the persistence thread halts on a bad payload, ingestion stays stalled
until the process is restarted; the failure is logged.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import Optional

from confluent_kafka import KafkaException

from src.order_pipeline.cache import OrderCache
from src.order_pipeline.config import PipelineConfig, load_config
from src.order_pipeline.consumer import BrokerConsumer
from src.order_pipeline.dead_letter import DeadLetterSink, KafkaDeadLetterSink
from src.order_pipeline.database import init_database
from src.order_pipeline.errors import OrderPipelineError
from src.order_pipeline.handoff import HandoffQueue
from src.order_pipeline.service import DEAD_LETTER, PersistenceService
from src.order_pipeline.storage import OrderStore
from src.shared.logger import defaults_for_env, setup_logger

logger = logging.getLogger(__name__)

# Set by the signal handler, awaited by main()
shutdown_event = threading.Event()


def signal_handler(signum: int, frame) -> None:
    """Handle SIGINT (Ctrl+C) and SIGTERM (docker stop)."""
    signal_name = signal.Signals(signum).name
    logger.info(f"Received {signal_name}, initiating graceful shutdown...")
    shutdown_event.set()


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Order ingestion pipeline: Kafka -> PostgreSQL with cached lookups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with settings from the environment / .env
  python -m src.order_pipeline.main

  # Local run against a fresh database
  python -m src.order_pipeline.main --create-schema --log-format text

Environment Variables:
  ENV                        local, dev or prod (default: local)
  KAFKA_BOOTSTRAP_SERVERS    Kafka broker addresses (default: localhost:9092)
  KAFKA_TOPIC_ORDERS         Topic to consume (default: service.message)
  CONSUMER_GROUP_ID          Consumer group (default: order-service)
  DATABASE_URL               SQLAlchemy URL (overrides POSTGRES_*)
  DRAIN_ERROR_POLICY         halt or dead_letter (default: halt)
  CACHE_MAX_SIZE             Max cached orders, 0 = unbounded (default: 0)
        """,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides LOG_LEVEL env var)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Log output format (overrides LOG_FORMAT env var)",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables before consuming",
    )
    parser.add_argument(
        "--warm-cache",
        action="store_true",
        help="Load all stored orders into the cache before consuming",
    )

    return parser.parse_args(argv)


def configure_logging(config: PipelineConfig) -> logging.Logger:
    level, fmt = defaults_for_env(config.env)
    return setup_logger(
        name="src",
        service_name="order-pipeline",
        log_level=config.log_level or level,
        log_format=config.log_format or fmt,
    )


def build_dead_letter_sink(config: PipelineConfig) -> Optional[DeadLetterSink]:
    if config.drain_error_policy != DEAD_LETTER:
        return None
    return KafkaDeadLetterSink(
        bootstrap_servers=config.kafka_bootstrap_servers,
        topic=config.get_dead_letter_topic(),
        original_topic=config.kafka_topic_orders,
    )


def run_persistence(service: PersistenceService, handoff: HandoffQueue) -> None:
    """Thread target for the drain loop; a halt is logged, not propagated."""
    try:
        service.store_orders(handoff)
    except OrderPipelineError:
        logger.critical(
            "Order ingestion halted until restart",
            exc_info=True,
            extra={"queued": handoff.qsize()},
        )


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 = success, 1 = error)
    """
    args = parse_args(argv)

    try:
        config = load_config()
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    if args.warm_cache:
        config.warm_cache_on_start = True

    configure_logging(config)
    logger.info(
        "Starting application",
        extra={
            "env": config.env,
            "kafka_bootstrap_servers": config.kafka_bootstrap_servers,
            "kafka_topic": config.kafka_topic_orders,
            "consumer_group": config.consumer_group_id,
            "drain_error_policy": config.drain_error_policy,
            "cache_max_size": config.cache_max_size,
        },
    )

    try:
        db_manager = init_database(config, create_schema=args.create_schema)
    except Exception:
        logger.error("Failed to initialize database", exc_info=True)
        return 1

    store = OrderStore(db_manager, OrderCache(max_size=config.cache_max_size))
    if config.warm_cache_on_start:
        try:
            store.load_all_orders_to_cache()
        except OrderPipelineError:
            logger.error("Cache warm-up failed, continuing with a cold cache", exc_info=True)

    handoff = HandoffQueue(maxsize=config.handoff_queue_size)

    try:
        consumer = BrokerConsumer(config, handoff)
    except KafkaException:
        logger.error("Failed to create Kafka consumer", exc_info=True)
        db_manager.close()
        return 1

    dead_letter = build_dead_letter_sink(config)
    service = PersistenceService(store, config.drain_error_policy, dead_letter)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    persister = threading.Thread(
        target=run_persistence, args=(service, handoff), name="order-persister", daemon=True
    )
    persister.start()
    consumer.consume()
    logger.info("Pipeline running, press Ctrl+C to stop...")

    shutdown_event.wait()

    consumer.stop()
    handoff.close()
    persister.join(timeout=30)
    consumer.close()
    if dead_letter is not None:
        dead_letter.close()
    db_manager.close()

    logger.info(
        "Shutdown complete",
        extra={
            "orders_stored": service.orders_stored,
            "orders_dead_lettered": service.orders_dead_lettered,
            "cache": store.cache.stats(),
        },
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
