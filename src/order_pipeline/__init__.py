"""
Order Pipeline Package

This package implements the order ingestion service that:
1. Joins a Kafka consumer group on the order topic
2. Decodes and validates each order document
3. Hands valid payloads to a persistence thread through a bounded queue
4. Persists each order atomically across orders/delivery/payment/items
5. Rejects duplicate order_uids
6. Serves point lookups through a cache-aside reader

PIPELINE ARCHITECTURE:
┌─────────────┐     ┌────────────────┐     ┌─────────┐     ┌──────────────┐
│   Kafka     │────▶│ BrokerConsumer │────▶│ Handoff │────▶│  OrderStore  │
│ order topic │     │ decode+validate│     │  Queue  │     │ (PostgreSQL) │
└─────────────┘     └────────────────┘     └─────────┘     └──────┬───────┘
                                                                  │
                                         get_order_by_id ◀── OrderCache

OFFSET MANAGEMENT:
1. Consumer reads message from Kafka
2. Decode + validate
3. Forward to the hand-off queue
4. Mark offset ONLY after forwarding (store_offsets + auto-commit)
5. Invalid messages are skipped and never marked

Package components:
- config.py: Configuration from environment variables
- domain.py / validation.py: Order model and completeness checks
- models.py / database.py: Relational schema and connection pool
- cache.py / storage.py: Order cache and the order store
- handoff.py / service.py / dead_letter.py: Drain loop and its sinks
- consumer.py: Kafka consumer-group member
- main.py: Entry point with CLI and shutdown handling
"""

__version__ = "1.0.0"

from src.order_pipeline.config import PipelineConfig, load_config

__all__ = [
    "PipelineConfig",
    "load_config",
]
