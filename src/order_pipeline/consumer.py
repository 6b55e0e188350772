"""
Kafka Order Consumer Implementation

This module implements the consumer-group member that reads order documents
from the order topic and hands valid ones to the persistence thread.

KAFKA CONSUMER LIFECYCLE:
┌─────────────────────────────────────────────────────────────────────────┐
│  1. Subscribe to topic → join consumer group, receive partition claims  │
│  2. Poll for messages (per-partition delivery order)                    │
│  3. Decode payload (JSON bytes → Order)                                 │
│  4. Validate structural completeness                                    │
│  5. Forward raw bytes to the hand-off queue                             │
│  6. Mark offset (store_offsets, committed by auto-commit)               │
│  7. Session error → re-enter step 1                                     │
└─────────────────────────────────────────────────────────────────────────┘

REJECTED MESSAGES:
- Decode or validation failure: logged and skipped
- NOT forwarded to the queue and NOT marked
- Whether such a message is seen again depends on the broker's own offset
  bookkeeping (a later marked message on the same partition moves the
  committed position past it)

SESSION RETRY:
- session_retry_backoff_ms=0 (default): re-join immediately, forever
- session_retry_backoff_ms>0: wait doubles per consecutive failure, capped at
  session_retry_backoff_max_ms
- stop() is honoured at every wait: poll, queue put, backoff
"""

import logging
import queue
import threading
from typing import List, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException, Message, TopicPartition

from src.order_pipeline.config import PipelineConfig
from src.order_pipeline.domain import decode_order
from src.order_pipeline.errors import DecodeError, MissingFieldError
from src.order_pipeline.handoff import HandoffClosed, HandoffQueue
from src.order_pipeline.validation import validate_order
from src.shared.logger import CorrelationAdapter

# ==============================================================================
# KAFKA CONSUMER
# ==============================================================================


class BrokerConsumer:
    """
    Consumer-group member feeding the hand-off queue.

    Attributes:
        config: Pipeline configuration
        handoff: Queue drained by the persistence thread
        consumer: Confluent Kafka consumer instance
        messages_forwarded: Valid messages forwarded and marked
        messages_rejected: Messages dropped by decode/validation
        session_restarts: Sessions re-entered after an error
    """

    def __init__(self, config: PipelineConfig, handoff: HandoffQueue):
        """
        Create the consumer-group member.

        Raises:
            KafkaException: If the client configuration is rejected
        """
        self.config = config
        self.handoff = handoff
        self.logger = logging.getLogger(__name__)

        self.messages_forwarded = 0
        self.messages_rejected = 0
        self.session_restarts = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.consumer = Consumer(config.get_kafka_config())

        self.logger.info(
            "Kafka consumer group created successfully",
            extra={
                "topic": config.kafka_topic_orders,
                "group_id": config.consumer_group_id,
                "bootstrap_servers": config.kafka_bootstrap_servers,
            },
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def consume(self) -> threading.Thread:
        """Start the session loop on a background thread."""
        self._thread = threading.Thread(target=self.run, name="order-consumer", daemon=True)
        self._thread.start()
        return self._thread

    def run(self) -> None:
        """
        Blocking session loop.

        Re-enters the subscribe/poll session whenever it ends with a broker
        error, until stop() is called.
        """
        consecutive_failures = 0

        while not self._stop_event.is_set():
            try:
                self._run_session()
                consecutive_failures = 0
            except KafkaException as e:
                self.session_restarts += 1
                self.logger.error(
                    "Error from consumer group",
                    extra={"error": str(e), "session_restarts": self.session_restarts},
                )
                delay_s = self._session_backoff_s(consecutive_failures)
                consecutive_failures += 1
                if delay_s:
                    self.logger.info(f"Re-joining consumer group in {delay_s}s")
                    self._stop_event.wait(delay_s)

        self.logger.info(
            "Consumer loop stopped",
            extra={
                "messages_forwarded": self.messages_forwarded,
                "messages_rejected": self.messages_rejected,
                "session_restarts": self.session_restarts,
            },
        )

    def _run_session(self) -> None:
        self.consumer.subscribe(
            [self.config.kafka_topic_orders],
            on_assign=self._on_assign,
            on_revoke=self._on_revoke,
        )
        self.logger.info("Consumer group session setup")

        try:
            while not self._stop_event.is_set():
                msg = self.consumer.poll(timeout=self.config.poll_timeout_s)

                if msg is None:
                    continue

                error = msg.error()
                if error is not None:
                    if error.code() == KafkaError._PARTITION_EOF:
                        continue
                    raise KafkaException(error)

                self.handle_message(msg)
        finally:
            self.logger.info("Consumer group session cleanup")

    def _session_backoff_s(self, consecutive_failures: int) -> float:
        base_ms = self.config.session_retry_backoff_ms
        if base_ms == 0:
            return 0.0
        delay_ms = min(base_ms * (2**consecutive_failures), self.config.session_retry_backoff_max_ms)
        return delay_ms / 1000

    # ==========================================================================
    # MESSAGE HANDLING
    # ==========================================================================

    def handle_message(self, msg: Message) -> bool:
        """
        Decode, validate, forward and mark a single message.

        Returns:
            True if the message was forwarded and marked
        """
        payload = msg.value() or b""

        self.logger.info(
            "Message received",
            extra={
                "topic": msg.topic(),
                "partition": msg.partition(),
                "offset": msg.offset(),
                "key": (msg.key() or b"").decode("utf-8", errors="replace"),
            },
        )

        try:
            order = decode_order(payload)
        except DecodeError as e:
            self.messages_rejected += 1
            self.logger.error(
                "Unmarshalling message failed",
                extra={"error": str(e), "partition": msg.partition(), "offset": msg.offset()},
            )
            return False

        order_logger = CorrelationAdapter(self.logger, {"correlation_id": order.order_uid})

        try:
            validate_order(order)
        except MissingFieldError as e:
            self.messages_rejected += 1
            order_logger.error(
                "Order validation failed",
                extra={"error": str(e), "category": e.category.value},
            )
            return False

        if not self._forward(payload):
            return False

        self.consumer.store_offsets(message=msg)
        self.messages_forwarded += 1
        order_logger.debug("Order forwarded", extra={"offset": msg.offset()})
        return True

    def _forward(self, payload: bytes) -> bool:
        # Block while the queue is full, but keep honouring stop()
        while not self._stop_event.is_set():
            try:
                self.handoff.put(payload, timeout=self.config.poll_timeout_s)
                return True
            except queue.Full:
                continue
            except HandoffClosed:
                self.logger.warning("Hand-off queue closed, message not forwarded")
                return False
        return False

    # ==========================================================================
    # PARTITION CLAIMS
    # ==========================================================================

    def _on_assign(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        self.logger.info(
            "Partitions claimed",
            extra={"partitions": [f"{p.topic}[{p.partition}]" for p in partitions]},
        )

    def _on_revoke(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        self.logger.info(
            "Partitions revoked",
            extra={"partitions": [f"{p.topic}[{p.partition}]" for p in partitions]},
        )

    # ==========================================================================
    # SHUTDOWN
    # ==========================================================================

    def stop(self) -> None:
        """Signal the session loop to stop at its next suspension point."""
        self.logger.info("Stopping consumer...")
        self._stop_event.set()

    def close(self, timeout: Optional[float] = 10.0) -> None:
        """Stop, wait for the loop thread, then leave the consumer group."""
        self.stop()
        if self._thread is not None:
            self._thread.join(timeout)

        try:
            self.consumer.close()
            self.logger.info("Kafka consumer closed")
        except (KafkaException, RuntimeError):
            self.logger.error("Error closing Kafka consumer", exc_info=True)
