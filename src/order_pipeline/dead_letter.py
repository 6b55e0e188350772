"""
Dead-Letter Sinks

Destinations for payloads the drain loop cannot process, used when
drain_error_policy="dead_letter". Diverting a bad payload lets the drain loop
keep going instead of halting ingestion.

DLQ MESSAGE FORMAT (Kafka sink):
{
  "original_topic": "service.message",
  "payload": "<raw payload, utf-8 with replacement>",
  "error": "order already exists: b563feb7b2b84b6test",
  "error_type": "DuplicateOrderError",
  "failed_at": "2021-11-26T06:22:19.000000+00:00"
}
"""

import json
import logging
from datetime import datetime, timezone

from confluent_kafka import KafkaError, KafkaException, Message, Producer


class DeadLetterSink:
    """Interface for dead-letter destinations."""

    def send(self, payload: bytes, error: Exception) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LoggingDeadLetterSink(DeadLetterSink):
    """Sink that only records the failure in the log."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def send(self, payload: bytes, error: Exception) -> None:
        self.logger.warning(
            "Payload dead-lettered",
            extra={
                "error": str(error),
                "error_type": type(error).__name__,
                "payload_bytes": len(payload),
            },
        )


class KafkaDeadLetterSink(DeadLetterSink):
    """
    Sink that publishes failed payloads to a Kafka dead-letter topic.

    Attributes:
        topic: Dead-letter topic name (e.g. "service.message.dlq")
        original_topic: Topic the payload was consumed from
        producer: confluent_kafka.Producer instance
    """

    def __init__(self, bootstrap_servers: str, topic: str, original_topic: str):
        self.topic = topic
        self.original_topic = original_topic
        self.logger = logging.getLogger(__name__)
        self.producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": "order-dead-letter",
                "enable.idempotence": True,
                "acks": "all",
            }
        )

    def send(self, payload: bytes, error: Exception) -> None:
        message = {
            "original_topic": self.original_topic,
            "payload": payload.decode("utf-8", errors="replace"),
            "error": str(error),
            "error_type": type(error).__name__,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.producer.produce(
                self.topic,
                value=json.dumps(message).encode("utf-8"),
                on_delivery=self._delivery_report,
            )
            # Serve delivery callbacks without blocking the drain loop
            self.producer.poll(0)
        except (BufferError, KafkaException):
            self.logger.error(
                "Failed to send to dead-letter topic",
                exc_info=True,
                extra={"topic": self.topic, "error_type": type(error).__name__},
            )

    def _delivery_report(self, err: KafkaError, msg: Message) -> None:
        if err is not None:
            self.logger.error(
                "Dead-letter delivery failed",
                extra={"topic": self.topic, "error": err.str()},
            )
        else:
            self.logger.info(
                "Sent payload to dead-letter topic",
                extra={"topic": msg.topic(), "partition": msg.partition(), "offset": msg.offset()},
            )

    def close(self) -> None:
        remaining = self.producer.flush(10)
        if remaining:
            self.logger.warning(
                "Dead-letter messages not delivered before close", extra={"remaining": remaining}
            )
