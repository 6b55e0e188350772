"""
Pipeline Configuration Module

Configuration for the Kafka consumer, the PostgreSQL order store and the
hand-off between them. Loads settings from environment variables (and a .env
file for local development) with Pydantic validation.

COMPATIBILITY DEFAULTS:
The defaults reproduce the behaviour of the service this pipeline replaces:
- session_retry_backoff_ms=0: re-join the consumer group immediately
- drain_error_policy="halt": first bad payload stops the drain loop
- cache_max_size=0: order cache is unbounded and never evicts
- warm_cache_on_start=False: cache fills lazily on reads
"""

from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if present (local development)
load_dotenv()


class PipelineConfig(BaseSettings):
    """
    Order pipeline configuration with validation.

    Includes Kafka consumer settings, PostgreSQL settings and the knobs for
    the drain loop, the session retry and the order cache.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === ENVIRONMENT ===
    env: Literal["local", "dev", "prod"] = Field(
        default="local",
        description="Deployment environment tag, selects logging defaults",
    )

    # === KAFKA CONSUMER SETTINGS ===
    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Comma-separated Kafka broker addresses",
    )

    kafka_topic_orders: str = Field(
        default="service.message",
        description="Kafka topic carrying order documents",
    )

    consumer_group_id: str = Field(
        default="order-service",
        description="Consumer group ID for partition sharing",
    )

    consumer_client_id: str = Field(
        default="order-consumer",
        description="Consumer client identifier",
    )

    consumer_auto_offset_reset: Literal["earliest", "latest"] = Field(
        default="earliest",
        description="Where to start consuming when the group has no offset",
    )

    poll_timeout_s: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Max seconds a single poll blocks",
    )

    session_retry_backoff_ms: int = Field(
        default=0,
        ge=0,
        le=60000,
        description="Initial wait before re-joining after a session error (0 = immediate)",
    )

    session_retry_backoff_max_ms: int = Field(
        default=30000,
        ge=0,
        le=600000,
        description="Upper bound for the doubled session retry wait",
    )

    # === DATABASE SETTINGS ===
    database_url: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL, overrides the postgres_* settings",
    )

    postgres_host: str = Field(
        default="localhost",
        description="PostgreSQL host",
    )

    postgres_port: int = Field(
        default=5432,
        description="PostgreSQL port",
    )

    postgres_db: str = Field(
        default="wbstorage",
        description="PostgreSQL database name",
    )

    postgres_user: str = Field(
        default="postgres",
        description="PostgreSQL username",
    )

    postgres_password: str = Field(
        default="postgres",
        description="PostgreSQL password",
    )

    db_pool_size: int = Field(
        default=5,
        ge=1,
        le=20,
        description="SQLAlchemy connection pool size",
    )

    # === PIPELINE SETTINGS ===
    handoff_queue_size: int = Field(
        default=100,
        ge=1,
        le=100000,
        description="Capacity of the consumer -> persistence hand-off queue",
    )

    drain_error_policy: Literal["halt", "dead_letter"] = Field(
        default="halt",
        description="halt: stop draining on first failure; dead_letter: divert and continue",
    )

    dead_letter_topic: Optional[str] = Field(
        default=None,
        description="Dead-letter topic (default: <kafka_topic_orders>.dlq)",
    )

    cache_max_size: int = Field(
        default=0,
        ge=0,
        description="Max cached orders, LRU evicted (0 = unbounded)",
    )

    warm_cache_on_start: bool = Field(
        default=False,
        description="Load every stored order into the cache at startup",
    )

    # === LOGGING ===
    log_level: Optional[str] = Field(
        default=None,
        description="Logging level (default derived from env)",
    )

    log_format: Optional[Literal["json", "text"]] = Field(
        default=None,
        description="Log output format (default derived from env)",
    )

    def get_kafka_config(self) -> dict:
        """
        Get Kafka consumer configuration dictionary.

        Offsets are "marked" with store_offsets() and committed in the
        background by auto-commit, so only messages explicitly stored by the
        consumer ever advance the committed position.
        """
        return {
            "bootstrap.servers": self.kafka_bootstrap_servers,
            "group.id": self.consumer_group_id,
            "client.id": self.consumer_client_id,
            "auto.offset.reset": self.consumer_auto_offset_reset,
            "enable.auto.commit": True,
            "enable.auto.offset.store": False,
        }

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def get_dead_letter_topic(self) -> str:
        return self.dead_letter_topic or f"{self.kafka_topic_orders}.dlq"


def load_config() -> PipelineConfig:
    """Load and validate pipeline configuration."""
    return PipelineConfig()
