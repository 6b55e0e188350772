"""
Structured Logging Configuration

Structured logging for the order pipeline: the Kafka consumer thread, the
persistence thread and the read path all log through the standard logging
module, and this module decides how records are rendered.

OUTPUT FORMATS:
- json: one JSON object per line (dev / prod)
- text: human-readable lines (local development)

ENVIRONMENT DEFAULTS:
┌─────────┬────────┬─────────┐
│ env     │ format │ level   │
├─────────┼────────┼─────────┤
│ local   │ text   │ DEBUG   │
│ dev     │ json   │ DEBUG   │
│ prod    │ json   │ INFO    │
└─────────┴────────┴─────────┘

EXAMPLE OUTPUT:
{
  "timestamp": "2021-11-26T06:22:19.123Z",
  "level": "INFO",
  "service": "order-pipeline",
  "logger": "src.order_pipeline.storage",
  "correlation_id": "b563feb7b2b84b6test",
  "message": "Order successfully added",
  "extra": {"items": 1}
}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

# Attributes every LogRecord carries; anything else came in through extra=
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "correlation_id",
    }
)

ENV_DEFAULTS: Dict[str, Tuple[str, str]] = {
    "local": ("DEBUG", "text"),
    "dev": ("DEBUG", "json"),
    "prod": ("INFO", "json"),
}


# ==============================================================================
# JSON FORMATTER
# ==============================================================================


class JSONFormatter(logging.Formatter):
    """
    Log formatter that renders each record as a single JSON line.

    Fields:
    - timestamp: ISO 8601 UTC with millisecond precision
    - level, service, logger, message
    - correlation_id: order_uid being processed (if provided)
    - exception: formatted traceback (if any)
    - extra: any additional context passed via extra=
    """

    def __init__(self, service_name: str = "order-pipeline", include_extra: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = {
                k: v
                for k, v in record.__dict__.items()
                if k not in _STANDARD_ATTRS and not k.startswith("_")
            }
            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)

    @staticmethod
    def _format_timestamp(created: float) -> str:
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


# ==============================================================================
# PLAIN TEXT FORMATTER (for development)
# ==============================================================================


class PlainTextFormatter(logging.Formatter):
    """
    Human-readable log formatter for local development.

    Format: [2021-11-26 06:22:19] INFO [order-pipeline] Order successfully added
    """

    def __init__(self, service_name: str = "order-pipeline"):
        super().__init__(
            fmt=f"[%(asctime)s] %(levelname)s [{service_name}] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# ==============================================================================
# LOGGER SETUP
# ==============================================================================


def defaults_for_env(env: str) -> Tuple[str, str]:
    """
    Default (log_level, log_format) for an environment tag.

    Unknown tags fall back to the production defaults.
    """
    return ENV_DEFAULTS.get(env, ENV_DEFAULTS["prod"])


def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> logging.Logger:
    """
    Set up a structured logger.

    Configure the package logger (e.g. "src") once at startup; module loggers
    created with logging.getLogger(__name__) propagate to it.

    Args:
        name: Logger name
        service_name: Service identifier rendered in every record
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" or "text"

    Returns:
        Configured logging.Logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Prevent duplicate handlers if logger already configured
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)

    if log_format.lower() == "json":
        formatter: logging.Formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = PlainTextFormatter(service_name=service_name)

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


# ==============================================================================
# CORRELATION ID ADAPTER
# ==============================================================================


class CorrelationAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds correlation_id to every record.

    Example:
        >>> order_logger = CorrelationAdapter(logger, {"correlation_id": order.order_uid})
        >>> order_logger.info("Writing order")
    """

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = dict(kwargs.get("extra") or {})

        if "correlation_id" in self.extra:
            extra["correlation_id"] = self.extra["correlation_id"]

        kwargs["extra"] = extra
        return msg, kwargs
