"""
Order Persistence Service

Orchestrates decode → store for the ingestion path and exposes the lookup
used by the read path.

DRAIN LOOP (store_orders):
HandoffQueue ──▶ decode (fresh Order per payload) ──▶ OrderStore.add_order

ERROR POLICIES:
┌──────────────┬─────────────────────────────┬──────────────────────────────┐
│ failure      │ halt (default)              │ dead_letter                  │
├──────────────┼─────────────────────────────┼──────────────────────────────┤
│ DecodeError  │ loop stops, error re-raised │ sink, continue               │
│ Missing...   │ (not checked)               │ sink, continue               │
│ Duplicate    │ loop stops, error re-raised │ sink, continue               │
│ InvalidOrder │ loop stops, error re-raised │ sink, continue               │
│ StoreError   │ loop stops, error re-raised │ loop stops, error re-raised  │
└──────────────┴─────────────────────────────┴──────────────────────────────┘

Under "halt", one bad or duplicate payload stops ingestion from the queue for
the life of the process; everything queued behind it stays undrained.
"""

import logging
from typing import Optional

from src.order_pipeline.dead_letter import DeadLetterSink, LoggingDeadLetterSink
from src.order_pipeline.domain import Order, decode_order
from src.order_pipeline.errors import (
    DecodeError,
    DuplicateOrderError,
    InvalidOrderError,
    MissingFieldError,
)
from src.order_pipeline.handoff import HandoffQueue
from src.order_pipeline.storage import OrderStore
from src.order_pipeline.validation import validate_order

HALT = "halt"
DEAD_LETTER = "dead_letter"


class PersistenceService:
    """
    Add/get orders and drain the hand-off queue into the store.

    Attributes:
        store: Order store
        error_policy: "halt" or "dead_letter"
        dead_letter: Sink used under the "dead_letter" policy
        orders_stored: Payloads committed by store_orders
        orders_dead_lettered: Payloads diverted by store_orders
    """

    def __init__(
        self,
        store: OrderStore,
        error_policy: str = HALT,
        dead_letter: Optional[DeadLetterSink] = None,
    ):
        if error_policy not in (HALT, DEAD_LETTER):
            raise ValueError(f"unknown drain error policy: {error_policy!r}")
        self.store = store
        self.error_policy = error_policy
        self.dead_letter = dead_letter or LoggingDeadLetterSink()
        self.logger = logging.getLogger(__name__)

        self.orders_stored = 0
        self.orders_dead_lettered = 0

    def add_order(self, order: Order) -> None:
        """Persist an order; failures are logged and re-raised unchanged."""
        try:
            self.store.add_order(order)
        except Exception as e:
            self.logger.error(
                "Failed to add order",
                extra={"correlation_id": order.order_uid, "error": str(e)},
            )
            raise

    def get_order_by_id(self, order_uid: str) -> Optional[Order]:
        """
        Look up an order.

        Returns None both when the order does not exist and when one of its
        delivery/payment rows is missing.
        """
        try:
            order = self.store.get_order_by_id(order_uid)
        except Exception as e:
            self.logger.error(
                "Failed to get order",
                extra={"correlation_id": order_uid, "error": str(e)},
            )
            raise

        if order is None:
            self.logger.info("No order found for id", extra={"correlation_id": order_uid})
        return order

    def store_orders(self, handoff: HandoffQueue) -> None:
        """
        Drain the hand-off queue into the store until it is closed.

        Returns normally once the queue is closed and empty.

        Raises:
            DecodeError, DuplicateOrderError, StoreError: under the "halt"
                policy, the first failure; the loop does not resume
            StoreError: under the "dead_letter" policy, database failures
                other than InvalidOrderError
        """
        self.logger.info("Order drain loop started", extra={"policy": self.error_policy})

        for payload in handoff:
            try:
                order = decode_order(payload)
                if self.error_policy == DEAD_LETTER:
                    validate_order(order)
                self.add_order(order)
            except (DecodeError, MissingFieldError, DuplicateOrderError, InvalidOrderError) as e:
                if self.error_policy == HALT:
                    self.logger.error(
                        "Failed to store order, drain loop halted",
                        extra={"error": str(e), "error_type": type(e).__name__},
                    )
                    raise
                self.dead_letter.send(payload, e)
                self.orders_dead_lettered += 1
                continue
            except Exception as e:
                self.logger.error(
                    "Failed to store order, drain loop halted",
                    extra={"error": str(e), "error_type": type(e).__name__},
                )
                raise

            self.orders_stored += 1

        self.logger.info(
            "Order drain loop finished",
            extra={
                "orders_stored": self.orders_stored,
                "orders_dead_lettered": self.orders_dead_lettered,
            },
        )
