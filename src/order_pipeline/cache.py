"""
In-Process Order Cache

Mapping from order_uid to a fully assembled Order, shared by every thread
that calls OrderStore.get_order_by_id.

THREAD SAFETY:
All access goes through a single lock. Lookups, inserts and LRU bookkeeping
are each one critical section, so concurrent readers never observe a
half-updated mapping.

SIZING:
- max_size=0: unbounded, entries are never evicted
- max_size=N: least-recently-used entry is evicted once N is exceeded

Stored and returned values are deep copies, so callers cannot mutate the
cached order through a returned reference.
"""

import threading
from collections import OrderedDict
from typing import Dict, Optional

from src.order_pipeline.domain import Order


class OrderCache:
    """Lock-guarded order cache with hit/miss counters."""

    def __init__(self, max_size: int = 0):
        if max_size < 0:
            raise ValueError("max_size must be >= 0")
        self.max_size = max_size
        self._orders: "OrderedDict[str, Order]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, order_uid: str) -> Optional[Order]:
        """Return a copy of the cached order, counting the hit or miss."""
        with self._lock:
            order = self._orders.get(order_uid)
            if order is None:
                self.misses += 1
                return None
            self.hits += 1
            if self.max_size:
                self._orders.move_to_end(order_uid)
            return order.model_copy(deep=True)

    def put(self, order: Order) -> None:
        """Insert or replace (last write wins)."""
        with self._lock:
            self._orders[order.order_uid] = order.model_copy(deep=True)
            self._orders.move_to_end(order.order_uid)
            if self.max_size:
                while len(self._orders) > self.max_size:
                    self._orders.popitem(last=False)
                    self.evictions += 1

    def __contains__(self, order_uid: object) -> bool:
        with self._lock:
            return order_uid in self._orders

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._orders),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
            }
