"""
Hand-off Queue

In-process conduit carrying validated raw payloads from the consumer thread
to the persistence thread.

SEMANTICS:
- FIFO: payloads from a single producer are drained in put order
- Bounded: a full queue blocks put() (backpressure on broker polling)
- Closable: after close(), iteration ends once the backlog is drained
- Not durable: anything still queued at process exit is lost
"""

import queue
import time
from typing import Iterator, Optional

# How often a blocked reader re-checks the closed flag
_CLOSE_CHECK_INTERVAL_S = 0.1


class HandoffClosed(Exception):
    """Raised by put() after the queue has been closed."""


class HandoffQueue:
    """Closable byte-payload queue."""

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[bytes]" = queue.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, payload: bytes, timeout: Optional[float] = None) -> None:
        """
        Enqueue a payload.

        Raises:
            HandoffClosed: Queue already closed
            queue.Full: timeout elapsed while the queue stayed full
        """
        if self._closed:
            raise HandoffClosed("hand-off queue is closed")
        self._queue.put(payload, timeout=timeout)

    def get(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """
        Dequeue the next payload.

        Returns:
            The payload, or None once the queue is closed and drained

        Raises:
            queue.Empty: timeout elapsed with nothing to return
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = _CLOSE_CHECK_INTERVAL_S
            if deadline is not None:
                wait = min(wait, max(deadline - time.monotonic(), 0))
            try:
                return self._queue.get(timeout=wait)
            except queue.Empty:
                if self._closed and self._queue.empty():
                    return None
                if deadline is not None and time.monotonic() >= deadline:
                    raise

    def close(self) -> None:
        """Stop accepting payloads; readers finish the backlog, then stop."""
        self._closed = True

    def qsize(self) -> int:
        return self._queue.qsize()

    def __iter__(self) -> Iterator[bytes]:
        while True:
            payload = self.get()
            if payload is None:
                return
            yield payload
