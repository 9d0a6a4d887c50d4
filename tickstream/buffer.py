"""
Bounded in-memory tick queue with a drop-oldest overflow policy.

The queue sits between the network reader (producer) and the batch writer
(consumer). When the writer falls behind and the queue is full, the oldest
queued tick is evicted so the newest data always gets in. enqueue() never
blocks on capacity and never raises.
"""

import logging
import threading
import time
from collections import deque
from typing import Deque, List

from .tick import Tick

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE = 10000

# Emit a WARNING on the 1st drop and then every N-th one.
DROP_LOG_EVERY = 100


class BoundedTickQueue:
    """Fixed-capacity FIFO of Ticks shared by one producer and one consumer.

    Every operation runs under a single Condition, so the size check, the
    eviction and the insert in enqueue() are one atomic step.
    """

    def __init__(self, max_queue: int = DEFAULT_MAX_QUEUE):
        if max_queue < 1:
            raise ValueError(f"max_queue must be >= 1, got {max_queue}")
        self.max_queue = max_queue
        self._buffer: Deque[Tick] = deque()
        self._cond = threading.Condition(threading.Lock())
        self._closed = False
        self._enqueued_count = 0
        self._dropped_count = 0

    def enqueue(self, tick: Tick) -> bool:
        """
        Append a tick, evicting the oldest one if the queue is full.

        Returns:
            True if the tick was admitted without evicting anything
        """
        with self._cond:
            evicted = len(self._buffer) >= self.max_queue
            if evicted:
                self._buffer.popleft()
                self._dropped_count += 1
                dropped = self._dropped_count
            self._buffer.append(tick)
            self._enqueued_count += 1
            self._cond.notify_all()

        if evicted and dropped % DROP_LOG_EVERY == 1:
            logger.warning(f"Tick queue full ({self.max_queue}), dropped {dropped} oldest ticks")
        return not evicted

    def drain_batch(self, max_count: int, max_wait: float) -> List[Tick]:
        """
        Remove and return up to ``max_count`` of the oldest ticks.

        Waits until ``max_count`` ticks are queued, the queue is closed, or
        ``max_wait`` seconds have passed, whichever comes first, then takes
        whatever is available. The result may be empty.

        Args:
            max_count: Upper bound on the number of ticks returned
            max_wait: Seconds to wait for the batch to fill
        """
        if max_count < 1:
            raise ValueError(f"max_count must be >= 1, got {max_count}")

        deadline = time.monotonic() + max(max_wait, 0.0)
        with self._cond:
            while len(self._buffer) < max_count and not self._closed:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)

            count = min(max_count, len(self._buffer))
            return [self._buffer.popleft() for _ in range(count)]

    def close(self) -> None:
        """Mark the producer side as finished and wake any waiting drainer."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        with self._cond:
            return self._closed

    @property
    def pending_count(self) -> int:
        """Number of ticks currently queued."""
        with self._cond:
            return len(self._buffer)

    @property
    def dropped_count(self) -> int:
        """Number of ticks evicted due to overflow."""
        with self._cond:
            return self._dropped_count

    @property
    def enqueued_count(self) -> int:
        """Number of ticks ever admitted, including ones later evicted."""
        with self._cond:
            return self._enqueued_count

    def __len__(self) -> int:
        return self.pending_count

    def snapshot(self) -> List[Tick]:
        """Copy of the queued ticks, oldest first, without removing them."""
        with self._cond:
            return list(self._buffer)
