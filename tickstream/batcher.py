"""
Count-or-time batching over a BoundedTickQueue.

Each batch window races two triggers:

    WAITING -> COUNT_MET  (buffer_batch ticks arrived)
            -> TIME_MET   (interval_sec elapsed since the window opened)
            -> DRAINED    (producer closed the queue; flush what is left)
    -> EMIT (only if the batch is non-empty) -> WAITING

The window reopens as soon as the previous one closes, empty or not, so the
flush cadence stays steady regardless of traffic.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from .buffer import BoundedTickQueue
from .tick import Tick

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_BATCH = 1000
DEFAULT_INTERVAL_SEC = 5.0


class BatchTrigger(Enum):
    """Batcher state / reason the current window closed."""
    WAITING = "waiting"
    COUNT_MET = "count_met"
    TIME_MET = "time_met"
    DRAINED = "drained"
    EMIT = "emit"


@dataclass
class Batch:
    """An ordered, non-empty group of ticks closed by a single trigger."""
    ticks: List[Tick]
    trigger: BatchTrigger
    sequence: int = 0
    closed_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.ticks)

    def __iter__(self) -> Iterator[Tick]:
        return iter(self.ticks)


class Batcher:
    """
    Drains a BoundedTickQueue into batches.

    Usage:
        batcher = Batcher(queue, buffer_batch=1000, interval_sec=5)
        for batch in batcher.batches(stop_event):
            sink.write_batch(batch.ticks)
    """

    def __init__(
        self,
        queue: BoundedTickQueue,
        buffer_batch: int = DEFAULT_BUFFER_BATCH,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
    ):
        if buffer_batch < 1:
            raise ValueError(f"buffer_batch must be >= 1, got {buffer_batch}")
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be > 0, got {interval_sec}")
        self.queue = queue
        self.buffer_batch = buffer_batch
        self.interval_sec = float(interval_sec)
        self.state = BatchTrigger.WAITING
        self._emitted = 0
        self._empty_windows = 0

    def next_batch(self) -> Optional[Batch]:
        """
        Run one batch window.

        Returns:
            The closed batch, or None if the window ended with nothing queued
        """
        self.state = BatchTrigger.WAITING
        ticks = self.queue.drain_batch(self.buffer_batch, self.interval_sec)

        if len(ticks) >= self.buffer_batch:
            self.state = BatchTrigger.COUNT_MET
        elif self.queue.closed:
            self.state = BatchTrigger.DRAINED
        else:
            self.state = BatchTrigger.TIME_MET

        if not ticks:
            self._empty_windows += 1
            return None

        trigger = self.state
        self.state = BatchTrigger.EMIT
        self._emitted += 1
        logger.debug(f"Batch {self._emitted} closed by {trigger.value} with {len(ticks)} ticks")
        return Batch(ticks=ticks, trigger=trigger, sequence=self._emitted)

    def batches(self, stop_event: Optional[threading.Event] = None) -> Iterator[Batch]:
        """
        Yield non-empty batches until the queue is closed and empty.

        If ``stop_event`` is set, iteration ends after the current window and
        the ticks drained in that window are discarded.
        """
        while stop_event is None or not stop_event.is_set():
            batch = self.next_batch()
            if stop_event is not None and stop_event.is_set():
                return
            if batch is not None:
                yield batch
            elif self.state is BatchTrigger.DRAINED:
                return

    @property
    def emitted_count(self) -> int:
        """Number of non-empty batches produced."""
        return self._emitted

    @property
    def empty_window_count(self) -> int:
        """Number of windows that closed with no ticks."""
        return self._empty_windows
