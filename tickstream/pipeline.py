"""
Pipeline driver - connects to the feed and runs it into the sink.

Architecture:
    feed socket -> FrameDecoder -> EventParser -> BoundedTickQueue   (producer thread)
    BoundedTickQueue -> Batcher -> TickSink                           (calling thread)

Lifecycle:
    CONNECTING -> STREAMING -> CLOSED   upstream ended or stop() was called
                            -> FAILED   connection failure or sink write error

Only STREAMING moves batches. Both terminal states stop all processing;
there is no retry or reconnect. On FAILED, ticks still queued or in the
current batch window are lost.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .batcher import Batcher
from .buffer import BoundedTickQueue
from .config import PipelineConfig
from .framing import FrameDecoder
from .parser import EventParser
from .transport import SourceConnectionError, TcpTickSource
from .writer import BatchWriteError, CsvTickSink, TickSink

logger = logging.getLogger(__name__)

SourceFactory = Callable[[], Any]


class PipelineState(Enum):
    """Pipeline driver states."""
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass
class PipelineStats:
    """Point-in-time pipeline counters."""
    state: str
    frames_received: int = 0
    ticks_parsed: int = 0
    parse_failures: int = 0
    oversized_records: int = 0
    ticks_enqueued: int = 0
    ticks_dropped: int = 0
    ticks_pending: int = 0
    batches_written: int = 0
    ticks_written: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return asdict(self)


@dataclass
class PipelineResult:
    """Terminal outcome of PipelineDriver.run()."""
    state: PipelineState
    stats: PipelineStats
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.CLOSED


class PipelineDriver:
    """
    Runs one ingestion session from connect to a terminal state.

    Usage:
        driver = PipelineDriver(PipelineConfig(out_path="ticks.csv"))
        result = driver.run()
        if not result.ok:
            logger.error(f"Pipeline failed: {result.error}")

    The source factory must return an object usable as a context manager
    (connecting on enter, releasing on exit) that provides iter_chunks()
    and a thread-safe close(). TcpTickSource is the default.
    """

    def __init__(
        self,
        config: PipelineConfig,
        sink: Optional[TickSink] = None,
        source_factory: Optional[SourceFactory] = None,
    ):
        self.config = config.validate()
        self.sink = sink if sink is not None else CsvTickSink(
            config.out_path, skip_existing_header=config.skip_existing_header,
        )
        self._source_factory = source_factory or (lambda: TcpTickSource(config.host, config.port))

        self.queue = BoundedTickQueue(config.max_queue)
        self.decoder = FrameDecoder()
        self.parser = EventParser()
        self.batcher = Batcher(self.queue, config.buffer_batch, config.interval_sec)

        self._lock = threading.Lock()
        self._state = PipelineState.CONNECTING
        self._stop_event = threading.Event()
        self._source: Any = None
        self._producer_error: Optional[BaseException] = None
        self._frames_received = 0
        self._batches_written = 0
        self._ticks_written = 0

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    def _set_state(self, state: PipelineState) -> None:
        with self._lock:
            previous, self._state = self._state, state
        if previous is not state:
            logger.info(f"Pipeline {previous.value} -> {state.value}")

    def run(self) -> PipelineResult:
        """
        Run until upstream closes, stop() is called, or a fatal error occurs.

        Returns:
            PipelineResult with state CLOSED or FAILED
        """
        self._set_state(PipelineState.CONNECTING)
        error: Optional[BaseException] = None

        try:
            source = self._source_factory()
            with source:
                with self._lock:
                    self._source = source
                self._run_streaming(source)
        except (SourceConnectionError, BatchWriteError) as e:
            error = e
        except Exception as e:
            # Anything else escaping the sink is still a fatal write error.
            logger.exception("Unexpected error while streaming")
            error = e
        finally:
            with self._lock:
                self._source = None

        error = error or self._producer_error
        if error is not None:
            logger.error(f"Pipeline failed: {error}")
            self._set_state(PipelineState.FAILED)
        else:
            self._set_state(PipelineState.CLOSED)

        return PipelineResult(state=self.state, stats=self.stats(), error=error)

    def _run_streaming(self, source: Any) -> None:
        self._set_state(PipelineState.STREAMING)
        producer = threading.Thread(
            target=self._produce,
            args=(source,),
            daemon=True,
            name="tickstream-producer",
        )
        producer.start()

        try:
            self._consume()
        finally:
            # Writer failure or stop(): unblock the producer and let it exit.
            self._stop_event.set()
            self.queue.close()
            source.close()
            producer.join(timeout=5.0)
            if producer.is_alive():
                logger.warning("Producer thread did not exit within 5s")

    def _produce(self, source: Any) -> None:
        """Producer thread: read, frame, parse, enqueue."""
        decoder = self.decoder
        try:
            for chunk in source.iter_chunks():
                if self._stop_event.is_set():
                    break
                self._ingest_records(decoder.feed(chunk))
            # After stop() the tail is a cut-off record, not a final one.
            if not self._stop_event.is_set():
                self._ingest_records(decoder.finish())
        except Exception as e:
            with self._lock:
                self._producer_error = e
            # Fatal upstream error: discard whatever is still queued.
            self._stop_event.set()
        finally:
            self.queue.close()

    def _ingest_records(self, records) -> None:
        for record in records:
            with self._lock:
                self._frames_received += 1
            tick = self.parser.parse(record)
            if tick is not None:
                self.queue.enqueue(tick)

    def _consume(self) -> None:
        """Consumer loop: batch and write until the batcher is exhausted."""
        for batch in self.batcher.batches(self._stop_event):
            self.sink.write_batch(batch.ticks)
            with self._lock:
                self._batches_written += 1
                self._ticks_written += len(batch)

    def stop(self) -> None:
        """
        Request shutdown from another thread.

        The run ends CLOSED; ticks in the current batch window are not flushed.
        """
        logger.info("Pipeline stop requested")
        self._stop_event.set()
        self.queue.close()
        with self._lock:
            source = self._source
        if source is not None:
            source.close()

    def stats(self) -> PipelineStats:
        """Snapshot of the pipeline counters."""
        with self._lock:
            state = self._state
            frames = self._frames_received
            batches = self._batches_written
            written = self._ticks_written
        oversized = self.decoder.oversized_count
        return PipelineStats(
            state=state.value,
            frames_received=frames,
            ticks_parsed=self.parser.parsed_count,
            parse_failures=self.parser.failure_count + oversized,
            oversized_records=oversized,
            ticks_enqueued=self.queue.enqueued_count,
            ticks_dropped=self.queue.dropped_count,
            ticks_pending=self.queue.pending_count,
            batches_written=batches,
            ticks_written=written,
        )
