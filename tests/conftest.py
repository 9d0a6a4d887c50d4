"""Pytest fixtures for tickstream tests."""

import os
import tempfile
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pytest

from tickstream.tick import Tick
from tickstream.writer import TickSink


class RecordingSink(TickSink):
    """In-memory sink keeping every batch it receives."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.batches: List[List[Tick]] = []
        self.fail_with = fail_with
        self.closed = False

    def write_batch(self, batch: Sequence[Tick]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.batches.append(list(batch))

    def close(self) -> None:
        self.closed = True

    @property
    def ticks(self) -> List[Tick]:
        return [tick for batch in self.batches for tick in batch]


class FakeSource:
    """Stand-in for TcpTickSource that replays fixed chunks.

    Args:
        chunks: Chunks yielded by iter_chunks()
        error: Raised after the chunks are exhausted
        hold_open: Block after the chunks until close() is called
        connect_error: Raised on __enter__
    """

    def __init__(
        self,
        chunks: Iterable = (),
        error: Optional[Exception] = None,
        hold_open: bool = False,
        connect_error: Optional[Exception] = None,
    ):
        self.chunks = list(chunks)
        self.error = error
        self.hold_open = hold_open
        self.connect_error = connect_error
        self.entered = False
        self.chunks_sent = threading.Event()
        self.closed = threading.Event()

    def __enter__(self) -> "FakeSource":
        if self.connect_error is not None:
            raise self.connect_error
        self.entered = True
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def iter_chunks(self):
        for chunk in self.chunks:
            if self.closed.is_set():
                return
            yield chunk
        self.chunks_sent.set()
        if self.error is not None:
            raise self.error
        if self.hold_open:
            self.closed.wait(timeout=10.0)

    def close(self) -> None:
        self.closed.set()


def tick_line(timestamp: int, bid: float = 100.0, ask: float = 100.5, volume: int = 5) -> str:
    """Render a wire record for a tick."""
    return (
        f'{{"timestamp":{timestamp},"bid":{bid!r},"ask":{ask!r},"volume":{volume}}}\n'
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_tick():
    """Factory for ticks with sensible defaults."""
    def _make(timestamp: int, bid: float = 100.0, ask: float = 100.5, volume: int = 5) -> Tick:
        return Tick(timestamp=timestamp, bid=bid, ask=ask, volume=volume)
    return _make


@pytest.fixture
def recording_sink():
    """In-memory sink for pipeline tests."""
    return RecordingSink()


@pytest.fixture(autouse=True)
def reset_env():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    for key in list(os.environ):
        if key.startswith("TICKSTREAM_"):
            del os.environ[key]
    yield
    os.environ.clear()
    os.environ.update(original_env)
