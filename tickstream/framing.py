"""
Newline-delimited framing for the tick feed.

The feed is a continuous stream with one JSON object per line. Network reads
do not respect line boundaries, so a read can end in the middle of a record
(or in the middle of a multi-byte character). FrameDecoder keeps the
unterminated tail between reads and only emits complete records.

Records longer than ``max_record_len`` characters are discarded up to the
next delimiter and counted in ``oversized_count``.
"""

import codecs
import logging
from typing import Iterable, Iterator, List, Union

logger = logging.getLogger(__name__)

Chunk = Union[bytes, str]

DELIMITER = "\n"
DEFAULT_MAX_RECORD_LEN = 1 << 20


class FrameDecoder:
    """
    Incremental splitter turning stream chunks into complete records.

    Usage:
        decoder = FrameDecoder()
        for chunk in chunks:
            for record in decoder.feed(chunk):
                handle(record)
        for record in decoder.finish():
            handle(record)
    """

    def __init__(self, encoding: str = "utf-8", max_record_len: int = DEFAULT_MAX_RECORD_LEN):
        if max_record_len < 1:
            raise ValueError(f"max_record_len must be >= 1, got {max_record_len}")
        self.max_record_len = max_record_len
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""
        self._discarding = False
        self._oversized_count = 0

    def feed(self, chunk: Chunk) -> List[str]:
        """
        Add a chunk and return every record it completes.

        Args:
            chunk: Raw bytes from the socket, or already-decoded text

        Returns:
            Complete records in arrival order (possibly empty)
        """
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            return []

        if self._discarding:
            _, sep, text = text.partition(DELIMITER)
            if not sep:
                return []
            self._discarding = False

        parts = (self._pending + text).split(DELIMITER)
        self._pending = parts.pop()
        if len(self._pending) > self.max_record_len:
            self._pending = ""
            self._discarding = True
            self._count_oversized()

        records = []
        for part in parts:
            if len(part) > self.max_record_len:
                self._count_oversized()
                continue
            record = _clean(part)
            if record:
                records.append(record)
        return records

    def finish(self) -> List[str]:
        """
        Flush the decoder at end of stream.

        An unterminated tail is emitted as a final record.
        """
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if self._discarding:
            self._discarding = False
            return []
        if len(tail) > self.max_record_len:
            self._count_oversized()
            return []
        record = _clean(tail)
        return [record] if record else []

    def _count_oversized(self) -> None:
        self._oversized_count += 1
        logger.warning(
            f"Discarding record longer than {self.max_record_len} characters "
            f"(total oversized: {self._oversized_count})"
        )

    @property
    def pending(self) -> str:
        """Text received after the last delimiter, not yet emitted."""
        return self._pending

    @property
    def oversized_count(self) -> int:
        """Number of records discarded for exceeding max_record_len."""
        return self._oversized_count


def _clean(record: str) -> str:
    if record.endswith("\r"):
        record = record[:-1]
    return record if record.strip() else ""


def iter_frames(
    chunks: Iterable[Chunk],
    encoding: str = "utf-8",
    max_record_len: int = DEFAULT_MAX_RECORD_LEN,
) -> Iterator[str]:
    """
    Lazily yield complete records from an iterable of chunks.

    The returned iterator is single-use and runs as long as ``chunks`` does.
    """
    decoder = FrameDecoder(encoding, max_record_len)
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.finish()
