"""
Batch writer - appends tick batches to a CSV file.

Each batch is written in its own open/append/flush/close cycle, so nothing
that was flushed before a crash is lost and no file handle is held between
batches. The column header is written once per sink instance, ahead of the
first data line.
"""

import csv
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence, Union

from .tick import CSV_COLUMNS, Tick

logger = logging.getLogger(__name__)

DEFAULT_OUT_PATH = "./ticks.csv"


class BatchWriteError(Exception):
    """Raised when a batch cannot be appended to the destination.

    This is fatal for the pipeline: the write is not retried.

    Attributes:
        path: Destination file.
        batch_size: Number of ticks in the batch that failed.
    """

    def __init__(self, path: Path, batch_size: int, cause: BaseException):
        self.path = path
        self.batch_size = batch_size
        super().__init__(f"Failed to write batch of {batch_size} ticks to {path}: {cause}")


class TickSink(ABC):
    """
    Abstract destination for tick batches.

    write_batch() is called sequentially by the pipeline consumer; an
    implementation does not need to be safe for concurrent writers.
    """

    @abstractmethod
    def write_batch(self, batch: Sequence[Tick]) -> None:
        """
        Persist one batch, in order.

        Args:
            batch: Ticks to write; empty batches are ignored

        Raises:
            BatchWriteError: If the batch could not be persisted
        """
        pass

    def close(self) -> None:
        """Release any resources. Default is a no-op."""
        pass

    def __enter__(self) -> "TickSink":
        return self

    def __exit__(self, *args) -> None:
        self.close()


class CsvTickSink(TickSink):
    """
    Appends ticks to a CSV file.

    Output:
        Timestamp,Bid,Ask,Volume
        1700000000000,100.0,100.5,5

    The header flag is set before the first write is attempted, so a failed
    first write does not cause a second header later on.
    """

    def __init__(self, path: Union[str, Path] = DEFAULT_OUT_PATH, skip_existing_header: bool = False):
        """
        Initialize the CSV sink.

        Args:
            path: Destination file, opened in append mode per batch
            skip_existing_header: Treat a non-empty existing file as already
                carrying the header, so a restarted run does not add another
        """
        self.path = Path(path)
        self._lock = threading.Lock()
        self._header_written = skip_existing_header and _has_content(self.path)
        self._batches_written = 0
        self._ticks_written = 0

    def write_batch(self, batch: Sequence[Tick]) -> None:
        if not batch:
            return

        with self._lock:
            write_header = not self._header_written
            self._header_written = True

        try:
            with open(self.path, "a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f, lineterminator="\n")
                if write_header:
                    writer.writerow(CSV_COLUMNS)
                writer.writerows(tick.to_row() for tick in batch)
                f.flush()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to append {len(batch)} ticks to {self.path}: {e}")
            raise BatchWriteError(self.path, len(batch), e) from e

        with self._lock:
            self._batches_written += 1
            self._ticks_written += len(batch)
        logger.debug(f"Appended {len(batch)} ticks to {self.path}")

    @property
    def header_written(self) -> bool:
        """True once a header has been (or was attempted to be) written."""
        with self._lock:
            return self._header_written

    @property
    def batches_written(self) -> int:
        """Number of batches successfully appended."""
        with self._lock:
            return self._batches_written

    @property
    def ticks_written(self) -> int:
        """Number of data lines successfully appended."""
        with self._lock:
            return self._ticks_written


def _has_content(path: Path) -> bool:
    try:
        return path.is_file() and os.path.getsize(path) > 0
    except OSError:
        return False
