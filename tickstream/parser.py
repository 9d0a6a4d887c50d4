"""
Event parser - one framed record in, one Tick (or nothing) out.

Malformed records are a normal part of a live feed. They are counted,
logged at DEBUG and skipped; they never stop the pipeline.
"""

import json
import logging
import threading
from typing import Optional

from .tick import Tick, TickParseError

logger = logging.getLogger(__name__)

# Emit a WARNING on the 1st failure and then every N-th one.
FAILURE_LOG_EVERY = 100


def parse_tick(record: str) -> Tick:
    """
    Decode a single JSON record into a Tick.

    Unknown fields are ignored.

    Raises:
        TickParseError: On malformed JSON, a non-object payload,
            a missing field or a field of the wrong type.
    """
    try:
        data = json.loads(record)
    except ValueError as e:
        raise TickParseError(record, f"malformed JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise TickParseError(record, f"expected object, got {type(data).__name__}")

    try:
        return Tick.from_mapping(data)
    except KeyError as e:
        raise TickParseError(record, f"missing field {e.args[0]}") from e
    except TypeError as e:
        raise TickParseError(record, str(e)) from e


class EventParser:
    """Skip-and-continue wrapper around parse_tick() with failure counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._parsed_count = 0
        self._failure_count = 0

    def parse(self, record: str) -> Optional[Tick]:
        """
        Parse a record, returning None if it is malformed.
        """
        try:
            tick = parse_tick(record)
        except TickParseError as e:
            with self._lock:
                self._failure_count += 1
                failures = self._failure_count
            logger.debug(str(e))
            if failures % FAILURE_LOG_EVERY == 1:
                logger.warning(f"Skipped malformed tick record, {failures} skipped so far")
            return None

        with self._lock:
            self._parsed_count += 1
        return tick

    @property
    def parsed_count(self) -> int:
        """Number of records decoded into ticks."""
        with self._lock:
            return self._parsed_count

    @property
    def failure_count(self) -> int:
        """Number of records discarded as malformed."""
        with self._lock:
            return self._failure_count
