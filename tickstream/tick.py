"""
Tick model and its CSV rendering.

A Tick is one market observation as it arrives on the wire:

    {"timestamp": 1700000000000, "bid": 100.0, "ask": 100.5, "volume": 5}

and as it is persisted:

    Timestamp,Bid,Ask,Volume
    1700000000000,100.0,100.5,5
"""

from dataclasses import dataclass
from typing import Any, List, Mapping

CSV_COLUMNS = ["Timestamp", "Bid", "Ask", "Volume"]
CSV_HEADER = ",".join(CSV_COLUMNS)


class TickParseError(ValueError):
    """Raised when a record cannot be decoded into a Tick.

    Attributes:
        record: The raw record that failed to decode.
        reason: Short description of what was wrong with it.
    """

    def __init__(self, record: str, reason: str):
        self.record = record
        self.reason = reason
        preview = record if len(record) <= 80 else record[:77] + "..."
        super().__init__(f"Invalid tick record ({reason}): {preview!r}")


@dataclass(frozen=True)
class Tick:
    """One bid/ask/volume observation.

    Values are stored as received. ``ask < bid`` and negative ``volume``
    are not rejected here; the pipeline forwards them unchanged.
    """

    timestamp: int
    bid: float
    ask: float
    volume: int

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Tick":
        """Build a Tick from a decoded JSON object, ignoring unknown keys.

        Raises:
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong JSON type.
        """
        return cls(
            timestamp=_as_int("timestamp", data["timestamp"]),
            bid=_as_float("bid", data["bid"]),
            ask=_as_float("ask", data["ask"]),
            volume=_as_int("volume", data["volume"]),
        )

    def to_row(self) -> List[Any]:
        """Return the CSV row for this tick, in ``CSV_COLUMNS`` order."""
        return [self.timestamp, self.bid, self.ask, self.volume]


def _as_int(name: str, value: Any) -> int:
    # bool is an int subclass; a JSON true/false is not a count.
    if isinstance(value, bool):
        raise TypeError(f"{name} must be an integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise TypeError(f"{name} must be an integer, got {type(value).__name__}")


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number, got {type(value).__name__}")
    return float(value)
