"""
tickstream - bounded, batched ingestion of a market tick feed into CSV

This package provides:
- Newline-delimited JSON framing and tick parsing
- A bounded tick queue with drop-oldest overflow
- Count-or-time batching
- Append-only CSV persistence with a single header
- A pipeline driver wiring the above to a TCP feed
"""

from tickstream.tick import Tick, TickParseError, CSV_COLUMNS, CSV_HEADER
from tickstream.framing import FrameDecoder, iter_frames
from tickstream.parser import EventParser, parse_tick
from tickstream.buffer import BoundedTickQueue
from tickstream.batcher import Batch, Batcher, BatchTrigger
from tickstream.writer import TickSink, CsvTickSink, BatchWriteError
from tickstream.transport import TcpTickSource, SourceConnectionError
from tickstream.config import PipelineConfig, ConfigError
from tickstream.pipeline import (
    PipelineDriver,
    PipelineResult,
    PipelineState,
    PipelineStats,
)
from tickstream.simulator import SimulatorServer

__version__ = "0.1.0"

__all__ = [
    # Model
    "Tick",
    "TickParseError",
    "CSV_COLUMNS",
    "CSV_HEADER",
    # Framing / parsing
    "FrameDecoder",
    "iter_frames",
    "EventParser",
    "parse_tick",
    # Queue / batching
    "BoundedTickQueue",
    "Batch",
    "Batcher",
    "BatchTrigger",
    # Sink
    "TickSink",
    "CsvTickSink",
    "BatchWriteError",
    # Transport
    "TcpTickSource",
    "SourceConnectionError",
    # Config
    "PipelineConfig",
    "ConfigError",
    # Pipeline
    "PipelineDriver",
    "PipelineResult",
    "PipelineState",
    "PipelineStats",
    # Simulator
    "SimulatorServer",
]
