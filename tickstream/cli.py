"""
tickstream - record a tick feed into a CSV file.

Usage:
    # Record from a feed on localhost:9000 into ./ticks.csv
    tickstream

    # Run against the built-in simulated feed, flushing every 2 seconds
    tickstream --simulate --interval-sec 2 --out /tmp/ticks.csv

    # Load settings from YAML, expose counters on :8080
    tickstream --config tickstream.yaml --status-port 8080

Exit codes:
    0  feed closed or interrupted
    1  fatal pipeline error (connection or write failure, or a port in use)
    2  invalid configuration
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .config import ConfigError, PipelineConfig
from .pipeline import PipelineDriver
from .simulator import SimulatorServer
from .status import StatusServer

logger = logging.getLogger("tickstream")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tickstream",
        description="Ingest a newline-delimited JSON tick feed into a CSV file",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to a tickstream.yaml configuration file",
    )
    parser.add_argument(
        "--out",
        dest="out_path",
        type=str,
        help="Destination CSV file (default: ./ticks.csv)",
    )
    parser.add_argument(
        "--interval-sec",
        type=float,
        help="Maximum seconds per batch window (default: 5)",
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Feed host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Feed port (default: 9000)",
    )
    parser.add_argument(
        "--buffer",
        dest="buffer_batch",
        type=int,
        help="Maximum ticks per batch (default: 1000)",
    )
    parser.add_argument(
        "--max-queue",
        type=int,
        help="Queue capacity before the oldest ticks are dropped (default: 10000)",
    )
    parser.add_argument(
        "--skip-existing-header",
        action="store_true",
        default=None,
        help="Do not write a header if the output file already has content",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        default=None,
        help="Start a simulated tick feed on --port before connecting",
    )
    parser.add_argument(
        "--status-port",
        type=int,
        help="Serve /health and /stats on this port",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def load_config(args: argparse.Namespace) -> PipelineConfig:
    """Resolve defaults, YAML, environment and CLI flags into one config."""
    base = PipelineConfig.from_yaml(args.config) if args.config else None
    config = PipelineConfig.from_env(base)
    return config.merged(
        out_path=args.out_path,
        interval_sec=args.interval_sec,
        host=args.host,
        port=args.port,
        buffer_batch=args.buffer_batch,
        max_queue=args.max_queue,
        skip_existing_header=args.skip_existing_header,
        simulate=args.simulate,
        status_port=args.status_port,
    ).validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(args)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    logger.info(f"Starting with output {config.out_path}")

    simulator = None
    status = None
    try:
        if config.simulate:
            simulator = SimulatorServer(host=config.host, port=config.port).start()

        driver = PipelineDriver(config)
        if config.status_port is not None:
            status = StatusServer(driver, port=config.status_port).start()

        def _handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, stopping")
            driver.stop()

        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)

        result = driver.run()
    except OSError as e:
        logger.error(f"Failed to start: {e}")
        return EXIT_FAILED
    finally:
        if status is not None:
            status.stop()
        if simulator is not None:
            simulator.stop()

    stats = result.stats
    logger.info(
        f"Pipeline {result.state.value}: {stats.ticks_written} ticks in "
        f"{stats.batches_written} batches, {stats.ticks_dropped} dropped, "
        f"{stats.parse_failures} malformed"
    )
    return EXIT_OK if result.ok else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
