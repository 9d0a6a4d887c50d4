"""
Simulated tick feed.

A small TCP server that streams random bid/ask/volume ticks as
newline-delimited JSON to every client that connects. Used for demos
(``tickstream --simulate``) and end-to-end tests.
"""

import json
import logging
import random
import socketserver
import threading
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 50


def make_tick(rnd: random.Random, now_ms: Optional[int] = None) -> Dict[str, Any]:
    """Generate one random tick around a price of 100."""
    bid = 100 + rnd.gauss(0.0, 1.0)
    ask = bid + 0.5 + abs(rnd.gauss(0.0, 1.0) * 0.05)
    return {
        "timestamp": now_ms if now_ms is not None else int(time.time() * 1000),
        "bid": round(bid, 2),
        "ask": round(ask, 2),
        "volume": rnd.randint(1, 100),
    }


class _TickStreamHandler(socketserver.BaseRequestHandler):
    server: "_FeedServer"

    def handle(self) -> None:
        feed = self.server.feed
        peer = "%s:%s" % self.client_address[:2]
        logger.info(f"Simulator client connected: {peer}")
        sent = 0
        try:
            while not feed.stopped:
                if feed.max_ticks is not None and sent >= feed.max_ticks:
                    break
                line = json.dumps(feed.next_tick(), separators=(",", ":")) + "\n"
                self.request.sendall(line.encode("utf-8"))
                sent += 1
                if feed.wait(feed.interval_ms / 1000.0):
                    break
        except OSError as e:
            logger.info(f"Simulator client {peer} went away: {e}")
        logger.info(f"Simulator sent {sent} ticks to {peer}")


class _FeedServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, address, feed: "SimulatorServer"):
        self.feed = feed
        super().__init__(address, _TickStreamHandler)


class SimulatorServer:
    """
    Background TCP server emitting one random tick per interval per client.

    Usage:
        with SimulatorServer(port=0) as sim:
            source = TcpTickSource("127.0.0.1", sim.port)

    Args:
        host: Interface to bind
        port: Port to bind; 0 picks a free port (see ``port`` after start)
        interval_ms: Delay between ticks
        max_ticks: If set, close each connection after this many ticks
        seed: Seed for reproducible tick values
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9000,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        max_ticks: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.host = host
        self._requested_port = port
        self.interval_ms = interval_ms
        self.max_ticks = max_ticks
        self._rnd_lock = threading.Lock()
        self._rnd = random.Random(seed)
        self._stop_event = threading.Event()
        self._server: Optional[_FeedServer] = None
        self._thread: Optional[threading.Thread] = None

    def next_tick(self) -> Dict[str, Any]:
        """Generate the next tick; safe to call from concurrent handlers."""
        with self._rnd_lock:
            return make_tick(self._rnd)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if the server is stopping."""
        return self._stop_event.wait(seconds)

    @property
    def port(self) -> int:
        """Bound port (resolved after start() when constructed with port=0)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._requested_port

    def start(self) -> "SimulatorServer":
        """Bind and serve in a daemon thread."""
        self._stop_event.clear()
        self._server = _FeedServer((self.host, self._requested_port), self)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="tickstream-simulator",
        )
        self._thread.start()
        logger.info(f"Simulator listening on {self.host}:{self.port}")
        return self

    def stop(self) -> None:
        """Stop serving and close the listening socket."""
        self._stop_event.set()
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def __enter__(self) -> "SimulatorServer":
        return self.start()

    def __exit__(self, *args) -> None:
        self.stop()
