"""
TCP transport to the tick feed.

TcpTickSource owns one client connection. It is acquired and released with a
``with`` block; close() may also be called from another thread to unblock a
reader waiting in recv().
"""

import logging
import socket
import threading
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9000
RECV_SIZE = 64 * 1024


class SourceConnectionError(Exception):
    """Raised when the feed cannot be reached or the connection breaks.

    Attributes:
        host: Feed host.
        port: Feed port.
    """

    def __init__(self, host: str, port: int, message: str):
        self.host = host
        self.port = port
        super().__init__(f"{host}:{port}: {message}")


class TcpTickSource:
    """
    Client connection yielding raw byte chunks from the feed.

    Usage:
        with TcpTickSource("127.0.0.1", 9000) as source:
            for chunk in source.iter_chunks():
                ...

    No read timeout is set: the feed may legitimately go quiet.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        connect_timeout: Optional[float] = 10.0,
    ):
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self._sock: Optional[socket.socket] = None
        self._lock = threading.Lock()
        self._closing = False

    def connect(self) -> "TcpTickSource":
        """
        Open the connection.

        Raises:
            SourceConnectionError: If the feed is unreachable
        """
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
        except OSError as e:
            raise SourceConnectionError(self.host, self.port, f"connect failed: {e}") from e
        sock.settimeout(None)
        with self._lock:
            self._sock = sock
            self._closing = False
        logger.info(f"Connected to tick feed at {self.host}:{self.port}")
        return self

    def iter_chunks(self) -> Iterator[bytes]:
        """
        Yield byte chunks until the peer closes the connection.

        Ends quietly if close() was called locally.

        Raises:
            SourceConnectionError: If the connection breaks mid-stream
        """
        sock = self._sock
        if sock is None:
            raise SourceConnectionError(self.host, self.port, "not connected")

        while True:
            try:
                chunk = sock.recv(RECV_SIZE)
            except OSError as e:
                if self._closing:
                    return
                raise SourceConnectionError(self.host, self.port, f"connection lost: {e}") from e
            if not chunk:
                logger.info(f"Tick feed at {self.host}:{self.port} closed the connection")
                return
            yield chunk

    def close(self) -> None:
        """Close the connection. Safe to call more than once and from any thread."""
        with self._lock:
            sock, self._sock = self._sock, None
            self._closing = True
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected by the peer.
            pass
        sock.close()

    def __enter__(self) -> "TcpTickSource":
        if self._sock is None:
            self.connect()
        return self

    def __exit__(self, *args) -> None:
        self.close()
