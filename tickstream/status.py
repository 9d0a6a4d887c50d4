"""
Read-only HTTP status endpoint for a running pipeline.

Routes:
    GET /health  -> {"status": "ok" | "failed", "state": "<pipeline state>"}
    GET /stats   -> PipelineStats as JSON
"""

import logging
import threading

from flask import Flask, jsonify
from werkzeug.serving import make_server

from .pipeline import PipelineDriver, PipelineState

logger = logging.getLogger(__name__)


def create_status_app(driver: PipelineDriver) -> Flask:
    """
    Build a Flask app exposing the counters of ``driver``.

    Args:
        driver: Pipeline whose state and stats are served
    """
    app = Flask("tickstream.status")

    @app.route("/health", methods=["GET"])
    def health():
        state = driver.state
        if state is PipelineState.FAILED:
            return jsonify({"status": "failed", "state": state.value}), 503
        return jsonify({"status": "ok", "state": state.value})

    @app.route("/stats", methods=["GET"])
    def stats():
        return jsonify(driver.stats().to_dict())

    return app


class StatusServer:
    """Serves the status app from a daemon thread.

    Binds on construction; ``port=0`` picks a free port, readable from ``port``.
    """

    def __init__(self, driver: PipelineDriver, host: str = "127.0.0.1", port: int = 8080):
        self.host = host
        self._server = make_server(host, port, create_status_app(driver), threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="tickstream-status",
        )

    @property
    def port(self) -> int:
        return self._server.server_port

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "StatusServer":
        self._thread.start()
        logger.info(f"Status endpoint on http://{self.host}:{self.port}/stats")
        return self

    def stop(self) -> None:
        if self._thread.is_alive():
            self._server.shutdown()
            self._thread.join(timeout=5.0)
        self._server.server_close()
