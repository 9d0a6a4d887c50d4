"""
Pipeline configuration.

Values are layered, later layers winning:

    defaults < YAML file < TICKSTREAM_* environment variables < CLI flags

Example tickstream.yaml:

    source:
      host: 127.0.0.1
      port: 9000
      simulate: true
    queue:
      max_size: 10000
    batching:
      buffer: 1000
      interval_sec: 5
    output:
      path: ./ticks.csv
      skip_existing_header: false
    status:
      port: 8080

Environment Variables:
    TICKSTREAM_CONFIG: Path to a YAML config file
    TICKSTREAM_OUT, TICKSTREAM_INTERVAL_SEC, TICKSTREAM_PORT, TICKSTREAM_HOST,
    TICKSTREAM_BUFFER, TICKSTREAM_MAX_QUEUE, TICKSTREAM_SKIP_EXISTING_HEADER,
    TICKSTREAM_STATUS_PORT
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .batcher import DEFAULT_BUFFER_BATCH, DEFAULT_INTERVAL_SEC
from .buffer import DEFAULT_MAX_QUEUE
from .transport import DEFAULT_HOST, DEFAULT_PORT
from .writer import DEFAULT_OUT_PATH

ENV_PREFIX = "TICKSTREAM_"

_TRUE_STRINGS = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Raised for invalid configuration, detected at startup."""


@dataclass
class PipelineConfig:
    """Configuration for one pipeline run."""
    out_path: str = DEFAULT_OUT_PATH
    interval_sec: float = DEFAULT_INTERVAL_SEC
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    buffer_batch: int = DEFAULT_BUFFER_BATCH
    max_queue: int = DEFAULT_MAX_QUEUE
    skip_existing_header: bool = False
    simulate: bool = False
    status_port: Optional[int] = None

    @classmethod
    def from_yaml(cls, path: Path) -> "PipelineConfig":
        """Load configuration from a YAML file, using defaults for missing keys."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at top level")

        source = data.get("source") or {}
        queue = data.get("queue") or {}
        batching = data.get("batching") or {}
        output = data.get("output") or {}
        status = data.get("status") or {}

        defaults = cls()
        return cls(
            out_path=str(output.get("path", defaults.out_path)),
            interval_sec=_to_float("batching.interval_sec", batching.get("interval_sec", defaults.interval_sec)),
            host=str(source.get("host", defaults.host)),
            port=_to_int("source.port", source.get("port", defaults.port)),
            buffer_batch=_to_int("batching.buffer", batching.get("buffer", defaults.buffer_batch)),
            max_queue=_to_int("queue.max_size", queue.get("max_size", defaults.max_queue)),
            skip_existing_header=_to_bool(output.get("skip_existing_header", defaults.skip_existing_header)),
            simulate=_to_bool(source.get("simulate", defaults.simulate)),
            status_port=_to_optional_int("status.port", status.get("port")),
        )

    @classmethod
    def from_env(cls, base: Optional["PipelineConfig"] = None, environ: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """
        Apply TICKSTREAM_* environment variables on top of ``base``.

        If TICKSTREAM_CONFIG is set and no base is given, the YAML file it
        names is loaded first.
        """
        env = os.environ if environ is None else environ
        if base is None:
            config_path = env.get(f"{ENV_PREFIX}CONFIG")
            base = cls.from_yaml(Path(config_path)) if config_path else cls()

        overrides: Dict[str, Any] = {}
        if f"{ENV_PREFIX}OUT" in env:
            overrides["out_path"] = env[f"{ENV_PREFIX}OUT"]
        if f"{ENV_PREFIX}INTERVAL_SEC" in env:
            overrides["interval_sec"] = _to_float("TICKSTREAM_INTERVAL_SEC", env[f"{ENV_PREFIX}INTERVAL_SEC"])
        if f"{ENV_PREFIX}HOST" in env:
            overrides["host"] = env[f"{ENV_PREFIX}HOST"]
        if f"{ENV_PREFIX}PORT" in env:
            overrides["port"] = _to_int("TICKSTREAM_PORT", env[f"{ENV_PREFIX}PORT"])
        if f"{ENV_PREFIX}BUFFER" in env:
            overrides["buffer_batch"] = _to_int("TICKSTREAM_BUFFER", env[f"{ENV_PREFIX}BUFFER"])
        if f"{ENV_PREFIX}MAX_QUEUE" in env:
            overrides["max_queue"] = _to_int("TICKSTREAM_MAX_QUEUE", env[f"{ENV_PREFIX}MAX_QUEUE"])
        if f"{ENV_PREFIX}SKIP_EXISTING_HEADER" in env:
            overrides["skip_existing_header"] = _to_bool(env[f"{ENV_PREFIX}SKIP_EXISTING_HEADER"])
        if f"{ENV_PREFIX}STATUS_PORT" in env:
            overrides["status_port"] = _to_optional_int("TICKSTREAM_STATUS_PORT", env[f"{ENV_PREFIX}STATUS_PORT"])

        return base.merged(**overrides)

    def merged(self, **overrides: Any) -> "PipelineConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown config option(s): {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> "PipelineConfig":
        """
        Check value ranges.

        Raises:
            ConfigError: On the first invalid value found
        """
        if self.max_queue < 1:
            raise ConfigError(f"max_queue must be >= 1, got {self.max_queue}")
        if self.buffer_batch < 1:
            raise ConfigError(f"buffer_batch must be >= 1, got {self.buffer_batch}")
        if self.interval_sec <= 0:
            raise ConfigError(f"interval_sec must be > 0, got {self.interval_sec}")
        if not 1 <= self.port <= 65535:
            raise ConfigError(f"port must be in 1-65535, got {self.port}")
        if self.status_port is not None and not 1 <= self.status_port <= 65535:
            raise ConfigError(f"status_port must be in 1-65535, got {self.status_port}")
        if not self.out_path:
            raise ConfigError("out_path must not be empty")
        if "\0" in str(self.out_path):
            raise ConfigError("out_path must not contain a NUL byte")
        return self


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def _to_optional_int(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return _to_int(name, value)


def _to_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)
