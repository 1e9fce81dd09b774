"""Agent configuration: JSON file, then NODEAGENT_* environment, then CLI overrides."""

import json
import logging
import os
import sys
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from nodeagent.errors import ConfigError

log = logging.getLogger(__name__)

ENV_PREFIX = "NODEAGENT_"
COUNTER_SOURCES = ("procfs", "psutil")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_counter_source() -> str:
    return "procfs" if sys.platform.startswith("linux") else "psutil"


@dataclass(frozen=True)
class AgentConfig:
    """Settings read once at startup and never changed while running."""

    interval: float = 1.0  # Seconds between resamples, and between publishes
    node_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    cluster_id: str = "default"
    publish_url: str | None = None
    publish_token: str | None = None
    publish_timeout: float = 5.0
    counter_source: str = field(default_factory=_default_counter_source)
    proc_root: str = "/proc"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ConfigError(f"interval must be positive, got {self.interval}")
        if self.publish_timeout <= 0:
            raise ConfigError(f"publish_timeout must be positive, got {self.publish_timeout}")
        if not self.node_id:
            raise ConfigError("node_id must not be empty")
        if self.counter_source not in COUNTER_SOURCES:
            raise ConfigError(
                f"counter_source must be one of {', '.join(COUNTER_SOURCES)}, got {self.counter_source!r}"
            )
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"unknown log_level {self.log_level!r}")
        # frozen, so normalise through object.__setattr__
        object.__setattr__(self, "log_level", self.log_level.upper())

    @property
    def sampling_window(self) -> float:
        """Time between the two counter captures of a resample cycle."""
        return self.interval / 2


_FIELD_TYPES = {f.name: f.type for f in fields(AgentConfig)}
_FLOAT_FIELDS = {"interval", "publish_timeout"}


def _coerce(key: str, value: Any) -> Any:
    if key in _FLOAT_FIELDS or key == "frequency":
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key} must be a number, got {value!r}") from e
    return str(value)


def _apply_layer(merged: dict[str, Any], layer: Mapping[str, Any], origin: str) -> None:
    if layer.get("interval") is not None and layer.get("frequency") is not None:
        raise ConfigError(f"set either interval or frequency, not both ({origin})")
    for key, value in layer.items():
        if value is None:
            continue
        if key == "frequency":
            frequency = _coerce(key, value)
            if frequency <= 0:
                raise ConfigError(f"frequency must be positive, got {frequency} ({origin})")
            merged["interval"] = 1.0 / frequency
            continue
        if key not in _FIELD_TYPES:
            raise ConfigError(f"unknown configuration key {key!r} ({origin})")
        merged[key] = _coerce(key, value)


def _read_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be an object")
    return data


def _env_layer(env: Mapping[str, str]) -> dict[str, str]:
    layer = {}
    for name, value in env.items():
        if name.startswith(ENV_PREFIX):
            key = name[len(ENV_PREFIX):].lower()
            if key in _FIELD_TYPES or key == "frequency":
                layer[key] = value
    return layer


def load_config(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> AgentConfig:
    """
    Build the agent configuration.

    Later layers win: config file, then NODEAGENT_* environment variables,
    then explicit keyword overrides (None values are ignored). ``frequency``
    in Hz is accepted anywhere in place of ``interval``.

    Raises:
        ConfigError: On unreadable files, unknown keys, invalid values, or a
            layer that sets both interval and frequency.
    """
    merged: dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        _apply_layer(merged, _read_file(path), str(path))
        log.debug("Loaded config file %s", path)

    _apply_layer(merged, _env_layer(os.environ if env is None else env), "environment")
    _apply_layer(merged, overrides, "arguments")

    return AgentConfig(**merged)
