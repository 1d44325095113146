"""Server configuration and logging setup."""

from __future__ import annotations

import logging
import os
import sys
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel

DEFAULT_CONFIG_FILE = "instant-undo.toml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Environment variable -> config field
_ENV_FIELDS = {
    "INSTANT_UNDO_HOST": "host",
    "PORT": "port",
    "INSTANT_UNDO_PORT": "port",
    "INSTANT_UNDO_REDIS_URL": "redis_url",
    "INSTANT_UNDO_REDIS_PREFIX": "redis_prefix",
    "INSTANT_UNDO_LOG_LEVEL": "log_level",
    "INSTANT_UNDO_LOG_FILE": "log_file",
}


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    redis_url: str | None = None
    redis_prefix: str = "instant_undo"
    simulate_latency: bool = True
    log_level: str = "info"
    log_file: str | None = None


def _read_toml(path: Path) -> dict[str, Any]:
    """Load the config file, or return {} if it cannot be read."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"Warning: failed to load config from {path}: {e}", file=sys.stderr)
        return {}
    # Accept both a flat file and one with a [server] table
    return data.get("server", data)


def load_config(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> ServerConfig:
    """Build the config from file, then environment, then explicit overrides.

    File lookup: explicit path, else $INSTANT_UNDO_CONFIG, else
    ./instant-undo.toml when it exists.
    """
    env = os.environ if env is None else env
    values: dict[str, Any] = {}

    config_path = path or env.get("INSTANT_UNDO_CONFIG")
    if config_path is not None:
        values.update(_read_toml(Path(config_path)))
    elif Path(DEFAULT_CONFIG_FILE).is_file():
        values.update(_read_toml(Path(DEFAULT_CONFIG_FILE)))

    for var, field_name in _ENV_FIELDS.items():
        if env.get(var):
            values[field_name] = env[var]

    values.update({k: v for k, v in overrides.items() if v is not None})
    return ServerConfig.model_validate(values)


def configure_logging(level: str = "info", log_file: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=handlers, force=True)
