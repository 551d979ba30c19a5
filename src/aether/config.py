"""Environment configuration loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

ENV_PREFIX = "AETHER_"


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True, slots=True)
class Config:
    rpc_url: str
    ws_url: str | None = None
    chain_id: int | None = None
    timeout: float = 10.0
    retry_count: int = 3
    retry_delay: float = 0.15
    batch_size: int | None = None
    batch_wait: float = 0.0
    log_level: str = "WARNING"


def _lookup(values: Mapping[str, Optional[str]], name: str) -> str:
    return (values.get(ENV_PREFIX + name) or "").strip()


def _parse(values: Mapping[str, Optional[str]], name: str, convert, default):
    raw = _lookup(values, name)
    if not raw:
        return default
    try:
        value = convert(raw)
    except ValueError as exc:
        raise ConfigError(f"{ENV_PREFIX}{name} is not a valid {convert.__name__}: {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{ENV_PREFIX}{name} must not be negative: {raw!r}")
    return value


def load_config(env_path: Path | None = None) -> Config:
    """
    Load configuration from the environment and an optional ``.env`` file.

    Process environment variables take precedence over the file.

    Args:
        env_path: Path to a ``.env`` file (default: ``.env`` in the working directory)

    Returns:
        A validated ``Config``

    Raises:
        ConfigError: If AETHER_RPC_URL is missing or a value is malformed
    """
    env_path = env_path or Path(".env")
    values: dict[str, Optional[str]] = {}
    if env_path.exists():
        values.update(dotenv_values(env_path))
    values.update(os.environ)

    rpc_url = _lookup(values, "RPC_URL")
    if not rpc_url:
        raise ConfigError(f"{ENV_PREFIX}RPC_URL environment variable is required")
    if not rpc_url.startswith(("http://", "https://", "ws://", "wss://")):
        raise ConfigError(f"{ENV_PREFIX}RPC_URL must be an http(s) or ws(s) URL: {rpc_url!r}")

    ws_url = _lookup(values, "WS_URL") or None
    if ws_url is not None and not ws_url.startswith(("ws://", "wss://")):
        raise ConfigError(f"{ENV_PREFIX}WS_URL must be a ws(s) URL: {ws_url!r}")

    timeout = _parse(values, "TIMEOUT", float, 10.0)
    if timeout == 0:
        raise ConfigError(f"{ENV_PREFIX}TIMEOUT must be positive")
    batch_size = _parse(values, "BATCH_SIZE", int, None)
    if batch_size == 0:
        raise ConfigError(f"{ENV_PREFIX}BATCH_SIZE must be at least 1")

    log_level = (_lookup(values, "LOG_LEVEL") or "WARNING").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"{ENV_PREFIX}LOG_LEVEL is not a logging level: {log_level!r}")

    return Config(
        rpc_url=rpc_url,
        ws_url=ws_url,
        chain_id=_parse(values, "CHAIN_ID", int, None),
        timeout=timeout,
        retry_count=_parse(values, "RETRY_COUNT", int, 3),
        retry_delay=_parse(values, "RETRY_DELAY", float, 0.15),
        batch_size=batch_size,
        batch_wait=_parse(values, "BATCH_WAIT", float, 0.0),
        log_level=log_level,
    )


def configure_logging(config: Config) -> None:
    """Apply ``config.log_level`` to the ``aether`` logger hierarchy.

    Handlers are left to the application (e.g. ``logging.basicConfig``).
    """
    logging.getLogger("aether").setLevel(config.log_level)


__all__ = ["Config", "ConfigError", "configure_logging", "load_config"]
