from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_PORT = 3000
DEFAULT_ENVIRONMENT = "development"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class AppConfig:
    host: str
    port: int
    environment: str
    log_level: str = DEFAULT_LOG_LEVEL


def load_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    env = os.environ if environ is None else environ
    port = _coerce_port(env.get("PORT") or str(DEFAULT_PORT))
    environment = env.get("APP_ENV") or env.get("NODE_ENV") or DEFAULT_ENVIRONMENT
    host = env.get("HOST") or DEFAULT_HOST
    log_level = _coerce_log_level(env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL)
    return AppConfig(host=host, port=port, environment=environment, log_level=log_level)


def _coerce_port(raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"invalid port number: {raw!r}") from exc
    if value < 0 or value > 65535:
        raise ValueError(f"invalid port number: {value}")
    return value


def _coerce_log_level(raw: str) -> str:
    level = raw.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"unknown log level: {raw!r}")
    return level


__all__ = ["AppConfig", "load_config"]
