"""
Monitor Configuration

All settings have defaults and can be overridden through SWX_* environment
variables (PORT is read unprefixed for hosting platforms).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional
from pathlib import Path
import logging
import os

from telemetry.cache import DEFAULT_TTL_SECONDS
from telemetry.errors import ConfigError
from telemetry.fetcher import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT


ENV_PREFIX = 'SWX_'


def _default_data_dir() -> Path:
    return Path(os.getcwd()) / 'data'


def _read(environ: Mapping[str, str], name: str, parse: Callable, default):
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return parse(raw.strip())
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from e


@dataclass(frozen=True)
class MonitorConfig:
    """Runtime configuration for the monitor service and its entry points."""
    feeds_path: Optional[Path] = None
    data_dir: Path = field(default_factory=_default_data_dir)
    cache_ttl_seconds: float = DEFAULT_TTL_SECONDS
    history_ttl_seconds: float = 300.0
    fetch_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    user_agent: str = DEFAULT_USER_AGENT
    poll_interval_minutes: float = 30.0
    log_level: str = 'INFO'
    log_dir: Optional[Path] = None
    persist: bool = True
    host: str = '0.0.0.0'
    port: int = 3000

    def __post_init__(self):
        for name in ('cache_ttl_seconds', 'history_ttl_seconds',
                     'fetch_timeout_seconds', 'poll_interval_minutes'):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level {self.log_level!r}")

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_minutes * 60

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'MonitorConfig':
        """Build a config from environment variables."""
        env = os.environ if environ is None else environ
        p = ENV_PREFIX
        defaults = cls()

        feeds_path = _read(env, p + 'FEEDS_CONFIG', Path, None)
        log_dir = _read(env, p + 'LOG_DIR', Path, None)

        return cls(
            feeds_path=feeds_path,
            data_dir=_read(env, p + 'DATA_DIR', Path, defaults.data_dir),
            cache_ttl_seconds=_read(env, p + 'CACHE_TTL', float, defaults.cache_ttl_seconds),
            history_ttl_seconds=_read(env, p + 'HISTORY_TTL', float, defaults.history_ttl_seconds),
            fetch_timeout_seconds=_read(env, p + 'FETCH_TIMEOUT', float, defaults.fetch_timeout_seconds),
            user_agent=_read(env, p + 'USER_AGENT', str, defaults.user_agent),
            poll_interval_minutes=_read(env, p + 'POLL_MINUTES', float, defaults.poll_interval_minutes),
            log_level=_read(env, p + 'LOG_LEVEL', str.upper, defaults.log_level),
            log_dir=log_dir,
            persist=_read(env, p + 'PERSIST', _parse_bool, defaults.persist),
            host=_read(env, p + 'HOST', str, defaults.host),
            port=_read(env, 'PORT', int, defaults.port)
        )


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ('1', 'true', 'yes', 'on'):
        return True
    if lowered in ('0', 'false', 'no', 'off'):
        return False
    raise ValueError(value)
