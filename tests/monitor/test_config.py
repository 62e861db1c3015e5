"""
Monitor Configuration Tests
"""

from pathlib import Path

import pytest

from monitor.config import MonitorConfig
from telemetry.errors import ConfigError


def test_defaults():
    config = MonitorConfig.from_env({})

    assert config.cache_ttl_seconds == 1800
    assert config.fetch_timeout_seconds == 15.0
    assert config.poll_interval_seconds == 1800
    assert config.port == 3000
    assert config.feeds_path is None
    assert config.persist is True


def test_environment_overrides():
    config = MonitorConfig.from_env({
        "SWX_CACHE_TTL": "600",
        "SWX_FETCH_TIMEOUT": "5",
        "SWX_DATA_DIR": "/tmp/swx",
        "SWX_FEEDS_CONFIG": "/etc/swx/feeds.json",
        "SWX_LOG_LEVEL": "debug",
        "SWX_PERSIST": "no",
        "PORT": "8080",
    })

    assert config.cache_ttl_seconds == 600.0
    assert config.fetch_timeout_seconds == 5.0
    assert config.data_dir == Path("/tmp/swx")
    assert config.feeds_path == Path("/etc/swx/feeds.json")
    assert config.log_level == "DEBUG"
    assert config.persist is False
    assert config.port == 8080


def test_blank_values_use_defaults():
    assert MonitorConfig.from_env({"SWX_CACHE_TTL": "  "}).cache_ttl_seconds == 1800


@pytest.mark.parametrize("environ", [
    {"SWX_CACHE_TTL": "soon"},
    {"SWX_CACHE_TTL": "-1"},
    {"PORT": "99999"},
    {"SWX_PERSIST": "maybe"},
    {"SWX_LOG_LEVEL": "LOUD"},
])
def test_invalid_values(environ):
    with pytest.raises(ConfigError):
        MonitorConfig.from_env(environ)
