"""
Feed Registry

Loads and manages feed configurations from feeds.json.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional
import json
from pathlib import Path

from .contracts import ExtractionTarget, FeedSpec, PayloadShape
from .errors import ConfigError
from .fetcher import DEFAULT_TIMEOUT_SECONDS


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / 'config' / 'feeds.json'


def _column_key(value: Any, where: str):
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigError(f"{where}: column/field must be a name or index, got {value!r}")
    return value


def _positive_int(value: Any, name: str, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"{where}: {name} must be a positive integer, got {value!r}")
    return value


def _parse_target(data: Mapping[str, Any], feed_id: str, shape: PayloadShape) -> ExtractionTarget:
    where = f"feed {feed_id}"
    try:
        reading_id = data['reading_id']
        value_key = _column_key(data['value'], where)
    except KeyError as e:
        raise ConfigError(f"{where}: target missing {e.args[0]!r}") from e

    channel = data.get('channel')
    if channel is not None and shape is not PayloadShape.RECORD_STREAM:
        raise ConfigError(f"{where}: channel filter only applies to record_stream feeds")

    max_steps = data.get('max_steps')
    if max_steps is not None:
        _positive_int(max_steps, 'max_steps', where)

    max_minutes = _positive_int(data.get('max_minutes', 5), 'max_minutes', where)
    samples_per_minute = _positive_int(data.get('samples_per_minute', 10), 'samples_per_minute', where)

    time_key = data.get('time')
    return ExtractionTarget(
        reading_id=reading_id,
        value_key=value_key,
        fields=tuple(
            (name, _column_key(key, where))
            for name, key in data.get('fields', {}).items()
        ),
        time_key=_column_key(time_key, where) if time_key is not None else None,
        channel=channel,
        channel_field=data.get('channel_field', 'energy'),
        max_steps=max_steps,
        max_minutes=max_minutes,
        samples_per_minute=samples_per_minute,
        history=bool(data.get('history', False))
    )


def _parse_feed(data: Mapping[str, Any], default_timeout: float) -> FeedSpec:
    try:
        feed_id = data['id']
        url = data['url']
        shape_name = data['shape']
    except KeyError as e:
        raise ConfigError(f"Feed entry missing {e.args[0]!r}: {data!r}") from e

    try:
        shape = PayloadShape(shape_name)
    except ValueError as e:
        raise ConfigError(f"feed {feed_id}: unknown shape {shape_name!r}") from e

    targets = tuple(_parse_target(t, feed_id, shape) for t in data.get('targets', []))
    if not targets:
        raise ConfigError(f"feed {feed_id}: no extraction targets")

    return FeedSpec(
        feed_id=feed_id,
        name=data.get('name', feed_id),
        url=url,
        shape=shape,
        targets=targets,
        timeout_seconds=float(data.get('timeout_seconds', default_timeout)),
        enabled=data.get('enabled', True),
        notes=data.get('notes')
    )


@dataclass
class FeedRegistry:
    """
    Registry of all configured telemetry feeds.

    Loads from config/feeds.json and provides query methods.
    FeedSpecs are read-only once loaded.
    """

    _feeds: Dict[str, FeedSpec]

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        default_timeout: Optional[float] = None
    ) -> 'FeedRegistry':
        """Load registry from feeds.json."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read feed config {config_path}: {e}") from e

        return cls.from_dict(config, default_timeout)

    @classmethod
    def from_dict(
        cls,
        config: Mapping[str, Any],
        default_timeout: Optional[float] = None
    ) -> 'FeedRegistry':
        defaults = config.get('defaults', {})
        if default_timeout is None:
            default_timeout = defaults.get('timeout_seconds', DEFAULT_TIMEOUT_SECONDS)

        feeds: Dict[str, FeedSpec] = {}
        reading_ids = set()
        for feed_data in config.get('feeds', []):
            feed = _parse_feed(feed_data, default_timeout)
            if feed.feed_id in feeds:
                raise ConfigError(f"Duplicate feed id {feed.feed_id!r}")
            for reading_id in feed.reading_ids:
                if reading_id in reading_ids:
                    raise ConfigError(f"Duplicate reading id {reading_id!r}")
                reading_ids.add(reading_id)
            feeds[feed.feed_id] = feed

        return cls(_feeds=feeds)

    def get(self, feed_id: str) -> Optional[FeedSpec]:
        """Get feed by ID."""
        return self._feeds.get(feed_id)

    def all_feeds(self) -> Iterator[FeedSpec]:
        yield from self._feeds.values()

    def enabled_feeds(self) -> List[FeedSpec]:
        return [f for f in self._feeds.values() if f.enabled]

    def history_feeds(self) -> List[FeedSpec]:
        """Enabled feeds with at least one target charted as a series."""
        return [f for f in self.enabled_feeds() if f.has_history]

    def reading_ids(self) -> List[str]:
        return [rid for f in self._feeds.values() for rid in f.reading_ids]

    @property
    def total_count(self) -> int:
        return len(self._feeds)

    @property
    def enabled_count(self) -> int:
        return sum(1 for f in self._feeds.values() if f.enabled)

    def stats(self) -> dict:
        """Get registry statistics."""
        return {
            'total': self.total_count,
            'enabled': self.enabled_count,
            'readings': len(self.reading_ids()),
            'by_shape': {
                shape.value: sum(1 for f in self._feeds.values() if f.shape is shape)
                for shape in PayloadShape
            }
        }
