"""
Telemetry Contracts

Immutable data structures for the feed extraction pipeline.

BOUNDARY: Telemetry Core
All upstream data enters through these contracts, and every consumer
(alert evaluation, HTTP layer, persistent store) reads them back out.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Sequence, Tuple, Union
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
import hashlib
import math
import json


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, assuming UTC when no offset is given."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def stored_number(value: Any, name: str) -> Optional[float]:
    """Validate a number read back from a persisted copy; None stays None."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}")
    return float(value)


# =============================================================================
# ENUMS
# =============================================================================

class PayloadShape(Enum):
    """Shapes an upstream feed can be published in."""
    TABULAR_ROWS = "tabular_rows"
    RECORD_STREAM = "record_stream"
    PLAIN_TEXT = "plain_text"


class FetchStatus(Enum):
    """Status of a fetch attempt."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"
    SHAPE_MISMATCH = "shape_mismatch"


class CacheState(Enum):
    """States of one cache slot."""
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"
    REFRESHING = "refreshing"


# =============================================================================
# FEED CONFIGURATION
# =============================================================================

ColumnKey = Union[int, str]


@dataclass(frozen=True)
class ExtractionTarget:
    """
    One reading to pull out of a feed payload.

    `value_key` names the validity-determining value: a column (header
    name or index) for tabular feeds, a field name for record feeds.
    `fields` maps auxiliary output names to columns/fields the same way.
    """
    reading_id: str
    value_key: ColumnKey
    fields: Tuple[Tuple[str, ColumnKey], ...] = field(default_factory=tuple)
    time_key: Optional[ColumnKey] = None
    channel: Optional[str] = None
    channel_field: str = "energy"
    max_steps: Optional[int] = None
    max_minutes: int = 5
    samples_per_minute: int = 10
    history: bool = False


@dataclass(frozen=True)
class FeedSpec:
    """Static configuration for a single upstream feed."""
    feed_id: str
    name: str
    url: str
    shape: PayloadShape
    targets: Tuple[ExtractionTarget, ...]
    timeout_seconds: float = 15.0
    enabled: bool = True
    notes: Optional[str] = None

    def __hash__(self):
        return hash(self.feed_id)

    @property
    def reading_ids(self) -> Tuple[str, ...]:
        return tuple(t.reading_id for t in self.targets)

    @property
    def has_history(self) -> bool:
        return any(t.history for t in self.targets)


# =============================================================================
# RAW PAYLOAD CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class TabularRows:
    """Array-of-arrays payload. Row 0 is the header naming the columns."""
    rows: Tuple[Tuple[Any, ...], ...]

    shape: ClassVar[PayloadShape] = PayloadShape.TABULAR_ROWS

    @property
    def header(self) -> Tuple[Any, ...]:
        return self.rows[0] if self.rows else ()


@dataclass(frozen=True)
class RecordStream:
    """Array-of-objects payload, possibly with interleaved channels."""
    records: Tuple[Mapping[str, Any], ...]

    shape: ClassVar[PayloadShape] = PayloadShape.RECORD_STREAM


@dataclass(frozen=True)
class PlainText:
    """Line-oriented text payload with comment lines."""
    lines: Tuple[str, ...]

    shape: ClassVar[PayloadShape] = PayloadShape.PLAIN_TEXT

    @classmethod
    def from_text(cls, text: str) -> 'PlainText':
        return cls(lines=tuple(text.splitlines()))


RawFeedPayload = Union[TabularRows, RecordStream, PlainText]


# =============================================================================
# READINGS
# =============================================================================

@dataclass(frozen=True)
class Reading:
    """
    Normalized point-in-time reading extracted from one feed.

    `value` is the validity-determining number. It is None only for a
    tabular fallback row (`fallback=True`), which callers must re-check.
    """
    reading_id: str
    feed_id: str
    time_tag: Optional[str]
    value: Optional[float]
    fields: Tuple[Tuple[str, Optional[float]], ...] = field(default_factory=tuple)
    channel: Optional[str] = None
    raw_line: Optional[str] = None
    fallback: bool = False

    def get(self, name: str) -> Optional[float]:
        """Get an auxiliary field by name."""
        for key, value in self.fields:
            if key == name:
                return value
        return None

    @property
    def has_value(self) -> bool:
        return self.value is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reading_id': self.reading_id,
            'feed_id': self.feed_id,
            'time_tag': self.time_tag,
            'value': self.value,
            'fields': dict(self.fields),
            'channel': self.channel,
            'raw_line': self.raw_line,
            'fallback': self.fallback,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Reading':
        return cls(
            reading_id=data['reading_id'],
            feed_id=data['feed_id'],
            time_tag=data.get('time_tag'),
            value=stored_number(data.get('value'), 'value'),
            fields=tuple(
                (k, stored_number(v, k)) for k, v in (data.get('fields') or {}).items()
            ),
            channel=data.get('channel'),
            raw_line=data.get('raw_line'),
            fallback=bool(data.get('fallback', False)),
        )


# =============================================================================
# SNAPSHOT CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class FeedFailure:
    """
    A feed that could not be read during a refresh cycle.

    Failed feeds are FIRST-CLASS data in the snapshot, not exceptions.
    """
    feed_id: str
    feed_name: str
    status: FetchStatus
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'feed_id': self.feed_id,
            'feed': self.feed_name,
            'status': self.status.value,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'FeedFailure':
        return cls(
            feed_id=data['feed_id'],
            feed_name=data.get('feed', data['feed_id']),
            status=FetchStatus(data.get('status', FetchStatus.NETWORK_ERROR.value)),
            error=data.get('error', ''),
        )


@dataclass(frozen=True)
class Snapshot:
    """
    Unified view of all feeds at one extraction time.

    A refresh always builds a new Snapshot; existing ones are never mutated.
    `readings` maps reading_id to a Reading, or None when absent.
    """
    snapshot_id: str
    extraction_time: datetime
    readings: Mapping[str, Optional[Reading]]
    failures: Tuple[FeedFailure, ...] = field(default_factory=tuple)
    feed_count: int = 0

    @classmethod
    def create(
        cls,
        readings: Mapping[str, Optional[Reading]],
        failures: Sequence[FeedFailure] = (),
        extraction_time: Optional[datetime] = None,
        feed_count: int = 0
    ) -> 'Snapshot':
        """Create with a content-derived identifier."""
        extracted = extraction_time or utc_now()
        frozen = MappingProxyType(dict(readings))
        content = json.dumps(
            {k: (r.to_dict() if r else None) for k, r in sorted(frozen.items())},
            sort_keys=True,
            default=str
        )
        content_hash = hashlib.sha256(content.encode()).hexdigest()
        snapshot_id = f"snap_{extracted.strftime('%Y%m%d%H%M%S')}_{content_hash[:8]}"

        return cls(
            snapshot_id=snapshot_id,
            extraction_time=extracted,
            readings=frozen,
            failures=tuple(failures),
            feed_count=feed_count
        )

    def reading(self, reading_id: str) -> Optional[Reading]:
        return self.readings.get(reading_id)

    def value(self, reading_id: str, name: Optional[str] = None) -> Optional[float]:
        """Primary value of a reading, or one of its fields when `name` is given."""
        reading = self.readings.get(reading_id)
        if reading is None:
            return None
        return reading.get(name) if name else reading.value

    @property
    def present_count(self) -> int:
        return sum(1 for r in self.readings.values() if r is not None)

    @property
    def absent_ids(self) -> Tuple[str, ...]:
        return tuple(k for k, r in self.readings.items() if r is None)

    @property
    def success_count(self) -> int:
        return self.feed_count - len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'snapshot_id': self.snapshot_id,
            'extraction_time': self.extraction_time.isoformat(),
            'feed_count': self.feed_count,
            'data': {
                k: (r.to_dict() if r is not None else None)
                for k, r in self.readings.items()
            },
            'errors': [f.to_dict() for f in self.failures],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Snapshot':
        readings = {
            k: (Reading.from_dict(r) if r is not None else None)
            for k, r in data.get('data', {}).items()
        }
        return cls(
            snapshot_id=data['snapshot_id'],
            extraction_time=parse_timestamp(data['extraction_time']),
            readings=MappingProxyType(readings),
            failures=tuple(FeedFailure.from_dict(f) for f in data.get('errors', [])),
            feed_count=data.get('feed_count', 0)
        )


@dataclass(frozen=True)
class HistorySnapshot:
    """Rolling-window series as published by the upstreams, keyed by reading_id."""
    extraction_time: datetime
    series: Mapping[str, Tuple[Reading, ...]]
    failures: Tuple[FeedFailure, ...] = field(default_factory=tuple)
    feed_count: int = 0

    def series_for(self, reading_id: str) -> Tuple[Reading, ...]:
        return self.series.get(reading_id, ())

    @property
    def success_count(self) -> int:
        return self.feed_count - len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'extraction_time': self.extraction_time.isoformat(),
            'series': {
                k: [r.to_dict() for r in points]
                for k, points in self.series.items()
            },
            'errors': [f.to_dict() for f in self.failures],
            'feed_count': self.feed_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'HistorySnapshot':
        return cls(
            extraction_time=parse_timestamp(data['extraction_time']),
            series=MappingProxyType({
                k: tuple(Reading.from_dict(r) for r in points)
                for k, points in data.get('series', {}).items()
            }),
            failures=tuple(FeedFailure.from_dict(f) for f in data.get('errors', [])),
            feed_count=data.get('feed_count', 0)
        )


# =============================================================================
# CACHE CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class CacheEntry:
    """A snapshot plus the wall-clock instant it was produced."""
    snapshot: Any
    produced_at: datetime

    def age_seconds(self, now: datetime) -> float:
        return (now - self.produced_at).total_seconds()

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        return self.age_seconds(now) < ttl_seconds


@dataclass(frozen=True)
class CacheStats:
    """Statistics for one cache slot."""
    name: str
    state: CacheState
    hit_count: int
    miss_count: int
    refresh_count: int
    fallback_count: int
    recovered_count: int
    produced_at: Optional[datetime]
    age_seconds: Optional[float]
    computed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'state': self.state.value,
            'hits': self.hit_count,
            'misses': self.miss_count,
            'refreshes': self.refresh_count,
            'fallbacks': self.fallback_count,
            'recovered': self.recovered_count,
            'produced_at': self.produced_at.isoformat() if self.produced_at else None,
            'age_seconds': self.age_seconds,
        }
