"""
Telemetry Core

Polls upstream space-weather feeds and maintains one coherent, cached
snapshot of their latest valid readings.

LAYER STRUCTURE:
================

1. FEED CLIENT (fetcher.py)
   - Responsibility: Retrieve one feed within a fixed timeout
   - Outputs: RawFeedPayload (TabularRows | RecordStream | PlainText)
   - MUST NOT: Retry, interpret values, share state between calls

2. EXTRACTOR (extractor.py)
   - Responsibility: Reduce a payload to its latest valid reading
   - Outputs: Reading, or None when no valid element is in the window
   - MUST NOT: Perform I/O

3. AGGREGATOR (aggregator.py)
   - Responsibility: One refresh cycle across all feeds, concurrently
   - Outputs: Snapshot with readings and per-feed failures
   - MUST NOT: Fail the cycle because one feed failed

4. SNAPSHOT CACHE (cache.py)
   - Responsibility: TTL, single-flight refresh, stale-on-error fallback
   - Outputs: Snapshot, or DataUnavailable
   - MUST NOT: Run two refreshes at once for the same slot

SUPPORT:
========
- contracts.py - Immutable data structures
- registry.py  - Feed configuration from config/feeds.json
- storage.py   - Advisory persisted copy and refresh log
- errors.py    - Exception hierarchy
"""

from .contracts import (
    CacheState, ExtractionTarget, FeedFailure, FeedSpec, FetchStatus,
    HistorySnapshot, PayloadShape, PlainText, Reading, RecordStream,
    Snapshot, TabularRows
)
from .errors import (
    ConfigError, DataUnavailable, FeedUnavailable, RefreshFailed, TelemetryError
)
from .aggregator import FeedAggregator
from .cache import SnapshotCache
from .extractor import DropoutTolerantExtractor
from .fetcher import FeedClient
from .registry import FeedRegistry
from .storage import SnapshotStore

__all__ = [
    'CacheState', 'ExtractionTarget', 'FeedFailure', 'FeedSpec', 'FetchStatus',
    'HistorySnapshot', 'PayloadShape', 'PlainText', 'Reading', 'RecordStream',
    'Snapshot', 'TabularRows',
    'ConfigError', 'DataUnavailable', 'FeedUnavailable', 'RefreshFailed', 'TelemetryError',
    'FeedAggregator', 'SnapshotCache', 'DropoutTolerantExtractor', 'FeedClient',
    'FeedRegistry', 'SnapshotStore',
]
