"""
Monitor Service

Wires the telemetry core to its consumers: alert evaluation, the HTTP
layer, the console report and the refresh log.

LAYER FLOW:
===========
1. FeedRegistry: config/feeds.json → FeedSpecs
2. FeedAggregator: FeedSpecs → Snapshot / HistorySnapshot
3. SnapshotCache: one slot for the snapshot, one for history
4. AlertEvaluator: Snapshot → Evaluation
5. SnapshotStore: persisted copy and refresh log
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Tuple
from datetime import datetime
import asyncio
import logging

from telemetry.aggregator import FeedAggregator
from telemetry.cache import DEFAULT_TTL_SECONDS, SnapshotCache
from telemetry.contracts import HistorySnapshot, Snapshot, utc_now
from telemetry.errors import DataUnavailable
from telemetry.fetcher import FeedClient
from telemetry.registry import FeedRegistry
from telemetry.storage import SnapshotStore

from .alerts import AlertEvaluator, Evaluation
from .config import MonitorConfig


logger = logging.getLogger(__name__)


class MonitorService:
    """
    Facade over the caches and the evaluator.

    The evaluation is memoized per snapshot_id, so repeated reads of the
    same snapshot are not re-evaluated.
    """

    def __init__(
        self,
        registry: FeedRegistry,
        client: Optional[FeedClient] = None,
        store: Optional[SnapshotStore] = None,
        evaluator: Optional[AlertEvaluator] = None,
        cache_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        history_ttl_seconds: float = 300.0,
        clock: Callable[[], datetime] = utc_now
    ):
        self._registry = registry
        self._store = store
        self._evaluator = evaluator or AlertEvaluator()
        self._aggregator = FeedAggregator(registry.enabled_feeds(), client=client, clock=clock)

        self._snapshots = SnapshotCache(
            self._aggregator.refresh,
            ttl_seconds=cache_ttl_seconds,
            store=store,
            clock=clock,
            name='snapshot'
        )
        self._history = SnapshotCache(
            self._aggregator.refresh_history,
            ttl_seconds=history_ttl_seconds,
            clock=clock,
            name='history'
        )
        self._evaluation: Optional[Evaluation] = None
        self._last_recorded: Optional[str] = None

    @classmethod
    def from_config(cls, config: MonitorConfig) -> 'MonitorService':
        registry = FeedRegistry.load(config.feeds_path, default_timeout=config.fetch_timeout_seconds)
        client = FeedClient(timeout=config.fetch_timeout_seconds, user_agent=config.user_agent)
        store = SnapshotStore(config.data_dir) if config.persist else None

        logger.info(
            "Monitoring %d feeds (%d readings), cache TTL %gs",
            registry.enabled_count,
            len(registry.reading_ids()),
            config.cache_ttl_seconds
        )
        return cls(
            registry,
            client=client,
            store=store,
            cache_ttl_seconds=config.cache_ttl_seconds,
            history_ttl_seconds=config.history_ttl_seconds
        )

    @property
    def registry(self) -> FeedRegistry:
        return self._registry

    @property
    def store(self) -> Optional[SnapshotStore]:
        return self._store

    @property
    def snapshot_cache(self) -> SnapshotCache:
        return self._snapshots

    @property
    def history_cache(self) -> SnapshotCache:
        return self._history

    # =========================================================================
    # READS
    # =========================================================================

    async def snapshot(self) -> Snapshot:
        return await self._snapshots.get()

    async def status(self) -> Tuple[Snapshot, Evaluation]:
        """Current snapshot and its evaluation. Raises DataUnavailable."""
        snapshot = await self._snapshots.get()
        return snapshot, self.evaluate(snapshot)

    def evaluate(self, snapshot: Snapshot) -> Evaluation:
        cached = self._evaluation
        if cached is not None and cached.snapshot_id == snapshot.snapshot_id:
            return cached
        evaluation = self._evaluator.evaluate(snapshot)
        self._evaluation = evaluation
        return evaluation

    async def history(self) -> HistorySnapshot:
        return await self._history.get()

    def cache_info(self) -> Dict[str, Any]:
        return {
            'snapshot': self._snapshots.stats().to_dict(),
            'history': self._history.stats().to_dict(),
        }

    # =========================================================================
    # CYCLES
    # =========================================================================

    async def force_refresh(self) -> Tuple[Snapshot, Evaluation]:
        """Invalidate both slots and refresh them."""
        self._snapshots.invalidate()
        self._history.invalidate()

        status_result, history_result = await asyncio.gather(
            self.status(),
            self._history.get(),
            return_exceptions=True
        )
        if isinstance(history_result, DataUnavailable):
            logger.warning("History unavailable after forced refresh")
        elif isinstance(history_result, BaseException):
            raise history_result
        if isinstance(status_result, BaseException):
            raise status_result
        return status_result

    async def run_cycle(self) -> Tuple[Snapshot, Evaluation]:
        """One polling cycle: get through the cache, evaluate, record new snapshots."""
        snapshot, evaluation = await self.status()
        await self._record(snapshot, evaluation)
        return snapshot, evaluation

    async def _record(self, snapshot: Snapshot, evaluation: Evaluation):
        # A cache hit returns a snapshot that is already logged
        if self._store is None or snapshot.snapshot_id == self._last_recorded:
            return
        try:
            await asyncio.to_thread(
                self._store.record_cycle,
                snapshot,
                len(evaluation.alerts),
                evaluation.statuses()
            )
            self._last_recorded = snapshot.snapshot_id
        except Exception as e:
            logger.warning("Could not record refresh cycle: %s", e)
            logger.debug("Refresh log failure", exc_info=True)
