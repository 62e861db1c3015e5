"""
Snapshot Cache

Owns the current snapshot for one cache slot and serializes refreshes.

STATES:
=======
EMPTY      - no snapshot ever produced
FRESH      - snapshot younger than the TTL
STALE      - snapshot at or past the TTL, or explicitly invalidated
REFRESHING - one refresh in flight; callers wait on its result

GUARANTEES:
===========
1. At most one refresh in flight per slot; concurrent misses share it
2. A hit never suspends the caller
3. A failed refresh falls back to the previous snapshot when one exists
4. The current snapshot is swapped in one assignment, never mutated
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional
from datetime import datetime
import asyncio
import logging

from .contracts import CacheEntry, CacheState, CacheStats, utc_now
from .errors import DataUnavailable, RefreshFailed


logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 1800


class SnapshotCache:
    """
    Single-flight TTL cache around a refresh coroutine.

    `refresh` is any coroutine function returning a snapshot-like object
    (`extraction_time`, `feed_count`, `success_count`). `store`, when given,
    must provide `load_persisted()` and `save_persisted(snapshot)`; it is
    consulted once on cold start and written after every refresh, and its
    failures are only logged.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        store: Optional[Any] = None,
        clock: Callable[[], datetime] = utc_now,
        name: str = 'snapshot'
    ):
        self._refresh = refresh
        self._ttl = ttl_seconds
        self._store = store
        self._clock = clock
        self._name = name

        self._entry: Optional[CacheEntry] = None
        self._inflight: Optional[asyncio.Task] = None
        self._invalidated = False
        self._generation = 0
        self._recovery_attempted = False

        self._hits = 0
        self._misses = 0
        self._refreshes = 0
        self._fallbacks = 0
        self._recovered = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def state(self) -> CacheState:
        if self._inflight is not None:
            return CacheState.REFRESHING
        if self._entry is None:
            return CacheState.EMPTY
        if self._invalidated or not self._entry.is_fresh(self._clock(), self._ttl):
            return CacheState.STALE
        return CacheState.FRESH

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self._entry

    def peek(self) -> Optional[Any]:
        """Current snapshot regardless of age, without any I/O."""
        return self._entry.snapshot if self._entry else None

    async def get(self) -> Any:
        """
        Return the current snapshot, refreshing it first if needed.

        Raises:
            DataUnavailable when no snapshot exists and none can be produced.
        """
        entry = self._entry
        if entry is not None and not self._invalidated and entry.is_fresh(self._clock(), self._ttl):
            self._hits += 1
            return entry.snapshot

        self._misses += 1
        # No await between the check and the assignment, so only one task is ever created
        if self._inflight is None:
            self._inflight = asyncio.get_running_loop().create_task(self._run_refresh())

        # A cancelled waiter must not cancel the refresh the others are waiting on
        return await asyncio.shield(self._inflight)

    def invalidate(self):
        """Force the next get() to refresh; the current snapshot stays as fallback."""
        self._invalidated = True
        self._generation += 1
        logger.debug("Cache %s invalidated", self._name)

    def stats(self) -> CacheStats:
        now = self._clock()
        return CacheStats(
            name=self._name,
            state=self.state,
            hit_count=self._hits,
            miss_count=self._misses,
            refresh_count=self._refreshes,
            fallback_count=self._fallbacks,
            recovered_count=self._recovered,
            produced_at=self._entry.produced_at if self._entry else None,
            age_seconds=self._entry.age_seconds(now) if self._entry else None,
            computed_at=now
        )

    # =========================================================================
    # REFRESH TRANSITION
    # =========================================================================

    async def _run_refresh(self) -> Any:
        try:
            if self._entry is None and not self._recovery_attempted:
                recovered = await self._recover()
                if recovered is not None:
                    return recovered

            previous = self._entry
            generation = self._generation

            try:
                snapshot = await self._refresh()
            except Exception as e:
                return self._fall_back(previous, RefreshFailed(e))

            if previous is not None and snapshot.feed_count > 0 and snapshot.success_count == 0:
                return self._fall_back(
                    previous,
                    RefreshFailed(f"all {snapshot.feed_count} feeds failed")
                )

            self._install(snapshot, generation)
            await self._persist(snapshot)
            return snapshot
        finally:
            self._inflight = None

    def _install(self, snapshot: Any, generation: int):
        self._entry = CacheEntry(snapshot=snapshot, produced_at=self._clock())
        # An invalidate() that arrived mid-refresh still applies to this result
        if generation == self._generation:
            self._invalidated = False
        self._refreshes += 1

    def _fall_back(self, previous: Optional[CacheEntry], failure: RefreshFailed) -> Any:
        if previous is None:
            logger.error("Cache %s refresh failed with nothing to fall back to: %s", self._name, failure.cause)
            raise DataUnavailable(f"No {self._name} available") from failure

        self._fallbacks += 1
        logger.warning(
            "Cache %s refresh failed, serving snapshot from %s: %s",
            self._name,
            previous.produced_at.isoformat(),
            failure.cause
        )
        return previous.snapshot

    # =========================================================================
    # SECONDARY STORE
    # =========================================================================

    async def _recover(self) -> Optional[Any]:
        """Adopt the persisted snapshot if it is still within the TTL."""
        self._recovery_attempted = True
        if self._store is None:
            return None

        try:
            snapshot = await asyncio.to_thread(self._store.load_persisted)
        except Exception as e:
            logger.warning("Cache %s could not load persisted snapshot: %s", self._name, e)
            logger.debug("Persisted snapshot load failure", exc_info=True)
            return None

        if snapshot is None:
            return None

        # Kept even when stale so a failing first refresh still has a fallback
        self._entry = CacheEntry(snapshot=snapshot, produced_at=snapshot.extraction_time)
        self._recovered += 1

        if not self._invalidated and self._entry.is_fresh(self._clock(), self._ttl):
            logger.info("Cache %s recovered fresh snapshot from store", self._name)
            return snapshot

        logger.info("Cache %s recovered stale snapshot from store; refreshing", self._name)
        return None

    async def _persist(self, snapshot: Any):
        if self._store is None:
            return
        try:
            await asyncio.to_thread(self._store.save_persisted, snapshot)
        except Exception as e:
            logger.warning("Cache %s could not persist snapshot: %s", self._name, e)
            logger.debug("Persist failure", exc_info=True)
