"""
Feed Aggregator

Runs one refresh cycle across every configured feed.

DESIGN:
=======
1. Fetch all feeds concurrently, wait for every one to settle
2. A slow or failing feed never blocks or fails the others
3. Failed feeds become FeedFailure records, not exceptions
4. Build one wholly new Snapshot per cycle
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from datetime import datetime
import asyncio
import logging
import time

from .contracts import (
    FeedFailure, FeedSpec, FetchStatus, HistorySnapshot, RawFeedPayload,
    Reading, Snapshot, utc_now
)
from .errors import FeedUnavailable
from .extractor import DropoutTolerantExtractor
from .fetcher import FeedClient


logger = logging.getLogger(__name__)

FetchOutcome = Tuple[FeedSpec, Optional[RawFeedPayload], Optional[FeedFailure]]


class FeedAggregator:
    """
    Coordinates feed retrieval and extraction into snapshots.

    Holds no mutable state between cycles; the cache owns that.
    """

    def __init__(
        self,
        feeds: Sequence[FeedSpec],
        client: Optional[FeedClient] = None,
        extractor: Optional[DropoutTolerantExtractor] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self._feeds = tuple(feeds)
        self._client = client or FeedClient()
        self._extractor = extractor or DropoutTolerantExtractor()
        self._clock = clock

    @property
    def feeds(self) -> Tuple[FeedSpec, ...]:
        return self._feeds

    async def refresh(self) -> Snapshot:
        """
        Fetch every feed and extract the latest valid readings.

        A snapshot where every feed failed is still returned; the cache
        decides whether to serve it.
        """
        extraction_time = self._clock()
        started = time.monotonic()

        readings: Dict[str, Optional[Reading]] = {}
        failures: List[FeedFailure] = []

        for feed, payload, failure in await self._fetch_all(self._feeds):
            if failure is None:
                try:
                    for target in feed.targets:
                        readings[target.reading_id] = self._extractor.extract(feed, payload, target)
                except Exception as e:
                    failure = self._extraction_failure(feed, e)

            if failure is not None:
                failures.append(failure)
                for reading_id in feed.reading_ids:
                    readings[reading_id] = None

        snapshot = Snapshot.create(
            readings=readings,
            failures=failures,
            extraction_time=extraction_time,
            feed_count=len(self._feeds)
        )

        logger.info(
            "Refreshed %d/%d feeds in %.1fs (%d readings, %d absent)",
            snapshot.success_count,
            snapshot.feed_count,
            time.monotonic() - started,
            snapshot.present_count,
            len(snapshot.absent_ids)
        )
        return snapshot

    async def refresh_history(self) -> HistorySnapshot:
        """Fetch history-enabled feeds and build their rolling-window series."""
        feeds = tuple(f for f in self._feeds if f.has_history)
        extraction_time = self._clock()

        series: Dict[str, Tuple[Reading, ...]] = {}
        failures: List[FeedFailure] = []

        for feed, payload, failure in await self._fetch_all(feeds):
            charted = [t for t in feed.targets if t.history]
            if failure is None:
                try:
                    for target in charted:
                        series[target.reading_id] = self._extractor.extract_series(feed, payload, target)
                except Exception as e:
                    failure = self._extraction_failure(feed, e)

            if failure is not None:
                failures.append(failure)
                for target in charted:
                    series[target.reading_id] = ()

        logger.info("Refreshed history for %d/%d feeds", len(feeds) - len(failures), len(feeds))
        return HistorySnapshot(
            extraction_time=extraction_time,
            series=series,
            failures=tuple(failures),
            feed_count=len(feeds)
        )

    async def _fetch_all(self, feeds: Sequence[FeedSpec]) -> List[FetchOutcome]:
        """Fetch feeds concurrently; every outcome settles before returning."""
        results = await asyncio.gather(
            *(self._client.fetch(feed) for feed in feeds),
            return_exceptions=True
        )

        outcomes: List[FetchOutcome] = []
        for feed, result in zip(feeds, results):
            if isinstance(result, FeedUnavailable):
                logger.warning("Feed %s unavailable: %s", feed.feed_id, result.cause)
                outcomes.append((feed, None, FeedFailure(
                    feed_id=feed.feed_id,
                    feed_name=feed.name,
                    status=result.status,
                    error=result.cause
                )))
            elif isinstance(result, Exception):
                logger.warning("Feed %s failed: %r", feed.feed_id, result)
                outcomes.append((feed, None, FeedFailure(
                    feed_id=feed.feed_id,
                    feed_name=feed.name,
                    status=FetchStatus.NETWORK_ERROR,
                    error=str(result) or type(result).__name__
                )))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append((feed, result, None))

        return outcomes

    def _extraction_failure(self, feed: FeedSpec, error: Exception) -> FeedFailure:
        logger.warning("Extraction failed for %s: %s", feed.feed_id, error)
        return FeedFailure(
            feed_id=feed.feed_id,
            feed_name=feed.name,
            status=FetchStatus.PARSE_ERROR,
            error=str(error)
        )
