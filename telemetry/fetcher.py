"""
Feed Client

Fetches one upstream feed and decodes it into a raw payload.

PRINCIPLES:
===========
1. Every retrieval is bounded by a fixed timeout
2. No retries - retry policy belongs to the caller
3. Failures raise FeedUnavailable with a typed status
4. Connections are released on every path, including errors
"""

from __future__ import annotations
from typing import Any, Optional
import asyncio
import logging

import httpx

from .contracts import (
    FeedSpec, FetchStatus, PayloadShape, PlainText, RawFeedPayload,
    RecordStream, TabularRows
)
from .errors import FeedUnavailable


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'SpaceWeatherMonitor/1.0 (spaceweather@example.com)'
DEFAULT_TIMEOUT_SECONDS = 15.0


def parse_payload(feed: FeedSpec, body: Any) -> RawFeedPayload:
    """
    Check a decoded JSON body against the feed's declared shape.

    Null elements are kept as empty rows/records so the extractor treats
    them as dropouts.
    """
    if not isinstance(body, list):
        raise FeedUnavailable(
            feed.feed_id,
            f"Expected a JSON array, got {type(body).__name__}",
            FetchStatus.SHAPE_MISMATCH
        )

    if feed.shape is PayloadShape.TABULAR_ROWS:
        rows = []
        for index, row in enumerate(body):
            if row is None:
                rows.append(())
            elif isinstance(row, list):
                rows.append(tuple(row))
            else:
                raise FeedUnavailable(
                    feed.feed_id,
                    f"Row {index} is {type(row).__name__}, expected array",
                    FetchStatus.SHAPE_MISMATCH
                )
        return TabularRows(rows=tuple(rows))

    if feed.shape is PayloadShape.RECORD_STREAM:
        records = []
        for index, item in enumerate(body):
            if item is None:
                records.append({})
            elif isinstance(item, dict):
                records.append(item)
            else:
                raise FeedUnavailable(
                    feed.feed_id,
                    f"Record {index} is {type(item).__name__}, expected object",
                    FetchStatus.SHAPE_MISMATCH
                )
        return RecordStream(records=tuple(records))

    raise FeedUnavailable(
        feed.feed_id,
        f"JSON body for {feed.shape.value} feed",
        FetchStatus.SHAPE_MISMATCH
    )


class FeedClient:
    """
    Retrieves feeds over HTTP.

    GUARANTEES:
    ===========
    1. Returns a payload matching the feed's declared shape, or raises
    2. Never holds shared state between calls
    3. Never retries
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport

    async def fetch(self, feed: FeedSpec) -> RawFeedPayload:
        """
        Fetch a feed and decode it.

        Raises:
            FeedUnavailable on timeout, non-2xx status, transport error
            or undecodable body.
        """
        timeout = feed.timeout_seconds or self._timeout

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                transport=self._transport,
                headers={'User-Agent': self._user_agent},
                follow_redirects=True
            ) as client:
                response = await asyncio.wait_for(client.get(feed.url), timeout=timeout)

        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise FeedUnavailable(
                feed.feed_id,
                f"Request timed out after {timeout:g}s",
                FetchStatus.TIMEOUT
            ) from e

        except httpx.HTTPError as e:
            raise FeedUnavailable(
                feed.feed_id,
                str(e) or type(e).__name__,
                FetchStatus.NETWORK_ERROR
            ) from e

        if not response.is_success:
            raise FeedUnavailable(
                feed.feed_id,
                f"HTTP {response.status_code} from {feed.url}",
                FetchStatus.HTTP_ERROR,
                http_status=response.status_code
            )

        logger.debug("Fetched %s (%d bytes)", feed.feed_id, len(response.content))
        return self.decode(feed, response)

    def decode(self, feed: FeedSpec, response: httpx.Response) -> RawFeedPayload:
        """Decode a successful response according to the feed's shape."""
        if feed.shape is PayloadShape.PLAIN_TEXT:
            return PlainText.from_text(response.text)

        try:
            body = response.json()
        except ValueError as e:
            raise FeedUnavailable(
                feed.feed_id,
                f"Invalid JSON: {e}",
                FetchStatus.PARSE_ERROR
            ) from e

        return parse_payload(feed, body)
