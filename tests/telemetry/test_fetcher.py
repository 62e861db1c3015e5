"""
Feed Client Tests

Every retrieval outcome must surface as a payload or a typed FeedUnavailable.
Transport is mocked with httpx.MockTransport - no network access.
"""

import asyncio
import json
from dataclasses import replace

import httpx
import pytest

from telemetry.contracts import FetchStatus, PlainText, RecordStream, TabularRows
from telemetry.errors import FeedUnavailable
from telemetry.fetcher import DEFAULT_USER_AGENT, FeedClient, parse_payload

from .fixtures import AURORA_FEED, AURORA_TEXT, MAG_FEED, PROTON_FEED


def fetch(feed, handler, **kwargs):
    client = FeedClient(transport=httpx.MockTransport(handler), **kwargs)
    return asyncio.run(client.fetch(feed))


def fetch_error(feed, handler, **kwargs) -> FeedUnavailable:
    with pytest.raises(FeedUnavailable) as exc_info:
        fetch(feed, handler, **kwargs)
    return exc_info.value


# =============================================================================
# SUCCESSFUL RETRIEVAL
# =============================================================================

class TestSuccess:

    def test_tabular_payload(self):
        body = [["time_tag", "bz_gsm"], ["t1", "-3.1"], None]
        payload = fetch(MAG_FEED, lambda request: httpx.Response(200, json=body))

        assert isinstance(payload, TabularRows)
        assert payload.header == ("time_tag", "bz_gsm")
        assert payload.rows[-1] == ()

    def test_record_payload(self):
        body = [{"energy": ">=10 MeV", "flux": 0.3}, None]
        payload = fetch(PROTON_FEED, lambda request: httpx.Response(200, json=body))

        assert isinstance(payload, RecordStream)
        assert payload.records == ({"energy": ">=10 MeV", "flux": 0.3}, {})

    def test_plain_text_payload(self):
        payload = fetch(AURORA_FEED, lambda request: httpx.Response(200, text=AURORA_TEXT))

        assert isinstance(payload, PlainText)
        assert payload.lines[0].startswith("#")

    def test_sends_user_agent(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers["user-agent"]
            seen["url"] = str(request.url)
            return httpx.Response(200, json=[])

        fetch(PROTON_FEED, handler)

        assert seen["ua"] == DEFAULT_USER_AGENT
        assert seen["url"] == PROTON_FEED.url


# =============================================================================
# FAILURES
# =============================================================================

class TestFailures:

    def test_non_success_status(self):
        error = fetch_error(MAG_FEED, lambda request: httpx.Response(503))

        assert error.status == FetchStatus.HTTP_ERROR
        assert error.http_status == 503
        assert error.feed_id == MAG_FEED.feed_id

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert fetch_error(MAG_FEED, handler).status == FetchStatus.NETWORK_ERROR

    def test_transport_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        assert fetch_error(MAG_FEED, handler).status == FetchStatus.TIMEOUT

    def test_slow_upstream_is_abandoned(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json=[])

        slow_feed = replace(MAG_FEED, timeout_seconds=0.05)
        error = fetch_error(slow_feed, handler)

        assert error.status == FetchStatus.TIMEOUT

    def test_invalid_json(self):
        error = fetch_error(MAG_FEED, lambda request: httpx.Response(200, text="<html>oops</html>"))
        assert error.status == FetchStatus.PARSE_ERROR

    def test_object_body_is_shape_mismatch(self):
        error = fetch_error(MAG_FEED, lambda request: httpx.Response(200, json={"rows": []}))
        assert error.status == FetchStatus.SHAPE_MISMATCH


class TestParsePayload:

    def test_records_in_tabular_feed(self):
        with pytest.raises(FeedUnavailable) as exc_info:
            parse_payload(MAG_FEED, [{"a": 1}])
        assert exc_info.value.status == FetchStatus.SHAPE_MISMATCH

    def test_rows_in_record_feed(self):
        with pytest.raises(FeedUnavailable):
            parse_payload(PROTON_FEED, [[1, 2]])

    def test_json_for_text_feed(self):
        with pytest.raises(FeedUnavailable):
            parse_payload(AURORA_FEED, json.loads("[]"))
