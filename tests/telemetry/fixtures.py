"""
Telemetry Test Fixtures

Explicit payloads, feeds and fakes for deterministic testing.
All fixtures are explicit - no random generation.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from telemetry.contracts import (
    ExtractionTarget, FeedFailure, FeedSpec, FetchStatus, PayloadShape,
    PlainText, Reading, RecordStream, Snapshot, TabularRows
)
from telemetry.errors import FeedUnavailable


# =============================================================================
# FIXED TIMESTAMPS (deterministic)
# =============================================================================

T0 = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


# =============================================================================
# FEED FIXTURES
# =============================================================================

def target(reading_id: str, value_key, **kwargs) -> ExtractionTarget:
    fields = kwargs.pop('fields', {})
    return ExtractionTarget(
        reading_id=reading_id,
        value_key=value_key,
        fields=tuple(fields.items()),
        **kwargs
    )


def feed(feed_id: str, shape: PayloadShape, *targets: ExtractionTarget) -> FeedSpec:
    return FeedSpec(
        feed_id=feed_id,
        name=feed_id.replace('_', ' ').title(),
        url=f"https://feeds.example.test/{feed_id}.json",
        shape=shape,
        targets=tuple(targets)
    )


MAG_FEED = feed(
    'solar_wind_mag', PayloadShape.TABULAR_ROWS,
    target('solar_wind_mag', 'bz_gsm', time_key='time_tag',
           fields={'bz_gsm': 'bz_gsm', 'bt': 'bt'}, history=True)
)

PROTON_FEED = feed(
    'protons', PayloadShape.RECORD_STREAM,
    target('proton_flux', 'flux', channel='>=10 MeV', fields={'flux': 'flux'}, history=True),
    target('proton_flux_50', 'flux', channel='>=50 MeV', fields={'flux': 'flux'}),
    target('proton_flux_100', 'flux', channel='>=100 MeV', fields={'flux': 'flux'})
)

F107_FEED = feed(
    'f107', PayloadShape.RECORD_STREAM,
    target('f107_flux', 'flux', fields={'flux': 'flux'})
)

AURORA_FEED = feed(
    'aurora', PayloadShape.PLAIN_TEXT,
    target('aurora_power', 'hemispheric_power_gw', time_key=0,
           fields={'hemispheric_power_gw': 'hemispheric_power_gw'})
)

ALL_FEEDS = (MAG_FEED, PROTON_FEED, F107_FEED, AURORA_FEED)


# =============================================================================
# PAYLOAD FIXTURES
# =============================================================================

MAG_HEADER = ("time_tag", "bx_gsm", "by_gsm", "bz_gsm", "lon_gsm", "lat_gsm", "bt")


def create_mag_payload() -> TabularRows:
    """Mag rows whose last two rows are dropouts."""
    return TabularRows(rows=(
        MAG_HEADER,
        ("2026-01-01 09:56:00.000", "1.10", "-2.00", "-4.20", "300.1", "-20.5", "5.10"),
        ("2026-01-01 09:57:00.000", "1.20", "-2.10", "-6.30", "301.4", "-30.2", "7.00"),
        ("2026-01-01 09:58:00.000", None, None, None, None, None, None),
        ("2026-01-01 09:59:00.000", None, None, None, None, None, None),
    ))


def create_proton_records() -> RecordStream:
    """Three interleaved channels; the newest >=10 MeV sample is a dropout."""
    return RecordStream(records=(
        {"time_tag": "2026-01-01T09:55:00Z", "energy": ">=10 MeV", "flux": 0.42},
        {"time_tag": "2026-01-01T09:55:00Z", "energy": ">=50 MeV", "flux": 0.11},
        {"time_tag": "2026-01-01T09:55:00Z", "energy": ">=100 MeV", "flux": 0.05},
        {"time_tag": "2026-01-01T10:00:00Z", "energy": ">=10 MeV", "flux": None},
        {"time_tag": "2026-01-01T10:00:00Z", "energy": ">=50 MeV", "flux": 0.12},
        {"time_tag": "2026-01-01T10:00:00Z", "energy": ">=100 MeV", "flux": 0.06},
    ))


def create_f107_records() -> RecordStream:
    return RecordStream(records=(
        {"time_tag": "2025-12-30T20:00:00", "flux": 152.0},
        {"time_tag": "2025-12-31T20:00:00", "flux": 148.5},
    ))


AURORA_TEXT = """\
# Aurora hemispheric power
# Observation              Forecast        North-Hemispheric-Power-Index (GW)
#
2026-01-01_09:50           2026-01-01_10:20        18

2026-01-01_09:55           2026-01-01_10:25        21
"""


def create_aurora_text() -> PlainText:
    return PlainText.from_text(AURORA_TEXT)


def create_payloads() -> Dict[str, Any]:
    return {
        'solar_wind_mag': create_mag_payload(),
        'protons': create_proton_records(),
        'f107': create_f107_records(),
        'aurora': create_aurora_text(),
    }


# =============================================================================
# SNAPSHOT FIXTURES
# =============================================================================

def reading(reading_id: str, value: Optional[float] = None, **fields) -> Reading:
    return Reading(
        reading_id=reading_id,
        feed_id=reading_id,
        time_tag="2026-01-01T10:00:00Z",
        value=value,
        fields=tuple(fields.items())
    )


def make_snapshot(
    readings: Optional[Dict[str, Optional[Reading]]] = None,
    extraction_time: datetime = T0,
    failures: Sequence[FeedFailure] = (),
    feed_count: Optional[int] = None
) -> Snapshot:
    readings = readings if readings is not None else {'f107_flux': reading('f107_flux', 120.0, flux=120.0)}
    return Snapshot.create(
        readings=readings,
        failures=failures,
        extraction_time=extraction_time,
        feed_count=len(readings) if feed_count is None else feed_count
    )


def failure(feed_id: str, status: FetchStatus = FetchStatus.TIMEOUT) -> FeedFailure:
    return FeedFailure(feed_id=feed_id, feed_name=feed_id, status=status, error="boom")


# =============================================================================
# FAKES
# =============================================================================

class FakeClient:
    """
    Stand-in for FeedClient serving canned payloads.

    Feeds with no payload fail with HTTP 404. When `gate` is given every
    fetch waits on it, and `max_active` records peak concurrency.
    """

    def __init__(
        self,
        payloads: Optional[Dict[str, Any]] = None,
        errors: Optional[Dict[str, BaseException]] = None,
        gate: Optional[asyncio.Event] = None
    ):
        self.payloads = create_payloads() if payloads is None else payloads
        self.errors = errors or {}
        self.gate = gate
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, feed: FeedSpec):
        self.calls.append(feed.feed_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if feed.feed_id in self.errors:
                raise self.errors[feed.feed_id]
            if feed.feed_id not in self.payloads:
                raise FeedUnavailable(feed.feed_id, "HTTP 404", FetchStatus.HTTP_ERROR, http_status=404)
            return self.payloads[feed.feed_id]
        finally:
            self.active -= 1


class CountingRefresh:
    """
    Refresh coroutine that counts invocations.

    Returns `results` in order (the last one repeats); exceptions in the
    list are raised instead of returned.
    """

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeStore:
    """In-memory load_persisted/save_persisted hooks."""

    def __init__(self, persisted: Optional[Snapshot] = None, load_error=None, save_error=None):
        self.persisted = persisted
        self.load_error = load_error
        self.save_error = save_error
        self.loads = 0
        self.saved: List[Snapshot] = []

    def load_persisted(self) -> Optional[Snapshot]:
        self.loads += 1
        if self.load_error is not None:
            raise self.load_error
        return self.persisted

    def save_persisted(self, snapshot: Snapshot):
        if self.save_error is not None:
            raise self.save_error
        self.saved.append(snapshot)
        self.persisted = snapshot
