"""
Dropout-Tolerant Extractor

Reduces a raw feed payload to its most recent valid reading.

PRINCIPLES:
===========
1. Pure functions - no I/O, no shared state
2. Walk backward a bounded number of steps to skip null dropouts
3. Non-numeric values count as invalid, never as errors
4. Multi-channel feeds never return another channel's value
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple
import math

from .contracts import (
    ColumnKey, ExtractionTarget, FeedSpec, PayloadShape, PlainText,
    RawFeedPayload, Reading, RecordStream, TabularRows
)


DEFAULT_ROW_STEPS = 5
DEFAULT_RECORD_STEPS = 10
DEFAULT_MAX_MINUTES = 5
DEFAULT_SAMPLES_PER_MINUTE = 10
COMMENT_MARKER = '#'


# =============================================================================
# VALUE HELPERS
# =============================================================================

def to_float(value: Any) -> Optional[float]:
    """Parse a cell as a finite number, or None if it is missing or invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def resolve_column(header: Sequence[Any], key: Optional[ColumnKey]) -> Optional[int]:
    """Resolve a header name or index to a column index."""
    if key is None:
        return None
    if isinstance(key, int):
        return key
    try:
        return list(header).index(key)
    except ValueError:
        return None


def cell(row: Sequence[Any], index: Optional[int]) -> Any:
    if index is None or not row:
        return None
    try:
        return row[index]
    except IndexError:
        return None


def _time_tag(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


# =============================================================================
# BACKWARD SCANS
# =============================================================================

def last_valid_row(
    rows: Sequence[Sequence[Any]],
    column: Optional[int],
    max_steps: int = DEFAULT_ROW_STEPS
) -> Optional[Sequence[Any]]:
    """
    From an array-of-arrays (header at index 0), get the last row whose
    `column` holds a number. Steps back up to `max_steps` data rows.

    Falls back to the very last row when nothing in the window is valid.
    """
    if not rows or len(rows) < 2:
        return None
    stop = max(1, len(rows) - max_steps)
    for i in range(len(rows) - 1, stop - 1, -1):
        row = rows[i]
        if row and to_float(cell(row, column)) is not None:
            return row
    return rows[-1]


def last_valid_record(
    records: Sequence[Mapping[str, Any]],
    field: str,
    max_steps: int = DEFAULT_RECORD_STEPS
) -> Optional[Mapping[str, Any]]:
    """Get the last record, within `max_steps`, whose `field` holds a number."""
    if not records:
        return None
    stop = max(0, len(records) - max_steps)
    for i in range(len(records) - 1, stop - 1, -1):
        item = records[i]
        if item and to_float(item.get(field)) is not None:
            return item
    return None


def last_valid_by_channel(
    records: Sequence[Mapping[str, Any]],
    label: str,
    value_field: str = 'flux',
    channel_field: str = 'energy',
    max_minutes: int = DEFAULT_MAX_MINUTES,
    samples_per_minute: int = DEFAULT_SAMPLES_PER_MINUTE
) -> Optional[Mapping[str, Any]]:
    """
    Get the latest record of one channel with a valid value.

    Channels are interleaved per timestamp, so the window covers
    `max_minutes` worth of samples rather than a fixed record count.
    """
    if not records:
        return None
    window = max_minutes * samples_per_minute
    stop = max(0, len(records) - window)
    for i in range(len(records) - 1, stop - 1, -1):
        item = records[i]
        if not item or item.get(channel_field) != label:
            continue
        if to_float(item.get(value_field)) is not None:
            return item
    return None


@dataclass(frozen=True)
class TextMatch:
    """Last numeric data line of a text feed."""
    value: float
    line: str
    tokens: Tuple[str, ...]


def data_lines(lines: Sequence[str], comment_marker: str = COMMENT_MARKER) -> List[str]:
    """Non-blank, non-comment lines, stripped."""
    kept = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(comment_marker):
            continue
        kept.append(stripped)
    return kept


def parse_text_line(line: str) -> Optional[TextMatch]:
    tokens = tuple(line.split())
    if not tokens:
        return None
    value = to_float(tokens[-1])
    if value is None:
        return None
    return TextMatch(value=value, line=line, tokens=tokens)


def last_numeric_line(
    lines: Sequence[str],
    comment_marker: str = COMMENT_MARKER
) -> Optional[TextMatch]:
    """Walk backward to the last data line whose final token is a number."""
    for line in reversed(data_lines(lines, comment_marker)):
        match = parse_text_line(line)
        if match is not None:
            return match
    return None


# =============================================================================
# EXTRACTOR
# =============================================================================

class DropoutTolerantExtractor:
    """
    Turns raw payloads into Readings according to each ExtractionTarget.

    GUARANTEES:
    ===========
    1. Deterministic given the same payload and target
    2. Absence of a valid element yields None, never an exception
    3. Channel-filtered targets only ever return their own channel
    """

    def __init__(self, comment_marker: str = COMMENT_MARKER):
        self._comment_marker = comment_marker

    def extract(
        self,
        feed: FeedSpec,
        payload: RawFeedPayload,
        target: ExtractionTarget
    ) -> Optional[Reading]:
        """Extract the latest valid reading for one target."""
        self._check_shape(feed, payload)

        if payload.shape is PayloadShape.TABULAR_ROWS:
            return self._extract_row(feed, payload, target)
        if payload.shape is PayloadShape.RECORD_STREAM:
            return self._extract_record(feed, payload, target)
        return self._extract_line(feed, payload, target)

    def extract_series(
        self,
        feed: FeedSpec,
        payload: RawFeedPayload,
        target: ExtractionTarget
    ) -> Tuple[Reading, ...]:
        """All valid readings in the payload's window, oldest first."""
        self._check_shape(feed, payload)

        if payload.shape is PayloadShape.TABULAR_ROWS:
            header = payload.header
            column = resolve_column(header, target.value_key)
            return tuple(
                self._row_reading(feed, target, header, row)
                for row in payload.rows[1:]
                if row and to_float(cell(row, column)) is not None
            )

        if payload.shape is PayloadShape.RECORD_STREAM:
            value_field = str(target.value_key)
            return tuple(
                self._record_reading(feed, target, item)
                for item in payload.records
                if item
                and (target.channel is None or item.get(target.channel_field) == target.channel)
                and to_float(item.get(value_field)) is not None
            )

        matches = (parse_text_line(line) for line in data_lines(payload.lines, self._comment_marker))
        return tuple(
            self._line_reading(feed, target, match)
            for match in matches
            if match is not None
        )

    # =========================================================================
    # SHAPE-SPECIFIC EXTRACTION
    # =========================================================================

    def _extract_row(
        self,
        feed: FeedSpec,
        payload: TabularRows,
        target: ExtractionTarget
    ) -> Optional[Reading]:
        header = payload.header
        column = resolve_column(header, target.value_key)
        max_steps = target.max_steps or DEFAULT_ROW_STEPS

        row = last_valid_row(payload.rows, column, max_steps)
        if row is None:
            return None
        return self._row_reading(feed, target, header, row)

    def _extract_record(
        self,
        feed: FeedSpec,
        payload: RecordStream,
        target: ExtractionTarget
    ) -> Optional[Reading]:
        value_field = str(target.value_key)

        if target.channel is not None:
            item = last_valid_by_channel(
                payload.records,
                target.channel,
                value_field=value_field,
                channel_field=target.channel_field,
                max_minutes=target.max_minutes,
                samples_per_minute=target.samples_per_minute
            )
        else:
            item = last_valid_record(
                payload.records,
                value_field,
                target.max_steps or DEFAULT_RECORD_STEPS
            )

        if item is None:
            return None
        return self._record_reading(feed, target, item)

    def _extract_line(
        self,
        feed: FeedSpec,
        payload: PlainText,
        target: ExtractionTarget
    ) -> Optional[Reading]:
        match = last_numeric_line(payload.lines, self._comment_marker)
        if match is None:
            return None
        return self._line_reading(feed, target, match)

    # =========================================================================
    # READING CONSTRUCTION
    # =========================================================================

    def _row_reading(
        self,
        feed: FeedSpec,
        target: ExtractionTarget,
        header: Sequence[Any],
        row: Sequence[Any]
    ) -> Reading:
        column = resolve_column(header, target.value_key)
        time_key = target.time_key if target.time_key is not None else 0
        value = to_float(cell(row, column))

        return Reading(
            reading_id=target.reading_id,
            feed_id=feed.feed_id,
            time_tag=_time_tag(cell(row, resolve_column(header, time_key))),
            value=value,
            fields=tuple(
                (name, to_float(cell(row, resolve_column(header, key))))
                for name, key in target.fields
            ),
            fallback=value is None
        )

    def _record_reading(
        self,
        feed: FeedSpec,
        target: ExtractionTarget,
        item: Mapping[str, Any]
    ) -> Reading:
        time_key = target.time_key if target.time_key is not None else 'time_tag'

        return Reading(
            reading_id=target.reading_id,
            feed_id=feed.feed_id,
            time_tag=_time_tag(item.get(str(time_key))),
            value=to_float(item.get(str(target.value_key))),
            fields=tuple(
                (name, to_float(item.get(str(key))))
                for name, key in target.fields
            ),
            channel=item.get(target.channel_field) if target.channel is not None else None
        )

    def _line_reading(
        self,
        feed: FeedSpec,
        target: ExtractionTarget,
        match: TextMatch
    ) -> Reading:
        time_tag = None
        if isinstance(target.time_key, int):
            time_tag = _time_tag(cell(match.tokens, target.time_key))

        return Reading(
            reading_id=target.reading_id,
            feed_id=feed.feed_id,
            time_tag=time_tag,
            value=match.value,
            fields=tuple(
                (name, to_float(cell(match.tokens, key)) if isinstance(key, int) else match.value)
                for name, key in target.fields
            ),
            raw_line=match.line
        )

    def _check_shape(self, feed: FeedSpec, payload: RawFeedPayload):
        if payload.shape is not feed.shape:
            raise ValueError(
                f"Feed {feed.feed_id} declares {feed.shape.value} "
                f"but payload is {payload.shape.value}"
            )
