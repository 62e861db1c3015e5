"""
Property Tests for Dropout-Tolerant Extraction
Verifies the extraction invariants over generated payloads.
"""

from hypothesis import given, strategies as st
from hypothesis.strategies import composite

from telemetry.contracts import PayloadShape, PlainText, RecordStream
from telemetry.extractor import (
    DropoutTolerantExtractor, last_valid_by_channel, last_valid_row, to_float
)
from tests.telemetry.fixtures import feed, target

# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

NUMBERS = st.floats(allow_nan=False, allow_infinity=False, min_value=-1e6, max_value=1e6)
DROPOUTS = st.sampled_from([None, "", "null", "---"])
CELLS = st.one_of(NUMBERS, NUMBERS.map(str), DROPOUTS)
CHANNELS = st.sampled_from([">=10 MeV", ">=50 MeV", ">=100 MeV", "0.1-0.8nm"])


@composite
def tabular_rows(draw, min_rows=2):
    """Header plus data rows of [time, value]."""
    count = draw(st.integers(min_value=min_rows - 1, max_value=30))
    rows = [["time_tag", "value"]]
    for i in range(count):
        rows.append([f"t{i}", draw(CELLS)])
    return rows


@composite
def channel_records(draw):
    return draw(st.lists(
        st.fixed_dictionaries({
            "time_tag": st.text(min_size=1, max_size=5),
            "energy": CHANNELS,
            "flux": st.one_of(NUMBERS, st.none()),
        }),
        max_size=80
    ))


@composite
def comment_only_text(draw):
    lines = draw(st.lists(
        st.one_of(
            st.just(""),
            st.text(alphabet=" \t", max_size=4),
            st.text(max_size=30).map(lambda s: "#" + s.replace("\n", " ").replace("\r", " ")),
        ),
        max_size=20
    ))
    return PlainText(lines=tuple(lines))


# =============================================================================
# PROPERTIES
# =============================================================================

@given(tabular_rows(), st.integers(min_value=1, max_value=10))
def test_row_extraction_never_absent_with_data(rows, max_steps):
    """Two or more rows always yield a row: a valid one or the last one."""
    result = last_valid_row(rows, 1, max_steps)

    assert result is not None
    assert result is not rows[0]
    assert to_float(result[1]) is not None or result is rows[-1]


@given(tabular_rows(), st.integers(min_value=1, max_value=10))
def test_null_window_falls_back_to_last_row(rows, max_steps):
    window = rows[max(1, len(rows) - max_steps):]
    for row in window:
        row[1] = None

    assert last_valid_row(rows, 1, max_steps) is rows[-1]


@given(st.lists(st.lists(CELLS, min_size=2, max_size=2), max_size=1))
def test_fewer_than_two_rows_is_absent(rows):
    assert last_valid_row(rows, 1) is None


@given(channel_records(), CHANNELS)
def test_channel_filter_never_crosses_channels(records, label):
    result = last_valid_by_channel(records, label)

    if result is not None:
        assert result["energy"] == label
        assert to_float(result["flux"]) is not None


@given(channel_records(), CHANNELS)
def test_channel_reading_carries_requested_label(records, label):
    feed_spec = feed('protons', PayloadShape.RECORD_STREAM, target('p', 'flux', channel=label))
    result = DropoutTolerantExtractor().extract(feed_spec, RecordStream(records=tuple(records)), feed_spec.targets[0])

    assert result is None or result.channel == label


@given(comment_only_text())
def test_comment_only_text_is_absent(payload):
    feed_spec = feed('aurora', PayloadShape.PLAIN_TEXT, target('aurora_power', 'gw'))
    assert DropoutTolerantExtractor().extract(feed_spec, payload, feed_spec.targets[0]) is None
