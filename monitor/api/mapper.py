"""
API Mapper
==========

Transforms snapshots and evaluations into JSON-ready response bodies.
Readings are flattened so clients see the field names they chart.
"""
from typing import Any, Dict, Optional, Sequence

from telemetry.contracts import HistorySnapshot, Reading, Snapshot

from ..alerts import Evaluation


def map_reading(reading: Optional[Reading]) -> Optional[Dict[str, Any]]:
    """Flatten a Reading into {time_tag, value, <fields>, ...}."""
    if reading is None:
        return None
    body: Dict[str, Any] = {
        "time_tag": reading.time_tag,
        "value": reading.value,
        **dict(reading.fields),
    }
    if reading.channel is not None:
        body["channel"] = reading.channel
    if reading.raw_line is not None:
        body["raw_line"] = reading.raw_line
    if reading.fallback:
        body["fallback"] = True
    return body


def map_alerts(evaluation: Evaluation, snapshot: Snapshot) -> Dict[str, Any]:
    return {
        "has_alerts": evaluation.has_alerts,
        "alert_count": len(evaluation.alerts),
        "highest_severity": evaluation.highest_severity.label,
        "alerts": [a.to_dict() for a in evaluation.alerts],
        "extraction_time": snapshot.extraction_time.isoformat(),
    }


def map_status(
    snapshot: Snapshot,
    evaluation: Evaluation,
    cache: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Full status body: readings, failures, alerts, metric statuses."""
    body = {
        "snapshot_id": snapshot.snapshot_id,
        "extraction_time": snapshot.extraction_time.isoformat(),
        "feed_count": snapshot.feed_count,
        "success_count": snapshot.success_count,
        "data": {k: map_reading(r) for k, r in snapshot.readings.items()},
        "errors": [f.to_dict() for f in snapshot.failures],
        "alerts": [a.to_dict() for a in evaluation.alerts],
        "metrics": {k: m.to_dict() for k, m in evaluation.metrics.items()},
    }
    if cache is not None:
        body["cache"] = cache
    return body


def map_series(points: Sequence[Reading]) -> list:
    """A chart series: one {time, <fields>} point per reading."""
    return [
        {"time": r.time_tag, **dict(r.fields)}
        for r in points
    ]


def map_history(history: HistorySnapshot, names: Dict[str, str]) -> Dict[str, Any]:
    """Pick series out of a history snapshot under response key names."""
    return {key: map_series(history.series_for(reading_id)) for key, reading_id in names.items()}
