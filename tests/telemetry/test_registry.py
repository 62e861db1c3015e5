"""
Feed Registry Tests
"""

import json

import pytest

from telemetry.contracts import PayloadShape
from telemetry.errors import ConfigError
from telemetry.registry import FeedRegistry


def minimal_config(**overrides):
    feed = {
        "id": "f107",
        "url": "https://services.swpc.noaa.gov/json/f107_cm_flux.json",
        "shape": "record_stream",
        "targets": [{"reading_id": "f107_flux", "value": "flux", "fields": {"flux": "flux"}}],
    }
    feed.update(overrides)
    return {"feeds": [feed]}


class TestBundledConfig:

    def test_loads_all_feeds(self):
        registry = FeedRegistry.load()

        assert registry.total_count == 10
        assert registry.enabled_count == 10
        assert set(registry.reading_ids()) == {
            "solar_wind_mag", "solar_wind_plasma", "kp_index_1m", "kp_index_official",
            "xray_flux", "xray_flux_short", "proton_flux", "proton_flux_50",
            "proton_flux_100", "electron_flux", "electron_flux_08", "f107_flux",
            "aurora_power",
        }

    def test_shapes_and_channels(self):
        registry = FeedRegistry.load()

        assert registry.get("aurora").shape is PayloadShape.PLAIN_TEXT
        assert registry.get("solar_wind_mag").shape is PayloadShape.TABULAR_ROWS
        protons = registry.get("protons")
        assert [t.channel for t in protons.targets] == [">=10 MeV", ">=50 MeV", ">=100 MeV"]
        assert registry.get("kp_index_official").targets[0].value_key == -1

    def test_history_feeds(self):
        registry = FeedRegistry.load()
        assert {f.feed_id for f in registry.history_feeds()} == {
            "solar_wind_mag", "solar_wind_plasma", "kp_index_1m", "xrays", "protons", "electrons",
        }

    def test_default_timeout_override(self):
        registry = FeedRegistry.load(default_timeout=3.0)
        assert all(f.timeout_seconds == 3.0 for f in registry.all_feeds())


class TestValidation:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            FeedRegistry.load(tmp_path / "missing.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "feeds.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            FeedRegistry.load(path)

    def test_unknown_shape(self):
        with pytest.raises(ConfigError):
            FeedRegistry.from_dict(minimal_config(shape="xml"))

    def test_channel_on_tabular_feed(self):
        config = minimal_config(
            shape="tabular_rows",
            targets=[{"reading_id": "x", "value": 1, "channel": "A"}]
        )
        with pytest.raises(ConfigError):
            FeedRegistry.from_dict(config)

    def test_duplicate_reading_ids(self):
        config = minimal_config()
        second = dict(config["feeds"][0], id="f107_copy")
        config["feeds"].append(second)
        with pytest.raises(ConfigError):
            FeedRegistry.from_dict(config)

    @pytest.mark.parametrize("window", [
        {"max_minutes": "5"},
        {"samples_per_minute": 2.5},
        {"samples_per_minute": 0},
        {"max_steps": True},
    ])
    def test_non_integer_scan_bounds(self, window):
        target = dict({"reading_id": "p", "value": "flux", "channel": ">=10 MeV"}, **window)
        with pytest.raises(ConfigError):
            FeedRegistry.from_dict(minimal_config(targets=[target]))

    def test_target_without_value(self):
        with pytest.raises(ConfigError):
            FeedRegistry.from_dict(minimal_config(targets=[{"reading_id": "x"}]))

    def test_roundtrip_through_file(self, tmp_path):
        path = tmp_path / "feeds.json"
        path.write_text(json.dumps(minimal_config(enabled=False)), encoding="utf-8")

        registry = FeedRegistry.load(path)

        assert registry.enabled_feeds() == []
        assert registry.stats()["by_shape"]["record_stream"] == 1
