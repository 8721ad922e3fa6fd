import json

import pytest

from darkplanner.core.config import ConfigError, load_planner_config
from darkplanner.core.models import Edge, Hour


def test_full_yaml_config(tmp_path):
    cfg = tmp_path / "planner.yaml"
    cfg.write_text(
        "location: {id: munich, lat: 48.1351, lon: 11.5820, zone: Europe/Berlin}\n"
        "filter:\n"
        "  from: 21\n"
        "  to: astrEnd\n"
        "  min_hours: 1.5\n"
        "  days: fri_sat_sun\n"
        "  highlight_match: true\n"
        "weather:\n"
        "  enabled: true\n"
        "  max_wind: 21.6\n"
        "  wind_unit: kmh\n"
        "  max_cloud: 150\n"
        "run:\n"
        "  nights: 14\n"
        "  cache_dir: cache\n"
        "  data_dir: kernels\n"
    )
    loaded = load_planner_config(cfg)
    assert loaded.location.zone == "Europe/Berlin"
    assert loaded.filter.from_edge == Hour(21)
    assert loaded.filter.to_edge is Edge.ASTR_END
    assert loaded.filter.min_minutes == 90
    assert loaded.filter.allowed_days == frozenset({5, 6, 0})
    assert loaded.filter.highlight_match
    assert loaded.weather.enabled
    assert loaded.weather.max_wind_ms == pytest.approx(6.0)
    # clamped to a percentage
    assert loaded.weather.max_cloud == 100.0
    assert loaded.weather.max_humidity == 70.0
    assert loaded.nights == 14
    assert loaded.cache_dir.name == "cache"
    assert loaded.data_dir.name == "kernels"


def test_empty_sections_use_defaults(tmp_path):
    cfg = tmp_path / "planner.json"
    cfg.write_text(json.dumps({}))
    loaded = load_planner_config(cfg)
    assert loaded.location is None
    assert loaded.filter.from_edge == Hour(21) and loaded.filter.to_edge == Hour(2)
    assert not loaded.weather.enabled
    assert loaded.nights == 30
    assert loaded.data_dir is None


def test_missing_location_field(tmp_path):
    cfg = tmp_path / "planner.yaml"
    cfg.write_text("location: {lat: 10}\n")
    with pytest.raises(ConfigError):
        load_planner_config(cfg)


def test_invalid_filter_edge(tmp_path):
    cfg = tmp_path / "planner.yaml"
    cfg.write_text("filter: {from: dusk}\n")
    with pytest.raises(ConfigError):
        load_planner_config(cfg)


def test_unsupported_extension(tmp_path):
    cfg = tmp_path / "planner.toml"
    cfg.write_text("x = 1")
    with pytest.raises(ConfigError):
        load_planner_config(cfg)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_planner_config(tmp_path / "nope.yaml")
