import json
from pathlib import Path

from corridor_planner.feature_flags import load_feature_flags
from corridor_planner.settings import build_pipeline_config


def test_load_feature_flags_from_file(tmp_path: Path) -> None:
    path = tmp_path / "feature_flags.json"
    path.write_text(
        json.dumps(
            {
                "external_geocoding_enabled": False,
                "geocode_delay_ms": 500,
                "default_buffer_km": 25,
            }
        ),
        encoding="utf-8",
    )
    flags = load_feature_flags(path)
    assert flags["external_geocoding_enabled"] is False
    assert flags["geocode_delay_ms"] == 500
    assert int(flags["default_buffer_km"]) == 25
    assert flags["geocode_timeout_seconds"] == 10


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    flags = load_feature_flags(tmp_path / "missing.json")
    assert flags["external_geocoding_enabled"] is True
    assert flags["geocode_delay_ms"] == 250


def test_env_override_wins_over_file(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "feature_flags.json"
    path.write_text(json.dumps({"external_geocoding_enabled": True}), encoding="utf-8")
    monkeypatch.setenv("CP_FLAG_EXTERNAL_GEOCODING_ENABLED", "false")
    monkeypatch.setenv("CP_FLAG_GEOCODE_DELAY_MS", "1000")
    flags = load_feature_flags(path)
    assert flags["external_geocoding_enabled"] is False
    assert flags["geocode_delay_ms"] == 1000


def test_pipeline_config_seeded_from_flags(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CP_FLAG_GEOCODE_DELAY_MS", "100")
    monkeypatch.setenv("CP_FLAG_DEFAULT_BUFFER_KM", "15")
    cfg = build_pipeline_config()
    assert cfg.geocode_delay_seconds == 0.1
    assert cfg.buffer_km == 15.0


def test_negative_delay_falls_back_to_default(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "feature_flags.json"
    path.write_text(json.dumps({"geocode_delay_ms": -50, "default_buffer_km": 0}), encoding="utf-8")
    flags = load_feature_flags(path)
    assert flags["geocode_delay_ms"] == 250
    assert flags["default_buffer_km"] == 10.0

    monkeypatch.setenv("CP_FLAG_GEOCODE_TIMEOUT_SECONDS", "-1")
    assert load_feature_flags(path)["geocode_timeout_seconds"] == 10.0


def test_zero_delay_is_allowed(tmp_path: Path) -> None:
    path = tmp_path / "feature_flags.json"
    path.write_text(json.dumps({"geocode_delay_ms": 0, "default_buffer_km": 2.5}), encoding="utf-8")
    flags = load_feature_flags(path)
    assert flags["geocode_delay_ms"] == 0
    assert flags["default_buffer_km"] == 2.5


def test_unrecognised_boolean_keeps_default(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CP_FLAG_EXTERNAL_GEOCODING_ENABLED", "maybe")
    flags = load_feature_flags(tmp_path / "missing.json")
    assert flags["external_geocoding_enabled"] is True
