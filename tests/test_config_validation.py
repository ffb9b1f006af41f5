from pydantic import ValidationError

from corridor_planner.config import (
    DEFAULT_SEVERITY_WEIGHTS,
    PipelineConfig,
    canonicalize_category,
    canonicalize_severity,
)


def test_default_config() -> None:
    cfg = PipelineConfig()
    assert cfg.buffer_km == 10.0
    assert cfg.geocode_delay_seconds == 0.25
    assert cfg.bias_margin_degrees == 5.0
    assert cfg.severity_weights == DEFAULT_SEVERITY_WEIGHTS


def test_invalid_buffer() -> None:
    try:
        PipelineConfig(buffer_km=0)
        assert False, "Expected ValidationError"
    except ValidationError as exc:
        assert "greater than" in str(exc)


def test_partial_severity_weights_are_merged() -> None:
    cfg = PipelineConfig(severity_weights={"critical": 0.5})
    assert cfg.severity_weights["critical"] == 0.5
    assert cfg.severity_weights["low"] == DEFAULT_SEVERITY_WEIGHTS["low"]


def test_invalid_severity_weight_key() -> None:
    try:
        PipelineConfig(severity_weights={"catastrophic": 0.5})
        assert False, "Expected ValidationError"
    except ValidationError as exc:
        assert "Invalid severity weight key" in str(exc)


def test_severity_weight_out_of_range() -> None:
    try:
        PipelineConfig(severity_weights={"high": 1.5})
        assert False, "Expected ValidationError"
    except ValidationError as exc:
        assert "within [0, 1]" in str(exc)


def test_category_aliases_are_normalized() -> None:
    assert canonicalize_category("ACCESS_DENIAL") == "access-denial"
    assert canonicalize_category("Airstrike") == "bombardment"
    assert canonicalize_category("control change") == "control-change"
    assert canonicalize_category("flooding") == "flood"
    assert canonicalize_category("tornado") is None
    assert canonicalize_category("  ") is None


def test_severity_canonicalization_falls_back_to_default() -> None:
    assert canonicalize_severity(" HIGH ") == "high"
    assert canonicalize_severity("extreme", "medium") == "medium"
    assert canonicalize_severity(None) is None
