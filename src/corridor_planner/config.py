"""Pipeline configuration schema and vocabulary normalisation using pydantic."""

from __future__ import annotations

import re
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

CATEGORIES = (
    "bombardment",
    "looting",
    "access-denial",
    "control-change",
    "health",
    "displacement",
    "flood",
    "earthquake",
)

SEVERITIES = ("low", "medium", "high", "critical")

DEFAULT_SEVERITY_WEIGHTS: Dict[str, float] = {
    "critical": 0.25,
    "high": 0.15,
    "medium": 0.08,
    "low": 0.03,
    "unknown": 0.05,
}

_CATEGORY_ALIAS_MAP = {
    "bombardment": "bombardment",
    "bombing": "bombardment",
    "airstrike": "bombardment",
    "shelling": "bombardment",
    "looting": "looting",
    "looted": "looting",
    "access denial": "access-denial",
    "access denied": "access-denial",
    "no access": "access-denial",
    "control change": "control-change",
    "health": "health",
    "outbreak": "health",
    "epidemic": "health",
    "displacement": "displacement",
    "displaced": "displacement",
    "flood": "flood",
    "floods": "flood",
    "flooding": "flood",
    "earthquake": "earthquake",
    "quake": "earthquake",
}


def canonicalize_category(value: str | None) -> str | None:
    """Map ``ACCESS_DENIAL``, ``access denial``, ``Airstrike`` etc. to a category."""
    if value is None:
        return None
    cleaned = value.strip().lower()
    if not cleaned:
        return None
    if cleaned in CATEGORIES:
        return cleaned
    key = re.sub(r"\s+", " ", re.sub(r"[_/\-]+", " ", cleaned)).strip()
    return _CATEGORY_ALIAS_MAP.get(key)


def canonicalize_severity(value: str | None, default: str | None = None) -> str | None:
    if value is None:
        return default
    cleaned = value.strip().lower()
    return cleaned if cleaned in SEVERITIES else default


class PipelineConfig(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    buffer_km: float = Field(default=10.0, gt=0, le=1000)
    geocode_delay_seconds: float = Field(default=0.25, ge=0, le=10)
    geocode_timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    geocode_candidate_limit: int = Field(default=3, ge=1, le=10)
    bias_margin_degrees: float = Field(default=5.0, ge=0, le=90)
    dedupe_tolerance_degrees: float = Field(default=0.01, ge=0, le=1)
    min_segment_length: int = Field(default=10, ge=1)
    severity_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_WEIGHTS)
    )

    @field_validator("severity_weights")
    @classmethod
    def validate_severity_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        allowed = set(SEVERITIES) | {"unknown"}
        unknown_keys = sorted(k for k in value if k not in allowed)
        if unknown_keys:
            raise ValueError(f"Invalid severity weight key(s): {', '.join(unknown_keys)}")
        for key, weight in value.items():
            if not 0.0 <= float(weight) <= 1.0:
                raise ValueError(f"Severity weight for {key} must be within [0, 1]")
        merged = dict(DEFAULT_SEVERITY_WEIGHTS)
        merged.update({k: float(v) for k, v in value.items()})
        return merged
