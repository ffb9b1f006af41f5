"""Centralized feature-flag loader for geocoding and spatial defaults.

Flags come from ``config/feature_flags.json`` and may be overridden per key
with ``CP_FLAG_<NAME>`` environment variables.  Numeric flags are range
checked; an out-of-range or unparseable value is logged and replaced by its
default.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

_log = logging.getLogger(__name__)

DEFAULT_FEATURE_FLAGS: dict[str, Any] = {
    "external_geocoding_enabled": True,
    "geocode_delay_ms": 250,
    "geocode_timeout_seconds": 10.0,
    "default_buffer_km": 10.0,
}

# (minimum, maximum, minimum is exclusive)
FLAG_BOUNDS: dict[str, tuple[float, float, bool]] = {
    "geocode_delay_ms": (0, 60_000, False),
    "geocode_timeout_seconds": (0, 300, True),
    "default_buffer_km": (0, 500, True),
}


def default_feature_flags_path() -> Path:
    return Path.cwd() / "config" / "feature_flags.json"


def _parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return None


def _in_bounds(key: str, value: float) -> bool:
    bounds = FLAG_BOUNDS.get(key)
    if bounds is None:
        return True
    minimum, maximum, exclusive = bounds
    if value < minimum or (exclusive and value == minimum):
        return False
    return value <= maximum


def _coerce_flag_value(key: str, value: Any) -> Any:
    default = DEFAULT_FEATURE_FLAGS.get(key)
    if isinstance(default, bool):
        parsed = _parse_bool(value)
        if parsed is None:
            _log.warning("Feature flag %s: %r is not a boolean; using %s", key, value, default)
            return default
        return parsed
    if isinstance(default, (int, float)):
        try:
            number = int(float(value)) if isinstance(default, int) else float(value)
        except (TypeError, ValueError, OverflowError):
            _log.warning("Feature flag %s: %r is not a number; using %s", key, value, default)
            return default
        if not _in_bounds(key, number):
            _log.warning("Feature flag %s: %s is out of range; using %s", key, number, default)
            return default
        return number
    return value


def load_feature_flags(path: Path | None = None) -> dict[str, Any]:
    flags = dict(DEFAULT_FEATURE_FLAGS)
    candidate = path or default_feature_flags_path()
    if candidate.exists():
        try:
            payload = json.loads(candidate.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _log.warning("Ignoring unreadable feature flag file %s: %s", candidate, exc)
            payload = None
        if isinstance(payload, dict):
            unknown = sorted(set(payload) - set(DEFAULT_FEATURE_FLAGS))
            if unknown:
                _log.warning("Unknown feature flag(s) in %s: %s", candidate, ", ".join(unknown))
            for key in DEFAULT_FEATURE_FLAGS:
                if key in payload:
                    flags[key] = _coerce_flag_value(key, payload[key])

    # Explicit env override: CP_FLAG_<FLAG_NAME_UPPER>
    for key in DEFAULT_FEATURE_FLAGS:
        raw = os.getenv(f"CP_FLAG_{key.upper()}", "").strip()
        if raw:
            flags[key] = _coerce_flag_value(key, raw)

    return flags


def get_feature_flag(name: str, default: Any = None) -> Any:
    flags = load_feature_flags()
    if name in flags:
        return flags[name]
    return default
