"""Environment and runtime settings."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from .config import PipelineConfig
from .feature_flags import get_feature_flag

DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/search"


def load_environment() -> None:
    load_dotenv(override=False)


def is_external_geocoding_enabled() -> bool:
    return bool(get_feature_flag("external_geocoding_enabled", True))


def get_geocoder_url() -> str:
    return os.getenv("CORRIDOR_GEOCODER_URL", DEFAULT_GEOCODER_URL).strip() or DEFAULT_GEOCODER_URL


def get_geocoder_user_agent() -> str:
    return os.getenv("CORRIDOR_GEOCODER_USER_AGENT", "corridor-planner/0.1").strip()


def get_db_path() -> Path | None:
    raw = os.getenv("CORRIDOR_DB_PATH", "").strip()
    return Path(raw).expanduser() if raw else None


def build_pipeline_config() -> PipelineConfig:
    """Pipeline config seeded from feature flags."""
    return PipelineConfig(
        buffer_km=float(get_feature_flag("default_buffer_km", 10)),
        geocode_delay_seconds=int(get_feature_flag("geocode_delay_ms", 250)) / 1000.0,
        geocode_timeout_seconds=float(get_feature_flag("geocode_timeout_seconds", 10)),
    )
