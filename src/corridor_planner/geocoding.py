"""Layered geocode resolution: session cache, gazetteer, biased external lookup.

Resolution order for a place name:

  1. Session cache (no I/O, no delay)
  2. Gazetteer exact match (authoritative, bypasses validation)
  3. No region bias set -> ``None`` (never geocode an un-biased string)
  4. External Nominatim-compatible search, bias box + up to 3 candidates;
     only a candidate inside the bias box expanded by a fixed margin counts
  5. Cache and return

External calls are serialized behind a single lock with a fixed minimum gap
between call starts.  Any network or parse failure degrades to ``None``.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable

import httpx

from .config import PipelineConfig
from .errors import GeocodeRejected
from .gazetteer import Gazetteer, normalize_place_name
from .models import BoundingBox, Coordinate
from .settings import DEFAULT_GEOCODER_URL

_log = logging.getLogger(__name__)

# (percent_complete, place_name, coordinate_or_none)
ProgressCallback = Callable[[float, str, Coordinate | None], None]

SOURCE_GAZETTEER = "GAZETTEER"
SOURCE_GEOCODER = "GEOCODER"


@dataclass
class NominatimClient:
    base_url: str = DEFAULT_GEOCODER_URL
    user_agent: str = "corridor-planner/0.1"
    timeout_seconds: float = 10.0

    def _build_client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_seconds, headers={"User-Agent": self.user_agent})

    def search(self, query: str, bias: BoundingBox, limit: int = 3) -> list[Coordinate]:
        params = {
            "q": query,
            "format": "jsonv2",
            "limit": limit,
            "viewbox": f"{bias.west},{bias.north},{bias.east},{bias.south}",
            "bounded": 1,
        }
        with self._build_client() as client:
            response = client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, list):
            raise ValueError(f"Unexpected geocoder payload type: {type(payload).__name__}")
        candidates: list[Coordinate] = []
        for entry in payload[:limit]:
            candidates.append((float(entry["lat"]), float(entry["lon"])))
        return candidates


@dataclass
class BatchResult:
    resolved: dict[str, Coordinate | None] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return len(self.resolved)


class GeocodeResolver:
    """Resolver owning its cache, region bias and rate limiter.

    Parameters
    ----------
    gazetteer :
        Authoritative lookup table consulted before any external call.
    client :
        External search client; defaults to a :class:`NominatimClient`.
    region_bias :
        Initial bias box.  Without one, unknown names resolve to ``None``.
    config :
        Delay, timeout, margin and candidate-limit settings.
    external_enabled :
        Set ``False`` to disable the external step entirely.
    """

    def __init__(
        self,
        gazetteer: Gazetteer,
        *,
        client: NominatimClient | None = None,
        region_bias: BoundingBox | None = None,
        config: PipelineConfig | None = None,
        external_enabled: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gazetteer = gazetteer
        self.config = config or PipelineConfig()
        self.client = client or NominatimClient(timeout_seconds=self.config.geocode_timeout_seconds)
        self.external_enabled = external_enabled
        self.external_calls = 0
        self._region_bias = region_bias
        self._sleep = sleep
        self._clock = clock

        self._cache: dict[str, Coordinate | None] = {}
        self._sources: dict[str, str] = {}
        self._cache_lock = threading.Lock()
        self._rate_lock = threading.Lock()
        self._last_call_at: float | None = None
        self._executor: ThreadPoolExecutor | None = None

    # ── Region bias ──────────────────────────────────────────────────

    @property
    def region_bias(self) -> BoundingBox | None:
        return self._region_bias

    def set_region_bias(self, bounding_box: BoundingBox | None) -> None:
        if bounding_box == self._region_bias:
            return
        self._region_bias = bounding_box
        with self._cache_lock:
            misses = [k for k, v in self._cache.items() if v is None]
            for key in misses:
                del self._cache[key]
        _log.debug("Region bias set to %s (%d cached misses cleared)", bounding_box, len(misses))

    # ── Single resolution ────────────────────────────────────────────

    def source_of(self, place_name: str) -> str | None:
        """Where a cached coordinate came from: ``GAZETTEER`` or ``GEOCODER``."""
        with self._cache_lock:
            return self._sources.get(normalize_place_name(place_name))

    def cached(self, place_name: str) -> Coordinate | None:
        with self._cache_lock:
            return self._cache.get(normalize_place_name(place_name))

    def resolve(self, place_name: str, region_bias: BoundingBox | None = None) -> Coordinate | None:
        key = normalize_place_name(place_name)
        if not key:
            return None

        with self._cache_lock:
            if key in self._cache:
                _log.debug("Geocode cache hit: %s", key)
                return self._cache[key]

        coord = self.gazetteer.lookup(key)
        if coord is not None:
            self._remember(key, coord, SOURCE_GAZETTEER)
            return coord

        bias = region_bias or self._region_bias
        if bias is None:
            _log.debug("No region bias; not geocoding %r", place_name)
            return None
        if not self.external_enabled:
            return None

        try:
            coord = self._query_external(place_name.strip(), bias)
        except GeocodeRejected as exc:
            _log.warning("%s", exc)
            # rejections are cached for the instance bias only; set_region_bias clears them
            if region_bias is None:
                with self._cache_lock:
                    self._cache[key] = None
            return None
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            _log.warning("Geocoding failed for %r: %s", place_name, exc)
            return None

        self._remember(key, coord, SOURCE_GEOCODER)
        return coord

    def _remember(self, key: str, coord: Coordinate, source: str) -> None:
        with self._cache_lock:
            self._cache[key] = coord
            self._sources[key] = source

    def _query_external(self, place_name: str, bias: BoundingBox) -> Coordinate:
        with self._rate_lock:
            if self._last_call_at is not None:
                wait = self.config.geocode_delay_seconds - (self._clock() - self._last_call_at)
                if wait > 0:
                    self._sleep(wait)
            self._last_call_at = self._clock()
            self.external_calls += 1
            candidates = self.client.search(
                place_name,
                bias,
                limit=self.config.geocode_candidate_limit,
            )

        accept_box = bias.expanded(self.config.bias_margin_degrees)
        for lat, lon in candidates:
            if accept_box.contains(lat, lon):
                return (lat, lon)
        if not candidates:
            raise GeocodeRejected(place_name, "no candidates returned")
        raise GeocodeRejected(place_name, f"{len(candidates)} candidate(s) outside region bias")

    # ── Batch resolution ─────────────────────────────────────────────

    def resolve_many(
        self,
        place_names: Iterable[str],
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BatchResult:
        names: list[str] = []
        seen: set[str] = set()
        for name in place_names:
            key = normalize_place_name(name)
            if key and key not in seen:
                seen.add(key)
                names.append(name)

        result = BatchResult()
        total = len(names)
        for index, name in enumerate(names, start=1):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                _log.info("Geocode batch cancelled after %d/%d names", index - 1, total)
                break
            coord = self.resolve(name)
            result.resolved[name] = coord
            self._notify(on_progress, round(index / total * 100, 1), name, coord)

        if not result.cancelled:
            hits = sum(1 for c in result.resolved.values() if c is not None)
            _log.info("Geocode batch finished: %d/%d resolved", hits, total)
        return result

    def submit_batch(
        self,
        place_names: Iterable[str],
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> "Future[BatchResult]":
        """Run :meth:`resolve_many` on the resolver's single background worker."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="geocode")
        return self._executor.submit(
            self.resolve_many,
            list(place_names),
            on_progress=on_progress,
            cancel_event=cancel_event,
        )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "GeocodeResolver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @staticmethod
    def _notify(
        on_progress: ProgressCallback | None,
        percent: float,
        name: str,
        coord: Coordinate | None,
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(percent, name, coord)
        except Exception:
            _log.debug("Progress callback error for %s", name, exc_info=True)
