"""Static gazetteer: authoritative place-name to coordinate lookup.

Gazetteers are loaded from JSON assets in ``data/gazetteers/<key>.json``::

    {
      "name": "Sudan - South Sudan corridor",
      "places": {"lankien": [8.28, 31.60], "duk": [7.7, 31.3]},
      "ambiguous": ["wau"]
    }

``ambiguous`` lists entries that coincide with ordinary words and therefore
need a locative preposition before the extractor accepts them.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterable, Iterator, Mapping

from .models import Coordinate

_log = logging.getLogger(__name__)

_GAZETTEER_DIR = Path(__file__).resolve().parent / "data" / "gazetteers"
_cache: dict[str, "Gazetteer"] = {}
_cache_lock = threading.Lock()


def normalize_place_name(name: str) -> str:
    """Cache/lookup key: trimmed, casefolded, inner whitespace collapsed."""
    return " ".join(name.casefold().split())


class Gazetteer:
    def __init__(
        self,
        places: Mapping[str, Coordinate | Iterable[float]],
        ambiguous: Iterable[str] = (),
        name: str = "",
    ) -> None:
        self.name = name
        self._places: dict[str, Coordinate] = {}
        for raw_name, coord in places.items():
            key = normalize_place_name(raw_name)
            if not key:
                continue
            lat, lon = (float(v) for v in coord)
            if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
                raise ValueError(f"Gazetteer entry {raw_name!r} has invalid coordinate {coord!r}")
            self._places[key] = (lat, lon)
        self._ambiguous = {normalize_place_name(a) for a in ambiguous if a.strip()}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_place_name(name) in self._places

    def __len__(self) -> int:
        return len(self._places)

    def __iter__(self) -> Iterator[str]:
        return iter(self._places)

    def lookup(self, name: str) -> Coordinate | None:
        return self._places.get(normalize_place_name(name))

    def is_ambiguous(self, name: str) -> bool:
        return normalize_place_name(name) in self._ambiguous

    def keys_longest_first(self) -> list[str]:
        return sorted(self._places, key=lambda k: (-len(k), k))

    @classmethod
    def from_dict(cls, payload: Mapping) -> "Gazetteer":
        places = payload.get("places", {})
        if not isinstance(places, Mapping):
            raise ValueError("Gazetteer 'places' must be an object of name -> [lat, lon]")
        return cls(
            places=places,
            ambiguous=payload.get("ambiguous", []) or [],
            name=str(payload.get("name", "")),
        )

    @classmethod
    def from_file(cls, path: Path) -> "Gazetteer":
        payload = json.loads(path.read_text(encoding="utf-8"))
        gazetteer = cls.from_dict(payload)
        _log.info("Gazetteer loaded from file: %s (%d places)", path.name, len(gazetteer))
        return gazetteer


def load_gazetteer(key: str = "ssd") -> Gazetteer:
    """Load a bundled gazetteer by key, cached for the process lifetime."""
    cache_key = key.strip().lower()
    with _cache_lock:
        if cache_key in _cache:
            return _cache[cache_key]

    path = _GAZETTEER_DIR / f"{cache_key}.json"
    if not path.exists():
        raise FileNotFoundError(f"No bundled gazetteer named {key!r} ({path})")
    gazetteer = Gazetteer.from_file(path)

    with _cache_lock:
        _cache[cache_key] = gazetteer
    return gazetteer


def list_available_gazetteers() -> list[str]:
    if not _GAZETTEER_DIR.exists():
        return []
    return sorted(f.stem for f in _GAZETTEER_DIR.glob("*.json"))
