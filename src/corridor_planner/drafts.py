"""Draft assembly: merge classified segments and resolved places into drafts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Mapping

from .config import PipelineConfig
from .extraction import PlaceExtractor
from .gazetteer import normalize_place_name
from .geocoding import GeocodeResolver
from .models import Classification, Coordinate, DraftCandidate
from .taxonomy import classify, infer_actor, infer_organization
from .time_utils import today_iso

_log = logging.getLogger(__name__)

# A "." between two digits (8.28) is a decimal point, not a sentence end.
_SEGMENT_SPLIT = re.compile(r"(?<!\d)\.|\.(?!\d)|[;!\n]")

NOTE_NO_MATCH = "no location match"
NOTE_AMBIGUOUS = "ambiguous term rejected"


@dataclass
class LocatedPlace:
    name: str
    coordinate: Coordinate | None
    source: str
    note: str | None = None

    @property
    def key(self) -> str:
        return normalize_place_name(self.name)


def _drop_unresolved_shadows(places: List[LocatedPlace]) -> List[LocatedPlace]:
    """Drop unresolved spans that wrap a resolved name ("Lankien Hospital" around "Lankien")."""
    resolved = [
        re.compile(r"(?<!\w)" + re.escape(p.key) + r"(?!\w)")
        for p in places
        if p.coordinate is not None
    ]
    kept: List[LocatedPlace] = []
    for place in places:
        if place.coordinate is None and any(pattern.search(place.key) for pattern in resolved):
            _log.debug("Dropping unresolved span %r in favour of a resolved place", place.name)
            continue
        kept.append(place)
    return kept


@dataclass
class AssemblyResult:
    drafts: List[DraftCandidate] = field(default_factory=list)
    segments_total: int = 0
    segments_unlocated: int = 0
    duplicates_dropped: int = 0
    classification_errors: int = 0


def split_segments(text: str, min_length: int = 10) -> list[str]:
    segments = (s.strip() for s in _SEGMENT_SPLIT.split(text or ""))
    return [s for s in segments if len(s) >= min_length]


def _is_duplicate(candidate: DraftCandidate, existing: Iterable[DraftCandidate], tolerance: float) -> bool:
    coord = candidate.coordinate
    for prior in existing:
        if prior.suggested_category != candidate.suggested_category:
            continue
        prior_coord = prior.coordinate
        if coord is None or prior_coord is None:
            if coord is None and prior_coord is None and (
                normalize_place_name(prior.location_name or "")
                == normalize_place_name(candidate.location_name or "")
            ):
                return True
            continue
        if abs(coord[0] - prior_coord[0]) <= tolerance and abs(coord[1] - prior_coord[1]) <= tolerance:
            return True
    return False


def _title(classification: Classification, location: str) -> str:
    label = classification.category.replace("-", " ").capitalize()
    return f"{label} in {location}"


class DraftAssembler:
    """Turn brief text into deduplicated :class:`DraftCandidate` records.

    ``assemble`` extracts and resolves places itself.  When place names have
    already been resolved (for example on the resolver's background worker),
    pass them through ``assemble_with_places`` instead.
    """

    def __init__(
        self,
        resolver: GeocodeResolver,
        *,
        extractor: PlaceExtractor | None = None,
        config: PipelineConfig | None = None,
        classifier: Callable[[str], Classification] = classify,
        today: Callable[[], str] = today_iso,
    ) -> None:
        self.resolver = resolver
        self.extractor = extractor or PlaceExtractor(resolver.gazetteer)
        self.config = config or resolver.config
        self.classifier = classifier
        self.today = today

    def assemble(self, brief_text: str) -> list[DraftCandidate]:
        extraction = self.extractor.extract_with_rejections(brief_text)
        resolved = {name: self.resolver.resolve(name) for name in extraction.candidates}
        return self.assemble_with_places(
            brief_text,
            resolved,
            rejected_ambiguous=extraction.rejected_ambiguous,
        ).drafts

    def locate_places(
        self,
        resolved: Mapping[str, Coordinate | None],
        rejected_ambiguous: Iterable[str] = (),
    ) -> list[LocatedPlace]:
        places: list[LocatedPlace] = []
        seen: set[str] = set()
        for name, coord in resolved.items():
            key = normalize_place_name(name)
            if not key or key in seen:
                continue
            seen.add(key)
            if coord is None:
                places.append(LocatedPlace(name, None, "UNRESOLVED", NOTE_NO_MATCH))
            else:
                source = self.resolver.source_of(name) or "GEOCODER"
                places.append(LocatedPlace(name, coord, source))
        for name in rejected_ambiguous:
            key = normalize_place_name(name)
            if key and key not in seen:
                seen.add(key)
                places.append(LocatedPlace(name, None, "UNRESOLVED", NOTE_AMBIGUOUS))
        places = _drop_unresolved_shadows(places)
        # Longest names first so "Duk Padiet" wins over "Duk".
        return sorted(places, key=lambda p: -len(p.key))

    def assemble_with_places(
        self,
        brief_text: str,
        resolved: Mapping[str, Coordinate | None],
        *,
        rejected_ambiguous: Iterable[str] = (),
    ) -> AssemblyResult:
        places = self.locate_places(resolved, rejected_ambiguous)
        patterns = [
            (place, re.compile(r"(?<!\w)" + re.escape(place.key) + r"(?!\w)"))
            for place in places
        ]
        result = AssemblyResult()

        for segment in split_segments(brief_text, self.config.min_segment_length):
            result.segments_total += 1
            lowered = " ".join(segment.casefold().split())
            place = next((p for p, pattern in patterns if pattern.search(lowered)), None)
            if place is None:
                result.segments_unlocated += 1
                continue

            try:
                classification = self.classifier(segment)
            except Exception as exc:
                result.classification_errors += 1
                _log.warning("Classification failed for segment %r: %s", segment[:80], exc)
                continue

            lat, lon = place.coordinate if place.coordinate is not None else (None, None)
            candidate = DraftCandidate(
                suggested_title=_title(classification, place.name),
                suggested_description=segment,
                suggested_category=classification.category,
                suggested_severity=classification.severity,
                suggested_date=classification.date or self.today(),
                suggested_lat=lat,
                suggested_lon=lon,
                suggested_actor=infer_actor(segment),
                suggested_organization=infer_organization(segment),
                location_name=place.name,
                location_source=place.source,
                uncertainty=place.coordinate is None,
                uncertainty_note=place.note if place.coordinate is None else None,
            )

            if _is_duplicate(candidate, result.drafts, self.config.dedupe_tolerance_degrees):
                result.duplicates_dropped += 1
                continue
            result.drafts.append(candidate)

        _log.info(
            "Assembled %d draft(s) from %d segment(s) (%d unlocated, %d duplicate)",
            len(result.drafts),
            result.segments_total,
            result.segments_unlocated,
            result.duplicates_dropped,
        )
        return result
