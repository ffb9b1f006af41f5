"""Conservative place-name extraction from free-text briefs.

False positives cost geocoding calls and produce phantom incidents, while a
missed mention is usually repeated elsewhere in the brief.  The extractor
therefore only accepts:

* gazetteer names on word boundaries (ambiguous names need a locative
  preposition earlier in the same clause), and
* capitalised spans of one to four tokens directly after a locative
  preposition, with administrative suffixes stripped and stopwords refused.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from .gazetteer import Gazetteer, normalize_place_name

LOCATIVE_PREPOSITIONS = ("in", "at", "near", "from", "to", "around", "outside", "across", "struck")

ADMIN_SUFFIXES = (
    "province",
    "county",
    "district",
    "region",
    "center",
    "centre",
    "state",
    "payam",
    "boma",
    "town",
    "village",
    "camp",
    "area",
    "municipality",
)

STOPWORDS = frozenset(
    {
        # directional / status adjectives
        "north", "south", "east", "west", "northern", "southern", "eastern", "western",
        "central", "upper", "lower", "greater", "new", "old", "active", "ongoing",
        "heavy", "severe", "critical", "high", "medium", "low", "urgent", "unknown",
        # generic nouns
        "the", "government", "state", "county", "district", "region", "province", "area",
        "town", "city", "village", "camp", "hospital", "clinic", "office", "warehouse",
        "base", "headquarters", "hq", "route", "corridor", "road", "airstrip", "market",
        "compound", "site", "facility", "zone", "border", "river", "bush",
        # organisations and actors
        "un", "msf", "ocha", "iom", "wfp", "unhcr", "unicef", "who", "ngo", "ingo",
        "sspdf", "spla", "spla-io", "rsf", "saf",
        # calendar words
        "january", "february", "march", "april", "may", "june", "july", "august",
        "september", "october", "november", "december", "monday", "tuesday",
        "wednesday", "thursday", "friday", "saturday", "sunday", "today", "yesterday",
    }
)

_CLAUSE_BOUNDARY = re.compile(r"[.;:!?,\n]")
_CAP_TOKEN = r"[A-Z][\w'\-]*"


@dataclass
class ExtractionResult:
    candidates: list[str] = field(default_factory=list)
    rejected_ambiguous: list[str] = field(default_factory=list)

    def as_set(self) -> set[str]:
        return set(self.candidates)


class PlaceExtractor:
    def __init__(
        self,
        gazetteer: Gazetteer,
        *,
        prepositions: Iterable[str] = LOCATIVE_PREPOSITIONS,
        admin_suffixes: Iterable[str] = ADMIN_SUFFIXES,
        stopwords: Iterable[str] = STOPWORDS,
    ) -> None:
        self.gazetteer = gazetteer
        self.prepositions = tuple(p.lower() for p in prepositions)
        self.admin_suffixes = {s.lower() for s in admin_suffixes}
        self.stopwords = {s.lower() for s in stopwords}
        self._gazetteer_patterns = [
            (key, re.compile(self._key_pattern(key), re.IGNORECASE))
            for key in gazetteer.keys_longest_first()
        ]
        preps = "|".join(re.escape(p) for p in self.prepositions)
        self._prep_in_clause = re.compile(r"(?<!\w)(?:" + preps + r")(?!\w)", re.IGNORECASE)
        self._prep_span = re.compile(
            r"(?<!\w)(?i:" + preps + r")\s+(" + _CAP_TOKEN + r"(?:[ \t]+" + _CAP_TOKEN + r"){0,3})"
        )

    @staticmethod
    def _key_pattern(key: str) -> str:
        parts = [re.escape(p) for p in key.split()]
        return r"(?<!\w)" + r"\s+".join(parts) + r"(?!\w)"

    def extract(self, text: str) -> set[str]:
        return self.extract_with_rejections(text).as_set()

    def extract_with_rejections(self, text: str) -> ExtractionResult:
        found: list[tuple[int, str]] = []
        rejected: dict[str, str] = {}

        for key, pattern in self._gazetteer_patterns:
            ambiguous = self.gazetteer.is_ambiguous(key)
            for match in pattern.finditer(text):
                if ambiguous and not self._has_locative_prefix(text, match.start()):
                    rejected.setdefault(key, match.group(0))
                    continue
                found.append((match.start(), match.group(0)))

        for match in self._prep_span.finditer(text):
            span = self._clean_span(match.group(1))
            if span:
                found.append((match.start(1), span))

        result = ExtractionResult()
        seen: set[str] = set()
        for _, name in sorted(found, key=lambda item: item[0]):
            key = normalize_place_name(name)
            if key in seen:
                continue
            seen.add(key)
            result.candidates.append(name)

        result.rejected_ambiguous = [name for key, name in rejected.items() if key not in seen]
        return result

    def _has_locative_prefix(self, text: str, start: int) -> bool:
        clause_start = 0
        for boundary in _CLAUSE_BOUNDARY.finditer(text, 0, start):
            clause_start = boundary.end()
        return self._prep_in_clause.search(text, clause_start, start) is not None

    def _clean_span(self, raw: str) -> str | None:
        tokens = raw.split()
        while tokens and tokens[-1].lower() in self.admin_suffixes:
            tokens.pop()
        if tokens and tokens[0].lower() == "the":
            tokens = tokens[1:]
        if not tokens:
            return None
        span = " ".join(tokens)
        if span.lower() in self.stopwords:
            return None
        if all(t.lower() in self.stopwords for t in tokens):
            return None
        return span


def extract_places(text: str, gazetteer: Gazetteer) -> set[str]:
    return PlaceExtractor(gazetteer).extract(text)
