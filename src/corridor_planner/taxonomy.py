"""Incident taxonomy: ordered keyword tables for category and severity.

Both tables are first-match-wins.  Their order is the tie-break contract: a
sentence mentioning both an airstrike and displacement is a bombardment.
"""

from __future__ import annotations

import re
from typing import Sequence

from .models import Classification
from .time_utils import extract_iso_date

KeywordTable = Sequence[tuple[str, Sequence[str]]]

DEFAULT_CATEGORY = "displacement"
DEFAULT_SEVERITY = "medium"

CATEGORY_KEYWORDS: KeywordTable = (
    (
        "bombardment",
        ("bombard", "airstrike", "air strike", "aerial", "shelling", "shelled", "bombing",
         "artillery", "missile", "drone strike"),
    ),
    ("looting", ("loot", "ransack", "pillag", "burned", "burnt", "arson")),
    (
        "access-denial",
        ("evacuat", "access denied", "denied access", "no access", "access restrict",
         "roadblock", "checkpoint", "blocked", "suspended operations"),
    ),
    (
        "control-change",
        ("took control", "declared control", "control of", "control to", "captured",
         "recaptured", "seized", "taken over", "takeover", "commissioner"),
    ),
    (
        "health",
        ("cholera", "outbreak", "measles", "malaria", "meningitis", "epidemic", "disease",
         "health"),
    ),
    ("displacement", ("displace", "idp", "refugee", "fled", "fleeing", "hiding in")),
    ("flood", ("flood", "inundat", "overflow", "water level")),
    ("earthquake", ("earthquake", "tremor", "seismic", "aftershock")),
)

SEVERITY_KEYWORDS: KeywordTable = (
    ("critical", ("killed", "fatalit", "deaths", "death toll", "mass casualt", "massacre",
                  "catastroph", "critical", "famine")),
    ("high", ("heavy", "severe", "major", "widespread", "injured", "wounded", "looted",
              "burned", "outbreak", "attack")),
    ("medium", ("reported", "warning", "alert", "tension", "concern", "moderate")),
    ("low", ("minor", "limited", "isolated", "small", "unconfirmed", "rumour", "rumor")),
)


def normalize_text(value: str) -> str:
    return " ".join(value.casefold().split())


def first_match(text: str, table: KeywordTable, default: str) -> str:
    haystack = normalize_text(text)
    for label, keywords in table:
        if any(keyword in haystack for keyword in keywords):
            return label
    return default


def infer_category(sentence: str) -> str:
    return first_match(sentence, CATEGORY_KEYWORDS, DEFAULT_CATEGORY)


def infer_severity(sentence: str) -> str:
    return first_match(sentence, SEVERITY_KEYWORDS, DEFAULT_SEVERITY)


def classify(sentence: str) -> Classification:
    return Classification(
        category=infer_category(sentence),
        severity=infer_severity(sentence),
        date=extract_iso_date(sentence),
    )


ACTOR_NAMES: Sequence[str] = ("SSPDF", "SPLA-iO", "SPLA", "RSF", "SAF", "White Army")

ORGANIZATION_NAMES: Sequence[str] = (
    "MSF Holland",
    "MSF France",
    "MSF",
    "Save the Children",
    "UNHCR",
    "UNICEF",
    "OCHA",
    "IOM",
    "WFP",
    "WHO",
    "ICRC",
    "UN",
)


def _contains_name(haystack: str, name: str) -> bool:
    # Word-boundary match so "UN" does not fire on "unconfirmed".
    pattern = r"(?<!\w)" + re.escape(normalize_text(name)) + r"(?!\w)"
    return re.search(pattern, haystack) is not None


def _first_named(sentence: str, names: Sequence[str]) -> str | None:
    haystack = normalize_text(sentence)
    return next((name for name in names if _contains_name(haystack, name)), None)


def infer_actor(sentence: str) -> str | None:
    return _first_named(sentence, ACTOR_NAMES)


def infer_organization(sentence: str) -> str | None:
    return _first_named(sentence, ORGANIZATION_NAMES)
