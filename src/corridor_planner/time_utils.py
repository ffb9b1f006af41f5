"""Date helpers for brief text and incident records."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

_ISO_DATE = re.compile(r"(?<!\d)(\d{4}-\d{2}-\d{2})(?!\d)")


def extract_iso_date(text: str) -> str | None:
    """First literal ``YYYY-MM-DD`` token that is a real calendar date."""
    for match in _ISO_DATE.finditer(text or ""):
        try:
            return date.fromisoformat(match.group(1)).isoformat()
        except ValueError:
            continue
    return None


def today_iso() -> str:
    return datetime.now(UTC).date().isoformat()

