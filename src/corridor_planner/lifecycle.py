"""Draft review lifecycle: PENDING -> CONFIRMED | REJECTED.

Confirmation is a single transaction that flips the draft status with a
compare-and-swap update and inserts the incident it produces.  A per-draft
lock serialises callers inside the process; the conditional update keeps that
guarantee across processes sharing the same database.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from sqlalchemy import update
from sqlmodel import Session

from .database import DraftRecord, IncidentRecord, draft_from_record, recompute_operation_severity
from .errors import DraftNotFound, InvalidStateTransition
from .models import Draft, Incident
from .time_utils import today_iso

_log = logging.getLogger(__name__)

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
REJECTED = "REJECTED"


def _validate_coordinate(lat: float, lon: float) -> tuple[float, float]:
    lat, lon = float(lat), float(lon)
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"Latitude out of range: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise ValueError(f"Longitude out of range: {lon}")
    return lat, lon


class DraftLifecycleManager:
    def __init__(
        self,
        engine,
        *,
        today: Callable[[], str] = today_iso,
        recompute_severity: bool = True,
    ) -> None:
        self.engine = engine
        self.today = today
        self.recompute_severity = recompute_severity
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, draft_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(draft_id)
            if lock is None:
                lock = self._locks[draft_id] = threading.Lock()
            return lock

    def confirm(self, draft_id: str, final_lat: float, final_lon: float) -> Incident:
        """Promote a pending draft to an incident at the operator's coordinate."""
        lat, lon = _validate_coordinate(final_lat, final_lon)

        with self._lock_for(draft_id):
            with Session(self.engine) as session:
                record = session.get(DraftRecord, draft_id)
                if record is None:
                    raise DraftNotFound(draft_id)
                if record.status != PENDING:
                    raise InvalidStateTransition(draft_id, record.status, CONFIRMED)

                incident = Incident(
                    operation_id=record.operation_id,
                    title=record.suggested_title,
                    description=record.suggested_description,
                    category=record.suggested_category,
                    severity=record.suggested_severity,
                    date=record.suggested_date or self.today(),
                    lat=lat,
                    lon=lon,
                    actor=record.suggested_actor,
                    organization=record.suggested_organization,
                    source="AI_CONFIRMED",
                    verified=True,
                )

                try:
                    swapped = session.exec(
                        update(DraftRecord)
                        .where(DraftRecord.id == draft_id, DraftRecord.status == PENDING)
                        .values(
                            status=CONFIRMED,
                            confirmed_incident_id=incident.id,
                            confirmed_lat=lat,
                            confirmed_lon=lon,
                        )
                    )
                    if swapped.rowcount != 1:
                        session.rollback()
                        current = session.get(DraftRecord, draft_id)
                        raise InvalidStateTransition(
                            draft_id, current.status if current else "UNKNOWN", CONFIRMED
                        )
                    session.add(IncidentRecord(**incident.model_dump()))
                    session.commit()
                except Exception:
                    session.rollback()
                    raise

        _log.info("Draft %s confirmed as incident %s", draft_id, incident.id)
        if self.recompute_severity:
            recompute_operation_severity(self.engine, incident.operation_id)
        return incident

    def reject(self, draft_id: str) -> Draft:
        """Mark a pending draft rejected; the row is retained for audit."""
        with self._lock_for(draft_id):
            with Session(self.engine) as session:
                record = session.get(DraftRecord, draft_id)
                if record is None:
                    raise DraftNotFound(draft_id)
                if record.status != PENDING:
                    raise InvalidStateTransition(draft_id, record.status, REJECTED)

                swapped = session.exec(
                    update(DraftRecord)
                    .where(DraftRecord.id == draft_id, DraftRecord.status == PENDING)
                    .values(status=REJECTED)
                )
                if swapped.rowcount != 1:
                    session.rollback()
                    current = session.get(DraftRecord, draft_id)
                    raise InvalidStateTransition(
                        draft_id, current.status if current else "UNKNOWN", REJECTED
                    )
                session.commit()
                session.refresh(record)
                draft = draft_from_record(record)

        _log.info("Draft %s rejected", draft_id)
        return draft
