"""SQLite persistence layer for operations, briefs, drafts and incidents using SQLModel."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List

from sqlalchemy import delete
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .config import canonicalize_category, canonicalize_severity
from .errors import BriefInUse, CorridorPlannerError, OperationNotFound
from .models import (
    BoundingBox,
    Brief,
    Corridor,
    Draft,
    DraftCandidate,
    Incident,
    Operation,
    Region,
    RiskZone,
    Waypoint,
    new_id,
    utc_now,
)

_log = logging.getLogger(__name__)

SEVERITY_LEVELS = {"low": 1, "medium": 2, "high": 3, "critical": 4}


class OperationRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    severity: str = "medium"
    status: str = "ACTIVE"
    center_lat: float = 20.0
    center_lon: float = 0.0
    bounds_json: str | None = None
    zoom: int = 6
    created_at: str
    updated_at: str


class CorridorRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    operation_id: str = Field(index=True)
    name: str
    status: str = "PARTIALLY_OPEN"
    waypoints_json: str = "[]"


class BriefRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    operation_id: str = Field(index=True)
    text: str
    source: str = "manual"
    archived: bool = False
    created_at: str


class DraftRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    operation_id: str = Field(index=True)
    brief_id: str | None = Field(default=None, index=True)
    status: str = Field(default="PENDING", index=True)
    suggested_title: str
    suggested_description: str = ""
    suggested_category: str = "displacement"
    suggested_severity: str = "medium"
    suggested_date: str | None = None
    suggested_lat: float | None = None
    suggested_lon: float | None = None
    suggested_actor: str | None = None
    suggested_organization: str | None = None
    location_name: str | None = None
    location_source: str = "UNRESOLVED"
    uncertainty: bool = False
    uncertainty_note: str | None = None
    confirmed_incident_id: str | None = None
    confirmed_lat: float | None = None
    confirmed_lon: float | None = None
    created_at: str


class IncidentRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    operation_id: str = Field(index=True)
    title: str
    description: str = ""
    category: str = "displacement"
    severity: str = "medium"
    date: str | None = None
    lat: float
    lon: float
    actor: str | None = None
    organization: str | None = None
    source: str = "MANUAL"
    verified: bool = False
    created_at: str
    updated_at: str


class RiskZoneRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    operation_id: str = Field(index=True)
    name: str
    lat: float
    lon: float
    radius_m: float
    severity: str = "medium"
    description: str = ""
    kind: str = Field(default="risk", index=True)


def default_db_path() -> Path:
    return Path.home() / ".corridor-planner" / "corridor.db"


def build_engine(path: Path | None = None):
    db_path = path or default_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def build_memory_engine():
    """Single shared in-memory database, usable across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


def init_db(path: Path | None = None):
    engine = build_engine(path)
    SQLModel.metadata.create_all(engine)
    return engine


# ── Record <-> model mapping ─────────────────────────────────────────


def operation_from_record(record: OperationRecord) -> Operation:
    bounds = None
    if record.bounds_json:
        bounds = BoundingBox.model_validate(json.loads(record.bounds_json))
    return Operation(
        id=record.id,
        name=record.name,
        severity=record.severity,
        status=record.status,
        region=Region(center=(record.center_lat, record.center_lon), bounds=bounds, zoom=record.zoom),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def corridor_from_record(record: CorridorRecord) -> Corridor:
    return Corridor(
        id=record.id,
        operation_id=record.operation_id,
        name=record.name,
        status=record.status,
        waypoints=[Waypoint.model_validate(w) for w in json.loads(record.waypoints_json)],
    )


def brief_from_record(record: BriefRecord) -> Brief:
    return Brief.model_validate(record.model_dump())


def draft_from_record(record: DraftRecord) -> Draft:
    return Draft.model_validate(record.model_dump())


def incident_from_record(record: IncidentRecord) -> Incident:
    return Incident.model_validate(record.model_dump())


def risk_zone_from_record(record: RiskZoneRecord) -> RiskZone:
    return RiskZone.model_validate(record.model_dump())


# ── Operations ───────────────────────────────────────────────────────


def _operation_record(operation: Operation) -> OperationRecord:
    return OperationRecord(
        id=operation.id,
        name=operation.name,
        severity=operation.severity,
        status=operation.status,
        center_lat=operation.region.center[0],
        center_lon=operation.region.center[1],
        bounds_json=operation.region.bounds.model_dump_json() if operation.region.bounds else None,
        zoom=operation.region.zoom,
        created_at=operation.created_at,
        updated_at=operation.updated_at,
    )


def create_operation(engine, operation: Operation) -> Operation:
    record = _operation_record(operation)
    with Session(engine) as session:
        session.add(record)
        session.commit()
        session.refresh(record)
        return operation_from_record(record)


def get_operation(engine, operation_id: str) -> Operation:
    with Session(engine) as session:
        record = session.get(OperationRecord, operation_id)
        if record is None:
            raise OperationNotFound(operation_id)
        return operation_from_record(record)


def list_operations(engine) -> list[Operation]:
    with Session(engine) as session:
        records = session.exec(select(OperationRecord).order_by(OperationRecord.created_at))
        return [operation_from_record(r) for r in records]


def _touch_operation(session: Session, operation_id: str) -> OperationRecord:
    record = session.get(OperationRecord, operation_id)
    if record is None:
        raise OperationNotFound(operation_id)
    record.updated_at = utc_now()
    session.add(record)
    return record


def delete_operation(engine, operation_id: str) -> None:
    """Delete an operation and every child row that belongs to it."""
    with Session(engine) as session:
        record = session.get(OperationRecord, operation_id)
        if record is None:
            raise OperationNotFound(operation_id)
        for table in (CorridorRecord, BriefRecord, DraftRecord, IncidentRecord, RiskZoneRecord):
            session.exec(delete(table).where(table.operation_id == operation_id))
        session.delete(record)
        session.commit()
    _log.info("Operation %s deleted with all child records", operation_id)


def recompute_operation_severity(engine, operation_id: str) -> str:
    """Set the operation severity to the worst severity among its incidents."""
    with Session(engine) as session:
        record = _touch_operation(session, operation_id)
        severities = session.exec(
            select(IncidentRecord.severity).where(IncidentRecord.operation_id == operation_id)
        ).all()
        if severities:
            record.severity = max(severities, key=lambda s: SEVERITY_LEVELS.get(s, 0))
        session.add(record)
        session.commit()
        return record.severity


# ── Corridors ────────────────────────────────────────────────────────


def _corridor_record(corridor: Corridor) -> CorridorRecord:
    return CorridorRecord(
        id=corridor.id,
        operation_id=corridor.operation_id,
        name=corridor.name,
        status=corridor.status,
        waypoints_json=json.dumps([w.model_dump() for w in corridor.waypoints]),
    )


def save_corridor(engine, corridor: Corridor) -> Corridor:
    """Insert or replace a corridor; waypoint order is stored as given."""
    with Session(engine) as session:
        _touch_operation(session, corridor.operation_id)
        record = session.get(CorridorRecord, corridor.id)
        if record is None:
            record = _corridor_record(corridor)
        else:
            record.name = corridor.name
            record.status = corridor.status
            record.waypoints_json = _corridor_record(corridor).waypoints_json
        session.add(record)
        session.commit()
        session.refresh(record)
        return corridor_from_record(record)


def list_corridors(engine, operation_id: str) -> list[Corridor]:
    with Session(engine) as session:
        records = session.exec(select(CorridorRecord).where(CorridorRecord.operation_id == operation_id))
        return [corridor_from_record(r) for r in records]


# ── Briefs ───────────────────────────────────────────────────────────


def create_brief(engine, operation_id: str, text: str, source: str = "manual") -> Brief:
    brief = Brief(operation_id=operation_id, text=text, source=source)
    with Session(engine) as session:
        _touch_operation(session, operation_id)
        session.add(BriefRecord(**brief.model_dump()))
        session.commit()
    return brief


def list_briefs(engine, operation_id: str, include_archived: bool = False) -> list[Brief]:
    with Session(engine) as session:
        statement = select(BriefRecord).where(BriefRecord.operation_id == operation_id)
        if not include_archived:
            statement = statement.where(BriefRecord.archived == False)  # noqa: E712
        records = session.exec(statement.order_by(BriefRecord.created_at))
        return [brief_from_record(r) for r in records]


def archive_brief(engine, brief_id: str) -> bool:
    with Session(engine) as session:
        record = session.get(BriefRecord, brief_id)
        if record is None:
            return False
        record.archived = True
        session.add(record)
        session.commit()
        return True


def delete_brief(engine, brief_id: str) -> None:
    """Hard-delete a brief that no draft references; otherwise archive instead."""
    with Session(engine) as session:
        referenced = session.exec(select(DraftRecord.id).where(DraftRecord.brief_id == brief_id)).first()
        if referenced is not None:
            raise BriefInUse(brief_id)
        record = session.get(BriefRecord, brief_id)
        if record is not None:
            session.delete(record)
            session.commit()


# ── Drafts ───────────────────────────────────────────────────────────


def create_drafts(
    engine,
    operation_id: str,
    candidates: Iterable[DraftCandidate],
    brief_id: str | None = None,
) -> list[Draft]:
    drafts = [
        Draft(operation_id=operation_id, brief_id=brief_id, **candidate.model_dump())
        for candidate in candidates
    ]
    if not drafts:
        return []
    with Session(engine) as session:
        _touch_operation(session, operation_id)
        for draft in drafts:
            session.add(DraftRecord(**draft.model_dump()))
        session.commit()
    return drafts


def get_draft(engine, draft_id: str) -> Draft | None:
    with Session(engine) as session:
        record = session.get(DraftRecord, draft_id)
        return draft_from_record(record) if record is not None else None


def list_drafts(engine, operation_id: str, status: str | None = "PENDING") -> list[Draft]:
    with Session(engine) as session:
        statement = select(DraftRecord).where(DraftRecord.operation_id == operation_id)
        if status is not None:
            statement = statement.where(DraftRecord.status == status)
        records = session.exec(statement.order_by(DraftRecord.created_at))
        return [draft_from_record(r) for r in records]


# ── Incidents ────────────────────────────────────────────────────────

_IMMUTABLE_INCIDENT_FIELDS = {"id", "operation_id", "lat", "lon", "created_at"}


def create_incident(engine, incident: Incident) -> Incident:
    with Session(engine) as session:
        _touch_operation(session, incident.operation_id)
        session.add(IncidentRecord(**incident.model_dump()))
        session.commit()
    return incident


def get_incident(engine, incident_id: str) -> Incident | None:
    with Session(engine) as session:
        record = session.get(IncidentRecord, incident_id)
        return incident_from_record(record) if record is not None else None


def list_incidents(engine, operation_id: str) -> list[Incident]:
    with Session(engine) as session:
        records = session.exec(
            select(IncidentRecord)
            .where(IncidentRecord.operation_id == operation_id)
            .order_by(IncidentRecord.date, IncidentRecord.created_at)
        )
        return [incident_from_record(r) for r in records]


def update_incident(engine, incident_id: str, **changes: Any) -> Incident:
    """Edit incident fields; the coordinate is fixed at creation."""
    blocked = sorted(set(changes) & _IMMUTABLE_INCIDENT_FIELDS)
    if blocked:
        raise ValueError(f"Incident field(s) are immutable: {', '.join(blocked)}")
    with Session(engine) as session:
        record = session.get(IncidentRecord, incident_id)
        if record is None:
            raise CorridorPlannerError(f"Incident not found: {incident_id}")
        current = incident_from_record(record).model_dump()
        current.update(changes)
        current["updated_at"] = utc_now()
        validated = Incident.model_validate(current)
        for key, value in validated.model_dump().items():
            setattr(record, key, value)
        session.add(record)
        session.commit()
        return validated


# ── Risk zones ───────────────────────────────────────────────────────


def create_risk_zone(engine, zone: RiskZone) -> RiskZone:
    with Session(engine) as session:
        _touch_operation(session, zone.operation_id)
        session.add(RiskZoneRecord(**zone.model_dump()))
        session.commit()
    return zone


def list_risk_zones(engine, operation_id: str, kind: str | None = None) -> list[RiskZone]:
    with Session(engine) as session:
        statement = select(RiskZoneRecord).where(RiskZoneRecord.operation_id == operation_id)
        if kind is not None:
            statement = statement.where(RiskZoneRecord.kind == kind)
        return [risk_zone_from_record(r) for r in session.exec(statement)]


# ── Legacy import ────────────────────────────────────────────────────

_V3_WAYPOINT_KINDS = {"city", "wp", "base", "rz"}


def _v3_operation(payload: dict[str, Any]) -> Operation:
    region = payload.get("region") or {}
    bounds = region.get("bounds")
    center = region.get("center") or [20, 0]
    return Operation(
        id=str(payload.get("id") or new_id()),
        name=str(payload.get("name") or "Imported Operation"),
        severity=canonicalize_severity(payload.get("severity"), "medium"),
        region=Region(
            center=(float(center[0]), float(center[1])),
            bounds=BoundingBox.from_corners(bounds) if bounds else None,
            zoom=int(region.get("zoom") or 6),
        ),
    )


def _v3_corridor(operation: Operation, points: List[dict]) -> Corridor:
    return Corridor(
        operation_id=operation.id,
        name=f"{operation.name} Route",
        waypoints=[
            Waypoint(
                name=p.get("n", ""),
                lat=p["a"],
                lon=p["o"],
                kind=p.get("t") if p.get("t") in _V3_WAYPOINT_KINDS else "wp",
                description=p.get("d", ""),
            )
            for p in points
        ],
    )


def _v3_incident(operation_id: str, inc: dict) -> Incident:
    return Incident(
        operation_id=operation_id,
        title=inc.get("ti", "Untitled"),
        description=inc.get("d", ""),
        category=canonicalize_category(inc.get("tp")) or "displacement",
        severity=canonicalize_severity(inc.get("s"), "medium"),
        date=inc.get("dt"),
        lat=inc["a"],
        lon=inc["o"],
        actor=inc.get("ac"),
        organization=inc.get("og"),
        source="MANUAL",
        verified=True,
    )


def _v3_zone(operation_id: str, zone: dict, kind: str) -> RiskZone:
    if kind == "access-denied":
        severity, description = "critical", zone.get("d") or "No access"
    else:
        severity, description = canonicalize_severity(zone.get("s"), "medium"), zone.get("d", "")
    return RiskZone(
        operation_id=operation_id,
        name=zone.get("n", ""),
        lat=zone["a"],
        lon=zone["o"],
        radius_m=zone["r"],
        severity=severity,
        description=description,
        kind=kind,
    )


def import_v3_event(engine, payload: dict[str, Any]) -> Operation:
    """Import a compact v3 event (``n/a/o`` waypoints, ``ti/tp/s`` incidents).

    Every entry is validated before anything is written, and all rows are
    committed in one transaction, so a malformed event leaves no partial
    operation behind.
    """
    if not isinstance(payload, dict):
        raise ValueError("Malformed v3 event: expected a JSON object")
    try:
        operation = _v3_operation(payload)
        corridor_points: List[dict] = payload.get("corridor") or []
        corridor = _v3_corridor(operation, corridor_points) if corridor_points else None
        incidents = [_v3_incident(operation.id, inc) for inc in payload.get("incidents") or []]
        zones = [_v3_zone(operation.id, z, "risk") for z in payload.get("riskZones") or []]
        zones += [_v3_zone(operation.id, z, "access-denied") for z in payload.get("accessDenied") or []]
        briefs = []
        for entry in payload.get("briefs") or []:
            text = entry.get("text") if isinstance(entry, dict) else str(entry)
            if text:
                briefs.append(Brief(operation_id=operation.id, text=text, source="v3-import"))
    except (KeyError, TypeError, IndexError) as exc:
        raise ValueError(f"Malformed v3 event: missing or invalid field {exc}") from exc

    with Session(engine) as session:
        if session.get(OperationRecord, operation.id) is not None:
            raise ValueError(f"Operation already exists: {operation.id}")
        session.add(_operation_record(operation))
        if corridor is not None:
            session.add(_corridor_record(corridor))
        for incident in incidents:
            session.add(IncidentRecord(**incident.model_dump()))
        for zone in zones:
            session.add(RiskZoneRecord(**zone.model_dump()))
        for brief in briefs:
            session.add(BriefRecord(**brief.model_dump()))
        session.commit()

    _log.info(
        "Imported v3 event %s as operation %s (%d incidents, %d zones)",
        payload.get("id"),
        operation.id,
        len(incidents),
        len(zones),
    )
    return get_operation(engine, operation.id)
