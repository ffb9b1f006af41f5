"""Pydantic models for operations, briefs, drafts, incidents and risk output."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Category = Literal[
    "bombardment",
    "looting",
    "access-denial",
    "control-change",
    "health",
    "displacement",
    "flood",
    "earthquake",
]
Severity = Literal["low", "medium", "high", "critical"]
DraftStatus = Literal["PENDING", "CONFIRMED", "REJECTED"]
IncidentSource = Literal["MANUAL", "AI_CONFIRMED"]
LocationSource = Literal["GAZETTEER", "GEOCODER", "UNRESOLVED"]
OperationStatus = Literal["ACTIVE", "PAUSED", "CLOSED"]
WaypointKind = Literal["city", "wp", "base", "rz"]
ZoneKind = Literal["risk", "access-denied"]

Coordinate = tuple[float, float]


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BoundingBox(BaseModel):
    """Axis-aligned lat/lon box used as a geocoding region bias."""

    model_config = ConfigDict(frozen=True)

    south: float = Field(ge=-90, le=90)
    west: float = Field(ge=-180, le=180)
    north: float = Field(ge=-90, le=90)
    east: float = Field(ge=-180, le=180)

    @model_validator(mode="after")
    def check_order(self) -> "BoundingBox":
        if self.south > self.north:
            raise ValueError("south must not exceed north")
        if self.west > self.east:
            raise ValueError("west must not exceed east")
        return self

    @classmethod
    def from_corners(cls, corners: Any) -> "BoundingBox":
        """Build from ``[[south, west], [north, east]]`` (map-library bounds)."""
        (south, west), (north, east) = corners
        return cls(south=float(south), west=float(west), north=float(north), east=float(east))

    def expanded(self, margin: float) -> "BoundingBox":
        return BoundingBox(
            south=max(-90.0, self.south - margin),
            west=max(-180.0, self.west - margin),
            north=min(90.0, self.north + margin),
            east=min(180.0, self.east + margin),
        )

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east


class Region(BaseModel):
    center: Coordinate = (20.0, 0.0)
    bounds: BoundingBox | None = None
    zoom: int = Field(default=6, ge=0, le=22)


class Waypoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    kind: WaypointKind = "wp"
    description: str = ""

    @property
    def coordinate(self) -> Coordinate:
        return (self.lat, self.lon)


class Operation(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    severity: Severity = "medium"
    status: OperationStatus = "ACTIVE"
    region: Region = Field(default_factory=Region)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)


class Corridor(BaseModel):
    id: str = Field(default_factory=new_id)
    operation_id: str
    name: str
    status: str = "PARTIALLY_OPEN"
    waypoints: List[Waypoint] = Field(default_factory=list)


class Brief(BaseModel):
    id: str = Field(default_factory=new_id)
    operation_id: str
    text: str
    source: str = "manual"
    archived: bool = False
    created_at: str = Field(default_factory=utc_now)


class Classification(BaseModel):
    category: Category
    severity: Severity
    date: str | None = None


class DraftCandidate(BaseModel):
    """Assembler output: a suggested incident not yet stored or reviewed."""

    suggested_title: str
    suggested_description: str = ""
    suggested_category: Category = "displacement"
    suggested_severity: Severity = "medium"
    suggested_date: str | None = None
    suggested_lat: float | None = None
    suggested_lon: float | None = None
    suggested_actor: str | None = None
    suggested_organization: str | None = None
    location_name: str | None = None
    location_source: LocationSource = "UNRESOLVED"
    uncertainty: bool = False
    uncertainty_note: str | None = None

    @property
    def coordinate(self) -> Coordinate | None:
        if self.suggested_lat is None or self.suggested_lon is None:
            return None
        return (self.suggested_lat, self.suggested_lon)


class Draft(DraftCandidate):
    id: str = Field(default_factory=new_id)
    operation_id: str
    brief_id: str | None = None
    status: DraftStatus = "PENDING"
    confirmed_incident_id: str | None = None
    confirmed_lat: float | None = None
    confirmed_lon: float | None = None
    created_at: str = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_confirmation_link(self) -> "Draft":
        if self.status == "CONFIRMED" and not self.confirmed_incident_id:
            raise ValueError("a CONFIRMED draft must reference its incident")
        if self.status != "CONFIRMED" and self.confirmed_incident_id:
            raise ValueError("only CONFIRMED drafts may reference an incident")
        return self


class Incident(BaseModel):
    id: str = Field(default_factory=new_id)
    operation_id: str
    title: str
    description: str = ""
    category: Category = "displacement"
    severity: Severity = "medium"
    date: str | None = None
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    actor: str | None = None
    organization: str | None = None
    source: IncidentSource = "MANUAL"
    verified: bool = False
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @property
    def coordinate(self) -> Coordinate:
        return (self.lat, self.lon)


class RiskZone(BaseModel):
    """Circular area of known risk, or where access is denied, drawn around a centre point."""

    id: str = Field(default_factory=new_id)
    operation_id: str
    name: str
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    radius_m: float = Field(gt=0)
    severity: Severity = "medium"
    description: str = ""
    kind: ZoneKind = "risk"

    @property
    def coordinate(self) -> Coordinate:
        return (self.lat, self.lon)


class IncidentInBuffer(BaseModel):
    incident: Incident
    distance_km: float

    @property
    def severity(self) -> str:
        return self.incident.severity


class RiskAssessment(BaseModel):
    route_length_km: float
    buffer_km: float
    buffer: dict[str, Any] | None = None
    incidents: List[IncidentInBuffer] = Field(default_factory=list)
    risk_score: float = 0.0
