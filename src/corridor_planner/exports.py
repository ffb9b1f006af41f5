"""GeoJSON, CSV and Markdown projections of an operation's records."""

from __future__ import annotations

import csv
import io
import json
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable

from .models import Corridor, Draft, Incident, Operation, RiskAssessment

INCIDENT_CSV_FIELDS = [
    "id",
    "date",
    "title",
    "category",
    "severity",
    "lat",
    "lon",
    "actor",
    "organization",
    "source",
    "verified",
    "description",
]

DRAFT_CSV_FIELDS = [
    "id",
    "status",
    "suggested_title",
    "suggested_category",
    "suggested_severity",
    "suggested_date",
    "location_name",
    "location_source",
    "suggested_lat",
    "suggested_lon",
    "uncertainty",
    "uncertainty_note",
    "confirmed_incident_id",
]


def incident_to_feature(incident: Incident) -> dict[str, Any]:
    properties = incident.model_dump(exclude={"lat", "lon"})
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [incident.lon, incident.lat]},
        "properties": properties,
    }


def corridor_to_feature(corridor: Corridor) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [[w.lon, w.lat] for w in corridor.waypoints],
        },
        "properties": {
            "id": corridor.id,
            "name": corridor.name,
            "status": corridor.status,
            "waypoints": [w.name for w in corridor.waypoints],
        },
    }


def to_feature_collection(
    incidents: Iterable[Incident],
    corridors: Iterable[Corridor] = (),
    assessment: RiskAssessment | None = None,
) -> dict[str, Any]:
    """GeoJSON FeatureCollection; coordinates follow GeoJSON ``[lon, lat]`` order."""
    features = [corridor_to_feature(c) for c in corridors if len(c.waypoints) >= 2]
    features.extend(incident_to_feature(i) for i in incidents)
    if assessment is not None and assessment.buffer is not None:
        features.append(
            {
                "type": "Feature",
                "geometry": assessment.buffer,
                "properties": {
                    "kind": "corridor_buffer",
                    "buffer_km": assessment.buffer_km,
                    "risk_score": assessment.risk_score,
                },
            }
        )
    return {"type": "FeatureCollection", "features": features}


def _write_csv(rows: Iterable[dict[str, Any]], fields: list[str]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fields, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if row.get(k) is None else row.get(k) for k in fields})
    return buffer.getvalue()


def incidents_to_csv(incidents: Iterable[Incident]) -> str:
    return _write_csv((i.model_dump() for i in incidents), INCIDENT_CSV_FIELDS)


def drafts_to_csv(drafts: Iterable[Draft]) -> str:
    return _write_csv((d.model_dump() for d in drafts), DRAFT_CSV_FIELDS)


def _top_labels(bucket: Counter, limit: int) -> str:
    if not bucket:
        return "none"
    return ", ".join(f"{k} ({v})" for k, v in bucket.most_common(limit))


def render_situation_report(
    operation: Operation,
    incidents: list[Incident],
    *,
    drafts: list[Draft] | None = None,
    assessment: RiskAssessment | None = None,
    title: str | None = None,
) -> str:
    drafts = drafts or []
    generated_at = datetime.now(UTC).isoformat()
    lines: list[str] = []
    lines.append(f"# {title or f'{operation.name} Situation Report'}")
    lines.append("")
    lines.append(f"Generated at: {generated_at}")
    lines.append(f"Operation severity: {operation.severity.upper()} | Status: {operation.status}")
    lines.append("")

    lines.append("## Summary")
    if incidents:
        lines.append(f"- Confirmed incidents: {len(incidents)}")
        lines.append(f"- By category: {_top_labels(Counter(i.category for i in incidents), 8)}")
        lines.append(f"- By severity: {_top_labels(Counter(i.severity for i in incidents), 4)}")
    else:
        lines.append("No confirmed incidents recorded.")
    pending = [d for d in drafts if d.status == "PENDING"]
    if pending:
        uncertain = sum(1 for d in pending if d.uncertainty)
        lines.append(f"- Drafts awaiting review: {len(pending)} ({uncertain} with uncertain location)")
    lines.append("")

    lines.append("## Incidents")
    if not incidents:
        lines.append("None.")
    for n, incident in enumerate(incidents, start=1):
        lines.append(
            f"{n}. **{incident.title}** (severity={incident.severity}, "
            f"category={incident.category}, date={incident.date or 'unknown'})"
        )
        lines.append(f"   - Location: {incident.lat:.4f}, {incident.lon:.4f}")
        if incident.description:
            lines.append(f"   - Summary: {incident.description}")
        if incident.actor or incident.organization:
            lines.append(
                f"   - Actor: {incident.actor or 'unknown'}; organization: {incident.organization or 'unknown'}"
            )
    lines.append("")

    if assessment is not None:
        lines.append("## Route Risk")
        lines.append(f"- Route length: {assessment.route_length_km:.2f} km")
        lines.append(f"- Buffer: {assessment.buffer_km:g} km")
        lines.append(f"- Incidents within buffer: {len(assessment.incidents)}")
        lines.append(f"- Risk score: {assessment.risk_score:.2f}")
        for item in assessment.incidents:
            lines.append(
                f"  - {item.incident.title} ({item.severity}) at {item.distance_km:.2f} km from route"
            )
        lines.append("")
    return "\n".join(lines)


def write_export_file(content: str | dict[str, Any], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, dict):
        content = json.dumps(content, indent=2, ensure_ascii=False)
    output_path.write_text(content, encoding="utf-8")
    return output_path
