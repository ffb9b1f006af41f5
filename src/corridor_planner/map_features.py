"""Geometry + style records for the map-rendering collaborator.

Nothing here draws.  Each function returns plain dicts describing a point,
polyline, circle or polygon with style and popup text; coordinates are
``[lat, lon]`` pairs, the order map libraries take for markers.
"""

from __future__ import annotations

from typing import Any, Iterable

from .models import Corridor, Draft, Incident, RiskZone, Waypoint
from .spatial import buffer_to_latlon

CATEGORY_ICONS = {
    "bombardment": "\U0001F4A5",
    "looting": "\U0001F525",
    "access-denial": "\U0001F6AB",
    "control-change": "⚐",
    "health": "\U0001F9A0",
    "displacement": "\U0001F465",
    "flood": "\U0001F30A",
    "earthquake": "\U0001F30B",
}
FALLBACK_ICON = "⚠️"

SEVERITY_COLORS = {
    "critical": {"main": "#C73E1D", "light": "#C73E1D22"},
    "high": {"main": "#D4820C", "light": "#D4820C1A"},
    "medium": {"main": "#A69220", "light": "#A692201A"},
    "low": {"main": "#3B7A57", "light": "#3B7A571A"},
}

WAYPOINT_STYLES = {
    "city": {"color": "#3D2B1F", "radius": 7},
    "base": {"color": "#2E86AB", "radius": 6},
    "wp": {"color": "#8B7355", "radius": 4},
    "rz": {"color": "#8B7355", "radius": 4},
}

CORRIDOR_COLOR = "#8B4513"
ACCESS_DENIED_COLOR = "#C73E1D"


def _severity_style(severity: str) -> dict[str, str]:
    return SEVERITY_COLORS.get(severity, SEVERITY_COLORS["medium"])


def format_coordinate(lat: float, lon: float) -> str:
    ns = "N" if lat >= 0 else "S"
    ew = "E" if lon >= 0 else "W"
    return f"{abs(lat):.2f}°{ns}, {abs(lon):.2f}°{ew}"


def incident_features(incident: Incident) -> list[dict[str, Any]]:
    style = _severity_style(incident.severity)
    icon = CATEGORY_ICONS.get(incident.category, FALLBACK_ICON)
    popup_lines = [
        f"{icon} {incident.title}",
        f"{incident.severity.upper()} {incident.date or ''}".strip(),
        incident.description,
    ]
    if incident.actor or incident.organization:
        popup_lines.append(f"Actor: {incident.actor or 'Unknown'} | Organization: {incident.organization or 'Unknown'}")
    features: list[dict[str, Any]] = [
        {
            "kind": "point",
            "layer": "incidents",
            "id": incident.id,
            "coordinates": [incident.lat, incident.lon],
            "icon": icon,
            "style": {
                "radius": 10 if incident.severity == "critical" else 8,
                "fill_color": style["main"],
                "color": "#FFFFFF",
                "weight": 2,
                "fill_opacity": 0.85,
            },
            "popup": "\n".join(line for line in popup_lines if line),
        }
    ]
    if incident.severity == "critical":
        features.append(
            {
                "kind": "point",
                "layer": "incidents",
                "id": f"{incident.id}:halo",
                "coordinates": [incident.lat, incident.lon],
                "style": {
                    "radius": 18,
                    "fill_color": style["main"],
                    "color": style["main"],
                    "weight": 1,
                    "fill_opacity": 0.12,
                },
            }
        )
    return features


def draft_feature(draft: Draft) -> dict[str, Any] | None:
    """Draggable review pin for a pending draft; ``None`` when it has no coordinate."""
    coord = draft.coordinate
    if coord is None:
        return None
    style = _severity_style(draft.suggested_severity)
    popup = f"{CATEGORY_ICONS.get(draft.suggested_category, FALLBACK_ICON)} {draft.suggested_title}"
    if draft.uncertainty and draft.uncertainty_note:
        popup += f"\nUncertain location: {draft.uncertainty_note}"
    return {
        "kind": "point",
        "layer": "drafts",
        "id": draft.id,
        "coordinates": [coord[0], coord[1]],
        "icon": CATEGORY_ICONS.get(draft.suggested_category, FALLBACK_ICON),
        "draggable": draft.status == "PENDING",
        "style": {
            "radius": 8,
            "fill_color": style["main"],
            "color": style["main"],
            "weight": 2,
            "fill_opacity": 0.4,
            "dash_array": "4 4" if draft.uncertainty else None,
        },
        "popup": popup,
    }


def waypoint_feature(waypoint: Waypoint) -> dict[str, Any]:
    style = WAYPOINT_STYLES.get(waypoint.kind, WAYPOINT_STYLES["wp"])
    return {
        "kind": "point",
        "layer": "corridor",
        "coordinates": [waypoint.lat, waypoint.lon],
        "style": {
            "radius": style["radius"],
            "fill_color": style["color"],
            "color": "#FFFFFF",
            "weight": 2,
            "fill_opacity": 0.9,
        },
        "popup": f"{waypoint.name}\n{waypoint.description}\n{format_coordinate(waypoint.lat, waypoint.lon)}",
    }


def corridor_features(corridor: Corridor) -> list[dict[str, Any]]:
    """Dashed route line, a wide translucent emphasis line, then waypoint markers."""
    path = [[w.lat, w.lon] for w in corridor.waypoints]
    features: list[dict[str, Any]] = []
    if len(path) >= 2:
        features.append(
            {
                "kind": "polyline",
                "layer": "corridor",
                "id": corridor.id,
                "coordinates": path,
                "style": {"color": CORRIDOR_COLOR, "weight": 3, "opacity": 0.7, "dash_array": "10 6"},
            }
        )
        features.append(
            {
                "kind": "polyline",
                "layer": "corridor",
                "id": f"{corridor.id}:emphasis",
                "coordinates": path,
                "style": {"color": CORRIDOR_COLOR, "weight": 12, "opacity": 0.08},
            }
        )
    features.extend(waypoint_feature(w) for w in corridor.waypoints)
    return features


def risk_zone_feature(zone: RiskZone) -> dict[str, Any]:
    """Circle for a risk or access-denied zone; ``radius_m`` is in metres."""
    if zone.kind == "access-denied":
        return {
            "kind": "circle",
            "layer": "access",
            "id": zone.id,
            "coordinates": [zone.lat, zone.lon],
            "radius_m": zone.radius_m,
            "icon": CATEGORY_ICONS["access-denial"],
            "style": {
                "fill_color": ACCESS_DENIED_COLOR,
                "color": ACCESS_DENIED_COLOR,
                "weight": 2,
                "fill_opacity": 0.1,
                "dash_array": "8 4",
            },
            "popup": f"{zone.name}\nNO ACCESS",
        }
    style = _severity_style(zone.severity)
    return {
        "kind": "circle",
        "layer": "risks",
        "id": zone.id,
        "coordinates": [zone.lat, zone.lon],
        "radius_m": zone.radius_m,
        "style": {
            "fill_color": style["main"],
            "color": style["main"],
            "weight": 1.5,
            "fill_opacity": 0.08,
            "dash_array": "6 4",
        },
        "popup": f"{zone.name}\n{zone.severity.upper()}\n{zone.description}".strip(),
    }


def buffer_feature(polygon: dict | None, radius_km: float) -> dict[str, Any] | None:
    ring = buffer_to_latlon(polygon)
    if not ring:
        return None
    return {
        "kind": "polygon",
        "layer": "corridor",
        "coordinates": ring,
        "style": {"color": CORRIDOR_COLOR, "weight": 1, "fill_opacity": 0.05, "dash_array": "4 6"},
        "popup": f"{radius_km:g} km corridor buffer",
    }


def operation_layers(
    incidents: Iterable[Incident],
    drafts: Iterable[Draft] = (),
    corridors: Iterable[Corridor] = (),
    risk_zones: Iterable[RiskZone] = (),
) -> dict[str, list[dict[str, Any]]]:
    layers: dict[str, list[dict[str, Any]]] = {
        "corridor": [],
        "risks": [],
        "access": [],
        "incidents": [],
        "drafts": [],
    }
    for corridor in corridors:
        layers["corridor"].extend(corridor_features(corridor))
    for zone in risk_zones:
        feature = risk_zone_feature(zone)
        layers[feature["layer"]].append(feature)
    for incident in incidents:
        layers["incidents"].extend(incident_features(incident))
    for draft in drafts:
        feature = draft_feature(draft)
        if feature is not None:
            layers["drafts"].append(feature)
    return layers
