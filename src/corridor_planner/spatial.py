"""Route buffering, incident inclusion and risk scoring.

Distances are great-circle (haversine) kilometres.  Buffers are computed with
shapely in a sinusoidal projection centred on the route, where one unit is
one kilometre, and converted back to a lon/lat GeoJSON polygon.

A route with fewer than two waypoints has no buffer: geometry queries return
``None``, lengths ``0.0`` and incident lists ``[]``.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Sequence

from shapely.geometry import LineString, Point, shape

from .config import DEFAULT_SEVERITY_WEIGHTS
from .errors import MalformedRoute
from .models import Coordinate, Incident, IncidentInBuffer, RiskAssessment, Waypoint

EARTH_RADIUS_KM = 6371.0088
DEFAULT_BUFFER_KM = 10.0


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    lat1, lon1 = math.radians(a[0]), math.radians(a[1])
    lat2, lon2 = math.radians(b[0]), math.radians(b[1])
    h = math.sin((lat2 - lat1) / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    h = max(0.0, min(1.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def _coerce_point(point: Any) -> Coordinate:
    if isinstance(point, Waypoint):
        lat, lon = point.lat, point.lon
    elif isinstance(point, Mapping):
        lat = point.get("lat", point.get("a"))
        lon = point.get("lon", point.get("lng", point.get("o")))
    elif isinstance(point, Sequence) and not isinstance(point, str) and len(point) == 2:
        lat, lon = point
    else:
        raise MalformedRoute(f"Unusable waypoint: {point!r}")
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError) as exc:
        raise MalformedRoute(f"Waypoint has no numeric coordinate: {point!r}") from exc
    if not (math.isfinite(lat) and math.isfinite(lon)) or abs(lat) > 90 or abs(lon) > 180:
        raise MalformedRoute(f"Waypoint coordinate out of range: {point!r}")
    return (lat, lon)


def route_coordinates(waypoints: Iterable[Any] | None) -> list[Coordinate]:
    """Normalise waypoints (``Waypoint``, ``{lat, lon}`` or ``(lat, lon)``) in order."""
    if waypoints is None:
        return []
    return [_coerce_point(p) for p in waypoints]


class _SinusoidalProjection:
    def __init__(self, coords: Sequence[Coordinate]) -> None:
        self.lon0 = sum(c[1] for c in coords) / len(coords)
        self.k = math.pi / 180 * EARTH_RADIUS_KM

    def forward(self, lat: float, lon: float) -> tuple[float, float]:
        return ((lon - self.lon0) * self.k * math.cos(math.radians(lat)), lat * self.k)

    def inverse(self, x: float, y: float) -> Coordinate:
        lat = max(-90.0, min(90.0, y / self.k))
        cos_lat = math.cos(math.radians(lat))
        lon = self.lon0 if cos_lat < 1e-12 else self.lon0 + x / (self.k * cos_lat)
        return (lat, lon)


def _projected_route(coords: Sequence[Coordinate]) -> tuple[_SinusoidalProjection, LineString]:
    projection = _SinusoidalProjection(coords)
    line = LineString([projection.forward(lat, lon) for lat, lon in coords])
    return projection, line


def buffer(waypoints: Iterable[Any] | None, radius_km: float = DEFAULT_BUFFER_KM, *, quad_segs: int = 16) -> dict | None:
    """GeoJSON Polygon of every point within ``radius_km`` of the route polyline."""
    coords = route_coordinates(waypoints)
    if len(coords) < 2:
        return None
    if radius_km <= 0:
        raise ValueError("radius_km must be positive")

    projection, line = _projected_route(coords)
    polygon = line.buffer(radius_km, quad_segs=quad_segs)

    def ring(points: Iterable[tuple[float, float]]) -> list[list[float]]:
        out = []
        for x, y in points:
            lat, lon = projection.inverse(x, y)
            out.append([round(lon, 6), round(lat, 6)])
        return out

    rings = [ring(polygon.exterior.coords)]
    rings.extend(ring(interior.coords) for interior in polygon.interiors)
    return {"type": "Polygon", "coordinates": rings}


def incidents_in_buffer(
    incidents: Iterable[Incident],
    waypoints: Iterable[Any] | None,
    radius_km: float = DEFAULT_BUFFER_KM,
) -> list[IncidentInBuffer]:
    """Incidents inside the route buffer, nearest first, with distance to the route."""
    coords = route_coordinates(waypoints)
    if len(coords) < 2:
        return []
    polygon_geojson = buffer(coords, radius_km)
    area = shape(polygon_geojson)
    projection, line = _projected_route(coords)

    included: list[IncidentInBuffer] = []
    for incident in incidents:
        if not area.covers(Point(incident.lon, incident.lat)):
            continue
        nearest = line.interpolate(line.project(Point(projection.forward(incident.lat, incident.lon))))
        nearest_coord = projection.inverse(nearest.x, nearest.y)
        distance = round(haversine_km(incident.coordinate, nearest_coord), 2)
        included.append(IncidentInBuffer(incident=incident, distance_km=distance))

    included.sort(key=lambda item: item.distance_km)
    return included


def _severity_of(item: Any) -> str:
    if isinstance(item, Mapping):
        value = item.get("severity") or item.get("s")
    elif isinstance(item, str):
        value = item
    else:
        value = getattr(item, "severity", None)
    return str(value or "medium").strip().lower()


def risk_score(incidents_in_buffer: Iterable[Any] | None, weights: Mapping[str, float] | None = None) -> float:
    """Additive severity weights, clamped to 1.0 and rounded to 2 decimals."""
    table = dict(DEFAULT_SEVERITY_WEIGHTS)
    if weights:
        table.update(weights)
    fallback = table.get("unknown", DEFAULT_SEVERITY_WEIGHTS["unknown"])
    raw = sum(table.get(_severity_of(item), fallback) for item in (incidents_in_buffer or []))
    return min(1.0, round(raw, 2))


def route_length(waypoints: Iterable[Any] | None) -> float:
    coords = route_coordinates(waypoints)
    if len(coords) < 2:
        return 0.0
    return round(sum(haversine_km(a, b) for a, b in zip(coords, coords[1:])), 2)


def _intermediate_point(a: Coordinate, b: Coordinate, fraction: float) -> Coordinate:
    delta = haversine_km(a, b) / EARTH_RADIUS_KM
    if delta == 0:
        return a
    lat1, lon1 = math.radians(a[0]), math.radians(a[1])
    lat2, lon2 = math.radians(b[0]), math.radians(b[1])
    sa = math.sin((1 - fraction) * delta) / math.sin(delta)
    sb = math.sin(fraction * delta) / math.sin(delta)
    x = sa * math.cos(lat1) * math.cos(lon1) + sb * math.cos(lat2) * math.cos(lon2)
    y = sa * math.cos(lat1) * math.sin(lon1) + sb * math.cos(lat2) * math.sin(lon2)
    z = sa * math.sin(lat1) + sb * math.sin(lat2)
    return (math.degrees(math.atan2(z, math.hypot(x, y))), math.degrees(math.atan2(y, x)))


def point_at_fraction(waypoints: Iterable[Any] | None, fraction: float = 0.5) -> Coordinate | None:
    """Point at ``fraction`` (clamped to [0, 1]) of the route's length."""
    coords = route_coordinates(waypoints)
    if len(coords) < 2:
        return None
    fraction = max(0.0, min(1.0, float(fraction)))
    segments = [(a, b, haversine_km(a, b)) for a, b in zip(coords, coords[1:])]
    remaining = sum(length for _, _, length in segments) * fraction
    for a, b, length in segments:
        if remaining <= length:
            return a if length == 0 else _intermediate_point(a, b, remaining / length)
        remaining -= length
    return coords[-1]


def assess_route(
    incidents: Iterable[Incident],
    waypoints: Iterable[Any] | None,
    radius_km: float = DEFAULT_BUFFER_KM,
    weights: Mapping[str, float] | None = None,
) -> RiskAssessment:
    coords = route_coordinates(waypoints)
    nearby = incidents_in_buffer(incidents, coords, radius_km)
    return RiskAssessment(
        route_length_km=route_length(coords),
        buffer_km=radius_km,
        buffer=buffer(coords, radius_km),
        incidents=nearby,
        risk_score=risk_score(nearby, weights),
    )


def buffer_to_latlon(polygon: dict | None) -> list[list[float]]:
    """Exterior ring as ``[[lat, lon], ...]`` for map libraries expecting that order."""
    if not polygon or not polygon.get("coordinates"):
        return []
    return [[lat, lon] for lon, lat in polygon["coordinates"][0]]


