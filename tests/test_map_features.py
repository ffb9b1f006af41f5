from corridor_planner.map_features import (
    CORRIDOR_COLOR,
    buffer_feature,
    corridor_features,
    draft_feature,
    format_coordinate,
    incident_features,
    operation_layers,
    risk_zone_feature,
    waypoint_feature,
)
from corridor_planner.models import Corridor, Draft, Incident, RiskZone, Waypoint
from corridor_planner.spatial import buffer


def _incident(severity: str) -> Incident:
    return Incident(
        operation_id="op",
        title="Shelling in Pieri",
        category="bombardment",
        severity=severity,
        lat=8.45,
        lon=31.75,
        actor="SSPDF",
    )


def test_critical_incident_gets_halo() -> None:
    features = incident_features(_incident("critical"))
    assert len(features) == 2
    point, halo = features
    assert point["coordinates"] == [8.45, 31.75]
    assert point["style"]["radius"] == 10
    assert point["style"]["fill_color"] == "#C73E1D"
    assert halo["style"]["radius"] == 18
    assert "Actor: SSPDF" in point["popup"]


def test_non_critical_incident_has_no_halo() -> None:
    (point,) = incident_features(_incident("medium"))
    assert point["style"]["radius"] == 8
    assert point["style"]["fill_color"] == "#A69220"


def test_draft_pin_flags_uncertainty() -> None:
    certain = Draft(operation_id="op", suggested_title="Flood in Bor", suggested_lat=6.2, suggested_lon=31.56)
    uncertain = certain.model_copy(update={"uncertainty": True, "uncertainty_note": "ambiguous term rejected"})
    unlocated = Draft(operation_id="op", suggested_title="Flood somewhere")

    assert draft_feature(certain)["draggable"] is True
    assert draft_feature(certain)["style"]["dash_array"] is None
    assert draft_feature(uncertain)["style"]["dash_array"] == "4 4"
    assert "ambiguous term rejected" in draft_feature(uncertain)["popup"]
    assert draft_feature(unlocated) is None


def test_corridor_has_route_and_emphasis_lines() -> None:
    corridor = Corridor(
        operation_id="op",
        name="Route",
        waypoints=[
            Waypoint(name="Juba", lat=4.85, lon=31.58, kind="city"),
            Waypoint(name="Bor", lat=6.2, lon=31.56, kind="base"),
        ],
    )
    route, emphasis, *markers = corridor_features(corridor)
    assert route["style"] == {"color": CORRIDOR_COLOR, "weight": 3, "opacity": 0.7, "dash_array": "10 6"}
    assert emphasis["style"]["weight"] == 12
    assert emphasis["style"]["opacity"] == 0.08
    assert route["coordinates"] == [[4.85, 31.58], [6.2, 31.56]]
    assert [m["style"]["fill_color"] for m in markers] == ["#3D2B1F", "#2E86AB"]


def test_single_waypoint_corridor_has_markers_only() -> None:
    corridor = Corridor(operation_id="op", name="Stub", waypoints=[Waypoint(name="Juba", lat=4.85, lon=31.58)])
    assert [f["kind"] for f in corridor_features(corridor)] == ["point"]


def test_risk_zone_and_buffer_features() -> None:
    zone = risk_zone_feature(
        RiskZone(operation_id="op", name="Ayod checkpoint", lat=8.12, lon=31.41, radius_m=15000, severity="high", description="Frequent stops")
    )
    assert zone["kind"] == "circle"
    assert zone["layer"] == "risks"
    assert zone["style"]["dash_array"] == "6 4"
    assert zone["popup"] == "Ayod checkpoint\nHIGH\nFrequent stops"
    assert zone["radius_m"] == 15000
    assert zone["style"]["color"] == "#D4820C"

    polygon = buffer([(8.0, 31.0), (8.0, 32.0)], 10)
    feature = buffer_feature(polygon, 10)
    assert feature["kind"] == "polygon"
    assert feature["coordinates"][0] == [polygon["coordinates"][0][0][1], polygon["coordinates"][0][0][0]]
    assert buffer_feature(None, 10) is None


def test_operation_layers_groups_features() -> None:
    layers = operation_layers([_incident("critical")], [Draft(operation_id="op", suggested_title="x")])
    assert len(layers["incidents"]) == 2
    assert layers["drafts"] == []
    assert layers["corridor"] == []


def test_access_denied_zone_uses_access_layer() -> None:
    zone = RiskZone(operation_id="op", name="Uror County", lat=8.1, lon=32.0, radius_m=50000, kind="access-denied")
    feature = risk_zone_feature(zone)
    assert feature["layer"] == "access"
    assert feature["style"]["color"] == "#C73E1D"
    assert feature["style"]["dash_array"] == "8 4"
    assert feature["popup"] == "Uror County\nNO ACCESS"


def test_operation_layers_split_zones_by_kind() -> None:
    zones = [
        RiskZone(operation_id="op", name="Sudd Marshland Flood", lat=7.0, lon=30.0, radius_m=100000),
        RiskZone(operation_id="op", name="Akobo County", lat=7.8, lon=33.0, radius_m=55000, kind="access-denied"),
    ]
    layers = operation_layers([], risk_zones=zones)
    assert [f["popup"].split("\n")[0] for f in layers["risks"]] == ["Sudd Marshland Flood"]
    assert [f["popup"].split("\n")[0] for f in layers["access"]] == ["Akobo County"]


def test_waypoint_popup_uses_hemisphere_of_each_axis() -> None:
    assert format_coordinate(8.28, 31.6) == "8.28°N, 31.60°E"
    assert format_coordinate(-12.5, -77.04) == "12.50°S, 77.04°W"
    feature = waypoint_feature(Waypoint(name="Lima", lat=-12.05, lon=-77.04))
    assert feature["popup"].endswith("12.05°S, 77.04°W")
