import csv
import io
import json
from pathlib import Path

from corridor_planner.exports import (
    drafts_to_csv,
    incidents_to_csv,
    render_situation_report,
    to_feature_collection,
    write_export_file,
)
from corridor_planner.models import Corridor, Draft, Incident, Operation, Waypoint
from corridor_planner.spatial import assess_route


def _incidents() -> list[Incident]:
    return [
        Incident(
            operation_id="op",
            title="Bombardment in Lankien",
            description="Heavy bombardment, 3 wounded",
            category="bombardment",
            severity="high",
            date="2026-02-03",
            lat=8.28,
            lon=31.6,
            actor="SSPDF",
        ),
        Incident(operation_id="op", title="Flood in Bor", category="flood", severity="low", lat=6.2, lon=31.56),
    ]


def test_feature_collection_uses_lon_lat_order() -> None:
    corridor = Corridor(
        operation_id="op",
        name="Route",
        waypoints=[Waypoint(name="A", lat=8.0, lon=31.0), Waypoint(name="B", lat=8.3, lon=31.7)],
    )
    assessment = assess_route(_incidents(), corridor.waypoints, 10)
    collection = to_feature_collection(_incidents(), [corridor, Corridor(operation_id="op", name="empty")], assessment)

    features = collection["features"]
    assert [f["geometry"]["type"] for f in features] == ["LineString", "Point", "Point", "Polygon"]
    assert features[0]["geometry"]["coordinates"] == [[31.0, 8.0], [31.7, 8.3]]
    assert features[1]["geometry"]["coordinates"] == [31.6, 8.28]
    assert features[1]["properties"]["title"] == "Bombardment in Lankien"
    assert "lat" not in features[1]["properties"]
    assert features[3]["properties"]["risk_score"] == assessment.risk_score
    json.dumps(collection)


def test_incidents_csv_quotes_commas() -> None:
    text = incidents_to_csv(_incidents())
    rows = list(csv.DictReader(io.StringIO(text)))
    assert len(rows) == 2
    assert rows[0]["description"] == "Heavy bombardment, 3 wounded"
    assert rows[0]["actor"] == "SSPDF"
    assert rows[1]["actor"] == ""
    assert rows[1]["lat"] == "6.2"


def test_drafts_csv() -> None:
    draft = Draft(
        operation_id="op",
        suggested_title="Displacement in Mogok",
        location_name="Mogok",
        uncertainty=True,
        uncertainty_note="no location match",
    )
    rows = list(csv.DictReader(io.StringIO(drafts_to_csv([draft]))))
    assert rows[0]["status"] == "PENDING"
    assert rows[0]["suggested_lat"] == ""
    assert rows[0]["uncertainty_note"] == "no location match"


def test_situation_report_sections() -> None:
    operation = Operation(name="Jonglei Response", severity="high")
    drafts = [Draft(operation_id="op", suggested_title="x", uncertainty=True)]
    report = render_situation_report(operation, _incidents(), drafts=drafts)

    assert report.startswith("# Jonglei Response Situation Report")
    assert "Operation severity: HIGH" in report
    assert "- Confirmed incidents: 2" in report
    assert "Drafts awaiting review: 1 (1 with uncertain location)" in report
    assert "1. **Bombardment in Lankien** (severity=high, category=bombardment, date=2026-02-03)" in report
    assert "## Route Risk" not in report


def test_situation_report_without_incidents() -> None:
    report = render_situation_report(Operation(name="Quiet"), [], title="Weekly")
    assert report.startswith("# Weekly")
    assert "No confirmed incidents recorded." in report


def test_write_export_file(tmp_path: Path) -> None:
    path = write_export_file({"type": "FeatureCollection", "features": []}, tmp_path / "out" / "ops.geojson")
    assert json.loads(path.read_text(encoding="utf-8"))["features"] == []
    md = write_export_file("# Report\n", tmp_path / "report.md")
    assert md.read_text(encoding="utf-8") == "# Report\n"
