"""Tests for the CorridorPipeline coordinator."""

import threading

import httpx
import pytest

from corridor_planner.database import (
    build_memory_engine,
    create_operation,
    create_risk_zone,
    get_operation,
    list_briefs,
    save_corridor,
)
from corridor_planner.errors import InvalidStateTransition, OperationNotFound
from corridor_planner.gazetteer import load_gazetteer
from corridor_planner.geocoding import GeocodeResolver, NominatimClient
from corridor_planner.models import BoundingBox, Corridor, Operation, Region, RiskZone, Waypoint
from corridor_planner.pipeline import CorridorPipeline

BRIEF = (
    "Heavy bombardment reported near Lankien on 2026-02-03. "
    "Cholera outbreak in Duk County since 2026-01-01. "
    "Families fleeing to Mogok Payam."
)


class MockedNominatimClient(NominatimClient):
    def __init__(self, handler):
        super().__init__(base_url="https://geocoder.test/search")
        self.handler = handler

    def _build_client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


def _pipeline(on_progress=None, handler=None) -> tuple[CorridorPipeline, str]:
    engine = build_memory_engine()
    operation = create_operation(
        engine,
        Operation(
            name="Jonglei Response",
            severity="low",
            region=Region(center=(8.0, 31.5), bounds=BoundingBox(south=3.5, west=24.0, north=12.5, east=36.0)),
        ),
    )
    handler = handler or (lambda request: httpx.Response(200, json=[{"lat": "7.9", "lon": "31.8"}]))
    resolver = GeocodeResolver(
        load_gazetteer("ssd"),
        client=MockedNominatimClient(handler),
        sleep=lambda seconds: None,
    )
    return CorridorPipeline(engine=engine, resolver=resolver, on_progress=on_progress), operation.id


# ── Ingestion ────────────────────────────────────────────────────────


def test_ingest_brief_creates_pending_drafts() -> None:
    events: list[tuple[str, str, dict]] = []
    pipeline, operation_id = _pipeline(on_progress=lambda stage, status, details: events.append((stage, status, details)))

    result = pipeline.ingest_brief(operation_id, BRIEF)

    assert result.extracted == ["Lankien", "Duk", "Mogok"]
    assert result.unresolved == []
    assert [d.suggested_category for d in result.drafts] == ["bombardment", "health", "displacement"]
    assert all(d.status == "PENDING" for d in result.drafts)
    assert all(d.brief_id == result.brief.id for d in result.drafts)
    mogok = result.drafts[2]
    assert mogok.location_source == "GEOCODER"
    assert mogok.coordinate == (7.9, 31.8)
    assert pipeline.resolver.external_calls == 1
    assert len(pipeline.list_pending_drafts(operation_id)) == 3

    progress = [d["percent"] for stage, status, d in events if stage == "geocode" and status == "progress"]
    assert progress[-1] == 100.0
    completed = [stage for stage, status, _ in events if status == "completed"]
    assert completed == ["brief", "extract", "geocode", "assemble", "persist"]
    assert pipeline.stage_diagnostics["persist"]["status"] == "ok"


def test_ingest_brief_unknown_operation() -> None:
    pipeline, _ = _pipeline()
    with pytest.raises(OperationNotFound):
        pipeline.ingest_brief("missing", BRIEF)


def test_cancelled_ingestion_persists_no_drafts() -> None:
    pipeline, operation_id = _pipeline()
    cancel = threading.Event()
    cancel.set()

    result = pipeline.ingest_brief(operation_id, BRIEF, cancel_event=cancel)

    assert result.cancelled is True
    assert result.drafts == []
    assert pipeline.list_pending_drafts(operation_id) == []
    assert [b.id for b in list_briefs(pipeline.engine, operation_id)] == [result.brief.id]


def test_geocoder_failure_marks_draft_uncertain() -> None:
    pipeline, operation_id = _pipeline(handler=lambda request: httpx.Response(503))

    result = pipeline.ingest_brief(operation_id, BRIEF)

    assert result.unresolved == ["Mogok"]
    mogok = result.drafts[-1]
    assert mogok.uncertainty is True
    assert mogok.uncertainty_note == "no location match"


def test_failing_progress_callback_is_ignored() -> None:
    def on_progress(stage: str, status: str, details: dict) -> None:
        raise RuntimeError("ui closed")

    pipeline, operation_id = _pipeline(on_progress=on_progress)
    assert len(pipeline.ingest_brief(operation_id, BRIEF).drafts) == 3


# ── Review + assessment ──────────────────────────────────────────────


def test_confirm_reject_and_assess_route() -> None:
    pipeline, operation_id = _pipeline()
    drafts = pipeline.ingest_brief(operation_id, BRIEF).drafts
    save_corridor(
        pipeline.engine,
        Corridor(
            operation_id=operation_id,
            name="Ayod - Lankien",
            waypoints=[
                Waypoint(name="Ayod", lat=8.12, lon=31.41, kind="city"),
                Waypoint(name="Lankien", lat=8.28, lon=31.6, kind="city"),
            ],
        ),
    )

    incident = pipeline.confirm_draft(drafts[0].id, 8.28, 31.6)
    pipeline.reject_draft(drafts[1].id)
    with pytest.raises(InvalidStateTransition):
        pipeline.confirm_draft(drafts[1].id, 7.7, 31.3)

    assert get_operation(pipeline.engine, operation_id).severity == "high"
    assessment = pipeline.assess_route(operation_id)
    assert [i.incident.id for i in assessment.incidents] == [incident.id]
    assert assessment.incidents[0].distance_km == 0.0
    assert assessment.risk_score == 0.15
    assert assessment.buffer_km == 10.0


def test_assess_route_without_corridor_is_empty() -> None:
    pipeline, operation_id = _pipeline()
    assessment = pipeline.assess_route(operation_id)
    assert assessment.buffer is None
    assert assessment.route_length_km == 0.0
    assert assessment.risk_score == 0.0


def test_map_layers_and_exports() -> None:
    pipeline, operation_id = _pipeline()
    drafts = pipeline.ingest_brief(operation_id, BRIEF).drafts
    save_corridor(
        pipeline.engine,
        Corridor(
            operation_id=operation_id,
            name="Route",
            waypoints=[Waypoint(name="A", lat=8.0, lon=31.0), Waypoint(name="B", lat=8.3, lon=31.7)],
        ),
    )
    pipeline.confirm_draft(drafts[0].id, 8.28, 31.6)

    layers = pipeline.map_layers(operation_id)
    assert [f["kind"] for f in layers["corridor"]] == ["polyline", "polyline", "point", "point", "polygon"]
    assert len(layers["incidents"]) == 1
    assert len(layers["drafts"]) == 2

    collection = pipeline.export(operation_id, "geojson")
    assert collection["type"] == "FeatureCollection"
    kinds = [f["geometry"]["type"] for f in collection["features"]]
    assert kinds == ["LineString", "Point", "Polygon"]

    csv_text = pipeline.export(operation_id, "csv")
    assert csv_text.splitlines()[0].startswith("id,date,title,category,severity,lat,lon")
    assert len(csv_text.splitlines()) == 2
    assert len(pipeline.export(operation_id, "drafts-csv").splitlines()) == 4

    report = pipeline.export(operation_id, "markdown")
    assert report.startswith("# Jonglei Response Situation Report")
    assert "## Route Risk" in report

    with pytest.raises(ValueError):
        pipeline.export(operation_id, "kml")


def test_map_layers_include_stored_zones() -> None:
    pipeline, operation_id = _pipeline()
    create_risk_zone(
        pipeline.engine,
        RiskZone(operation_id=operation_id, name="Jonglei Active Conflict", lat=8.0, lon=31.5, radius_m=120000, severity="critical"),
    )
    create_risk_zone(
        pipeline.engine,
        RiskZone(operation_id=operation_id, name="Nyirol County", lat=8.5, lon=31.6, radius_m=45000, kind="access-denied"),
    )

    layers = pipeline.map_layers(operation_id)

    (risk,) = layers["risks"]
    assert risk["style"]["color"] == "#C73E1D"
    assert risk["radius_m"] == 120000
    (access,) = layers["access"]
    assert access["popup"] == "Nyirol County\nNO ACCESS"
    assert layers["corridor"] == []
