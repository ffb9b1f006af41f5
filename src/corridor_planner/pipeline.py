"""Pipeline coordinator: brief ingestion, draft review and route assessment.

Holds a single DB engine and a single :class:`GeocodeResolver` so the
session geocode cache survives across briefs.  Stages:

  1. **Brief**     – persist the raw text
  2. **Extract**   – candidate place names (gazetteer + locative spans)
  3. **Geocode**   – layered resolution with per-name progress
  4. **Assemble**  – classify segments, attach locations, dedupe
  5. **Persist**   – store PENDING drafts

Each stage is wrapped by ``_run_stage()`` for uniform error capture, timing
and optional progress callbacks.

Usage
-----
>>> pipeline = CorridorPipeline(db_path=Path("corridor.db"))
>>> result = pipeline.ingest_brief(operation_id, "Heavy bombardment near Lankien.")
>>> incident = pipeline.confirm_draft(result.drafts[0].id, 8.28, 31.6)
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from . import database
from .config import PipelineConfig
from .drafts import DraftAssembler
from .exports import (
    drafts_to_csv,
    incidents_to_csv,
    render_situation_report,
    to_feature_collection,
)
from .extraction import PlaceExtractor
from .gazetteer import Gazetteer, load_gazetteer
from .geocoding import GeocodeResolver, NominatimClient
from .lifecycle import DraftLifecycleManager
from .map_features import buffer_feature, operation_layers
from .models import Brief, Corridor, Draft, Incident, RiskAssessment
from .settings import (
    build_pipeline_config,
    get_geocoder_url,
    get_geocoder_user_agent,
    is_external_geocoding_enabled,
)
from .spatial import assess_route

_log = logging.getLogger(__name__)

# Type alias for progress callbacks: (stage_name, status, detail_dict)
ProgressCallback = Callable[[str, str, dict[str, Any]], None]

EXPORT_FORMATS = ("geojson", "csv", "drafts-csv", "markdown")


@dataclass
class IngestResult:
    brief: Brief
    extracted: list[str] = field(default_factory=list)
    rejected_ambiguous: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    drafts: list[Draft] = field(default_factory=list)
    duplicates_dropped: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "brief_id": self.brief.id,
            "extracted": self.extracted,
            "rejected_ambiguous": self.rejected_ambiguous,
            "unresolved": self.unresolved,
            "duplicates_dropped": self.duplicates_dropped,
            "cancelled": self.cancelled,
            "drafts": [d.model_dump(mode="json") for d in self.drafts],
        }


class CorridorPipeline:
    """Central coordinator for brief → drafts → incidents → route risk.

    Parameters
    ----------
    engine :
        Existing SQLAlchemy engine; built lazily from ``db_path`` otherwise.
    db_path :
        Override DB location (mostly for tests).
    gazetteer :
        Gazetteer for the resolver and extractor; defaults to the bundled one.
    resolver :
        Pre-built resolver (tests inject one with a mocked client).
    config :
        Pipeline settings; defaults to values seeded from feature flags.
    on_progress :
        Optional callback ``(stage, status, details)`` for live progress.
    """

    def __init__(
        self,
        *,
        engine: Any | None = None,
        db_path: Path | None = None,
        gazetteer: Gazetteer | None = None,
        resolver: GeocodeResolver | None = None,
        config: PipelineConfig | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.db_path = db_path
        self.config = config or (resolver.config if resolver is not None else build_pipeline_config())
        self._engine = engine
        self._gazetteer = gazetteer
        self._resolver = resolver
        self._lifecycle: DraftLifecycleManager | None = None
        self._on_progress = on_progress

        self.stage_errors: dict[str, list[str]] = defaultdict(list)
        self.stage_diagnostics: dict[str, dict[str, Any]] = {}

    # ── Shared resources ─────────────────────────────────────────────

    @property
    def engine(self) -> Any:
        """Lazily create and return the shared DB engine."""
        if self._engine is None:
            self._engine = database.init_db(self.db_path)
            _log.debug("Pipeline: shared DB engine created at %s", self.db_path)
        return self._engine

    @property
    def resolver(self) -> GeocodeResolver:
        if self._resolver is None:
            gazetteer = self._gazetteer or load_gazetteer()
            client = NominatimClient(
                base_url=get_geocoder_url(),
                user_agent=get_geocoder_user_agent(),
                timeout_seconds=self.config.geocode_timeout_seconds,
            )
            self._resolver = GeocodeResolver(
                gazetteer,
                client=client,
                config=self.config,
                external_enabled=is_external_geocoding_enabled(),
            )
        return self._resolver

    @property
    def lifecycle(self) -> DraftLifecycleManager:
        if self._lifecycle is None:
            self._lifecycle = DraftLifecycleManager(self.engine)
        return self._lifecycle

    def close(self) -> None:
        if self._resolver is not None:
            self._resolver.close()

    # ── Stage execution wrapper ──────────────────────────────────────

    def _run_stage(
        self,
        stage_name: str,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        self._notify(stage_name, "started", {})
        start = time.monotonic()
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            elapsed_ms = round((time.monotonic() - start) * 1000, 1)
            error_msg = f"{type(exc).__name__}: {exc}"
            self.stage_errors[stage_name].append(error_msg)
            self.stage_diagnostics[stage_name] = {
                "status": "error",
                "elapsed_ms": elapsed_ms,
                "error": error_msg,
            }
            self._notify(stage_name, "error", {"error": error_msg, "elapsed_ms": elapsed_ms})
            _log.error("Pipeline: stage %s failed: %s", stage_name, error_msg)
            raise
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        self.stage_diagnostics[stage_name] = {"status": "ok", "elapsed_ms": elapsed_ms}
        self._notify(stage_name, "completed", {"elapsed_ms": elapsed_ms})
        return result

    def _notify(self, stage: str, status: str, details: dict[str, Any]) -> None:
        if self._on_progress is not None:
            try:
                self._on_progress(stage, status, details)
            except Exception:
                _log.debug("Progress callback error for stage %s", stage, exc_info=True)

    # ── Brief ingestion ──────────────────────────────────────────────

    def ingest_brief(
        self,
        operation_id: str,
        text: str,
        *,
        source: str = "manual",
        cancel_event: threading.Event | None = None,
    ) -> IngestResult:
        operation = database.get_operation(self.engine, operation_id)
        brief = self._run_stage("brief", database.create_brief, self.engine, operation_id, text, source)
        result = IngestResult(brief=brief)

        resolver = self.resolver
        resolver.set_region_bias(operation.region.bounds)
        extractor = PlaceExtractor(resolver.gazetteer)
        extraction = self._run_stage("extract", extractor.extract_with_rejections, text)
        result.extracted = list(extraction.candidates)
        result.rejected_ambiguous = list(extraction.rejected_ambiguous)

        def _on_geocode(percent: float, name: str, coord: Any) -> None:
            self._notify(
                "geocode",
                "progress",
                {"percent": percent, "place": name, "resolved": coord is not None},
            )

        batch = self._run_stage(
            "geocode",
            resolver.resolve_many,
            extraction.candidates,
            on_progress=_on_geocode,
            cancel_event=cancel_event,
        )
        result.unresolved = [name for name, coord in batch.resolved.items() if coord is None]
        if batch.cancelled:
            result.cancelled = True
            _log.info("Pipeline: brief %s ingestion cancelled during geocoding", brief.id)
            return result

        assembler = DraftAssembler(resolver, extractor=extractor, config=self.config)
        assembly = self._run_stage(
            "assemble",
            assembler.assemble_with_places,
            text,
            batch.resolved,
            rejected_ambiguous=extraction.rejected_ambiguous,
        )
        result.duplicates_dropped = assembly.duplicates_dropped
        result.drafts = self._run_stage(
            "persist",
            database.create_drafts,
            self.engine,
            operation_id,
            assembly.drafts,
            brief.id,
        )
        _log.info(
            "Pipeline: brief %s produced %d draft(s) for operation %s",
            brief.id,
            len(result.drafts),
            operation_id,
        )
        return result

    # ── Draft review ─────────────────────────────────────────────────

    def list_pending_drafts(self, operation_id: str) -> list[Draft]:
        return database.list_drafts(self.engine, operation_id, status="PENDING")

    def confirm_draft(self, draft_id: str, lat: float, lon: float) -> Incident:
        return self.lifecycle.confirm(draft_id, lat, lon)

    def reject_draft(self, draft_id: str) -> Draft:
        return self.lifecycle.reject(draft_id)

    # ── Route assessment ─────────────────────────────────────────────

    def _corridor(self, operation_id: str, corridor_id: str | None) -> Corridor | None:
        corridors = database.list_corridors(self.engine, operation_id)
        if corridor_id is None:
            return corridors[0] if corridors else None
        return next((c for c in corridors if c.id == corridor_id), None)

    def assess_route(
        self,
        operation_id: str,
        corridor_id: str | None = None,
        buffer_km: float | None = None,
    ) -> RiskAssessment:
        database.get_operation(self.engine, operation_id)
        corridor = self._corridor(operation_id, corridor_id)
        waypoints = corridor.waypoints if corridor is not None else []
        incidents = database.list_incidents(self.engine, operation_id)
        radius = buffer_km if buffer_km is not None else self.config.buffer_km
        assessment = assess_route(incidents, waypoints, radius, self.config.severity_weights)
        _log.info(
            "Pipeline: route %s scored %.2f with %d incident(s) within %g km",
            corridor.id if corridor else "-",
            assessment.risk_score,
            len(assessment.incidents),
            radius,
        )
        return assessment

    # ── Outputs ──────────────────────────────────────────────────────

    def map_layers(self, operation_id: str, buffer_km: float | None = None) -> dict[str, list[dict[str, Any]]]:
        incidents = database.list_incidents(self.engine, operation_id)
        drafts = database.list_drafts(self.engine, operation_id, status="PENDING")
        corridors = database.list_corridors(self.engine, operation_id)
        zones = database.list_risk_zones(self.engine, operation_id)
        layers = operation_layers(incidents, drafts, corridors, zones)
        if corridors:
            assessment = self.assess_route(operation_id, corridors[0].id, buffer_km)
            feature = buffer_feature(assessment.buffer, assessment.buffer_km)
            if feature is not None:
                layers["corridor"].append(feature)
        return layers

    def export(self, operation_id: str, fmt: str = "geojson") -> str | dict[str, Any]:
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")
        operation = database.get_operation(self.engine, operation_id)
        incidents = database.list_incidents(self.engine, operation_id)
        if fmt == "csv":
            return incidents_to_csv(incidents)
        drafts = database.list_drafts(self.engine, operation_id, status=None)
        if fmt == "drafts-csv":
            return drafts_to_csv(drafts)

        corridors = database.list_corridors(self.engine, operation_id)
        assessment = self.assess_route(operation_id) if corridors else None
        if fmt == "geojson":
            return to_feature_collection(incidents, corridors, assessment)
        return render_situation_report(operation, incidents, drafts=drafts, assessment=assessment)
