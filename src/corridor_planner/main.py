"""CLI entrypoint for operations, brief ingestion, draft review and route risk."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from . import database
from .errors import CorridorPlannerError
from .exports import write_export_file
from .models import BoundingBox, Corridor, Operation, Region, Waypoint
from .pipeline import EXPORT_FORMATS, CorridorPipeline
from .settings import get_db_path, load_environment


def _db_path(args: argparse.Namespace) -> Path | None:
    return Path(args.db_path).expanduser() if args.db_path else get_db_path()


def _pipeline(args: argparse.Namespace) -> CorridorPipeline:
    return CorridorPipeline(db_path=_db_path(args))


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _parse_pair(raw: str) -> tuple[float, float]:
    lat, lon = (float(part) for part in raw.split(","))
    return lat, lon


def _parse_waypoints(args: argparse.Namespace) -> list[Waypoint]:
    if args.waypoints_file:
        payload = json.loads(Path(args.waypoints_file).read_text(encoding="utf-8"))
        return [Waypoint.model_validate(p) for p in payload]
    waypoints = []
    for n, chunk in enumerate(c.strip() for c in (args.waypoints or "").split(";")):
        if not chunk:
            continue
        lat, lon = _parse_pair(chunk)
        waypoints.append(Waypoint(name=f"WP{n + 1}", lat=lat, lon=lon))
    return waypoints


def cmd_init_db(args: argparse.Namespace) -> int:
    path = _db_path(args) or database.default_db_path()
    database.init_db(path)
    _print({"status": "ok", "db_path": str(path)})
    return 0


def cmd_create_operation(args: argparse.Namespace) -> int:
    bounds = None
    if args.bounds:
        south, west, north, east = (float(v) for v in args.bounds.split(","))
        bounds = BoundingBox(south=south, west=west, north=north, east=east)
    center = _parse_pair(args.center) if args.center else (
        ((bounds.south + bounds.north) / 2, (bounds.west + bounds.east) / 2) if bounds else (20.0, 0.0)
    )
    operation = Operation(
        name=args.name,
        severity=args.severity,
        region=Region(center=center, bounds=bounds, zoom=args.zoom),
    )
    created = database.create_operation(_pipeline(args).engine, operation)
    _print(created.model_dump(mode="json"))
    return 0


def cmd_set_corridor(args: argparse.Namespace) -> int:
    waypoints = _parse_waypoints(args)
    corridor = Corridor(operation_id=args.operation_id, name=args.name, waypoints=waypoints)
    if args.corridor_id:
        corridor.id = args.corridor_id
    saved = database.save_corridor(_pipeline(args).engine, corridor)
    _print(saved.model_dump(mode="json"))
    return 0


def cmd_ingest_brief(args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8") if args.file else args.text
    if not text:
        print("Provide --text or --file")
        return 1

    def _progress(stage: str, status: str, details: dict) -> None:
        if stage == "geocode" and status == "progress":
            print(f"geocode {details['percent']:5.1f}% {details['place']}", file=sys.stderr)

    pipeline = CorridorPipeline(db_path=_db_path(args), on_progress=_progress)
    try:
        result = pipeline.ingest_brief(args.operation_id, text)
    finally:
        pipeline.close()
    _print(result.to_dict())
    return 0


def cmd_list_drafts(args: argparse.Namespace) -> int:
    status = None if args.status == "ALL" else args.status
    drafts = database.list_drafts(_pipeline(args).engine, args.operation_id, status=status)
    _print([d.model_dump(mode="json") for d in drafts])
    return 0


def cmd_confirm_draft(args: argparse.Namespace) -> int:
    incident = _pipeline(args).confirm_draft(args.draft_id, args.lat, args.lon)
    _print(incident.model_dump(mode="json"))
    return 0


def cmd_reject_draft(args: argparse.Namespace) -> int:
    draft = _pipeline(args).reject_draft(args.draft_id)
    _print(draft.model_dump(mode="json"))
    return 0


def cmd_assess_route(args: argparse.Namespace) -> int:
    assessment = _pipeline(args).assess_route(args.operation_id, args.corridor_id, args.buffer_km)
    payload = assessment.model_dump(mode="json")
    if not args.include_buffer:
        payload.pop("buffer", None)
    _print(payload)
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    content = _pipeline(args).export(args.operation_id, args.format)
    if args.output:
        path = write_export_file(content, Path(args.output))
        _print({"status": "ok", "format": args.format, "output": str(path)})
    elif isinstance(content, dict):
        _print(content)
    else:
        print(content)
    return 0


def cmd_import_v3(args: argparse.Namespace) -> int:
    payload = json.loads(Path(args.file).read_text(encoding="utf-8"))
    operation = database.import_v3_event(_pipeline(args).engine, payload)
    _print(operation.model_dump(mode="json"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="corridor-planner")
    parser.add_argument("--db-path", help="SQLite database path (default: $CORRIDOR_DB_PATH or ~/.corridor-planner)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create the database tables")
    init_parser.set_defaults(func=cmd_init_db)

    op_parser = subparsers.add_parser("create-operation", help="Create an operation with its map region")
    op_parser.add_argument("--name", required=True)
    op_parser.add_argument("--bounds", help="Region bias as south,west,north,east")
    op_parser.add_argument("--center", help="Map centre as lat,lon")
    op_parser.add_argument("--zoom", type=int, default=6)
    op_parser.add_argument("--severity", choices=["low", "medium", "high", "critical"], default="medium")
    op_parser.set_defaults(func=cmd_create_operation)

    corridor_parser = subparsers.add_parser("set-corridor", help="Create or replace a route corridor")
    corridor_parser.add_argument("--operation-id", required=True)
    corridor_parser.add_argument("--corridor-id", help="Replace this corridor instead of creating one")
    corridor_parser.add_argument("--name", default="Main Route")
    corridor_parser.add_argument("--waypoints", help="Semicolon-separated lat,lon pairs in route order")
    corridor_parser.add_argument("--waypoints-file", help="JSON list of {name, lat, lon, kind, description}")
    corridor_parser.set_defaults(func=cmd_set_corridor)

    ingest_parser = subparsers.add_parser("ingest-brief", help="Extract, geocode and draft incidents from a brief")
    ingest_parser.add_argument("--operation-id", required=True)
    ingest_parser.add_argument("--text", help="Brief text")
    ingest_parser.add_argument("--file", help="Read brief text from this file")
    ingest_parser.set_defaults(func=cmd_ingest_brief)

    list_parser = subparsers.add_parser("list-drafts", help="List drafts for an operation")
    list_parser.add_argument("--operation-id", required=True)
    list_parser.add_argument("--status", choices=["PENDING", "CONFIRMED", "REJECTED", "ALL"], default="PENDING")
    list_parser.set_defaults(func=cmd_list_drafts)

    confirm_parser = subparsers.add_parser("confirm-draft", help="Promote a pending draft to an incident")
    confirm_parser.add_argument("--draft-id", required=True)
    confirm_parser.add_argument("--lat", type=float, required=True)
    confirm_parser.add_argument("--lon", type=float, required=True)
    confirm_parser.set_defaults(func=cmd_confirm_draft)

    reject_parser = subparsers.add_parser("reject-draft", help="Reject a pending draft")
    reject_parser.add_argument("--draft-id", required=True)
    reject_parser.set_defaults(func=cmd_reject_draft)

    assess_parser = subparsers.add_parser("assess-route", help="Score incidents within the corridor buffer")
    assess_parser.add_argument("--operation-id", required=True)
    assess_parser.add_argument("--corridor-id")
    assess_parser.add_argument("--buffer-km", type=float)
    assess_parser.add_argument("--include-buffer", action="store_true", help="Include the GeoJSON buffer polygon")
    assess_parser.set_defaults(func=cmd_assess_route)

    export_parser = subparsers.add_parser("export", help="Export incidents, drafts or a situation report")
    export_parser.add_argument("--operation-id", required=True)
    export_parser.add_argument("--format", choices=list(EXPORT_FORMATS), default="geojson")
    export_parser.add_argument("--output", help="Write to this path instead of stdout")
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import-v3", help="Import a compact v3 event JSON file")
    import_parser.add_argument("--file", required=True)
    import_parser.set_defaults(func=cmd_import_v3)

    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_environment()
    try:
        return args.func(args)
    except (CorridorPlannerError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
