import json
from pathlib import Path

from corridor_planner.main import main


def _run(capsys, *argv: str) -> tuple[int, str]:
    code = main(list(argv))
    return code, capsys.readouterr().out


def test_cli_end_to_end(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CP_FLAG_EXTERNAL_GEOCODING_ENABLED", "false")
    db = str(tmp_path / "corridor.db")

    code, out = _run(capsys, "--db-path", db, "init-db")
    assert code == 0
    assert json.loads(out)["db_path"] == db

    code, out = _run(capsys, "--db-path", db, "create-operation", "--name", "Jonglei", "--bounds", "3.5,24,12.5,36")
    operation = json.loads(out)
    assert operation["region"]["center"] == [8.0, 30.0]

    code, out = _run(
        capsys, "--db-path", db, "set-corridor", "--operation-id", operation["id"], "--waypoints", "8.0,31.0;8.0,32.0"
    )
    assert [w["name"] for w in json.loads(out)["waypoints"]] == ["WP1", "WP2"]

    code, out = _run(
        capsys,
        "--db-path",
        db,
        "ingest-brief",
        "--operation-id",
        operation["id"],
        "--text",
        "Heavy bombardment reported near Lankien on 2026-02-03.",
    )
    assert code == 0
    drafts = json.loads(out)["drafts"]
    assert len(drafts) == 1

    code, out = _run(capsys, "--db-path", db, "list-drafts", "--operation-id", operation["id"])
    assert [d["id"] for d in json.loads(out)] == [drafts[0]["id"]]

    code, out = _run(capsys, "--db-path", db, "confirm-draft", "--draft-id", drafts[0]["id"], "--lat", "8.28", "--lon", "31.6")
    assert json.loads(out)["source"] == "AI_CONFIRMED"

    code, out = _run(capsys, "--db-path", db, "assess-route", "--operation-id", operation["id"], "--buffer-km", "40")
    assessment = json.loads(out)
    assert assessment["risk_score"] == 0.15
    assert "buffer" not in assessment

    report_path = tmp_path / "report.md"
    code, out = _run(
        capsys, "--db-path", db, "export", "--operation-id", operation["id"], "--format", "markdown", "--output", str(report_path)
    )
    assert code == 0
    assert "Bombardment in Lankien" in report_path.read_text(encoding="utf-8")


def test_cli_reports_domain_errors(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    db = str(tmp_path / "corridor.db")
    code, out = _run(capsys, "--db-path", db, "reject-draft", "--draft-id", "missing")
    assert code == 1
    assert "Draft not found: missing" in out


def test_cli_import_v3(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    payload = tmp_path / "event.json"
    payload.write_text(
        json.dumps({"name": "Legacy", "incidents": [{"ti": "Looting", "tp": "looting", "s": "high", "a": 8.0, "o": 31.0}]}),
        encoding="utf-8",
    )
    code, out = _run(capsys, "--db-path", str(tmp_path / "corridor.db"), "import-v3", "--file", str(payload))
    assert code == 0
    assert json.loads(out)["name"] == "Legacy"


def test_cli_import_v3_malformed_event_reports_error(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    db = str(tmp_path / "corridor.db")
    payload = tmp_path / "event.json"
    payload.write_text(json.dumps({"id": "evt-bad", "name": "Bad", "incidents": [{"ti": "No coordinate"}]}), encoding="utf-8")

    code, out = _run(capsys, "--db-path", db, "import-v3", "--file", str(payload))
    assert code == 1
    assert "Malformed v3 event" in out

    code, out = _run(capsys, "--db-path", db, "export", "--operation-id", "evt-bad")
    assert code == 1
    assert "Operation not found: evt-bad" in out
