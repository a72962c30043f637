from __future__ import annotations

import json

from clarity.store.doctor import check_invariants, run_doctor
from clarity.store.eventlog import EventLog
from clarity.store.model import Actor, Aggregate
from clarity.store.store import Store


def _append_raw(ws, *lines: str) -> None:
    log = EventLog(ws)
    with log.path.open("a", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


def _raw_event(event_id: str, event_type: str, entity_id: str, payload: dict, actor: str = "act-1") -> str:
    return json.dumps(
        {
            "id": event_id,
            "ts": "2099-01-01T00:00:00Z",
            "actorId": actor,
            "type": event_type,
            "entityId": entity_id,
            "payload": payload,
        }
    )


def test_clean_workspace_has_no_issues(seeded):
    seeded.item("A")
    report = run_doctor(seeded.dir, check_git=False)
    assert report.issues == []
    assert report.events_scanned == 4
    assert report.to_dict() == {"issues": [], "hasErrors": False}


def test_empty_workspace(workspace):
    report = run_doctor(workspace, check_git=False)
    assert report.issues == []
    assert report.events_scanned == 0


def test_malformed_line_and_merge_marker(seeded):
    _append_raw(seeded.dir, "not json", "<<<<<<< HEAD", "=======", ">>>>>>> origin/main")
    report = run_doctor(seeded.dir, check_git=False)
    assert report.codes() == ["malformed_json", "merge_marker", "merge_marker", "merge_marker"]
    assert report.has_errors
    first = report.issues[0].to_dict()
    assert first["line"] == 4
    assert first["level"] == "error"


def test_duplicate_event_id(seeded):
    first_line = EventLog(seeded.dir).path.read_text(encoding="utf-8").splitlines()[0]
    _append_raw(seeded.dir, first_line)
    report = run_doctor(seeded.dir, check_git=False)
    assert report.codes() == ["duplicate_event_id"]
    assert "also at" in report.issues[0].message


def test_unknown_type_and_missing_entity_are_warnings(seeded):
    _append_raw(
        seeded.dir,
        _raw_event("evt-90", "item.teleport", "item-1", {"to": "moon"}),
        _raw_event("evt-91", "item.set_title", "item-404", {"title": "ghost"}),
    )
    report = run_doctor(seeded.dir, check_git=False)
    assert sorted(report.codes()) == ["missing_entity", "unknown_type"]
    assert not report.has_errors


def test_missing_actor_and_fields(seeded):
    _append_raw(
        seeded.dir,
        _raw_event("evt-92", "project.update", "proj-1", {"name": "X"}, actor="act-77"),
        json.dumps({"id": "evt-93", "type": "project.update", "entityId": "proj-1", "payload": {}}),
    )
    codes = run_doctor(seeded.dir, check_git=False).codes()
    assert "missing_actor" in codes
    assert "missing_actor_id" in codes
    assert "missing_ts" in codes
    assert "empty_payload" in codes


def test_time_regression_warns(seeded):
    _append_raw(seeded.dir, _raw_event("evt-94", "project.update", "proj-1", {"name": "Y"}))
    old = _raw_event("evt-95", "project.update", "proj-1", {"name": "Z"}).replace("2099", "2001")
    _append_raw(seeded.dir, old)
    assert run_doctor(seeded.dir, check_git=False).codes() == ["time_regression"]


def test_invalid_workspace_meta(seeded):
    Store(seeded.dir).meta_path.write_text("{}", encoding="utf-8")
    assert run_doctor(seeded.dir, check_git=False).codes() == ["workspace_meta_missing_id"]


def test_legacy_create_types_count_as_created(seeded):
    created = {
        "id": "item-50",
        "projectId": seeded.project.id,
        "outlineId": seeded.outline.id,
        "title": "Old",
        "rank": "z",
        "status": "todo",
        "ownerActorId": "act-50",
    }
    _append_raw(
        seeded.dir,
        _raw_event("evt-96", "identity.seed", "act-50", {"name": "Old Hand", "kind": "human"}, actor="act-50"),
        _raw_event("evt-97", "item.created", "item-50", created, actor="act-50"),
        _raw_event("evt-98", "item.set_title", "item-50", {"title": "Renamed"}, actor="act-50"),
    )
    assert run_doctor(seeded.dir, check_git=False).codes() == []


def test_check_invariants_flags_orphan_agent():
    agg = Aggregate()
    agg.actors = [Actor(id="act-1", kind="agent", name="s1 Bot", user_id="act-9")]
    problems = check_invariants(agg)
    assert problems == [("error", "agent act-1 userId does not resolve to a human")]
