"""Export, import and snapshot-to-events migration."""

from __future__ import annotations

import json
import shutil

import pytest

from clarity.errors import ConflictError, NotFoundError
from clarity.store.store import Store
from clarity.workspace.backup import (
    export_workspace,
    import_workspace,
    migrate_sqlite_workspace,
    migrate_workspace,
)
from clarity.workspace.registry import Registry


@pytest.fixture
def populated(seeded):
    a = seeded.item("A")
    b = seeded.item("B", parent_id=a.id)
    seeded.engine.dep_add(b.id, related=a.id)
    seeded.engine.comment_add(a.id, "first")
    return seeded


def _summary(agg):
    return [(it.id, it.title, it.parent_id, it.rank, it.status_id) for it in agg.items]


def test_export_writes_backup(populated, tmp_path):
    target = tmp_path / "backup"
    data = export_workspace(Store(populated.dir), target, workspace_name="demo")
    assert data["eventsCount"] == 7
    assert sorted(p.name for p in target.iterdir()) == ["events.jsonl", "manifest.json", "state.json"]
    manifest = json.loads((target / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["workspace"]["name"] == "demo"
    assert manifest["files"] == {"state": "state.json", "events": "events.jsonl"}

    with pytest.raises(ConflictError, match="--force"):
        export_workspace(Store(populated.dir), target)
    export_workspace(Store(populated.dir), target, force=True, include_events=False)


def test_import_replays_events(populated, tmp_path):
    target = tmp_path / "backup"
    export_workspace(Store(populated.dir), target)
    registry = Registry()
    data = import_workspace(registry, target, "restored", use=True)
    assert data["eventsCount"] == 7

    restored = Store(registry.local_dir("restored"))
    agg = restored.load()
    original = Store(populated.dir).load()
    assert _summary(agg) == _summary(original)
    assert agg.current_actor_id == populated.human.id
    assert len(restored.read_events()) == 7
    assert registry.current()[0] == "restored"

    with pytest.raises(ConflictError):
        import_workspace(registry, target, "restored")
    import_workspace(registry, target, "restored", force=True, with_events=False)
    assert not restored.log.exists()
    assert _summary(restored.load()) == _summary(original)


def test_migrate_snapshot_only_workspace(populated, tmp_path):
    legacy = tmp_path / "legacy"
    (legacy / ".clarity").mkdir(parents=True)
    shutil.copy(Store(populated.dir).snapshot_path, legacy / ".clarity" / "state.json")

    data = migrate_workspace(legacy)
    assert data["eventsCount"] == 7
    assert data == {"dir": str(legacy), "eventsCount": 7, "gitInitialized": False, "committed": False}

    store = Store(legacy)
    store.snapshot_path.unlink()
    replayed = store.load()
    assert _summary(replayed) == _summary(Store(populated.dir).load())
    assert [c.body for c in replayed.comments] == ["first"]

    with pytest.raises(ConflictError, match="already has an event log"):
        migrate_workspace(legacy)


def test_migrate_sqlite_workspace(seeded, legacy_sqlite_dir, tmp_path):
    source_events = Store(seeded.dir).read_events()
    target = tmp_path / "migrated"

    data = migrate_sqlite_workspace(legacy_sqlite_dir, target)
    assert data["workspaceId"] == "ws-legacy"
    assert data["eventsCount"] == len(source_events)
    assert data["skippedCount"] == 0
    assert data["sqlitePath"].endswith("index.sqlite")

    store = Store(target)
    assert store.read_workspace_meta()["workspaceId"] == "ws-legacy"
    migrated = store.read_events()
    assert [(e.id, e.type, e.entity_id, e.payload) for e in migrated] == [
        (e.id, e.type, e.entity_id, e.payload) for e in source_events
    ]
    assert (target / "resources" / "notes.txt").read_text(encoding="utf-8") == "kept\n"
    assert ".clarity/" in (target / ".gitignore").read_text(encoding="utf-8")

    agg = store.load()
    assert _summary(agg) == _summary(Store(seeded.dir).load())
    assert [c.body for c in agg.comments] == ["first"]


def test_migrate_sqlite_refuses_non_empty_target(legacy_sqlite_dir, tmp_path):
    target = tmp_path / "busy"
    target.mkdir()
    (target / "README").write_text("mine\n", encoding="utf-8")
    with pytest.raises(ConflictError, match="not empty"):
        migrate_sqlite_workspace(legacy_sqlite_dir, target)
    assert sorted(p.name for p in target.iterdir()) == ["README"]

    empty = tmp_path / "empty-source"
    empty.mkdir()
    with pytest.raises(NotFoundError, match="sqlite event store"):
        migrate_sqlite_workspace(empty, tmp_path / "fresh")
