"""Status resolution, definition edits and completion gating."""

from __future__ import annotations

import pytest

from clarity.domain.status import (
    REASON_CHILDREN,
    REASON_DEPS,
    completion_blocker,
    new_status_id,
    normalize_status_input,
    resolve_status,
    slugify_status_id,
)
from clarity.errors import CompletionBlockedError, ConflictError, GateError, InvalidArgumentError
from clarity.store import events as ev
from clarity.store.store import Store


def test_normalize_status_input():
    assert normalize_status_input("TODO") == "todo"
    assert normalize_status_input("Done") == "done"
    assert normalize_status_input("none") == ""
    assert normalize_status_input("  ") == ""
    assert normalize_status_input("in-review") == "in-review"


def test_slugify():
    assert slugify_status_id("In Review!") == "in-review"
    assert slugify_status_id("***") == "status"


def test_resolve_by_id_or_label(seeded):
    agg = seeded.engine.agg
    oid = seeded.outline.id
    assert resolve_status(agg, oid, "doing") == "doing"
    assert resolve_status(agg, oid, "DOING") == "doing"
    assert resolve_status(agg, oid, "none") == ""
    with pytest.raises(InvalidArgumentError, match="invalid status"):
        resolve_status(agg, oid, "blocked")


def test_new_status_id_suffixes(seeded):
    outline = seeded.engine.agg.require_outline(seeded.outline.id)
    assert new_status_id(outline, "Todo") == "todo-2"


def test_status_cycle_returns_to_original(seeded):
    item = seeded.item("A")
    seeded.engine.item_set_status(item.id, "doing")
    back = seeded.engine.item_set_status(item.id, "todo")
    assert back.status_id == "todo"
    events = [e for e in Store(seeded.dir).read_events() if e.type == ev.ITEM_SET_STATUS]
    assert [(e.payload["from"], e.payload["to"]) for e in events] == [("todo", "doing"), ("doing", "todo")]


def test_children_block_completion(seeded):
    parent = seeded.item("P")
    child = seeded.item("C", parent_id=parent.id)
    agg = seeded.engine.agg
    assert completion_blocker(agg, parent.id) == REASON_CHILDREN
    with pytest.raises(CompletionBlockedError, match="has incomplete children"):
        seeded.engine.item_set_status(parent.id, "done")

    seeded.engine.item_set_status(child.id, "done")
    assert seeded.engine.item_set_status(parent.id, "done").status_id == "done"


def test_archived_and_unstatused_children_do_not_block(seeded):
    parent = seeded.item("P")
    archived = seeded.item("C1", parent_id=parent.id)
    seeded.item("C2", parent_id=parent.id, status="none")
    seeded.engine.item_archive(archived.id)
    assert completion_blocker(seeded.engine.agg, parent.id) == ""


def test_blockers_gate_completion(seeded):
    item = seeded.item("A")
    blocker = seeded.item("B")
    seeded.engine.dep_add(item.id, blocks=blocker.id)
    assert completion_blocker(seeded.engine.agg, item.id) == REASON_DEPS
    with pytest.raises(CompletionBlockedError, match=REASON_DEPS):
        seeded.engine.item_set_status(item.id, "done")

    seeded.engine.item_set_status(blocker.id, "done")
    seeded.engine.item_set_status(item.id, "done")


def test_related_deps_do_not_gate(seeded):
    item = seeded.item("A")
    other = seeded.item("B")
    seeded.engine.dep_add(item.id, related=other.id)
    assert seeded.engine.item_set_status(item.id, "done").status_id == "done"


def test_requires_note_gate_records_comment(seeded):
    oid = seeded.outline.id
    seeded.engine.status_add(oid, "Review", requires_note=True)
    item = seeded.item("A")
    with pytest.raises(GateError, match="requires a note"):
        seeded.engine.item_set_status(item.id, "Review")

    seeded.engine.item_set_status(item.id, "Review", note="please look")
    assert seeded.engine.agg.require_item(item.id).status_id == "review"
    assert [c.body for c in seeded.engine.agg.comments_for(item.id)] == ["please look"]


def test_status_defs_edit_and_remove(seeded):
    eng = seeded.engine
    oid = seeded.outline.id
    eng.status_add(oid, "Blocked")
    eng.status_update(oid, "blocked", label="On ice", end=True)
    d = eng.agg.status_def(oid, "blocked")
    assert d.label == "On ice"
    assert d.is_end_state

    eng.status_reorder(oid, ["DONE", "On ice", "TODO", "DOING"])
    assert [s.id for s in eng.status_list(oid)] == ["done", "blocked", "todo", "doing"]

    seeded.item("A", status="todo")
    with pytest.raises(ConflictError, match="in use"):
        eng.status_remove(oid, "todo")
    eng.status_remove(oid, "blocked")
    assert eng.agg.status_def(oid, "blocked") is None


def test_reorder_requires_every_label(seeded):
    with pytest.raises(ConflictError):
        seeded.engine.status_reorder(seeded.outline.id, ["TODO", "DONE"])


def test_status_edits_replay(seeded):
    eng = seeded.engine
    oid = seeded.outline.id
    eng.status_add(oid, "Review", requires_note=True)
    eng.status_reorder(oid, ["Review", "TODO", "DOING", "DONE"])
    store = Store(seeded.dir)
    store.snapshot_path.unlink()
    replayed = store.load().require_outline(oid)
    assert [d.id for d in replayed.status_defs] == ["review", "todo", "doing", "done"]
    assert replayed.status_defs[0].requires_note
