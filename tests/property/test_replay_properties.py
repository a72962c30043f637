"""Replay determinism and id allocation."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from clarity.engine import Engine
from clarity.store.model import Aggregate
from clarity.store.ordering import sort_by_rank
from clarity.store.reindex import reindex
from clarity.store.replay import replay_events
from clarity.store.store import Store

prefixes = st.sampled_from(["item", "proj", "out", "dep", "cmt", "evt"])


@given(st.lists(st.tuples(prefixes, st.integers(min_value=1, max_value=10_000)), max_size=30))
def test_next_id_is_above_everything_observed(seen):
    agg = Aggregate()
    agg.rebuild_next_ids(f"{p}-{n}" for p, n in seen)
    for prefix in ("item", "proj", "evt"):
        highest = max((n for p, n in seen if p == prefix), default=0)
        first = agg.next_id(prefix)
        second = agg.next_id(prefix)
        assert int(first.rsplit("-", 1)[1]) > highest
        assert int(second.rsplit("-", 1)[1]) > int(first.rsplit("-", 1)[1])


actions = st.lists(
    st.one_of(
        st.tuples(st.just("create"), st.text(alphabet="abcxyz ", min_size=1, max_size=6).filter(str.strip)),
        st.tuples(st.just("status"), st.sampled_from(["todo", "doing"])),
        st.tuples(st.just("first"), st.just("")),
        st.tuples(st.just("title"), st.text(alphabet="klm", min_size=1, max_size=4)),
    ),
    min_size=1,
    max_size=12,
)


@settings(max_examples=25, deadline=None)
@given(actions)
def test_snapshot_equals_replay(steps):
    with tempfile.TemporaryDirectory() as tmp:
        ws = Path(tmp) / "ws"
        eng = Engine.open(ws)
        eng.init()
        eng.identity_create("Hana", use=True)
        eng.project_create("Demo", use=True)
        eng.outline_create(name="Main")
        created: list[str] = []
        for op, arg in steps:
            if op == "create":
                created.append(eng.item_create(arg).id)
            elif not created:
                continue
            elif op == "status":
                eng.item_set_status(created[-1], arg)
            elif op == "title":
                eng.item_set_title(created[0], arg)
            elif op == "first" and len(created) > 1:
                first = sort_by_rank(eng.agg.items)[0]
                if first.id != created[-1]:
                    eng.item_move(created[-1], before=first.id)

        store = Store(ws)
        snapshot = json.loads(store.snapshot_path.read_text(encoding="utf-8"))
        events = store.read_events()
        replayed = replay_events(events).aggregate.to_dict()
        assert replayed["items"] == snapshot["items"]
        assert replay_events(events).aggregate.to_dict() == replayed


lifecycle = st.lists(
    st.sampled_from(["item", "dep", "undep", "attach", "detach", "reindex"]),
    min_size=1,
    max_size=15,
)


def _number(entity_id: str) -> int:
    return int(entity_id.rsplit("-", 1)[1])


@settings(max_examples=25, deadline=None)
@given(lifecycle)
def test_ids_never_reused_across_removals_and_reindex(steps):
    with tempfile.TemporaryDirectory() as tmp:
        ws = Path(tmp) / "ws"
        note = Path(tmp) / "note.txt"
        note.write_text("n", encoding="utf-8")
        eng = Engine.open(ws)
        eng.init()
        eng.identity_create("Hana", use=True)
        eng.project_create("Demo", use=True)
        eng.outline_create(name="Main")
        anchor = eng.item_create("anchor").id
        issued = {"item": [_number(anchor)], "dep": [], "att": []}
        deps: list[str] = []
        attachments: list[str] = []

        def record(prefix: str, entity_id: str) -> None:
            assert _number(entity_id) > max(issued[prefix], default=0)
            issued[prefix].append(_number(entity_id))

        for op in steps:
            if op == "item":
                record("item", eng.item_create("x").id)
            elif op == "dep":
                other = eng.item_create("y").id
                record("item", other)
                dep = eng.dep_add(other, related=anchor)
                record("dep", dep.id)
                deps.append(dep.id)
            elif op == "undep" and deps:
                eng.dep_remove(deps.pop())
            elif op == "attach":
                att = eng.attachment_add("item", anchor, note)
                record("att", att.id)
                attachments.append(att.id)
            elif op == "detach" and attachments:
                eng.attachment_remove(attachments.pop())
            elif op == "reindex":
                reindex(Store(ws))
                eng = Engine.open(ws)
