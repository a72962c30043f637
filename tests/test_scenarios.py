"""End-to-end flows: claim, completion gating, rank rebalance, ready, reindex, sync retry."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest
from click.testing import CliRunner

from clarity.cli import cli
from clarity.domain.status import REASON_BOTH
from clarity.engine import Engine
from clarity.errors import CompletionBlockedError, TakeAssignedRequiredError
from clarity.gitsync import sync
from clarity.store import events as ev
from clarity.store.reindex import reindex
from clarity.store.store import Store


def test_claim_requires_take_assigned_then_delegates(seeded, act_as):
    h = seeded.human
    a1 = seeded.agent("one")
    a2 = seeded.agent("two")
    x = seeded.item("X", assign_id=a1.id)
    assert x.owner_actor_id == h.id
    assert x.assigned_actor_id == a1.id

    store = Store(seeded.dir)
    before_snapshot = store.snapshot_path.read_text(encoding="utf-8")
    before_events = len(store.read_events())

    with pytest.raises(TakeAssignedRequiredError) as exc_info:
        act_as(a2.id).item_claim(x.id)
    assert "take-assigned" in str(exc_info.value)
    assert store.snapshot_path.read_text(encoding="utf-8") == before_snapshot
    assert len(store.read_events()) == before_events

    item = act_as(a2.id).item_claim(x.id, take_assigned=True)
    assert item.assigned_actor_id == a2.id
    assert item.owner_actor_id == a2.id
    assert item.owner_delegated_from == a1.id
    assert item.owner_delegated_at is not None

    reloaded = Engine.open(seeded.dir).agg.require_item(x.id)
    assert reloaded.owner_delegated_from == a1.id


def test_completion_blocked_by_children_and_deps(seeded):
    p = seeded.item("P")
    seeded.item("C", parent_id=p.id)
    q = seeded.item("Q", status="doing")
    seeded.engine.dep_add(p.id, blocks=q.id)

    with pytest.raises(CompletionBlockedError) as exc_info:
        seeded.engine.item_set_status(p.id, "done")
    assert REASON_BOTH in str(exc_info.value)
    assert "has incomplete children and incomplete dependencies" in str(exc_info.value)
    assert seeded.engine.agg.require_item(p.id).status_id == "todo"


def test_move_among_duplicate_ranks_rebalances_whole_set(seeded):
    a = seeded.item("a")
    b = seeded.item("b")
    c = seeded.item("c")

    store = Store(seeded.dir)
    agg = store.load()
    for item in agg.items:
        item.rank = "h"
    store.save(agg)

    eng = Engine.open(seeded.dir)
    result = eng.item_move(c.id, before=b.id)
    assert result.plan.order == [a.id, c.id, b.id]

    listed = [it.id for it in Engine.open(seeded.dir).item_list(outline_id=seeded.outline.id)]
    assert listed == [a.id, c.id, b.id]

    moves = [e for e in store.read_events() if e.type == ev.ITEM_MOVE]
    assert len(moves) == 1
    payload = moves[0].payload
    assert set(payload["rebalance"]) == {a.id, b.id, c.id}
    assert payload["rebalanceCount"] == 3
    ranks = payload["rebalance"]
    assert ranks[a.id] < ranks[c.id] < ranks[b.id]


def test_ready_lists_mine_first_and_filters(seeded, act_as):
    me = seeded.agent("me")
    other = seeded.agent("other")
    ready = seeded.item("item-ready")
    seeded.item("item-hold", on_hold=True)
    seeded.item("item-assigned-other", assign_id=other.id)
    mine = seeded.item("item-mine", assign_id=me.id)

    ids = [it.id for it in act_as(me.id).items_ready()]
    assert ids == [mine.id, ready.id]


def test_reindex_preserves_current_actor_hint(seeded):
    agent = seeded.agent("a")
    seeded.engine.identity_use(agent.id)

    store = Store(seeded.dir)
    assert json.loads(store.snapshot_path.read_text(encoding="utf-8"))["currentActorId"] == agent.id
    events = store.read_events()

    store.snapshot_path.unlink()
    result = reindex(store)

    assert result.aggregate.current_actor_id == agent.id
    assert json.loads(store.snapshot_path.read_text(encoding="utf-8"))["currentActorId"] == agent.id
    assert result.replay.applied_count == len(events)
    assert result.replay.skipped_count == 0


def _git(cwd: Path, *args: str) -> str:
    done = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return done.stdout.strip()


def test_sync_push_retries_after_non_fast_forward(tmp_path, git_env):
    remote = tmp_path / "remote.git"
    remote.mkdir()
    _git(remote, "init", "--bare")

    ws_a = tmp_path / "a"
    eng_a = Engine.open(ws_a)
    eng_a.init()
    eng_a.identity_create("Hana", use=True)
    sync.setup(ws_a, remote_url=str(remote))

    ws_b = tmp_path / "b"
    _git(tmp_path, "clone", str(remote), str(ws_b))

    # Remote moves ahead.
    eng_a.project_create("From A", use=True)
    assert sync.push(ws_a).pushed

    # Local has one uncommitted event.
    eng_b = Engine.open(ws_b)
    eng_b.project_create("From B")
    assert _git(ws_b, "status", "--porcelain")

    runner = CliRunner()
    result = runner.invoke(cli, ["--dir", str(ws_b), "sync", "push", "--pull", "-m", "clarity: from b"])
    assert result.exit_code == 0, result.output
    env = json.loads(result.stdout)
    assert env["data"] == {"committed": True, "pulled": True, "pushed": True}
    assert env["meta"]["steps"] == ["commit", "push", "pull --rebase", "push"]

    created = [e.payload["name"] for e in Store(ws_b).read_events() if e.type == ev.PROJECT_CREATE]
    assert sorted(created) == ["From A", "From B"]
