"""Item lifecycle through the engine."""

from __future__ import annotations

import pytest

from clarity.engine import Engine, parse_datetime_input
from clarity.errors import ConflictError, InvalidArgumentError, NotFoundError
from clarity.store import events as ev
from clarity.store.model import DateTime
from clarity.store.store import Store


def test_create_defaults(seeded):
    item = seeded.item("  Write docs  ")
    assert item.id == "item-1"
    assert item.title == "Write docs"
    assert item.status_id == "todo"
    assert item.rank == "h"
    assert item.owner_actor_id == seeded.human.id
    assert item.assigned_actor_id is None
    assert item.outline_id == seeded.outline.id
    assert seeded.item("Second").rank > item.rank


def test_create_by_agent_assigns_itself(seeded, act_as):
    bot = seeded.agent("s1 Bot")
    item = act_as(bot.id).item_create("From the bot")
    assert item.owner_actor_id == bot.id
    assert item.assigned_actor_id == bot.id


def test_create_records_origin_tags_and_dates(seeded):
    item = seeded.item(
        "Bug",
        description="Crash on save",
        filed_from="item-7",
        tags=["ui", " ui ", "", "crash"],
        due="2025-03-01",
        schedule="2025-02-28 09:30",
        priority=True,
    )
    assert item.description == "Filed from: item-7\n\nCrash on save"
    assert item.tags == ["ui", "crash"]
    assert item.due == DateTime(date="2025-03-01")
    assert item.schedule == DateTime(date="2025-02-28", time="09:30")
    assert item.priority


def test_parse_datetime_input():
    assert parse_datetime_input("none") is None
    assert parse_datetime_input("") is None
    assert parse_datetime_input("2025-01-02T03:04:05+01:00") == DateTime(date="2025-01-02", time="02:04")
    with pytest.raises(InvalidArgumentError, match="invalid datetime"):
        parse_datetime_input("tomorrow")


def test_create_needs_title_and_project(engine):
    engine.identity_create("Hana", use=True)
    with pytest.raises(InvalidArgumentError, match="missing --title"):
        engine.item_create("   ")
    with pytest.raises(InvalidArgumentError, match="missing --project"):
        engine.item_create("Orphan")


def test_create_without_outline_makes_one(seeded):
    other = seeded.engine.project_create("Side")
    item = seeded.item("Loose", project_id=other.id)
    outlines = seeded.engine.outline_list(project_id=other.id)
    assert [o.id for o in outlines] == [item.outline_id]
    types = [e.type for e in Store(seeded.dir).read_events()][-2:]
    assert types == [ev.OUTLINE_CREATE, ev.ITEM_CREATE]


def test_create_with_several_outlines_needs_choice(seeded):
    seeded.engine.outline_create(name="Second")
    with pytest.raises(InvalidArgumentError, match="multiple outlines"):
        seeded.item("Where?")


def test_field_edits_persist(seeded):
    eng = seeded.engine
    item = seeded.item("Draft")
    eng.item_set_title(item.id, "Final")
    eng.item_set_description(item.id, "Body")
    eng.item_set_on_hold(item.id, True)
    eng.item_tags_add(item.id, "x")
    eng.item_tags_add(item.id, "x")
    eng.item_tags_add(item.id, "y")
    eng.item_tags_remove(item.id, "x")
    eng.item_set_due(item.id, "2025-05-05")
    eng.item_set_due(item.id, "none")

    fresh = Engine.open(seeded.dir).agg.require_item(item.id)
    assert fresh.title == "Final"
    assert fresh.description == "Body"
    assert fresh.on_hold
    assert fresh.tags == ["y"]
    assert fresh.due is None


def test_set_parent_and_cycle(seeded):
    eng = seeded.engine
    a = seeded.item("A")
    b = seeded.item("B")
    c = seeded.item("C")
    eng.item_set_parent(b.id, a.id)
    eng.item_set_parent(c.id, b.id)
    assert eng.agg.require_item(c.id).parent_id == b.id
    with pytest.raises(ConflictError, match="cycle"):
        eng.item_set_parent(a.id, c.id)
    with pytest.raises(ConflictError, match="cycle"):
        eng.item_set_parent(a.id, a.id)

    eng.item_set_parent(c.id, "none")
    assert eng.agg.require_item(c.id).parent_id is None


def test_reparent_with_position(seeded):
    eng = seeded.engine
    parent = seeded.item("P")
    first = seeded.item("first", parent_id=parent.id)
    loose = seeded.item("loose")
    eng.item_set_parent(loose.id, parent.id, before=first.id)
    children = eng.item_show(parent.id)["children"]
    assert [c.id for c in children] == [loose.id, first.id]


def test_move_requires_same_parent(seeded):
    eng = seeded.engine
    parent = seeded.item("P")
    child = seeded.item("C", parent_id=parent.id)
    other = seeded.item("O")
    with pytest.raises(ConflictError, match="same parent"):
        eng.item_move(child.id, before=other.id)
    with pytest.raises(InvalidArgumentError, match="exactly one"):
        eng.item_move(other.id)


def test_move_to_another_outline(seeded):
    eng = seeded.engine
    item = seeded.item("Travels", status="doing", outline_id=seeded.outline.id)
    target = eng.outline_create(name="Later")
    eng.status_add(target.id, "Parked")

    moved = eng.item_move_outline(item.id, target.id)
    assert moved.outline_id == target.id
    assert moved.status_id == "doing"
    assert moved.rank == "h"

    eng.item_move_outline(item.id, seeded.outline.id, status="done")
    assert eng.agg.require_item(item.id).status_id == "done"

    eng.item_set_status(item.id, "todo")
    parent = eng.agg.require_item(item.id)
    seeded.item("Kid", parent_id=parent.id)
    with pytest.raises(ConflictError, match="children"):
        eng.item_move_outline(parent.id, target.id)


def test_move_outline_rejects_unknown_status(seeded):
    eng = seeded.engine
    eng.status_add(seeded.outline.id, "Parked")
    item = seeded.item("X", status="parked")
    target = eng.outline_create(name="Other")
    with pytest.raises(InvalidArgumentError, match="--set-status"):
        eng.item_move_outline(item.id, target.id)


def test_item_list_filters(seeded):
    eng = seeded.engine
    bot = seeded.agent("s1 Bot")
    a = seeded.item("A")
    b = seeded.item("B", assign_id=bot.id, status="doing")
    c = seeded.item("C")
    eng.item_archive(c.id)

    assert [it.id for it in eng.item_list()] == [a.id, b.id]
    assert [it.id for it in eng.item_list(include_archived=True)] == [a.id, b.id, c.id]
    assert [it.id for it in eng.item_list(status="DOING")] == [b.id]
    assert [it.id for it in eng.item_list(assigned="none")] == [a.id]
    assert [it.id for it in eng.item_list(assigned=bot.id)] == [b.id]


def test_comments_and_replies(seeded):
    eng = seeded.engine
    item = seeded.item("Talk")
    other = seeded.item("Elsewhere")
    first = eng.comment_add(item.id, "hello")
    reply = eng.comment_add(item.id, "hi back", reply_to=first.id)
    assert reply.reply_to_comment_id == first.id
    assert [c.body for c in eng.comment_list(item.id)] == ["hello", "hi back"]
    assert [c.body for c in eng.comment_list(item.id, limit=1, offset=1)] == ["hi back"]

    with pytest.raises(NotFoundError, match="comment not found"):
        eng.comment_add(item.id, "x", reply_to="cmt-99")
    with pytest.raises(InvalidArgumentError, match="same item"):
        eng.comment_add(other.id, "x", reply_to=first.id)
    with pytest.raises(InvalidArgumentError, match="missing --body"):
        eng.comment_add(item.id, "  ")


def test_worklog_is_private_to_the_human(seeded, act_as):
    eng = seeded.engine
    item = seeded.item("Shared")
    bot = seeded.agent("s1 Bot")
    outsider = eng.identity_create("Ivo")
    eng.worklog_add(item.id, "spent an hour")
    act_as(bot.id).worklog_add(item.id, "bot notes")

    eng.reload()
    assert [w.body for w in eng.worklog_list(item.id)] == ["spent an hour", "bot notes"]
    stranger = act_as(outsider.id)
    assert stranger.worklog_list(item.id) == []
    assert all(e.type != ev.WORKLOG_ADD for e in stranger.events_list(limit=0))
    assert any(e.type == ev.WORKLOG_ADD for e in act_as(bot.id).events_list(limit=0))


def test_events_list_returns_latest_oldest_first(seeded):
    item = seeded.item("A")
    seeded.engine.item_set_title(item.id, "B")
    seeded.engine.item_set_title(item.id, "C")
    latest = seeded.engine.events_list(limit=2)
    assert [e.payload.get("title") for e in latest] == ["B", "C"]
    assert [e.type for e in seeded.engine.item_events(item.id)] == [
        ev.ITEM_CREATE,
        ev.ITEM_SET_TITLE,
        ev.ITEM_SET_TITLE,
    ]


def test_project_and_outline_admin(seeded):
    eng = seeded.engine
    eng.project_rename(seeded.project.id, "Renamed")
    eng.outline_rename(seeded.outline.id, "Backlog")
    eng.outline_set_description(seeded.outline.id, "All the things")
    side = eng.project_create("Side")
    eng.project_archive(side.id)

    fresh = Engine.open(seeded.dir)
    assert fresh.project_current().name == "Renamed"
    assert [p.id for p in fresh.project_list()] == [seeded.project.id]
    assert len(fresh.project_list(include_archived=True)) == 2
    outline = fresh.agg.require_outline(seeded.outline.id)
    assert (outline.name, outline.description) == ("Backlog", "All the things")
