from __future__ import annotations

from clarity.domain.ready import blocked_ids, ready_items


def _board(seeded):
    bot = seeded.agent("s1 Bot")
    eng = seeded.engine
    a = seeded.item("A")
    b = seeded.item("B", assign_id=bot.id)
    c = seeded.item("C", status="done")
    d = seeded.item("D")
    e = seeded.item("E")
    eng.dep_add(d.id, blocks=e.id)
    f = seeded.item("F")
    eng.item_archive(f.id)
    seeded.item("G", on_hold=True)
    return bot, {it.title: it.id for it in (a, b, c, d, e, f)}


def _titles(items):
    return [it.title for it in items]


def test_assigned_to_me_comes_first(seeded):
    bot, _ = _board(seeded)
    assert _titles(ready_items(seeded.engine.agg, bot.id)) == ["B", "A", "E"]


def test_others_assignments_are_hidden_by_default(seeded):
    _board(seeded)
    agg = seeded.engine.agg
    assert _titles(ready_items(agg, seeded.human.id)) == ["A", "E"]
    assert _titles(ready_items(agg, seeded.human.id, include_assigned=True)) == ["A", "B", "E"]
    assert _titles(ready_items(agg, seeded.human.id, include_on_hold=True)) == ["A", "E", "G"]


def test_finishing_blocker_releases_item(seeded):
    _, ids = _board(seeded)
    eng = seeded.engine
    assert blocked_ids(eng.agg) == {ids["D"]}
    eng.item_set_status(ids["E"], "done")
    assert blocked_ids(eng.agg) == set()
    assert _titles(eng.items_ready()) == ["A", "D"]


def test_archived_blocker_does_not_block(seeded):
    _, ids = _board(seeded)
    seeded.engine.item_archive(ids["E"])
    assert ids["D"] not in blocked_ids(seeded.engine.agg)
