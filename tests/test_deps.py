from __future__ import annotations

import pytest

from clarity.domain.deps import blocks_graph, deps_tree, find_cycles
from clarity.errors import ConflictError, InvalidArgumentError, NotFoundError
from clarity.store.model import Aggregate, Dependency


def test_find_cycles_reports_each_ring_once():
    graph = {"b": ["c"], "c": ["a"], "a": ["b"], "d": ["a"]}
    assert find_cycles(graph) == [["a", "b", "c", "a"]]


def test_find_cycles_self_loop_and_acyclic():
    assert find_cycles({"x": ["x"]}) == [["x", "x"]]
    assert find_cycles({"a": ["b"], "b": ["c"]}) == []


def test_long_chains_do_not_exhaust_the_stack():
    depth = 3000
    chain = {f"item-{i}": [f"item-{i + 1}"] for i in range(depth)}
    assert find_cycles(chain) == []

    chain[f"item-{depth}"] = ["item-0"]
    (ring,) = find_cycles(chain)
    assert len(ring) == depth + 2
    assert ring[0] == ring[-1] == "item-0"

    agg = Aggregate()
    agg.deps = [Dependency(id=f"dep-{i}", from_item_id=f"item-{i}", to_item_id=f"item-{i + 1}") for i in range(depth)]
    node = deps_tree(agg, "item-0")
    for _ in range(depth):
        (node,) = node["blocksOn"]
    assert node == {"id": f"item-{depth}"}


def test_dep_add_blocks_and_related(seeded):
    a = seeded.item("A")
    b = seeded.item("B")
    dep = seeded.engine.dep_add(a.id, blocks=b.id)
    assert (dep.from_item_id, dep.to_item_id, dep.type) == (a.id, b.id, "blocks")
    rel = seeded.engine.dep_add(b.id, related=a.id)
    assert rel.type == "related"
    assert blocks_graph(seeded.engine.agg) == {a.id: [b.id]}
    assert [d.id for d in seeded.engine.dep_list(a.id)] == [dep.id, rel.id]


def test_dep_add_rejects_bad_input(seeded):
    a = seeded.item("A")
    b = seeded.item("B")
    with pytest.raises(InvalidArgumentError, match="itself"):
        seeded.engine.dep_add(a.id, blocks=a.id)
    with pytest.raises(InvalidArgumentError):
        seeded.engine.dep_add(a.id)
    with pytest.raises(InvalidArgumentError):
        seeded.engine.dep_add(a.id, blocks=b.id, related=b.id)
    with pytest.raises(NotFoundError, match="item not found: item-99"):
        seeded.engine.dep_add(a.id, blocks="item-99")

    seeded.engine.dep_add(a.id, blocks=b.id)
    with pytest.raises(ConflictError, match="already exists"):
        seeded.engine.dep_add(a.id, blocks=b.id)


def test_dep_tree_terminates_on_cycles(seeded):
    a = seeded.item("A")
    b = seeded.item("B")
    c = seeded.item("C")
    eng = seeded.engine
    eng.dep_add(a.id, blocks=b.id)
    eng.dep_add(b.id, blocks=c.id)
    eng.dep_add(c.id, blocks=a.id)

    tree = eng.dep_tree(a.id)
    assert tree["id"] == a.id
    assert tree["title"] == "A"
    leaf = tree["blocksOn"][0]["blocksOn"][0]["blocksOn"][0]
    assert leaf == {"id": a.id, "title": "A", "status": "todo"}
    assert eng.dep_cycles() == [[a.id, b.id, c.id, a.id]]


def test_dep_remove(seeded):
    a = seeded.item("A")
    b = seeded.item("B")
    dep = seeded.engine.dep_add(a.id, blocks=b.id)
    seeded.engine.dep_remove(dep.id)
    assert seeded.engine.dep_list() == []
    with pytest.raises(NotFoundError, match="dependency not found"):
        seeded.engine.dep_remove(dep.id)


def test_dep_tree_truncates_at_depth(seeded):
    eng = seeded.engine
    items = [seeded.item(t) for t in "ABCD"]
    for upper, lower in zip(items, items[1:]):
        eng.dep_add(upper.id, blocks=lower.id)

    tree = eng.dep_tree(items[0].id, max_depth=2)
    second = tree["blocksOn"][0]["blocksOn"][0]
    assert second["id"] == items[2].id
    assert second["truncated"] is True
    assert "blocksOn" not in second
    assert "truncated" not in eng.dep_tree(items[0].id)["blocksOn"][0]["blocksOn"][0]["blocksOn"][0]
    with pytest.raises(InvalidArgumentError, match="--depth"):
        eng.dep_tree(items[0].id, max_depth=0)
