"""Properties of the rank algebra and the reorder planner."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from clarity.store.model import Item
from clarity.store.ordering import plan_reorder, sort_by_rank
from clarity.store.rank import RANK_ALPHABET, rank_between, spaced_ranks

ranks = st.text(alphabet=RANK_ALPHABET, min_size=1, max_size=8).filter(lambda r: not r.endswith("0"))


@given(ranks, ranks)
def test_between_is_strictly_inside(a, b):
    if a == b:
        return
    lower, upper = min(a, b), max(a, b)
    mid = rank_between(lower, upper)
    assert lower < mid < upper
    assert not mid.endswith("0")


@given(ranks)
def test_unbounded_sides(a):
    assert rank_between(a, "") > a
    assert rank_between("", a) < a


@given(st.integers(min_value=1, max_value=400))
def test_spaced_ranks_are_increasing(count):
    out = spaced_ranks(count)
    assert len(out) == count
    assert all(out[i] < out[i + 1] for i in range(count - 1))
    assert all(r and not r.endswith("0") for r in out)


T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)

sibling_ranks = st.lists(
    st.one_of(st.just(""), st.sampled_from(["h", "q", "9"]), ranks),
    min_size=1,
    max_size=8,
)


@settings(max_examples=200)
@given(sibling_ranks, st.data())
def test_reorder_places_item_exactly(rank_list, data):
    items = [
        Item(
            id=f"item-{i}",
            project_id="proj-1",
            outline_id="out-1",
            title=str(i),
            owner_actor_id="act-1",
            rank=rank,
            created_at=T0 + timedelta(seconds=i),
        )
        for i, rank in enumerate(rank_list, start=1)
    ]
    moved = data.draw(st.sampled_from(items))
    target = data.draw(st.integers(min_value=0, max_value=len(items) - 1))

    before = [it.id for it in sort_by_rank(items)]
    plan = plan_reorder(items, moved.id, target)

    expected = [i for i in before if i != moved.id]
    expected.insert(target, moved.id)
    assert plan.order == expected

    updated = [replace(it, rank=plan.rank_by_id.get(it.id, it.rank)) for it in items]
    assert [it.id for it in sort_by_rank(updated)] == expected
    if not plan.used_fallback:
        assert set(plan.rank_by_id) <= {moved.id}
