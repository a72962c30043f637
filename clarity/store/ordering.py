"""
Ordering planner for sibling sets.

A plan maps item ids to new ranks so that a moved item lands at an exact
index. The fast path touches only the moved item; when the set holds
duplicate or empty ranks, or no midpoint fits, the whole set is
rebalanced to evenly spaced ranks and every member is in the plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from ..errors import ConflictError, InvalidArgumentError
from .model import Aggregate, Item
from .rank import RankError, normalize_rank, rank_after, rank_between_unique, rank_initial, spaced_ranks

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class ReorderPlan:
    rank_by_id: dict[str, str] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)  # final sibling order, ids
    used_fallback: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.rank_by_id

    @property
    def rebalance_count(self) -> int:
        return len(self.rank_by_id) if self.used_fallback else 0

    def rebalance_map(self) -> dict[str, str]:
        return dict(self.rank_by_id) if self.used_fallback else {}


def rank_sort_key(item: Item) -> tuple[int, str, datetime, str]:
    """Rank first (items without a rank sort last), then createdAt, then id."""
    rank = normalize_rank(item.rank)
    return (0 if rank else 1, rank, item.created_at or _EPOCH, item.id)


def sort_by_rank(items: Sequence[Item]) -> list[Item]:
    return sorted(items, key=rank_sort_key)


def insert_index(siblings: Sequence[Item], *, before: str | None = None, after: str | None = None) -> int:
    """
    Index in `siblings` (already sorted, moved item excluded) for a before/after reference.

    With neither reference the item goes to the end.
    """
    if before and after:
        raise InvalidArgumentError("provide at most one of --before or --after")
    ref = before or after
    if not ref:
        return len(siblings)
    for idx, sib in enumerate(siblings):
        if sib.id == ref:
            return idx if before else idx + 1
    raise ConflictError(f"reference item not found among siblings: {ref}")


def plan_insert(siblings: Sequence[Item], moved: Item, insert_at: int) -> ReorderPlan:
    """
    Plan ranks for placing `moved` at `insert_at` among `siblings`.

    `siblings` must not contain `moved`; it is sorted here.
    """
    rest = [s for s in sort_by_rank(siblings) if s.id != moved.id]
    insert_at = max(0, min(insert_at, len(rest)))
    final = rest[:insert_at] + [moved] + rest[insert_at:]
    order = [it.id for it in final]

    other_ranks = [normalize_rank(it.rank) for it in rest]
    clean = all(other_ranks) and len(set(other_ranks)) == len(other_ranks)
    if clean:
        lower = other_ranks[insert_at - 1] if insert_at > 0 else ""
        upper = other_ranks[insert_at] if insert_at < len(rest) else ""
        try:
            rank = rank_between_unique(other_ranks, lower, upper)
        except RankError:
            rank = ""
        if rank:
            if rank == normalize_rank(moved.rank):
                return ReorderPlan(order=order)
            return ReorderPlan(rank_by_id={moved.id: rank}, order=order)

    ranks = spaced_ranks(len(final))
    return ReorderPlan(
        rank_by_id={it.id: r for it, r in zip(final, ranks)},
        order=order,
        used_fallback=True,
    )


def plan_reorder(siblings: Sequence[Item], moved_id: str, insert_at: int) -> ReorderPlan:
    """
    Plan a reorder within one sibling set.

    `siblings` includes the moved item; `insert_at` indexes the set after
    the moved item is removed. Moving to the current position is a no-op.
    """
    current = sort_by_rank(siblings)
    moved_idx = next((i for i, it in enumerate(current) if it.id == moved_id), -1)
    if moved_idx < 0:
        raise InvalidArgumentError(f"moved item not found in sibling set: {moved_id}")
    moved = current[moved_idx]
    rest = current[:moved_idx] + current[moved_idx + 1 :]
    insert_at = max(0, min(insert_at, len(rest)))
    if insert_at == moved_idx:
        return ReorderPlan(order=[it.id for it in current])
    return plan_insert(rest, moved, insert_at)


def next_sibling_rank(
    agg: Aggregate, outline_id: str, parent_id: str | None, *, exclude_id: str | None = None
) -> str:
    """Rank after the largest rank in the sibling set (archived members included)."""
    top = ""
    for it in agg.items:
        if it.id == exclude_id or it.outline_id != outline_id:
            continue
        if (it.parent_id or None) != (parent_id or None):
            continue
        rank = normalize_rank(it.rank)
        if rank > top:
            top = rank
    if not top:
        return rank_initial()
    try:
        return rank_after(top)
    except RankError:
        return top + "0"
