"""Ready selection: items an actor can pick up next."""

from __future__ import annotations

from ..store.model import DEP_BLOCKS, Aggregate, Item
from ..store.ordering import rank_sort_key
from .status import is_end_state


def blocked_ids(agg: Aggregate) -> set[str]:
    """Items with at least one blocks edge to a live, unfinished target."""
    blocked: set[str] = set()
    for dep in agg.deps:
        if dep.type != DEP_BLOCKS:
            continue
        target = agg.find_item(dep.to_item_id)
        if target is None:
            blocked.add(dep.from_item_id)
            continue
        if target.archived or is_end_state(agg, target.outline_id, target.status_id):
            continue
        blocked.add(dep.from_item_id)
    return blocked


def ready_items(
    agg: Aggregate,
    actor_id: str = "",
    *,
    include_assigned: bool = False,
    include_on_hold: bool = False,
    project_id: str = "",
) -> list[Item]:
    """
    Ready items, those assigned to `actor_id` first.

    Items assigned to another actor are left out unless `include_assigned`.
    Within each group items keep outline order (rank, then creation).
    """
    blocked = blocked_ids(agg)
    mine: list[Item] = []
    rest: list[Item] = []
    for item in agg.items:
        if item.archived or item.id in blocked:
            continue
        if project_id and item.project_id != project_id:
            continue
        if item.on_hold and not include_on_hold:
            continue
        if is_end_state(agg, item.outline_id, item.status_id):
            continue
        assignee = item.assigned_actor_id
        if assignee and actor_id and assignee == actor_id:
            mine.append(item)
        elif assignee and not include_assigned:
            continue
        else:
            rest.append(item)

    def key(item: Item) -> tuple[str, tuple]:
        return (item.outline_id, rank_sort_key(item))

    return sorted(mine, key=key) + sorted(rest, key=key)
