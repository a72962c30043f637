"""Item commands: create, read, edit, order, assign."""

from __future__ import annotations

from typing import Any, Sequence

from ..domain.status import is_end_state
from ..engine import Engine, MoveResult
from ..errors import InvalidArgumentError
from ..store.model import Item
from .runtime import Runtime, boundary


def _follow_up(item_id: str) -> list[str]:
    return [
        "clarity items show " + item_id,
        'clarity worklog add ' + item_id + ' --body "..."',
        'clarity comments add ' + item_id + ' --body "..."',
    ]


def _pickup_hints(eng: Engine, item: Item) -> list[str]:
    """Next steps for an agent looking at `item`."""
    actor = eng.agg.find_actor(eng.actor_override or eng.agg.current_actor_id)
    if actor is None or not actor.is_agent:
        return []
    hints = ["clarity items claim " + item.id]
    if is_end_state(eng.agg, item.outline_id, item.status_id):
        return hints
    outline = eng.agg.find_outline(item.outline_id)
    defs = outline.status_defs if outline is not None else []
    # The first status is the initial one; the next open status counts as "in progress".
    doing = next((d.id for d in defs[1:] if not d.is_end_state), "")
    done = next((d.id for d in defs if d.is_end_state), "")
    if doing and doing != item.status_id:
        hints.append("clarity items set-status " + item.id + " --status " + doing)
    hints.append('clarity worklog add ' + item.id + ' --body "..."')
    if done:
        hints.append("clarity items set-status " + item.id + " --status " + done)
    return hints


def _moved(rt: Runtime, result: MoveResult) -> int:
    meta: dict[str, Any] = {"noop": result.plan.is_noop}
    if result.plan.used_fallback:
        meta["rebalanceCount"] = result.plan.rebalance_count
    return rt.emit(result.item, meta=meta)


@boundary
def run_item_create(
    rt: Runtime,
    title: str,
    *,
    project_id: str | None = None,
    outline_id: str | None = None,
    parent_id: str | None = None,
    description: str = "",
    status: str | None = None,
    owner_id: str | None = None,
    assign_id: str | None = None,
    filed_from: str = "",
    priority: bool = False,
    on_hold: bool = False,
    due: str | None = None,
    schedule: str | None = None,
    tags: Sequence[str] = (),
) -> int:
    item = rt.engine().item_create(
        title,
        project_id=project_id,
        outline_id=outline_id,
        parent_id=parent_id,
        description=description,
        status=status,
        owner_id=owner_id,
        assign_id=assign_id,
        filed_from=filed_from,
        priority=priority,
        on_hold=on_hold,
        due=due,
        schedule=schedule,
        tags=tags,
    )
    return rt.emit(item, hints=["clarity items show " + item.id])


@boundary
def run_item_list(
    rt: Runtime,
    *,
    project_id: str | None = None,
    outline_id: str | None = None,
    status: str | None = None,
    include_archived: bool = False,
    assigned: str | None = None,
) -> int:
    items = rt.engine().item_list(
        project_id=project_id,
        outline_id=outline_id,
        status=status,
        include_archived=include_archived,
        assigned=assigned,
    )
    return rt.emit(items, meta={"count": len(items)})


@boundary
def run_item_show(rt: Runtime, item_id: str) -> int:
    eng = rt.engine()
    data = eng.item_show(item_id)
    item = data["item"]
    hints = _pickup_hints(eng, item) + [
        "clarity comments list " + item.id,
        "clarity worklog list " + item.id,
        "clarity deps list " + item.id,
        "clarity deps tree " + item.id,
        "clarity items events " + item.id,
    ]
    meta = {
        "children": len(data["children"]),
        "comments": len(data["comments"]),
        "worklog": len(data["worklog"]),
        "canEdit": eng.can_edit(item.id) if eng.agg.current_actor_id or eng.actor_override else False,
    }
    return rt.emit(data, meta=meta, hints=hints)


@boundary
def run_item_events(rt: Runtime, item_id: str, *, limit: int = 200) -> int:
    events = rt.engine().item_events(item_id, limit=limit)
    return rt.emit(events, meta={"count": len(events), "limit": limit})


@boundary
def run_item_set_title(rt: Runtime, item_id: str, title: str) -> int:
    return rt.emit(rt.engine().item_set_title(item_id, title))


@boundary
def run_item_set_description(rt: Runtime, item_id: str, description: str) -> int:
    return rt.emit(rt.engine().item_set_description(item_id, description))


@boundary
def run_item_set_status(rt: Runtime, item_id: str, status: str, *, note: str = "") -> int:
    eng = rt.engine()
    item = eng.item_set_status(item_id, status, note=note)
    hints = []
    if is_end_state(eng.agg, item.outline_id, item.status_id):
        hints.append("clarity items ready")
    return rt.emit(item, hints=hints)


@boundary
def run_item_set_priority(rt: Runtime, item_id: str, priority: bool) -> int:
    return rt.emit(rt.engine().item_set_priority(item_id, priority))


@boundary
def run_item_set_on_hold(rt: Runtime, item_id: str, on_hold: bool) -> int:
    return rt.emit(rt.engine().item_set_on_hold(item_id, on_hold))


def _at_or_clear(at: str | None, clear: bool) -> str | None:
    if clear and at:
        raise InvalidArgumentError("use --at or --clear, not both")
    if not clear and not (at or "").strip():
        raise InvalidArgumentError("missing --at (or --clear)")
    return None if clear else at


@boundary
def run_item_set_due(rt: Runtime, item_id: str, *, at: str | None = None, clear: bool = False) -> int:
    return rt.emit(rt.engine().item_set_due(item_id, _at_or_clear(at, clear)))


@boundary
def run_item_set_schedule(rt: Runtime, item_id: str, *, at: str | None = None, clear: bool = False) -> int:
    return rt.emit(rt.engine().item_set_schedule(item_id, _at_or_clear(at, clear)))


@boundary
def run_item_set_assign(
    rt: Runtime, item_id: str, assignee: str | None, *, clear: bool = False, take_assigned: bool = False
) -> int:
    if clear and assignee:
        raise InvalidArgumentError("use --assignee or --clear, not both")
    if not clear and not (assignee or "").strip():
        raise InvalidArgumentError("missing --assignee (or --clear)")
    target = None if clear else assignee
    return rt.emit(rt.engine().item_set_assign(item_id, target, take_assigned=take_assigned))


@boundary
def run_item_tags(rt: Runtime, action: str, item_id: str, tags: Sequence[str]) -> int:
    """`action` is add, remove or set; add and remove emit one event per tag."""
    eng = rt.engine()
    if action == "set":
        return rt.emit(eng.item_tags_set(item_id, tags))
    edit = eng.item_tags_add if action == "add" else eng.item_tags_remove
    for tag in tags:
        edit(item_id, tag)
    return rt.emit(eng.agg.require_item(item_id))


@boundary
def run_item_archive(rt: Runtime, item_id: str, *, archived: bool = True) -> int:
    return rt.emit(rt.engine().item_archive(item_id, archived=archived))


@boundary
def run_item_move(rt: Runtime, item_id: str, *, before: str | None = None, after: str | None = None) -> int:
    return _moved(rt, rt.engine().item_move(item_id, before=before, after=after))


@boundary
def run_item_set_parent(
    rt: Runtime, item_id: str, parent: str | None, *, before: str | None = None, after: str | None = None
) -> int:
    return _moved(rt, rt.engine().item_set_parent(item_id, parent, before=before, after=after))


@boundary
def run_item_move_outline(rt: Runtime, item_id: str, to: str, *, status: str | None = None) -> int:
    return rt.emit(rt.engine().item_move_outline(item_id, to, status=status))


@boundary
def run_item_claim(rt: Runtime, item_id: str, *, take_assigned: bool = False) -> int:
    item = rt.engine().item_claim(item_id, take_assigned=take_assigned)
    return rt.emit(item, hints=_follow_up(item.id))


@boundary
def run_items_ready(rt: Runtime, *, include_assigned: bool = False, include_on_hold: bool = False) -> int:
    items = rt.engine().items_ready(include_assigned=include_assigned, include_on_hold=include_on_hold)
    hints = []
    if items:
        hints = ["clarity items show " + items[0].id, "clarity items claim " + items[0].id]
    return rt.emit(items, meta={"count": len(items)}, hints=hints)
