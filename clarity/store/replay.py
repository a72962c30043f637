"""
Replay: fold the event log into an Aggregate.

Events are applied in file order. Every recognised type mutates the
aggregate the way the emitting command did; checks that the command would
have enforced are only logged here, because history may contain
corrections. Unknown types are counted as skipped, never fatal.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable

from . import events as ev_types
from .eventlog import EventLog
from .events import Event
from .model import (
    ACTOR_AGENT,
    ACTOR_HUMAN,
    DEP_BLOCKS,
    Actor,
    Aggregate,
    Attachment,
    Comment,
    DateTime,
    Dependency,
    Item,
    Outline,
    OutlineStatusDef,
    Project,
    WorklogEntry,
)
from .ordering import insert_index, next_sibling_rank, plan_reorder, sort_by_rank
from .util import parse_ts
from ..errors import ClarityError

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    aggregate: Aggregate
    applied_count: int = 0
    skipped_count: int = 0
    skipped_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied_count,
            "skipped": self.skipped_count,
            "skippedTypes": dict(sorted(self.skipped_types.items())),
        }


def replay_events(events: Iterable[Event]) -> ReplayResult:
    """Apply `events` in order to an empty aggregate."""
    agg = Aggregate()
    applied = 0
    skipped: Counter[str] = Counter()
    seen_ids: list[str] = []

    for event in events:
        seen_ids.extend(_ids_in(event))
        handler = _HANDLERS.get(event.type)
        if handler is None:
            if event.is_known:
                # Local-only records carry nothing for the shared state.
                applied += 1
            else:
                skipped[event.type] += 1
            continue
        handler(agg, event)
        applied += 1

    agg.rebuild_next_ids(seen_ids)
    return ReplayResult(
        aggregate=agg,
        applied_count=applied,
        skipped_count=sum(skipped.values()),
        skipped_types=dict(skipped),
    )


def _ids_in(event: Event) -> list[str]:
    """Every id an event hands out or names, so removed entities still hold their counter."""
    ids = [event.id, event.entity_id]
    payload_id = event.payload.get("id")
    if isinstance(payload_id, str):
        ids.append(payload_id)
    return ids


def replay_workspace(workspace_dir: Path) -> ReplayResult:
    return replay_events(EventLog(workspace_dir).read_events())


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return str(value).strip() if value is not None else ""


def _lenient(event: Event, message: str, *args: Any) -> None:
    logger.warning("replay %s %s (%s): " + message, event.type, event.id, event.entity_id, *args)


def _touch(item: Item, event: Event) -> None:
    item.updated_at = event.ts


def _item(agg: Aggregate, event: Event) -> Item | None:
    item = agg.find_item(event.entity_id)
    if item is None:
        _lenient(event, "item not found")
    return item


def _outline(agg: Aggregate, event: Event) -> Outline | None:
    outline = agg.find_outline(event.entity_id)
    if outline is None:
        _lenient(event, "outline not found")
    return outline


def _creates_cycle(agg: Aggregate, item_id: str, parent_id: str | None) -> bool:
    seen = {item_id}
    cur = parent_id
    while cur:
        if cur in seen:
            return True
        seen.add(cur)
        parent = agg.find_item(cur)
        cur = parent.parent_id if parent is not None else None
    return False


def _apply_ranks(agg: Aggregate, event: Event, ranks: Any) -> None:
    if not isinstance(ranks, dict):
        return
    for item_id, rank in ranks.items():
        target = agg.find_item(str(item_id))
        rank = str(rank or "").strip()
        if target is None or not rank:
            continue
        target.rank = rank
        _touch(target, event)


def _apply_relative_move(agg: Aggregate, event: Event, item: Item, payload: dict[str, Any]) -> None:
    """Older move events only name a before/after reference; re-plan the ranks."""
    before = _text(payload, "before")
    after = _text(payload, "after")
    if not before and not after:
        return
    sibs = agg.siblings(item.outline_id, item.parent_id, include_id=item.id)
    others = [s for s in sort_by_rank(sibs) if s.id != item.id]
    try:
        idx = insert_index(others, before=before or None, after=None if before else after)
        plan = plan_reorder(sibs, item.id, idx)
    except ClarityError as exc:
        _lenient(event, "cannot re-plan move: %s", exc)
        return
    _apply_ranks(agg, event, plan.rank_by_id)


# -----------------------------------------------------------------------------
# Identity and projects
# -----------------------------------------------------------------------------


def _identity_create(agg: Aggregate, event: Event) -> None:
    p = event.payload
    actor_id = event.entity_id
    if not actor_id:
        _lenient(event, "missing actor id")
        return
    kind = _text(p, "kind").lower() or ACTOR_HUMAN
    if kind not in (ACTOR_HUMAN, ACTOR_AGENT):
        _lenient(event, "unknown actor kind %r", kind)
    user_id = _text(p, "userId") or None
    if kind == ACTOR_AGENT:
        owner = agg.find_actor(user_id)
        if owner is None or owner.kind != ACTOR_HUMAN:
            _lenient(event, "agent userId %r does not resolve to a human", user_id)
    existing = agg.find_actor(actor_id)
    if existing is not None:
        existing.name = _text(p, "name")
        existing.kind = kind
        existing.user_id = user_id
        return
    agg.actors.append(Actor(id=actor_id, kind=kind, name=_text(p, "name"), user_id=user_id))


def _project_create(agg: Aggregate, event: Event) -> None:
    project = Project.from_dict(event.payload)
    if not project.id:
        project.id = event.entity_id
    if agg.find_project(project.id) is not None:
        return
    agg.projects.append(project)


def _project_update(agg: Aggregate, event: Event) -> None:
    project = agg.find_project(event.entity_id)
    if project is None:
        _lenient(event, "project not found")
        return
    name = _text(event.payload, "name")
    if name:
        project.name = name
    if "archived" in event.payload:
        project.archived = bool(event.payload["archived"])


def _project_archive(agg: Aggregate, event: Event) -> None:
    project = agg.find_project(event.entity_id)
    if project is None:
        _lenient(event, "project not found")
        return
    project.archived = bool(event.payload.get("archived", True))


# -----------------------------------------------------------------------------
# Outlines
# -----------------------------------------------------------------------------


def _outline_create(agg: Aggregate, event: Event) -> None:
    outline = Outline.from_dict(event.payload)
    if not outline.id:
        outline.id = event.entity_id
    if agg.find_outline(outline.id) is not None:
        return
    if agg.find_project(outline.project_id) is None:
        _lenient(event, "project %r not found", outline.project_id)
    agg.outlines.append(outline)


def _outline_rename(agg: Aggregate, event: Event) -> None:
    outline = _outline(agg, event)
    if outline is not None:
        outline.name = _text(event.payload, "name") or None


def _outline_set_description(agg: Aggregate, event: Event) -> None:
    outline = _outline(agg, event)
    if outline is not None:
        outline.description = _text(event.payload, "description")


def _outline_archive(agg: Aggregate, event: Event) -> None:
    outline = _outline(agg, event)
    if outline is not None:
        outline.archived = bool(event.payload.get("archived", True))


def _status_add(agg: Aggregate, event: Event) -> None:
    outline = _outline(agg, event)
    if outline is None:
        return
    p = event.payload
    status_def = OutlineStatusDef(
        id=_text(p, "id"),
        label=_text(p, "label"),
        is_end_state=bool(p.get("isEndState", False)),
        requires_note=bool(p.get("requiresNote", p.get("requireNote", False))),
    )
    if any(d.id == status_def.id or d.label == status_def.label for d in outline.status_defs):
        _lenient(event, "status %r already defined", status_def.id)
    outline.status_defs.append(status_def)


def _status_remove(agg: Aggregate, event: Event) -> None:
    outline = _outline(agg, event)
    if outline is None:
        return
    status_id = _text(event.payload, "id")
    if any(it.outline_id == outline.id and it.status_id == status_id for it in agg.items):
        _lenient(event, "status %r removed while in use", status_id)
    outline.status_defs = [d for d in outline.status_defs if d.id != status_id]


def _status_update(agg: Aggregate, event: Event) -> None:
    outline = _outline(agg, event)
    if outline is None:
        return
    p = event.payload
    key = _text(p, "id") or _text(p, "key")
    target = next((d for d in outline.status_defs if key and key in (d.id, d.label)), None)
    if target is None:
        _lenient(event, "status %r not found", key)
        return
    label = _text(p, "label")
    if label:
        target.label = label
    if p.get("isEndState") is not None:
        target.is_end_state = bool(p["isEndState"])
    if p.get("end"):
        target.is_end_state = True
    if p.get("notEnd"):
        target.is_end_state = False
    if p.get("requiresNote") is not None:
        target.requires_note = bool(p["requiresNote"])
    if p.get("requireNote"):
        target.requires_note = True
    if p.get("noRequireNote"):
        target.requires_note = False


def _status_reorder(agg: Aggregate, event: Event) -> None:
    outline = _outline(agg, event)
    if outline is None:
        return
    labels = event.payload.get("labels") or []
    by_label = {d.label: d for d in outline.status_defs}
    ordered: list[OutlineStatusDef] = []
    seen: set[str] = set()
    for label in labels:
        label = str(label).strip()
        if label and label not in seen and label in by_label:
            ordered.append(by_label[label])
            seen.add(label)
    # Labels missing from the event keep their relative order at the end.
    ordered.extend(d for d in outline.status_defs if d.label not in seen)
    outline.status_defs = ordered


# -----------------------------------------------------------------------------
# Items
# -----------------------------------------------------------------------------


def _item_create(agg: Aggregate, event: Event) -> None:
    item = Item.from_dict(event.payload)
    if not item.id:
        item.id = event.entity_id
    if agg.find_item(item.id) is not None:
        return
    outline = agg.find_outline(item.outline_id)
    if outline is None or outline.project_id != item.project_id:
        _lenient(event, "outline %r not in project %r", item.outline_id, item.project_id)
    if item.parent_id:
        parent = agg.find_item(item.parent_id)
        if parent is None or parent.outline_id != item.outline_id:
            _lenient(event, "parent %r not in outline", item.parent_id)
    if item.status_id and agg.status_def(item.outline_id, item.status_id) is None:
        _lenient(event, "status %r not defined on outline", item.status_id)
    if agg.find_actor(item.owner_actor_id) is None:
        _lenient(event, "owner %r not found", item.owner_actor_id)
    agg.items.append(item)


def _item_field(setter: Callable[[Item, dict[str, Any]], None]) -> Callable[[Aggregate, Event], None]:
    def apply(agg: Aggregate, event: Event) -> None:
        item = _item(agg, event)
        if item is None:
            return
        setter(item, event.payload)
        _touch(item, event)

    return apply


def _set_title(item: Item, p: dict[str, Any]) -> None:
    item.title = str(p.get("title") or "")


def _set_description(item: Item, p: dict[str, Any]) -> None:
    item.description = str(p.get("description") or "")


def _set_priority(item: Item, p: dict[str, Any]) -> None:
    item.priority = bool(p.get("priority", False))


def _set_on_hold(item: Item, p: dict[str, Any]) -> None:
    item.on_hold = bool(p.get("onHold", False))


def _set_due(item: Item, p: dict[str, Any]) -> None:
    item.due = DateTime.from_dict(p.get("due"))


def _set_schedule(item: Item, p: dict[str, Any]) -> None:
    item.schedule = DateTime.from_dict(p.get("schedule"))


def _set_archived(item: Item, p: dict[str, Any]) -> None:
    item.archived = bool(p.get("archived", True))


def _tags_add(item: Item, p: dict[str, Any]) -> None:
    tag = _text(p, "tag")
    if tag and tag not in item.tags:
        item.tags.append(tag)


def _tags_remove(item: Item, p: dict[str, Any]) -> None:
    tag = _text(p, "tag")
    item.tags = [t for t in item.tags if t != tag]


def _tags_set(item: Item, p: dict[str, Any]) -> None:
    item.tags = [str(t).strip() for t in (p.get("tags") or []) if str(t).strip()]


def _item_set_status(agg: Aggregate, event: Event) -> None:
    item = _item(agg, event)
    if item is None:
        return
    status = _text(event.payload, "to") or _text(event.payload, "status")
    if status and agg.status_def(item.outline_id, status) is None:
        _lenient(event, "status %r not defined on outline", status)
    item.status_id = status
    _touch(item, event)


def _delegation(item: Item, event: Event) -> tuple[str | None, datetime | None]:
    p = event.payload
    delegated_from = _text(p, "ownerDelegatedFrom") or None
    if delegated_from is None:
        return None, None
    if "ownerDelegatedAt" in p:
        try:
            return delegated_from, parse_ts(_text(p, "ownerDelegatedAt")) or event.ts
        except ValueError:
            _lenient(event, "bad ownerDelegatedAt %r", p.get("ownerDelegatedAt"))
            return delegated_from, event.ts
    # Older payloads carry no timestamp; an unchanged delegation keeps its own.
    if delegated_from == item.owner_delegated_from and item.owner_delegated_at is not None:
        return delegated_from, item.owner_delegated_at
    return delegated_from, event.ts


def _item_set_assign(agg: Aggregate, event: Event) -> None:
    item = _item(agg, event)
    if item is None:
        return
    p = event.payload
    assignee = _text(p, "assignedActorId")
    item.assigned_actor_id = assignee or None
    if "ownerActorId" in p:
        # The command recorded the ownership outcome explicitly.
        item.owner_actor_id = _text(p, "ownerActorId") or item.owner_actor_id
        item.owner_delegated_from, item.owner_delegated_at = _delegation(item, event)
    elif assignee and item.owner_actor_id != assignee:
        if item.owner_actor_id:
            item.owner_delegated_from = item.owner_actor_id
            item.owner_delegated_at = event.ts
        item.owner_actor_id = assignee
    _touch(item, event)


def _item_move(agg: Aggregate, event: Event) -> None:
    item = _item(agg, event)
    if item is None:
        return
    rank = _text(event.payload, "rank")
    if rank:
        item.rank = rank
        _touch(item, event)
    else:
        _apply_relative_move(agg, event, item, event.payload)
    _apply_ranks(agg, event, event.payload.get("rebalance"))


def _item_set_parent(agg: Aggregate, event: Event) -> None:
    item = _item(agg, event)
    if item is None:
        return
    p = event.payload
    parent_id = _text(p, "parent")
    if parent_id.lower() == "none":
        parent_id = ""
    if parent_id:
        parent = agg.find_item(parent_id)
        if parent is None or parent.outline_id != item.outline_id:
            _lenient(event, "parent %r not in outline", parent_id)
        if _creates_cycle(agg, item.id, parent_id):
            _lenient(event, "ignoring parent %r: cycle", parent_id)
            return
    item.parent_id = parent_id or None
    rank = _text(p, "rank")
    if rank:
        item.rank = rank
    else:
        _apply_relative_move(agg, event, item, p)
    _apply_ranks(agg, event, p.get("rebalance"))
    _touch(item, event)


def _item_indent(agg: Aggregate, event: Event) -> None:
    item = _item(agg, event)
    if item is None:
        return
    under = _text(event.payload, "under")
    if not under:
        return
    if _creates_cycle(agg, item.id, under):
        _lenient(event, "ignoring indent under %r: cycle", under)
        return
    item.parent_id = under
    item.rank = next_sibling_rank(agg, item.outline_id, under, exclude_id=item.id)
    _touch(item, event)


def _item_outdent(agg: Aggregate, event: Event) -> None:
    item = _item(agg, event)
    if item is None:
        return
    parent_id = _text(event.payload, "fromParent") or (item.parent_id or "")
    if not parent_id:
        return
    parent = agg.find_item(parent_id)
    item.parent_id = parent.parent_id if parent is not None else None
    item.rank = next_sibling_rank(agg, item.outline_id, item.parent_id, exclude_id=item.id)
    _touch(item, event)


def _item_move_outline(agg: Aggregate, event: Event) -> None:
    item = _item(agg, event)
    if item is None:
        return
    target = _text(event.payload, "to")
    if target:
        outline = agg.find_outline(target)
        if outline is None or outline.project_id != item.project_id:
            _lenient(event, "target outline %r not in project", target)
        item.outline_id = target
    item.parent_id = None
    item.status_id = _text(event.payload, "status")
    item.rank = _text(event.payload, "rank") or next_sibling_rank(
        agg, item.outline_id, None, exclude_id=item.id
    )
    _touch(item, event)


# -----------------------------------------------------------------------------
# Dependencies, comments, worklog, attachments
# -----------------------------------------------------------------------------


def _dep_add(agg: Aggregate, event: Event) -> None:
    dep = Dependency.from_dict(event.payload)
    if not dep.id:
        dep.id = event.entity_id
    if agg.find_dep(dep.id) is not None:
        return
    if agg.find_item(dep.from_item_id) is None or agg.find_item(dep.to_item_id) is None:
        _lenient(event, "dependency endpoint missing")
    if dep.type == DEP_BLOCKS and any(
        d.type == DEP_BLOCKS and d.from_item_id == dep.from_item_id and d.to_item_id == dep.to_item_id
        for d in agg.deps
    ):
        _lenient(event, "ignoring duplicate blocks edge %s -> %s", dep.from_item_id, dep.to_item_id)
        return
    agg.deps.append(dep)


def _dep_remove(agg: Aggregate, event: Event) -> None:
    dep_id = _text(event.payload, "id") or event.entity_id
    if agg.find_dep(dep_id) is None:
        _lenient(event, "dependency %r not found", dep_id)
        return
    agg.deps = [d for d in agg.deps if d.id != dep_id]


def _comment_add(agg: Aggregate, event: Event) -> None:
    comment = Comment.from_dict(event.payload)
    if not comment.id:
        comment.id = event.entity_id
    if agg.find_comment(comment.id) is None:
        agg.comments.append(comment)


def _worklog_add(agg: Aggregate, event: Event) -> None:
    entry = WorklogEntry.from_dict(event.payload)
    if not entry.id:
        entry.id = event.entity_id
    if agg.find_worklog(entry.id) is None:
        agg.worklog.append(entry)


def _attachment_add(agg: Aggregate, event: Event) -> None:
    attachment = Attachment.from_dict(event.payload)
    if not attachment.id:
        attachment.id = event.entity_id
    if agg.find_attachment(attachment.id) is None:
        agg.attachments.append(attachment)


def _attachment_remove(agg: Aggregate, event: Event) -> None:
    attachment_id = _text(event.payload, "id") or event.entity_id
    agg.attachments = [a for a in agg.attachments if a.id != attachment_id]


_HANDLERS: dict[str, Callable[[Aggregate, Event], None]] = {
    ev_types.IDENTITY_CREATE: _identity_create,
    ev_types.IDENTITY_SEED: _identity_create,
    ev_types.PROJECT_CREATE: _project_create,
    ev_types.PROJECT_UPDATE: _project_update,
    ev_types.PROJECT_RENAME: _project_update,
    ev_types.PROJECT_ARCHIVE: _project_archive,
    ev_types.OUTLINE_CREATE: _outline_create,
    ev_types.OUTLINE_RENAME: _outline_rename,
    ev_types.OUTLINE_SET_DESCRIPTION: _outline_set_description,
    ev_types.OUTLINE_ARCHIVE: _outline_archive,
    ev_types.OUTLINE_STATUS_ADD: _status_add,
    ev_types.OUTLINE_STATUS_UPDATE: _status_update,
    ev_types.OUTLINE_STATUS_REMOVE: _status_remove,
    ev_types.OUTLINE_STATUS_REORDER: _status_reorder,
    ev_types.ITEM_CREATE: _item_create,
    ev_types.ITEM_CREATED: _item_create,
    ev_types.ITEM_SET_TITLE: _item_field(_set_title),
    ev_types.ITEM_SET_DESCRIPTION: _item_field(_set_description),
    ev_types.ITEM_SET_STATUS: _item_set_status,
    ev_types.ITEM_SET_PRIORITY: _item_field(_set_priority),
    ev_types.ITEM_SET_ON_HOLD: _item_field(_set_on_hold),
    ev_types.ITEM_SET_DUE: _item_field(_set_due),
    ev_types.ITEM_SET_SCHEDULE: _item_field(_set_schedule),
    ev_types.ITEM_SET_ASSIGN: _item_set_assign,
    ev_types.ITEM_SET_PARENT: _item_set_parent,
    ev_types.ITEM_MOVE: _item_move,
    ev_types.ITEM_MOVE_OUTLINE: _item_move_outline,
    ev_types.ITEM_INDENT: _item_indent,
    ev_types.ITEM_OUTDENT: _item_outdent,
    ev_types.ITEM_TAGS_ADD: _item_field(_tags_add),
    ev_types.ITEM_TAGS_REMOVE: _item_field(_tags_remove),
    ev_types.ITEM_TAGS_SET: _item_field(_tags_set),
    ev_types.ITEM_ARCHIVE: _item_field(_set_archived),
    ev_types.DEP_ADD: _dep_add,
    ev_types.DEP_REMOVE: _dep_remove,
    ev_types.COMMENT_ADD: _comment_add,
    ev_types.WORKLOG_ADD: _worklog_add,
    ev_types.ATTACHMENT_ADD: _attachment_add,
    ev_types.ATTACHMENT_REMOVE: _attachment_remove,
}

