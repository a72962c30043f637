"""
Legacy snapshot migration and event synthesis.

Older snapshots used task-era field names, timestamp-valued due dates and
integer ordering. `migrate_snapshot_dict` rewrites the raw JSON before it
is parsed; `migrate_aggregate` fixes what only makes sense on the parsed
state (default outlines, ranks, status casing). `synthesize_events` turns
a snapshot into create events for workspaces that predate the event log.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from . import events as ev_types
from .events import Event, create_event
from .model import ACTOR_HUMAN, Aggregate, Item, Outline, default_status_defs
from .rank import RankError, rank_after, rank_initial
from .util import parse_ts, utcnow

_LEGACY_STATUS = {"TODO": "todo", "DOING": "doing", "DONE": "done"}


def _legacy_datetime(raw: Any) -> dict[str, Any] | None:
    """Timestamps at 09:00 or 00:00 were the old "date only" default."""
    try:
        ts = parse_ts(raw)
    except ValueError:
        return None
    if ts is None:
        return None
    hm = ts.strftime("%H:%M")
    if hm in ("09:00", "00:00"):
        return {"date": ts.strftime("%Y-%m-%d")}
    return {"date": ts.strftime("%Y-%m-%d"), "time": hm}


def _rename(row: dict[str, Any], old: str, new: str) -> bool:
    if old in row and not row.get(new):
        row[new] = row.pop(old)
        return True
    return False


def migrate_snapshot_dict(data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, int], bool]:
    """
    Rewrite legacy keys in a raw snapshot.

    Returns (data, legacy_order_by_item_id, changed).
    """
    changed = False
    if "tasks" in data and not data.get("items"):
        data["items"] = data.pop("tasks")
        changed = True

    legacy_order: dict[str, int] = {}
    for row in data.get("items") or []:
        if not isinstance(row, dict):
            continue
        if row.get("due") is None and row.get("dueAt"):
            row["due"] = _legacy_datetime(row.pop("dueAt"))
            changed = True
        if row.get("schedule") is None and row.get("scheduledAt"):
            row["schedule"] = _legacy_datetime(row.pop("scheduledAt"))
            changed = True
        if isinstance(row.get("order"), int):
            legacy_order[str(row.get("id"))] = row["order"]
        changed |= _rename(row, "statusId", "status")

    for row in data.get("deps") or []:
        if isinstance(row, dict):
            changed |= _rename(row, "fromTaskId", "fromItemId")
            changed |= _rename(row, "toTaskId", "toItemId")
    for key in ("comments", "worklog"):
        for row in data.get(key) or []:
            if isinstance(row, dict):
                changed |= _rename(row, "taskId", "itemId")
    return data, legacy_order, changed


def migrate_aggregate(agg: Aggregate, legacy_order: dict[str, int] | None = None) -> bool:
    changed = _migrate_outlines(agg)
    changed |= _migrate_ranks(agg, legacy_order or {})
    return changed


def _migrate_outlines(agg: Aggregate) -> bool:
    """Give outline-less items a default outline in their project; fold status casing."""
    changed = False
    outline_by_project = {o.project_id: o.id for o in agg.outlines}
    for item in agg.items:
        if not item.outline_id and item.project_id:
            if item.project_id not in outline_by_project:
                project = agg.find_project(item.project_id)
                outline = Outline(
                    id=agg.next_id("out"),
                    project_id=item.project_id,
                    status_defs=default_status_defs(),
                    created_by=project.created_by if project else "",
                    created_at=project.created_at if project else None,
                )
                agg.outlines.append(outline)
                outline_by_project[item.project_id] = outline.id
            item.outline_id = outline_by_project[item.project_id]
            changed = True
        if item.status_id in _LEGACY_STATUS:
            item.status_id = _LEGACY_STATUS[item.status_id]
            changed = True
    return changed


def _migrate_ranks(agg: Aggregate, legacy_order: dict[str, int]) -> bool:
    """Assign ranks to sibling groups that still have unranked members."""
    changed = False
    groups: dict[tuple[str, str], list[Item]] = {}
    for item in agg.items:
        groups.setdefault((item.outline_id, item.parent_id or ""), []).append(item)

    for members in groups.values():
        if all(m.rank.strip() for m in members):
            continue
        members.sort(
            key=lambda m: (legacy_order.get(m.id, 0), m.created_at.timestamp() if m.created_at else 0.0)
        )
        prev = ""
        for member in members:
            if member.rank.strip():
                prev = member.rank
                continue
            if not prev:
                member.rank = rank_initial()
            else:
                try:
                    member.rank = rank_after(prev)
                except RankError:
                    member.rank = prev + "0"
            prev = member.rank
            changed = True
    return changed


def _depth(agg: Aggregate, item: Item) -> int:
    depth = 0
    seen = {item.id}
    cur = item.parent_id
    while cur and cur not in seen:
        seen.add(cur)
        parent = agg.find_item(cur)
        if parent is None:
            break
        depth += 1
        cur = parent.parent_id
    return depth


def synthesize_events(agg: Aggregate, actor_id: str) -> list[Event]:
    """
    Create events that rebuild `agg` on replay.

    Humans come before agents and parents before children, so every
    reference resolves when the events are replayed in order. Event ids
    are allocated from `agg`.
    """
    out: list[Event] = []
    now = utcnow()

    def emit(event_type: str, entity_id: str, payload: dict[str, Any], by: str, ts: datetime | None) -> None:
        out.append(create_event(agg.next_id("evt"), by or actor_id, event_type, entity_id, payload, ts=ts or now))

    actors = sorted(agg.actors, key=lambda a: 0 if a.kind == ACTOR_HUMAN else 1)
    for actor in actors:
        payload: dict[str, Any] = {"name": actor.name, "kind": actor.kind}
        if actor.user_id:
            payload["userId"] = actor.user_id
        emit(ev_types.IDENTITY_CREATE, actor.id, payload, actor_id, None)
    for project in agg.projects:
        emit(ev_types.PROJECT_CREATE, project.id, project.to_dict(), project.created_by, project.created_at)
    for outline in agg.outlines:
        emit(ev_types.OUTLINE_CREATE, outline.id, outline.to_dict(), outline.created_by, outline.created_at)
    for item in sorted(agg.items, key=lambda it: _depth(agg, it)):
        emit(ev_types.ITEM_CREATE, item.id, item.to_dict(), item.created_by, item.created_at)
    for dep in agg.deps:
        emit(ev_types.DEP_ADD, dep.id, dep.to_dict(), dep.created_by, dep.created_at)
    for comment in agg.comments:
        emit(ev_types.COMMENT_ADD, comment.id, comment.to_dict(), comment.author_id, comment.created_at)
    for entry in agg.worklog:
        emit(ev_types.WORKLOG_ADD, entry.id, entry.to_dict(), entry.author_id, entry.created_at)
    for attachment in agg.attachments:
        emit(ev_types.ATTACHMENT_ADD, attachment.id, attachment.to_dict(), attachment.created_by, attachment.created_at)
    return out
