"""
Command-domain operations over one workspace.

Every mutating operation follows the same steps: load the aggregate,
validate against it, mutate it in memory, build the events, then persist
with a single `Store.commit`. Reads never write.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from .domain import identity as ident
from .domain.deps import DEFAULT_TREE_DEPTH, blocks_graph, deps_tree, find_cycles
from .domain.perm import can_edit_item, plan_assign, require_edit
from .domain.ready import ready_items
from .domain.status import (
    add_status_def,
    check_transition,
    remove_status_def,
    reorder_status_defs,
    resolve_status,
    update_status_def,
)
from .errors import ConflictError, InvalidArgumentError, NotFoundError
from .store import events as ev
from .store.attachments import DEFAULT_MAX_BYTES, normalize_entity_kind
from .store.events import Event
from .store.model import (
    ACTOR_AGENT,
    ACTOR_HUMAN,
    ACTOR_KINDS,
    DEP_BLOCKS,
    DEP_RELATED,
    Actor,
    Aggregate,
    Attachment,
    Comment,
    DateTime,
    Dependency,
    Item,
    Outline,
    Project,
    WorklogEntry,
    default_status_defs,
)
from .store.ordering import (
    ReorderPlan,
    insert_index,
    next_sibling_rank,
    plan_insert,
    plan_reorder,
    rank_sort_key,
    sort_by_rank,
)
from .store.store import Store
from .store.util import parse_ts, utcnow

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2})(?::\d{2})?$")
_RFC3339_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:[Zz]|[+-]\d{2}:\d{2})$")

DEFAULT_EVENTS_LIMIT = 200


def parse_datetime_input(raw: str | None) -> DateTime | None:
    """
    Parse a due/schedule value.

    Accepts YYYY-MM-DD, "YYYY-MM-DD HH:MM" and RFC 3339 (stored as UTC
    date and time). "none" and empty input clear the value.
    """
    text = (raw or "").strip()
    if not text or text.lower() == "none":
        return None
    if _DATE_RE.match(text):
        return DateTime(date=text)
    match = _DATETIME_RE.match(text)
    if match is not None:
        return DateTime(date=match.group(1), time=match.group(2))
    if _RFC3339_RE.match(text):
        try:
            utc = parse_ts(text)
        except ValueError:
            utc = None
        if utc is not None:
            return DateTime(date=utc.strftime("%Y-%m-%d"), time=utc.strftime("%H:%M"))
    raise InvalidArgumentError(
        f"invalid datetime {text!r} (expected YYYY-MM-DD, YYYY-MM-DD HH:MM, or RFC3339)"
    )


@dataclass
class EnsureAgentResult:
    actor: Actor
    created: bool
    session: str


@dataclass
class MoveResult:
    item: Item
    plan: ReorderPlan


class Engine:
    """Domain operations for one workspace directory."""

    def __init__(self, store: Store, *, actor_id: str = ""):
        self.store = store
        self.actor_override = (actor_id or "").strip()
        self._agg: Aggregate | None = None
        self.written: list[Event] = []

    @classmethod
    def open(cls, workspace_dir: Path | str, *, actor_id: str = "") -> Engine:
        return cls(Store(workspace_dir), actor_id=actor_id)

    @property
    def agg(self) -> Aggregate:
        if self._agg is None:
            self._agg = self.store.load()
        return self._agg

    def reload(self) -> Aggregate:
        self._agg = None
        return self.agg

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def current_actor_id(self) -> str:
        actor_id = self.actor_override or self.agg.current_actor_id
        if not actor_id:
            raise InvalidArgumentError(
                "no current actor (try: clarity identity create --name <name> --use, or pass --actor)"
            )
        self.agg.require_actor(actor_id)
        return actor_id

    def current_actor(self) -> Actor:
        return self.agg.require_actor(self.current_actor_id())

    def _event(
        self,
        actor_id: str,
        event_type: str,
        entity_id: str,
        payload: dict[str, Any],
        now: datetime | None = None,
    ) -> Event:
        return self.store.new_event(self.agg, actor_id, event_type, entity_id, payload, ts=now)

    def _commit(self, events: Sequence[Event]) -> None:
        self.store.commit(self.agg, list(events))
        self.written.extend(events)
        for event in events:
            logger.debug("appended %s %s (%s)", event.type, event.entity_id, event.id)

    def _editable_item(self, item_id: str) -> tuple[str, Item]:
        actor_id = self.current_actor_id()
        item = self.agg.require_item(item_id)
        require_edit(self.agg, actor_id, item)
        return actor_id, item

    def _project_id(self, project_id: str | None) -> str:
        pid = (project_id or "").strip() or self.agg.current_project_id
        if not pid:
            raise InvalidArgumentError(
                "missing --project (or set a current project with `clarity projects use <project-id>`)"
            )
        self.agg.require_project(pid)
        return pid

    # -------------------------------------------------------------------------
    # Workspace
    # -------------------------------------------------------------------------

    def init(self) -> dict[str, Any]:
        """Create the workspace layout; an existing workspace is left as is."""
        created = not self.store.is_initialized()
        self.store.ensure()
        self.store.ensure_workspace_meta()
        if not self.store.snapshot_path.exists():
            self.store.save(self.agg)
        return {"dir": str(self.store.dir), "created": created}

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def identity_create(
        self, name: str, *, kind: str = ACTOR_HUMAN, user_id: str | None = None, use: bool = False
    ) -> Actor:
        name = name.strip()
        if not name:
            raise InvalidArgumentError("missing --name")
        kind = (kind or ACTOR_HUMAN).strip().lower()
        if kind not in ACTOR_KINDS:
            raise InvalidArgumentError(f"invalid kind {kind!r} (expected human or agent)")
        uid = (user_id or "").strip() or None
        if kind == ACTOR_AGENT:
            if not uid:
                raise InvalidArgumentError("agent identities need --user <human-actor-id>")
            owner = self.agg.require_actor(uid)
            if owner.kind != ACTOR_HUMAN:
                raise InvalidArgumentError("--user must point to a human identity")
        elif uid:
            raise InvalidArgumentError("--user only applies to agent identities")

        actor = Actor(id=self.agg.next_id("act"), kind=kind, name=name, user_id=uid)
        self.agg.actors.append(actor)
        if use:
            self.agg.current_actor_id = actor.id
        payload: dict[str, Any] = {"name": actor.name, "kind": kind, "use": use}
        if uid:
            payload["userId"] = uid
        self._commit([self._event(actor.id, ev.IDENTITY_CREATE, actor.id, payload)])
        return actor

    def identity_use(self, actor_id: str) -> Actor:
        actor = self.agg.require_actor(actor_id.strip())
        self.agg.current_actor_id = actor.id
        self._commit([self._event(actor.id, ev.IDENTITY_USE, actor.id, {"actorId": actor.id})])
        return actor

    def identity_list(self) -> list[Actor]:
        return list(self.agg.actors)

    def whoami(self) -> Actor:
        return self.current_actor()

    def _ensure_agent(
        self, session: str | None, name: str | None, user_id: str | None, use: bool
    ) -> tuple[EnsureAgentResult, list[Event]]:
        key = ident.resolve_session(session)
        current = self.actor_override or self.agg.current_actor_id
        human = ident.resolve_agent_human(self.agg, user_id, current)

        existing = ident.find_session_agent(self.agg, human, key)
        if existing is not None:
            events: list[Event] = []
            if use:
                self.agg.current_actor_id = existing.id
                self.actor_override = existing.id
                events.append(self._event(existing.id, ev.IDENTITY_USE, existing.id, {"actorId": existing.id}))
            return EnsureAgentResult(existing, False, key), events

        actor = Actor(
            id=self.agg.next_id("act"),
            kind=ACTOR_AGENT,
            name=ident.agent_name(key, name or ""),
            user_id=human,
        )
        self.agg.actors.append(actor)
        if use:
            self.agg.current_actor_id = actor.id
            self.actor_override = actor.id
        payload = {"name": actor.name, "kind": ACTOR_AGENT, "use": use, "userId": human, "session": key}
        event = self._event(actor.id, ev.IDENTITY_CREATE, actor.id, payload)
        logger.info("created agent %s for session %s", actor.id, key)
        return EnsureAgentResult(actor, True, key), [event]

    def ensure_agent(
        self,
        session: str | None = None,
        *,
        name: str | None = None,
        user_id: str | None = None,
        use: bool = True,
    ) -> EnsureAgentResult:
        result, events = self._ensure_agent(session, name, user_id, use)
        if events:
            self._commit(events)
        return result

    def agent_start(
        self,
        item_id: str,
        *,
        session: str | None = None,
        name: str | None = None,
        user_id: str | None = None,
        take_assigned: bool = False,
    ) -> tuple[EnsureAgentResult, Item]:
        """Ensure the session agent, make it current, and claim `item_id`; one save."""
        item_id = item_id.strip()
        if not item_id:
            raise InvalidArgumentError("missing <item-id>")
        self.agg.require_item(item_id)
        result, events = self._ensure_agent(session, name, user_id, True)
        item, claim_events = self._claim(item_id, take_assigned=take_assigned)
        self._commit(events + claim_events)
        return result, item

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def project_create(self, name: str, *, use: bool = False) -> Project:
        actor_id = self.current_actor_id()
        name = name.strip()
        if not name:
            raise InvalidArgumentError("missing --name")
        now = utcnow()
        project = Project(id=self.agg.next_id("proj"), name=name, created_by=actor_id, created_at=now)
        self.agg.projects.append(project)
        if use:
            self.agg.current_project_id = project.id
        self._commit([self._event(actor_id, ev.PROJECT_CREATE, project.id, project.to_dict(), now)])
        return project

    def project_list(self, *, include_archived: bool = False) -> list[Project]:
        return [p for p in self.agg.projects if include_archived or not p.archived]

    def project_use(self, project_id: str) -> Project:
        project = self.agg.require_project(project_id.strip())
        self.agg.current_project_id = project.id
        self.store.commit(self.agg, [])
        return project

    def project_current(self) -> Project:
        if not self.agg.current_project_id:
            raise NotFoundError("project", "(current)")
        return self.agg.require_project(self.agg.current_project_id)

    def project_rename(self, project_id: str, name: str) -> Project:
        actor_id = self.current_actor_id()
        project = self.agg.require_project(project_id)
        name = name.strip()
        if not name:
            raise InvalidArgumentError("missing --name")
        project.name = name
        self._commit([self._event(actor_id, ev.PROJECT_UPDATE, project.id, {"name": name})])
        return project

    def project_archive(self, project_id: str, *, archived: bool = True) -> Project:
        actor_id = self.current_actor_id()
        project = self.agg.require_project(project_id)
        project.archived = archived
        self._commit([self._event(actor_id, ev.PROJECT_ARCHIVE, project.id, {"archived": archived})])
        return project

    # -------------------------------------------------------------------------
    # Outlines
    # -------------------------------------------------------------------------

    def _new_outline(self, actor_id: str, project_id: str, name: str | None, description: str, now: datetime) -> tuple[Outline, Event]:
        outline = Outline(
            id=self.agg.next_id("out"),
            project_id=project_id,
            name=(name or "").strip() or None,
            description=description.strip(),
            status_defs=default_status_defs(),
            created_by=actor_id,
            created_at=now,
        )
        self.agg.outlines.append(outline)
        return outline, self._event(actor_id, ev.OUTLINE_CREATE, outline.id, outline.to_dict(), now)

    def outline_create(self, *, project_id: str | None = None, name: str | None = None, description: str = "") -> Outline:
        actor_id = self.current_actor_id()
        pid = self._project_id(project_id)
        outline, event = self._new_outline(actor_id, pid, name, description, utcnow())
        self._commit([event])
        return outline

    def outline_list(self, *, project_id: str | None = None, include_archived: bool = False) -> list[Outline]:
        pid = (project_id or "").strip() or self.agg.current_project_id
        return [
            o
            for o in self.agg.outlines
            if (not pid or o.project_id == pid) and (include_archived or not o.archived)
        ]

    def outline_show(self, outline_id: str) -> dict[str, Any]:
        outline = self.agg.require_outline(outline_id)
        items = sort_by_rank([it for it in self.agg.items if it.outline_id == outline.id and not it.archived])
        return {"outline": outline, "items": items}

    def outline_rename(self, outline_id: str, name: str) -> Outline:
        actor_id = self.current_actor_id()
        outline = self.agg.require_outline(outline_id)
        outline.name = name.strip() or None
        self._commit([self._event(actor_id, ev.OUTLINE_RENAME, outline.id, {"name": outline.name or ""})])
        return outline

    def outline_set_description(self, outline_id: str, description: str) -> Outline:
        actor_id = self.current_actor_id()
        outline = self.agg.require_outline(outline_id)
        outline.description = description.strip()
        self._commit(
            [self._event(actor_id, ev.OUTLINE_SET_DESCRIPTION, outline.id, {"description": outline.description})]
        )
        return outline

    def outline_archive(self, outline_id: str, *, archived: bool = True) -> Outline:
        actor_id = self.current_actor_id()
        outline = self.agg.require_outline(outline_id)
        outline.archived = archived
        self._commit([self._event(actor_id, ev.OUTLINE_ARCHIVE, outline.id, {"archived": archived})])
        return outline

    def status_list(self, outline_id: str) -> list[Any]:
        return list(self.agg.require_outline(outline_id).status_defs)

    def status_add(self, outline_id: str, label: str, *, end: bool = False, requires_note: bool = False) -> Outline:
        actor_id = self.current_actor_id()
        outline = self.agg.require_outline(outline_id)
        d = add_status_def(outline, label, end=end, requires_note=requires_note)
        payload = {"id": d.id, "label": d.label, "isEndState": d.is_end_state, "requiresNote": d.requires_note}
        self._commit([self._event(actor_id, ev.OUTLINE_STATUS_ADD, outline.id, payload)])
        return outline

    def status_update(
        self,
        outline_id: str,
        key: str,
        *,
        label: str = "",
        end: bool | None = None,
        requires_note: bool | None = None,
    ) -> Outline:
        actor_id = self.current_actor_id()
        outline = self.agg.require_outline(outline_id)
        d = update_status_def(outline, key, label=label, end=end, requires_note=requires_note)
        payload: dict[str, Any] = {"id": d.id}
        if label.strip():
            payload["label"] = d.label
        if end is not None:
            payload["isEndState"] = end
        if requires_note is not None:
            payload["requiresNote"] = requires_note
        self._commit([self._event(actor_id, ev.OUTLINE_STATUS_UPDATE, outline.id, payload)])
        return outline

    def status_remove(self, outline_id: str, key: str) -> Outline:
        actor_id = self.current_actor_id()
        outline = self.agg.require_outline(outline_id)
        d = remove_status_def(self.agg, outline, key)
        self._commit([self._event(actor_id, ev.OUTLINE_STATUS_REMOVE, outline.id, {"id": d.id})])
        return outline

    def status_reorder(self, outline_id: str, labels: Sequence[str]) -> Outline:
        actor_id = self.current_actor_id()
        outline = self.agg.require_outline(outline_id)
        reorder_status_defs(outline, labels)
        payload = {"labels": [d.label for d in outline.status_defs]}
        self._commit([self._event(actor_id, ev.OUTLINE_STATUS_REORDER, outline.id, payload)])
        return outline

    # -------------------------------------------------------------------------
    # Items: create and field edits
    # -------------------------------------------------------------------------

    def _outline_for_new_item(
        self, actor_id: str, project_id: str, outline_id: str | None, now: datetime
    ) -> tuple[Outline, list[Event]]:
        oid = (outline_id or "").strip()
        if oid:
            outline = self.agg.require_outline(oid)
            if outline.project_id != project_id:
                raise InvalidArgumentError("outline must belong to the same project")
            return outline, []
        outlines = [o for o in self.agg.outlines if o.project_id == project_id and not o.archived]
        if len(outlines) == 1:
            return outlines[0], []
        if outlines:
            raise InvalidArgumentError("multiple outlines in project; pass --outline or create a new outline first")
        outline, event = self._new_outline(actor_id, project_id, None, "", now)
        return outline, [event]

    def item_create(
        self,
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
    ) -> Item:
        actor_id = self.current_actor_id()
        title = title.strip()
        if not title:
            raise InvalidArgumentError("missing --title")
        parent: Item | None = None
        pid_hint = project_id
        if parent_id:
            parent = self.agg.require_item(parent_id.strip())
            if not (pid_hint or "").strip():
                pid_hint = parent.project_id
                outline_id = outline_id or parent.outline_id
        pid = self._project_id(pid_hint)
        now = utcnow()
        outline, events = self._outline_for_new_item(actor_id, pid, outline_id, now)
        if parent is not None and parent.outline_id != outline.id:
            raise InvalidArgumentError("parent must be in the same outline")

        owner = (owner_id or "").strip() or actor_id
        self.agg.require_actor(owner)
        assignee = (assign_id or "").strip() or None
        if assignee:
            self.agg.require_actor(assignee)
        elif self.agg.require_actor(actor_id).is_agent:
            assignee = actor_id

        if status is None:
            status_id = outline.status_defs[0].id if outline.status_defs else ""
        else:
            status_id = resolve_status(self.agg, outline.id, status)

        desc = description
        origin = filed_from.strip()
        if origin and "Filed from:" not in desc:
            desc = f"Filed from: {origin}" if not desc.strip() else f"Filed from: {origin}\n\n{desc}"

        item = Item(
            id=self.agg.next_id("item"),
            project_id=pid,
            outline_id=outline.id,
            parent_id=parent.id if parent is not None else None,
            rank=next_sibling_rank(self.agg, outline.id, parent.id if parent is not None else None),
            title=title,
            description=desc,
            status_id=status_id,
            priority=priority,
            on_hold=on_hold,
            due=parse_datetime_input(due),
            schedule=parse_datetime_input(schedule),
            tags=_clean_tags(tags),
            owner_actor_id=owner,
            assigned_actor_id=assignee,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        self.agg.items.append(item)
        events.append(self._event(actor_id, ev.ITEM_CREATE, item.id, item.to_dict(), now))
        self._commit(events)
        return item

    def _set_field(self, item_id: str, event_type: str, payload: dict[str, Any], apply: Any) -> Item:
        actor_id, item = self._editable_item(item_id)
        now = utcnow()
        apply(item)
        item.updated_at = now
        self._commit([self._event(actor_id, event_type, item.id, payload, now)])
        return item

    def item_set_title(self, item_id: str, title: str) -> Item:
        title = title.strip()
        if not title:
            raise InvalidArgumentError("missing --title")
        return self._set_field(item_id, ev.ITEM_SET_TITLE, {"title": title}, lambda it: setattr(it, "title", title))

    def item_set_description(self, item_id: str, description: str) -> Item:
        return self._set_field(
            item_id,
            ev.ITEM_SET_DESCRIPTION,
            {"description": description},
            lambda it: setattr(it, "description", description),
        )

    def item_set_priority(self, item_id: str, priority: bool) -> Item:
        return self._set_field(
            item_id, ev.ITEM_SET_PRIORITY, {"priority": priority}, lambda it: setattr(it, "priority", priority)
        )

    def item_set_on_hold(self, item_id: str, on_hold: bool) -> Item:
        return self._set_field(
            item_id, ev.ITEM_SET_ON_HOLD, {"onHold": on_hold}, lambda it: setattr(it, "on_hold", on_hold)
        )

    def item_set_due(self, item_id: str, raw: str | None) -> Item:
        value = parse_datetime_input(raw)
        payload = {"due": value.to_dict() if value else None}
        return self._set_field(item_id, ev.ITEM_SET_DUE, payload, lambda it: setattr(it, "due", value))

    def item_set_schedule(self, item_id: str, raw: str | None) -> Item:
        value = parse_datetime_input(raw)
        payload = {"schedule": value.to_dict() if value else None}
        return self._set_field(item_id, ev.ITEM_SET_SCHEDULE, payload, lambda it: setattr(it, "schedule", value))

    def item_tags_add(self, item_id: str, tag: str) -> Item:
        tag = tag.strip()
        if not tag:
            raise InvalidArgumentError("missing tag")

        def apply(it: Item) -> None:
            if tag not in it.tags:
                it.tags.append(tag)

        return self._set_field(item_id, ev.ITEM_TAGS_ADD, {"tag": tag}, apply)

    def item_tags_remove(self, item_id: str, tag: str) -> Item:
        tag = tag.strip()

        def apply(it: Item) -> None:
            it.tags = [t for t in it.tags if t != tag]

        return self._set_field(item_id, ev.ITEM_TAGS_REMOVE, {"tag": tag}, apply)

    def item_tags_set(self, item_id: str, tags: Sequence[str]) -> Item:
        cleaned = _clean_tags(tags)
        return self._set_field(item_id, ev.ITEM_TAGS_SET, {"tags": cleaned}, lambda it: setattr(it, "tags", list(cleaned)))

    def item_archive(self, item_id: str, *, archived: bool = True) -> Item:
        return self._set_field(
            item_id, ev.ITEM_ARCHIVE, {"archived": archived}, lambda it: setattr(it, "archived", archived)
        )

    def item_set_status(self, item_id: str, status: str, *, note: str = "") -> Item:
        """Set status by id or label; entering an end-state is gated, a required note becomes a comment."""
        actor_id, item = self._editable_item(item_id)
        status_id = resolve_status(self.agg, item.outline_id, status)
        check_transition(self.agg, item, status_id, note=note)
        now = utcnow()
        previous = item.status_id
        item.status_id = status_id
        item.updated_at = now
        events = [
            self._event(
                actor_id, ev.ITEM_SET_STATUS, item.id, {"from": previous, "to": status_id, "status": status_id}, now
            )
        ]
        if note.strip():
            comment = Comment(
                id=self.agg.next_id("cmt"), item_id=item.id, author_id=actor_id, body=note.strip(), created_at=now
            )
            self.agg.comments.append(comment)
            events.append(self._event(actor_id, ev.COMMENT_ADD, comment.id, comment.to_dict(), now))
        self._commit(events)
        return item

    # -------------------------------------------------------------------------
    # Items: assignment and claim
    # -------------------------------------------------------------------------

    def _assign(self, item: Item, actor_id: str, assignee: str | None, *, take_assigned: bool) -> list[Event]:
        if assignee:
            self.agg.require_actor(assignee)
        now = utcnow()
        outcome = plan_assign(self.agg, actor_id, item, assignee, take_assigned=take_assigned, now=now)
        if not outcome.changed:
            return []
        outcome.apply(item)
        item.updated_at = now
        return [self._event(actor_id, ev.ITEM_SET_ASSIGN, item.id, outcome.payload(), now)]

    def item_set_assign(self, item_id: str, assignee: str | None, *, take_assigned: bool = False) -> Item:
        actor_id = self.current_actor_id()
        item = self.agg.require_item(item_id)
        target = (assignee or "").strip()
        if target.lower() == "none":
            target = ""
        events = self._assign(item, actor_id, target or None, take_assigned=take_assigned)
        if events:
            self._commit(events)
        return item

    def _claim(self, item_id: str, *, take_assigned: bool) -> tuple[Item, list[Event]]:
        actor_id = self.current_actor_id()
        item = self.agg.require_item(item_id)
        return item, self._assign(item, actor_id, actor_id, take_assigned=take_assigned)

    def item_claim(self, item_id: str, *, take_assigned: bool = False) -> Item:
        item, events = self._claim(item_id, take_assigned=take_assigned)
        if events:
            self._commit(events)
        return item

    # -------------------------------------------------------------------------
    # Items: ordering
    # -------------------------------------------------------------------------

    def item_move(self, item_id: str, *, before: str | None = None, after: str | None = None) -> MoveResult:
        actor_id, item = self._editable_item(item_id)
        before = (before or "").strip()
        after = (after or "").strip()
        if bool(before) == bool(after):
            raise InvalidArgumentError("provide exactly one of --before or --after")
        ref = self.agg.require_item(before or after)
        if ref.outline_id != item.outline_id:
            raise ConflictError("items must be in the same outline")
        if (ref.parent_id or None) != (item.parent_id or None):
            raise ConflictError("items must have the same parent to reorder")

        sibs = self.agg.siblings(item.outline_id, item.parent_id, include_id=item.id)
        others = [s for s in sort_by_rank(sibs) if s.id != item.id]
        idx = insert_index(others, before=before or None, after=after or None)
        plan = plan_reorder(sibs, item.id, idx)
        if plan.is_noop:
            return MoveResult(item, plan)

        now = utcnow()
        self._apply_plan(plan, now)
        payload: dict[str, Any] = {"before": before, "after": after, "rank": item.rank}
        if plan.used_fallback:
            payload["rebalance"] = plan.rebalance_map()
            payload["rebalanceCount"] = plan.rebalance_count
        self._commit([self._event(actor_id, ev.ITEM_MOVE, item.id, payload, now)])
        return MoveResult(item, plan)

    def _apply_plan(self, plan: ReorderPlan, now: datetime) -> None:
        for sib_id, rank in plan.rank_by_id.items():
            sib = self.agg.require_item(sib_id)
            sib.rank = rank
            sib.updated_at = now

    def _is_ancestor(self, ancestor_id: str, item_id: str) -> bool:
        seen: set[str] = set()
        cur = self.agg.find_item(item_id)
        while cur is not None and cur.parent_id and cur.parent_id not in seen:
            if cur.parent_id == ancestor_id:
                return True
            seen.add(cur.parent_id)
            cur = self.agg.find_item(cur.parent_id)
        return False

    def item_set_parent(
        self, item_id: str, parent: str | None, *, before: str | None = None, after: str | None = None
    ) -> MoveResult:
        """Reparent (`None`/"none" for root); `before`/`after` refer to the destination siblings."""
        actor_id, item = self._editable_item(item_id)
        before = (before or "").strip()
        after = (after or "").strip()
        if before and after:
            raise InvalidArgumentError("use at most one of --before/--after")
        raw = (parent or "").strip()
        parent_id = None if not raw or raw.lower() == "none" else raw
        if parent_id is not None:
            target = self.agg.require_item(parent_id)
            if target.outline_id != item.outline_id:
                raise InvalidArgumentError("parent must be in the same outline")
            if parent_id == item.id or self._is_ancestor(item.id, parent_id):
                raise ConflictError("cannot set parent (cycle)")

        dest = [s for s in self.agg.siblings(item.outline_id, parent_id) if s.id != item.id]
        ordered = sort_by_rank(dest)
        idx = insert_index(ordered, before=before or None, after=after or None)
        plan = plan_insert(ordered, item, idx)

        now = utcnow()
        item.parent_id = parent_id
        self._apply_plan(plan, now)
        item.updated_at = now
        payload: dict[str, Any] = {"parent": parent_id or "none", "before": before, "after": after, "rank": item.rank}
        if plan.used_fallback:
            payload["rebalance"] = plan.rebalance_map()
            payload["rebalanceCount"] = plan.rebalance_count
        self._commit([self._event(actor_id, ev.ITEM_SET_PARENT, item.id, payload, now)])
        return MoveResult(item, plan)

    def item_move_outline(self, item_id: str, to: str, *, status: str | None = None) -> Item:
        actor_id, item = self._editable_item(item_id)
        if not (to or "").strip():
            raise InvalidArgumentError("missing --to")
        outline = self.agg.require_outline(to.strip())
        if outline.project_id != item.project_id:
            raise InvalidArgumentError("target outline must belong to the same project")
        if any(not c.archived for c in self.agg.children_of(item.id)):
            raise ConflictError("cannot move an item with children to another outline")
        if status is not None:
            status_id = resolve_status(self.agg, outline.id, status)
        else:
            status_id = item.status_id
            if status_id and self.agg.status_def(outline.id, status_id) is None:
                raise InvalidArgumentError("invalid status id for target outline; pass --set-status")

        now = utcnow()
        rank = next_sibling_rank(self.agg, outline.id, None, exclude_id=item.id)
        item.outline_id = outline.id
        item.parent_id = None
        item.status_id = status_id
        item.rank = rank
        item.updated_at = now
        payload = {"to": outline.id, "status": status_id, "rank": rank}
        self._commit([self._event(actor_id, ev.ITEM_MOVE_OUTLINE, item.id, payload, now)])
        return item

    # -------------------------------------------------------------------------
    # Items: reads
    # -------------------------------------------------------------------------

    def item_list(
        self,
        *,
        project_id: str | None = None,
        outline_id: str | None = None,
        status: str | None = None,
        include_archived: bool = False,
        assigned: str | None = None,
    ) -> list[Item]:
        items = list(self.agg.items)
        if project_id:
            items = [it for it in items if it.project_id == project_id]
        if outline_id:
            items = [it for it in items if it.outline_id == outline_id]
        if status is not None:
            items = [it for it in items if it.status_id == _status_filter(self.agg, it.outline_id, status)]
        if not include_archived:
            items = [it for it in items if not it.archived]
        if assigned is not None:
            who = assigned.strip()
            if who.lower() == "none":
                items = [it for it in items if not it.assigned_actor_id]
            elif who.lower() == "me":
                me = self.current_actor_id()
                items = [it for it in items if it.assigned_actor_id == me]
            else:
                items = [it for it in items if it.assigned_actor_id == who]
        return sorted(items, key=lambda it: (it.project_id, it.outline_id, *rank_sort_key(it)))

    def item_show(self, item_id: str) -> dict[str, Any]:
        item = self.agg.require_item(item_id)
        children = sort_by_rank(self.agg.children_of(item.id))
        return {
            "item": item,
            "children": children,
            "deps": self.agg.deps_for(item.id),
            "comments": self.agg.comments_for(item.id),
            "worklog": self.worklog_list(item.id),
            "attachments": self.agg.attachments_for("item", item.id),
        }

    def items_ready(self, *, include_assigned: bool = False, include_on_hold: bool = False) -> list[Item]:
        actor_id = self.actor_override or self.agg.current_actor_id
        return ready_items(self.agg, actor_id, include_assigned=include_assigned, include_on_hold=include_on_hold)

    def can_edit(self, item_id: str) -> bool:
        return can_edit_item(self.agg, self.current_actor_id(), self.agg.require_item(item_id))

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def dep_add(self, item_id: str, *, blocks: str | None = None, related: str | None = None) -> Dependency:
        actor_id, item = self._editable_item(item_id)
        blocks = (blocks or "").strip()
        related = (related or "").strip()
        if blocks and related:
            raise InvalidArgumentError("provide exactly one of --blocks or --related")
        if not blocks and not related:
            raise InvalidArgumentError("missing --blocks or --related")
        dep_type = DEP_BLOCKS if blocks else DEP_RELATED
        target_id = blocks or related
        self.agg.require_item(target_id)
        if target_id == item.id:
            raise InvalidArgumentError("an item cannot depend on itself")
        if dep_type == DEP_BLOCKS and any(
            d.type == DEP_BLOCKS and d.from_item_id == item.id and d.to_item_id == target_id for d in self.agg.deps
        ):
            raise ConflictError(f"dependency already exists: {item.id} blocks on {target_id}")
        now = utcnow()
        dep = Dependency(
            id=self.agg.next_id("dep"),
            from_item_id=item.id,
            to_item_id=target_id,
            type=dep_type,
            created_by=actor_id,
            created_at=now,
        )
        self.agg.deps.append(dep)
        self._commit([self._event(actor_id, ev.DEP_ADD, dep.id, dep.to_dict(), now)])
        return dep

    def dep_remove(self, dep_id: str) -> Dependency:
        dep = self.agg.find_dep(dep_id)
        if dep is None:
            raise NotFoundError("dependency", dep_id)
        actor_id, _ = self._editable_item(dep.from_item_id)
        self.agg.deps = [d for d in self.agg.deps if d.id != dep.id]
        self._commit([self._event(actor_id, ev.DEP_REMOVE, dep.id, {"id": dep.id})])
        return dep

    def dep_list(self, item_id: str | None = None) -> list[Dependency]:
        if not item_id:
            return list(self.agg.deps)
        self.agg.require_item(item_id)
        return self.agg.deps_for(item_id)

    def dep_tree(self, item_id: str, *, max_depth: int = DEFAULT_TREE_DEPTH) -> dict[str, Any]:
        self.agg.require_item(item_id)
        if max_depth < 1:
            raise InvalidArgumentError("--depth must be at least 1")
        return deps_tree(self.agg, item_id, max_depth=max_depth)

    def dep_cycles(self) -> list[list[str]]:
        return find_cycles(blocks_graph(self.agg))

    # -------------------------------------------------------------------------
    # Comments and worklog
    # -------------------------------------------------------------------------

    def comment_add(self, item_id: str, body: str, *, reply_to: str | None = None) -> Comment:
        actor_id = self.current_actor_id()
        item = self.agg.require_item(item_id)
        body = body.strip()
        if not body:
            raise InvalidArgumentError("missing --body")
        reply = (reply_to or "").strip() or None
        if reply is not None:
            parent = self.agg.find_comment(reply)
            if parent is None:
                raise NotFoundError("comment", reply)
            if parent.item_id != item.id:
                raise InvalidArgumentError("reply must target a comment on the same item")
        now = utcnow()
        comment = Comment(
            id=self.agg.next_id("cmt"),
            item_id=item.id,
            author_id=actor_id,
            body=body,
            created_at=now,
            reply_to_comment_id=reply,
        )
        self.agg.comments.append(comment)
        self._commit([self._event(actor_id, ev.COMMENT_ADD, comment.id, comment.to_dict(), now)])
        return comment

    def comment_list(self, item_id: str, *, limit: int = 0, offset: int = 0) -> list[Comment]:
        self.agg.require_item(item_id)
        comments = sorted(self.agg.comments_for(item_id), key=lambda c: (c.created_at or utcnow(), c.id))
        comments = comments[max(offset, 0):]
        return comments[:limit] if limit > 0 else comments

    def worklog_add(self, item_id: str, body: str) -> WorklogEntry:
        actor_id = self.current_actor_id()
        item = self.agg.require_item(item_id)
        body = body.strip()
        if not body:
            raise InvalidArgumentError("missing --body")
        now = utcnow()
        entry = WorklogEntry(id=self.agg.next_id("wlg"), item_id=item.id, author_id=actor_id, body=body, created_at=now)
        self.agg.worklog.append(entry)
        self._commit([self._event(actor_id, ev.WORKLOG_ADD, entry.id, entry.to_dict(), now)])
        return entry

    def _worklog_visible(self, author_id: str) -> bool:
        viewer = self.actor_override or self.agg.current_actor_id
        human = self.agg.human_for_actor(viewer)
        return bool(human) and human == self.agg.human_for_actor(author_id)

    def worklog_list(self, item_id: str) -> list[WorklogEntry]:
        """Entries on the item whose author shares the viewer's owning human."""
        self.agg.require_item(item_id)
        return [w for w in self.agg.worklog_for(item_id) if self._worklog_visible(w.author_id)]

    # -------------------------------------------------------------------------
    # Attachments
    # -------------------------------------------------------------------------

    def attachment_add(
        self,
        entity_kind: str,
        entity_id: str,
        path: Path | str,
        *,
        title: str = "",
        alt: str = "",
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> Attachment:
        actor_id = self.current_actor_id()
        kind = normalize_entity_kind(entity_kind)
        if kind == "item":
            require_edit(self.agg, actor_id, self.agg.require_item(entity_id))
        attachment, event = self.store.add_attachment(
            self.agg, actor_id, kind, entity_id, path, title=title, alt=alt, max_bytes=max_bytes
        )
        self.written.append(event)
        return attachment

    def attachment_list(self, entity_kind: str | None = None, entity_id: str | None = None) -> list[Attachment]:
        out = list(self.agg.attachments)
        if entity_kind:
            kind = normalize_entity_kind(entity_kind)
            out = [a for a in out if a.entity_kind == kind]
        if entity_id:
            out = [a for a in out if a.entity_id == entity_id]
        return out

    def _attachment(self, attachment_id: str) -> Attachment:
        attachment = self.agg.find_attachment(attachment_id)
        if attachment is None:
            raise NotFoundError("attachment", attachment_id)
        return attachment

    def attachment_path(self, attachment_id: str) -> Path:
        return self.store.attachment_abs_path(self._attachment(attachment_id))

    def attachment_export(self, attachment_id: str, dest: Path | str) -> Path:
        return self.store.attachments.export(self._attachment(attachment_id), Path(dest))

    def attachment_remove(self, attachment_id: str) -> Attachment:
        actor_id = self.current_actor_id()
        attachment = self._attachment(attachment_id)
        if attachment.entity_kind == "item":
            item = self.agg.find_item(attachment.entity_id)
            if item is not None:
                require_edit(self.agg, actor_id, item)
        self.agg.attachments = [a for a in self.agg.attachments if a.id != attachment.id]
        self._commit([self._event(actor_id, ev.ATTACHMENT_REMOVE, attachment.id, {"id": attachment.id})])
        return attachment

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def events_list(self, *, limit: int = DEFAULT_EVENTS_LIMIT, entity_id: str | None = None) -> list[Event]:
        """The most recent `limit` events, oldest first (0 = all); private worklog events are hidden."""
        events = self.store.read_events()
        if entity_id:
            events = [e for e in events if e.entity_id == entity_id or e.payload.get("itemId") == entity_id]
        events = [e for e in events if e.type != ev.WORKLOG_ADD or self._worklog_visible(e.actor_id)]
        if limit > 0:
            events = events[-limit:]
        return events

    def item_events(self, item_id: str, *, limit: int = 0) -> list[Event]:
        self.agg.require_item(item_id)
        return self.events_list(limit=limit, entity_id=item_id)


def _clean_tags(tags: Sequence[str]) -> list[str]:
    out: list[str] = []
    for tag in tags:
        tag = str(tag).strip()
        if tag and tag not in out:
            out.append(tag)
    return out


def _status_filter(agg: Aggregate, outline_id: str, raw: str) -> str:
    try:
        return resolve_status(agg, outline_id, raw)
    except (InvalidArgumentError, NotFoundError):
        return raw.strip()

