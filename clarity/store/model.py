"""
Workspace entities and the aggregate state.

The aggregate is the in-memory projection of the event log: every
collection here can be rebuilt by replaying events. Field names serialize
as camelCase so the snapshot and the output envelope share one shape.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from ..errors import NotFoundError
from .util import format_ts, parse_ts

ACTOR_HUMAN = "human"
ACTOR_AGENT = "agent"
ACTOR_KINDS = frozenset({ACTOR_HUMAN, ACTOR_AGENT})

DEP_BLOCKS = "blocks"
DEP_RELATED = "related"
DEP_TYPES = frozenset({DEP_BLOCKS, DEP_RELATED})

ATTACH_ITEM = "item"
ATTACH_COMMENT = "comment"

# Prefixes handed out by Aggregate.next_id.
ID_PREFIXES = ("act", "proj", "out", "item", "dep", "cmt", "wlg", "att", "evt")

SNAPSHOT_VERSION = 1

_ID_RE = re.compile(r"^([a-z]+)-(\d+)$")


def _ts(value: datetime | None) -> str | None:
    return format_ts(value) if value is not None else None


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class Actor:
    id: str
    kind: str
    name: str
    user_id: str | None = None

    @property
    def is_agent(self) -> bool:
        return self.kind == ACTOR_AGENT

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "kind": self.kind, "name": self.name}
        if self.user_id:
            result["userId"] = self.user_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Actor:
        return cls(
            id=str(data.get("id", "")).strip(),
            kind=str(data.get("kind", ACTOR_HUMAN)).strip().lower() or ACTOR_HUMAN,
            name=str(data.get("name", "")).strip(),
            user_id=_opt_str(data.get("userId")),
        )


@dataclass
class Project:
    id: str
    name: str
    created_by: str = ""
    created_at: datetime | None = None
    archived: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdBy": self.created_by,
            "createdAt": _ts(self.created_at),
            "archived": self.archived,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        return cls(
            id=str(data.get("id", "")).strip(),
            name=str(data.get("name", "")).strip(),
            created_by=str(data.get("createdBy", "")).strip(),
            created_at=parse_ts(data.get("createdAt")),
            archived=bool(data.get("archived", False)),
        )


@dataclass
class OutlineStatusDef:
    id: str
    label: str
    is_end_state: bool = False
    requires_note: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "label": self.label, "isEndState": self.is_end_state}
        if self.requires_note:
            result["requiresNote"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutlineStatusDef:
        return cls(
            id=str(data.get("id", "")).strip(),
            label=str(data.get("label", "")).strip(),
            is_end_state=bool(data.get("isEndState", False)),
            requires_note=bool(data.get("requiresNote", data.get("requireNote", False))),
        )


def default_status_defs() -> list[OutlineStatusDef]:
    return [
        OutlineStatusDef(id="todo", label="TODO"),
        OutlineStatusDef(id="doing", label="DOING"),
        OutlineStatusDef(id="done", label="DONE", is_end_state=True),
    ]


@dataclass
class Outline:
    id: str
    project_id: str
    name: str | None = None
    description: str = ""
    status_defs: list[OutlineStatusDef] = field(default_factory=default_status_defs)
    created_by: str = ""
    created_at: datetime | None = None
    archived: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "projectId": self.project_id,
            "statusDefs": [d.to_dict() for d in self.status_defs],
            "createdBy": self.created_by,
            "createdAt": _ts(self.created_at),
            "archived": self.archived,
        }
        if self.name is not None:
            result["name"] = self.name
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Outline:
        raw_defs = data.get("statusDefs")
        defs = (
            [OutlineStatusDef.from_dict(d) for d in raw_defs if isinstance(d, dict)]
            if isinstance(raw_defs, list)
            else default_status_defs()
        )
        return cls(
            id=str(data.get("id", "")).strip(),
            project_id=str(data.get("projectId", "")).strip(),
            name=_opt_str(data.get("name")),
            description=str(data.get("description") or "").strip(),
            status_defs=defs,
            created_by=str(data.get("createdBy", "")).strip(),
            created_at=parse_ts(data.get("createdAt")),
            archived=bool(data.get("archived", False)),
        )


@dataclass(frozen=True)
class DateTime:
    """Calendar date with optional wall-clock time ("YYYY-MM-DD", "HH:MM")."""

    date: str
    time: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"date": self.date}
        if self.time:
            result["time"] = self.time
        return result

    @classmethod
    def from_dict(cls, data: Any) -> DateTime | None:
        if not isinstance(data, dict):
            return None
        date = str(data.get("date") or "").strip()
        if not date:
            return None
        return cls(date=date, time=_opt_str(data.get("time")))


@dataclass
class Item:
    id: str
    project_id: str
    outline_id: str
    title: str
    owner_actor_id: str
    parent_id: str | None = None
    rank: str = ""
    description: str = ""
    status_id: str = ""
    priority: bool = False
    on_hold: bool = False
    due: DateTime | None = None
    schedule: DateTime | None = None
    tags: list[str] = field(default_factory=list)
    archived: bool = False
    assigned_actor_id: str | None = None
    owner_delegated_from: str | None = None
    owner_delegated_at: datetime | None = None
    created_by: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "projectId": self.project_id,
            "outlineId": self.outline_id,
            "rank": self.rank,
            "title": self.title,
            "description": self.description,
            "status": self.status_id,
            "priority": self.priority,
            "onHold": self.on_hold,
            "tags": list(self.tags),
            "archived": self.archived,
            "ownerActorId": self.owner_actor_id,
            "createdBy": self.created_by,
            "createdAt": _ts(self.created_at),
            "updatedAt": _ts(self.updated_at),
        }
        if self.parent_id:
            result["parentId"] = self.parent_id
        if self.due is not None:
            result["due"] = self.due.to_dict()
        if self.schedule is not None:
            result["schedule"] = self.schedule.to_dict()
        if self.assigned_actor_id:
            result["assignedActorId"] = self.assigned_actor_id
        if self.owner_delegated_from:
            result["ownerDelegatedFrom"] = self.owner_delegated_from
        if self.owner_delegated_at is not None:
            result["ownerDelegatedAt"] = _ts(self.owner_delegated_at)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Item:
        status = data.get("status")
        if status is None:
            status = data.get("statusId", "")
        tags = data.get("tags") or []
        return cls(
            id=str(data.get("id", "")).strip(),
            project_id=str(data.get("projectId", "")).strip(),
            outline_id=str(data.get("outlineId", "")).strip(),
            parent_id=_opt_str(data.get("parentId")),
            rank=str(data.get("rank") or "").strip(),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status_id=str(status or "").strip(),
            priority=bool(data.get("priority", False)),
            on_hold=bool(data.get("onHold", False)),
            due=DateTime.from_dict(data.get("due")),
            schedule=DateTime.from_dict(data.get("schedule")),
            tags=[str(t) for t in tags if str(t).strip()],
            archived=bool(data.get("archived", False)),
            owner_actor_id=str(data.get("ownerActorId", "")).strip(),
            assigned_actor_id=_opt_str(data.get("assignedActorId")),
            owner_delegated_from=_opt_str(data.get("ownerDelegatedFrom")),
            owner_delegated_at=parse_ts(data.get("ownerDelegatedAt")),
            created_by=str(data.get("createdBy", "")).strip(),
            created_at=parse_ts(data.get("createdAt")),
            updated_at=parse_ts(data.get("updatedAt")),
        )


@dataclass
class Dependency:
    id: str
    from_item_id: str
    to_item_id: str
    type: str = DEP_BLOCKS
    created_by: str = ""
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fromItemId": self.from_item_id,
            "toItemId": self.to_item_id,
            "type": self.type,
            "createdBy": self.created_by,
            "createdAt": _ts(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dependency:
        return cls(
            id=str(data.get("id", "")).strip(),
            from_item_id=str(data.get("fromItemId", "")).strip(),
            to_item_id=str(data.get("toItemId", "")).strip(),
            type=str(data.get("type") or DEP_BLOCKS).strip(),
            created_by=str(data.get("createdBy", "")).strip(),
            created_at=parse_ts(data.get("createdAt")),
        )


@dataclass
class Comment:
    id: str
    item_id: str
    author_id: str
    body: str
    created_at: datetime | None = None
    reply_to_comment_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "itemId": self.item_id,
            "authorId": self.author_id,
            "body": self.body,
            "createdAt": _ts(self.created_at),
        }
        if self.reply_to_comment_id:
            result["replyToCommentId"] = self.reply_to_comment_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        return cls(
            id=str(data.get("id", "")).strip(),
            item_id=str(data.get("itemId", "")).strip(),
            author_id=str(data.get("authorId", "")).strip(),
            body=str(data.get("body") or ""),
            created_at=parse_ts(data.get("createdAt")),
            reply_to_comment_id=_opt_str(data.get("replyToCommentId")),
        )


@dataclass
class WorklogEntry:
    id: str
    item_id: str
    author_id: str
    body: str
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "itemId": self.item_id,
            "authorId": self.author_id,
            "body": self.body,
            "createdAt": _ts(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorklogEntry:
        return cls(
            id=str(data.get("id", "")).strip(),
            item_id=str(data.get("itemId", "")).strip(),
            author_id=str(data.get("authorId", "")).strip(),
            body=str(data.get("body") or ""),
            created_at=parse_ts(data.get("createdAt")),
        )


@dataclass
class Attachment:
    id: str
    entity_kind: str
    entity_id: str
    path: str  # relative to the workspace root, forward slashes
    original_name: str = ""
    size_bytes: int = 0
    mime_type: str = ""
    sha256: str = ""
    title: str = ""
    alt: str = ""
    created_by: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entityKind": self.entity_kind,
            "entityId": self.entity_id,
            "path": self.path,
            "originalName": self.original_name,
            "sizeBytes": self.size_bytes,
            "mimeType": self.mime_type,
            "sha256Hex": self.sha256,
            "title": self.title,
            "alt": self.alt,
            "createdBy": self.created_by,
            "createdAt": _ts(self.created_at),
            "updatedAt": _ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attachment:
        return cls(
            id=str(data.get("id", "")).strip(),
            entity_kind=str(data.get("entityKind", ATTACH_ITEM)).strip(),
            entity_id=str(data.get("entityId", "")).strip(),
            path=str(data.get("path") or data.get("relativePath") or "").strip(),
            original_name=str(data.get("originalName") or ""),
            size_bytes=int(data.get("sizeBytes", data.get("bytes", 0)) or 0),
            mime_type=str(data.get("mimeType") or ""),
            sha256=str(data.get("sha256Hex") or ""),
            title=str(data.get("title") or ""),
            alt=str(data.get("alt") or ""),
            created_by=str(data.get("createdBy", "")).strip(),
            created_at=parse_ts(data.get("createdAt")),
            updated_at=parse_ts(data.get("updatedAt")),
        )


def parse_counter_id(entity_id: str) -> tuple[str, int] | None:
    """Split "item-12" into ("item", 12); None for ids outside the counter scheme."""
    match = _ID_RE.match((entity_id or "").strip())
    if match is None:
        return None
    return match.group(1), int(match.group(2))


@dataclass
class Aggregate:
    """
    Complete state of a workspace.

    `current_actor_id` and `current_project_id` are local UI hints; every
    other field is reconstructible from the event log.
    """

    version: int = SNAPSHOT_VERSION
    current_actor_id: str = ""
    current_project_id: str = ""
    next_ids: dict[str, int] = field(default_factory=dict)
    actors: list[Actor] = field(default_factory=list)
    projects: list[Project] = field(default_factory=list)
    outlines: list[Outline] = field(default_factory=list)
    items: list[Item] = field(default_factory=list)
    deps: list[Dependency] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    worklog: list[WorklogEntry] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "currentActorId": self.current_actor_id,
            "currentProjectId": self.current_project_id,
            "nextIds": dict(sorted(self.next_ids.items())),
            "actors": [a.to_dict() for a in self.actors],
            "projects": [p.to_dict() for p in self.projects],
            "outlines": [o.to_dict() for o in self.outlines],
            "items": [i.to_dict() for i in self.items],
            "deps": [d.to_dict() for d in self.deps],
            "comments": [c.to_dict() for c in self.comments],
            "worklog": [w.to_dict() for w in self.worklog],
            "attachments": [a.to_dict() for a in self.attachments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Aggregate:
        def rows(key: str) -> list[dict[str, Any]]:
            value = data.get(key) or []
            return [r for r in value if isinstance(r, dict)]

        next_ids = {
            str(k): int(v) for k, v in (data.get("nextIds") or {}).items() if isinstance(v, int)
        }
        return cls(
            version=int(data.get("version") or SNAPSHOT_VERSION),
            current_actor_id=str(data.get("currentActorId") or "").strip(),
            current_project_id=str(data.get("currentProjectId") or "").strip(),
            next_ids=next_ids,
            actors=[Actor.from_dict(r) for r in rows("actors")],
            projects=[Project.from_dict(r) for r in rows("projects")],
            outlines=[Outline.from_dict(r) for r in rows("outlines")],
            items=[Item.from_dict(r) for r in rows("items")],
            deps=[Dependency.from_dict(r) for r in rows("deps")],
            comments=[Comment.from_dict(r) for r in rows("comments")],
            worklog=[WorklogEntry.from_dict(r) for r in rows("worklog")],
            attachments=[Attachment.from_dict(r) for r in rows("attachments")],
        )

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_actor(self, actor_id: str | None) -> Actor | None:
        return _find(self.actors, actor_id)

    def find_project(self, project_id: str | None) -> Project | None:
        return _find(self.projects, project_id)

    def find_outline(self, outline_id: str | None) -> Outline | None:
        return _find(self.outlines, outline_id)

    def find_item(self, item_id: str | None) -> Item | None:
        return _find(self.items, item_id)

    def find_dep(self, dep_id: str | None) -> Dependency | None:
        return _find(self.deps, dep_id)

    def find_comment(self, comment_id: str | None) -> Comment | None:
        return _find(self.comments, comment_id)

    def find_worklog(self, entry_id: str | None) -> WorklogEntry | None:
        return _find(self.worklog, entry_id)

    def find_attachment(self, attachment_id: str | None) -> Attachment | None:
        return _find(self.attachments, attachment_id)

    def require_actor(self, actor_id: str) -> Actor:
        actor = self.find_actor(actor_id)
        if actor is None:
            raise NotFoundError("actor", actor_id)
        return actor

    def require_project(self, project_id: str) -> Project:
        project = self.find_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def require_outline(self, outline_id: str) -> Outline:
        outline = self.find_outline(outline_id)
        if outline is None:
            raise NotFoundError("outline", outline_id)
        return outline

    def require_item(self, item_id: str) -> Item:
        item = self.find_item(item_id)
        if item is None:
            raise NotFoundError("item", item_id)
        return item

    def human_for_actor(self, actor_id: str | None) -> str | None:
        """Owning human: the actor itself for humans, its userId for agents."""
        actor = self.find_actor(actor_id)
        if actor is None:
            return None
        if actor.kind == ACTOR_HUMAN:
            return actor.id
        return actor.user_id or None

    def children_of(self, item_id: str) -> list[Item]:
        return [it for it in self.items if it.parent_id == item_id]

    def siblings(self, outline_id: str, parent_id: str | None, *, include_id: str | None = None) -> list[Item]:
        """Non-archived items sharing (outline, parent); `include_id` is kept even if archived."""
        return [
            it
            for it in self.items
            if it.outline_id == outline_id
            and (it.parent_id or None) == (parent_id or None)
            and (not it.archived or it.id == include_id)
        ]

    def status_def(self, outline_id: str, status_id: str) -> OutlineStatusDef | None:
        outline = self.find_outline(outline_id)
        if outline is None:
            return None
        for d in outline.status_defs:
            if d.id == status_id:
                return d
        return None

    def comments_for(self, item_id: str) -> list[Comment]:
        return [c for c in self.comments if c.item_id == item_id]

    def worklog_for(self, item_id: str) -> list[WorklogEntry]:
        return [w for w in self.worklog if w.item_id == item_id]

    def deps_for(self, item_id: str) -> list[Dependency]:
        return [d for d in self.deps if d.from_item_id == item_id or d.to_item_id == item_id]

    def attachments_for(self, entity_kind: str, entity_id: str) -> list[Attachment]:
        return [a for a in self.attachments if a.entity_kind == entity_kind and a.entity_id == entity_id]

    # -------------------------------------------------------------------------
    # ID allocation
    # -------------------------------------------------------------------------

    def all_ids(self) -> Iterable[str]:
        for collection in (
            self.actors,
            self.projects,
            self.outlines,
            self.items,
            self.deps,
            self.comments,
            self.worklog,
            self.attachments,
        ):
            for entity in collection:
                yield entity.id

    def observe_id(self, entity_id: str) -> None:
        """Raise the counter for the id's prefix so it is never handed out again."""
        parsed = parse_counter_id(entity_id)
        if parsed is None:
            return
        prefix, n = parsed
        if n > self.next_ids.get(prefix, 0):
            self.next_ids[prefix] = n

    def rebuild_next_ids(self, extra_ids: Iterable[str] = ()) -> None:
        """Raise counters to the max observed id; counters never go down."""
        for entity_id in self.all_ids():
            self.observe_id(entity_id)
        for entity_id in extra_ids:
            self.observe_id(entity_id)

    def next_id(self, prefix: str) -> str:
        """Allocate "<prefix>-<n>" with n one above the stored counter."""
        taken = set(self.all_ids())
        n = self.next_ids.get(prefix, 0)
        while True:
            n += 1
            candidate = f"{prefix}-{n}"
            if candidate not in taken:
                self.next_ids[prefix] = n
                return candidate


def _find(collection: list[Any], entity_id: str | None) -> Any:
    key = (entity_id or "").strip()
    if not key:
        return None
    for entity in collection:
        if entity.id == key:
            return entity
    return None
