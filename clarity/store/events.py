"""
Event vocabulary for the workspace log.

Each line of events/events.r1.jsonl is one Event. The aggregate is computed
by replaying events in file order; existing lines are never rewritten.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .util import format_ts, parse_ts, utcnow

# Identity
IDENTITY_CREATE = "identity.create"
IDENTITY_USE = "identity.use"
IDENTITY_SEED = "identity.seed"

# Projects
PROJECT_CREATE = "project.create"
PROJECT_UPDATE = "project.update"
PROJECT_RENAME = "project.rename"
PROJECT_ARCHIVE = "project.archive"

# Outlines
OUTLINE_CREATE = "outline.create"
OUTLINE_RENAME = "outline.rename"
OUTLINE_SET_DESCRIPTION = "outline.set_description"
OUTLINE_ARCHIVE = "outline.archive"
OUTLINE_STATUS_ADD = "outline.status.add"
OUTLINE_STATUS_UPDATE = "outline.status.update"
OUTLINE_STATUS_REMOVE = "outline.status.remove"
OUTLINE_STATUS_REORDER = "outline.status.reorder"

# Items
ITEM_CREATE = "item.create"
ITEM_CREATED = "item.created"
ITEM_SET_TITLE = "item.set_title"
ITEM_SET_DESCRIPTION = "item.set_description"
ITEM_SET_STATUS = "item.set_status"
ITEM_SET_PRIORITY = "item.set_priority"
ITEM_SET_ON_HOLD = "item.set_on_hold"
ITEM_SET_DUE = "item.set_due"
ITEM_SET_SCHEDULE = "item.set_schedule"
ITEM_SET_ASSIGN = "item.set_assign"
ITEM_SET_PARENT = "item.set_parent"
ITEM_MOVE = "item.move"
ITEM_MOVE_OUTLINE = "item.move_outline"
ITEM_INDENT = "item.indent"
ITEM_OUTDENT = "item.outdent"
ITEM_TAGS_ADD = "item.tags_add"
ITEM_TAGS_REMOVE = "item.tags_remove"
ITEM_TAGS_SET = "item.tags_set"
ITEM_ARCHIVE = "item.archive"

# Dependencies, discussion, attachments
DEP_ADD = "dep.add"
DEP_REMOVE = "dep.remove"
COMMENT_ADD = "comment.add"
WORKLOG_ADD = "worklog.add"
ATTACHMENT_ADD = "attachment.add"
ATTACHMENT_REMOVE = "attachment.remove"

# Types a command may emit today.
EVENT_TYPES = frozenset({
    IDENTITY_CREATE,
    IDENTITY_USE,
    PROJECT_CREATE,
    PROJECT_UPDATE,
    PROJECT_ARCHIVE,
    OUTLINE_CREATE,
    OUTLINE_RENAME,
    OUTLINE_SET_DESCRIPTION,
    OUTLINE_ARCHIVE,
    OUTLINE_STATUS_ADD,
    OUTLINE_STATUS_UPDATE,
    OUTLINE_STATUS_REMOVE,
    OUTLINE_STATUS_REORDER,
    ITEM_CREATE,
    ITEM_SET_TITLE,
    ITEM_SET_DESCRIPTION,
    ITEM_SET_STATUS,
    ITEM_SET_PRIORITY,
    ITEM_SET_ON_HOLD,
    ITEM_SET_DUE,
    ITEM_SET_SCHEDULE,
    ITEM_SET_ASSIGN,
    ITEM_SET_PARENT,
    ITEM_MOVE,
    ITEM_MOVE_OUTLINE,
    ITEM_TAGS_ADD,
    ITEM_TAGS_REMOVE,
    ITEM_TAGS_SET,
    ITEM_ARCHIVE,
    DEP_ADD,
    DEP_REMOVE,
    COMMENT_ADD,
    WORKLOG_ADD,
    ATTACHMENT_ADD,
    ATTACHMENT_REMOVE,
})

# Older names still found in logs; replay understands them.
LEGACY_EVENT_TYPES = frozenset({
    IDENTITY_SEED,
    PROJECT_RENAME,
    ITEM_CREATED,
    ITEM_INDENT,
    ITEM_OUTDENT,
})

KNOWN_EVENT_TYPES = EVENT_TYPES | LEGACY_EVENT_TYPES


@dataclass(frozen=True)
class Event:
    """One immutable record of the workspace log."""

    id: str
    ts: datetime
    actor_id: str
    type: str
    entity_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_known(self) -> bool:
        return self.type in KNOWN_EVENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ts": format_ts(self.ts),
            "actorId": self.actor_id,
            "type": self.type,
            "entityId": self.entity_id,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        """Serialize to a single JSON line (no trailing newline)."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        payload = data.get("payload")
        ts = parse_ts(data.get("ts"))
        if ts is None:
            raise ValueError("event is missing ts")
        return cls(
            id=str(data.get("id") or "").strip(),
            ts=ts,
            actor_id=str(data.get("actorId") or "").strip(),
            type=str(data.get("type") or "").strip(),
            entity_id=str(data.get("entityId") or "").strip(),
            payload=payload if isinstance(payload, dict) else {},
        )

    @classmethod
    def from_json(cls, line: str) -> Event:
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("event line is not a JSON object")
        return cls.from_dict(data)


def create_event(
    event_id: str,
    actor_id: str,
    event_type: str,
    entity_id: str,
    payload: dict[str, Any] | None = None,
    *,
    ts: datetime | None = None,
) -> Event:
    """Factory for new events; stamps the current UTC time unless `ts` is given."""
    return Event(
        id=event_id,
        ts=ts or utcnow(),
        actor_id=actor_id,
        type=event_type,
        entity_id=entity_id,
        payload=dict(payload or {}),
    )
