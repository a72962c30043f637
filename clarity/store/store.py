"""
Store facade for one workspace directory.

Layout:

    events/events.r1.jsonl   canonical event log
    meta/workspace.json      workspace identity
    resources/**             attachments
    .clarity/state.json      derived snapshot (git-ignored)

The snapshot is rewritten wholesale via temp file + rename; the event log
is only appended to.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import ClarityIOError, InvalidArgumentError, NotFoundError, SyncError, WriteBlockedError
from ..gitsync.status import probe_status
from . import events as ev_types
from .attachments import DEFAULT_MAX_BYTES, AttachmentStore, normalize_entity_kind
from .eventlog import EventLog
from .events import Event, create_event
from .migrate import migrate_aggregate, migrate_snapshot_dict
from .model import ACTOR_HUMAN, ATTACH_COMMENT, Aggregate, Attachment
from .replay import replay_workspace
from .util import atomic_write_text, format_ts, utcnow

logger = logging.getLogger(__name__)

DERIVED_DIRNAME = ".clarity"
SNAPSHOT_FILENAME = "state.json"
LOCAL_HINTS_FILENAME = "local.json"
META_DIRNAME = "meta"
WORKSPACE_META_FILENAME = "workspace.json"
RESOURCES_DIRNAME = "resources"


def local_hints(agg: Aggregate) -> dict[str, str]:
    return {"currentActorId": agg.current_actor_id, "currentProjectId": agg.current_project_id}


def apply_local_hints(agg: Aggregate, actor_id: str, project_id: str) -> None:
    """Restore hints that still resolve; with no actor and a single human, pick the human."""
    if actor_id and agg.find_actor(actor_id) is not None:
        agg.current_actor_id = actor_id
    if project_id and agg.find_project(project_id) is not None:
        agg.current_project_id = project_id
    if not agg.current_actor_id:
        humans = [a for a in agg.actors if a.kind == ACTOR_HUMAN]
        if len(humans) == 1:
            agg.current_actor_id = humans[0].id


class Store:
    def __init__(self, workspace_dir: Path | str, *, git_guard: bool = True):
        self.dir = Path(workspace_dir)
        self.git_guard = git_guard
        self.log = EventLog(self.dir)
        self.attachments = AttachmentStore(self.dir)

    @property
    def snapshot_path(self) -> Path:
        return self.dir / DERIVED_DIRNAME / SNAPSHOT_FILENAME

    @property
    def local_hints_path(self) -> Path:
        return self.dir / DERIVED_DIRNAME / LOCAL_HINTS_FILENAME

    @property
    def meta_path(self) -> Path:
        return self.dir / META_DIRNAME / WORKSPACE_META_FILENAME

    @property
    def resources_dir(self) -> Path:
        return self.dir / RESOURCES_DIRNAME

    def ensure(self) -> None:
        try:
            (self.dir / DERIVED_DIRNAME).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ClarityIOError(f"create workspace {self.dir}: {exc}") from exc

    def is_initialized(self) -> bool:
        return self.snapshot_path.exists() or self.log.exists()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def load(self) -> Aggregate:
        """
        Read the derived snapshot.

        A missing snapshot is rebuilt from the event log when there is one,
        otherwise an empty aggregate is returned. Legacy field names are
        migrated on the way in.
        """
        if not self.snapshot_path.exists():
            if self.log.exists():
                logger.info("snapshot missing; replaying %s", self.log.path)
                agg = replay_workspace(self.dir).aggregate
                apply_local_hints(agg, *self.read_local_hints())
                return agg
            return Aggregate()
        try:
            raw = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ClarityIOError(f"load snapshot {self.snapshot_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ClarityIOError(
                f"load snapshot {self.snapshot_path}: {exc} (try: clarity reindex)"
            ) from exc
        if not isinstance(raw, dict):
            raise ClarityIOError(f"load snapshot {self.snapshot_path}: not a JSON object (try: clarity reindex)")
        raw, legacy_order, _ = migrate_snapshot_dict(raw)
        agg = Aggregate.from_dict(raw)
        migrate_aggregate(agg, legacy_order)
        return agg

    def save(self, agg: Aggregate) -> None:
        try:
            atomic_write_text(self.snapshot_path, json.dumps(agg.to_dict(), indent=2, ensure_ascii=False) + "\n")
            atomic_write_text(self.local_hints_path, json.dumps(local_hints(agg), indent=2) + "\n")
        except OSError as exc:
            raise ClarityIOError(f"save snapshot {self.snapshot_path}: {exc}") from exc

    def read_local_hints(self) -> tuple[str, str]:
        """(currentActorId, currentProjectId) kept beside the snapshot; survives its deletion."""
        try:
            data = json.loads(self.local_hints_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return "", ""
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("ignoring unreadable %s: %s", self.local_hints_path, exc)
            return "", ""
        if not isinstance(data, dict):
            return "", ""
        return (
            str(data.get("currentActorId") or "").strip(),
            str(data.get("currentProjectId") or "").strip(),
        )

    def next_id(self, agg: Aggregate, prefix: str) -> str:
        return agg.next_id(prefix)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def new_event(
        self,
        agg: Aggregate,
        actor_id: str,
        event_type: str,
        entity_id: str,
        payload: dict[str, Any],
        *,
        ts: datetime | None = None,
    ) -> Event:
        """Build an event whose id comes from the aggregate's "evt" counter."""
        return create_event(agg.next_id("evt"), actor_id, event_type, entity_id, payload, ts=ts)

    def check_writable(self) -> None:
        """Refuse writes while a merge or rebase is unresolved; git failures do not block."""
        if not self.git_guard:
            return
        try:
            status = probe_status(self.dir)
        except (SyncError, OSError) as exc:
            logger.debug("git probe failed, not blocking write: %s", exc)
            return
        if status.is_repo and status.conflicted:
            raise WriteBlockedError()

    def append_events(self, events: list[Event]) -> None:
        if not events:
            return
        self.check_writable()
        self.ensure_workspace_meta()
        self.log.append_many(events)

    def commit(self, agg: Aggregate, events: list[Event], *, checked: bool = False) -> None:
        """
        Persist one command: save the snapshot, then append its events.

        A failed save raises before any event is written.
        """
        if not checked:
            self.check_writable()
        self.ensure()
        self.save(agg)
        if events:
            self.ensure_workspace_meta()
            self.log.append_many(events)

    def append_event(
        self, agg: Aggregate, actor_id: str, event_type: str, entity_id: str, payload: dict[str, Any]
    ) -> Event:
        event = self.new_event(agg, actor_id, event_type, entity_id, payload)
        self.append_events([event])
        return event

    def read_events(self) -> list[Event]:
        return self.log.read_events()

    # -------------------------------------------------------------------------
    # Workspace meta
    # -------------------------------------------------------------------------

    def read_workspace_meta(self) -> dict[str, Any] | None:
        if not self.meta_path.exists():
            return None
        try:
            data = json.loads(self.meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ClarityIOError(f"read {self.meta_path}: {exc}") from exc
        return data if isinstance(data, dict) else None

    def ensure_workspace_meta(self, workspace_id: str = "") -> dict[str, Any]:
        if self.meta_path.exists():
            return self.read_workspace_meta() or {}
        meta = {"workspaceId": workspace_id or str(uuid.uuid4()), "createdAt": format_ts(utcnow())}
        try:
            atomic_write_text(self.meta_path, json.dumps(meta, indent=2) + "\n")
        except OSError as exc:
            raise ClarityIOError(f"write {self.meta_path}: {exc}") from exc
        return meta

    # -------------------------------------------------------------------------
    # Attachments
    # -------------------------------------------------------------------------

    def attachment_abs_path(self, attachment: Attachment) -> Path:
        return self.attachments.abs_path(attachment)

    def add_attachment(
        self,
        agg: Aggregate,
        actor_id: str,
        entity_kind: str,
        entity_id: str,
        src_path: Path | str,
        *,
        title: str = "",
        alt: str = "",
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> tuple[Attachment, Event]:
        """
        Copy a file into the workspace and record it.

        Saves the snapshot and appends the attachment.add event.
        """
        kind = normalize_entity_kind(entity_kind)
        entity_id = (entity_id or "").strip()
        if not entity_id:
            raise InvalidArgumentError("missing entity id")
        if kind == ATTACH_COMMENT:
            if agg.find_comment(entity_id) is None:
                raise NotFoundError("comment", entity_id)
        elif agg.find_item(entity_id) is None:
            raise NotFoundError("item", entity_id)

        self.check_writable()
        attachment_id = agg.next_id("att")
        stored = self.attachments.copy_in(attachment_id, Path(src_path), max_bytes=max_bytes)
        now = utcnow()
        attachment = Attachment(
            id=attachment_id,
            entity_kind=kind,
            entity_id=entity_id,
            path=stored.relative_path,
            original_name=stored.original_name,
            size_bytes=stored.size_bytes,
            mime_type=stored.mime_type,
            sha256=stored.sha256,
            title=title.strip(),
            alt=alt.strip(),
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        agg.attachments.append(attachment)
        event = self.new_event(agg, actor_id, ev_types.ATTACHMENT_ADD, attachment.id, attachment.to_dict())
        self.commit(agg, [event], checked=True)
        return attachment, event
