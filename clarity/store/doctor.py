"""
Doctor: validate the event log and the state it replays to.

Problems are collected as issues instead of raised, so one run reports
everything it can find. `DoctorReport.has_errors` drives `doctor --fail`.
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from ..errors import SyncError
from ..gitsync.status import probe_status
from . import events as ev_types
from .eventlog import EventLog
from .events import Event
from .model import ACTOR_AGENT, ACTOR_HUMAN, DEP_BLOCKS, Aggregate
from .replay import replay_events
from .store import Store
from .util import parse_ts

LEVEL_ERROR = "error"
LEVEL_WARN = "warn"

TIME_REGRESSION_ALLOWANCE = timedelta(minutes=5)

_MERGE_MARKERS = ("<<<<<<<", "=======", ">>>>>>>")

# Event types whose entity must be an item created somewhere in the log.
_ITEM_TYPES = frozenset(t for t in ev_types.KNOWN_EVENT_TYPES if t.startswith("item.")) - {
    ev_types.ITEM_CREATE,
    ev_types.ITEM_CREATED,
}
_OUTLINE_TYPES = frozenset(t for t in ev_types.KNOWN_EVENT_TYPES if t.startswith("outline.")) - {
    ev_types.OUTLINE_CREATE,
}
_PROJECT_TYPES = frozenset({ev_types.PROJECT_UPDATE, ev_types.PROJECT_RENAME, ev_types.PROJECT_ARCHIVE})


@dataclass
class DoctorIssue:
    level: str
    code: str
    message: str
    path: str = ""
    line: int = 0
    event_id: str = ""
    entity_id: str = ""
    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"level": self.level, "code": self.code, "message": self.message}
        if self.path:
            result["path"] = self.path
        if self.line:
            result["line"] = self.line
        if self.event_id:
            result["eventId"] = self.event_id
        if self.entity_id:
            result["entityId"] = self.entity_id
        if self.type:
            result["type"] = self.type
        return result


@dataclass
class DoctorReport:
    issues: list[DoctorIssue] = field(default_factory=list)
    events_scanned: int = 0

    @property
    def has_errors(self) -> bool:
        return any(i.level == LEVEL_ERROR for i in self.issues)

    def codes(self) -> list[str]:
        return [i.code for i in self.issues]

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "hasErrors": self.has_errors,
        }


@dataclass
class _Line:
    path: str
    line: int
    data: dict[str, Any]
    event: Event | None


def run_doctor(workspace_dir: Path, *, check_git: bool = True) -> DoctorReport:
    workspace_dir = Path(workspace_dir)
    report = DoctorReport()

    if check_git:
        try:
            status = probe_status(workspace_dir)
        except (SyncError, OSError):
            status = None
        if status is not None and status.is_repo and status.conflicted:
            report.issues.append(
                DoctorIssue(
                    LEVEL_ERROR,
                    "git_in_progress",
                    "git merge/rebase in progress; resolve conflicts before writing events",
                )
            )

    _check_workspace_meta(Store(workspace_dir, git_guard=False), report)

    lines = _scan_lines(EventLog(workspace_dir), report)
    report.events_scanned = len(lines)
    if not lines:
        return report

    _check_records(lines, report)
    _check_references(lines, report)

    parsed = [ln.event for ln in lines if ln.event is not None]
    agg = replay_events(parsed).aggregate
    for level, message in check_invariants(agg):
        report.issues.append(DoctorIssue(level, "invariant_violation", message))
    return report


def _check_workspace_meta(store: Store, report: DoctorReport) -> None:
    path = store.meta_path
    if not path.exists():
        return
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return
    try:
        meta = json.loads(text)
    except json.JSONDecodeError as exc:
        report.issues.append(DoctorIssue(LEVEL_ERROR, "workspace_meta_invalid_json", str(exc), str(path), 1))
        return
    if not isinstance(meta, dict) or not str(meta.get("workspaceId") or "").strip():
        report.issues.append(
            DoctorIssue(LEVEL_ERROR, "workspace_meta_missing_id", "meta/workspace.json: empty workspaceId", str(path), 1)
        )


def _scan_lines(log: EventLog, report: DoctorReport) -> list[_Line]:
    out: list[_Line] = []
    for raw in log.iter_lines():
        path = str(raw.path)
        if raw.text.startswith(_MERGE_MARKERS):
            report.issues.append(
                DoctorIssue(LEVEL_ERROR, "merge_marker", "git merge conflict marker in events log", path, raw.line_no)
            )
            continue
        try:
            data = json.loads(raw.text)
        except json.JSONDecodeError as exc:
            report.issues.append(DoctorIssue(LEVEL_ERROR, "malformed_json", str(exc), path, raw.line_no))
            continue
        if not isinstance(data, dict):
            report.issues.append(
                DoctorIssue(LEVEL_ERROR, "malformed_json", "event line is not a JSON object", path, raw.line_no)
            )
            continue
        try:
            event: Event | None = Event.from_dict(data)
        except ValueError:
            event = None
        out.append(_Line(path=path, line=raw.line_no, data=data, event=event))
    return out


def _check_records(lines: list[_Line], report: DoctorReport) -> None:
    seen: dict[str, _Line] = {}
    latest: datetime | None = None
    for ln in lines:
        data = ln.data
        event_id = str(data.get("id") or "").strip()
        typ = str(data.get("type") or "").strip()

        def issue(level: str, code: str, message: str) -> None:
            report.issues.append(
                DoctorIssue(
                    level,
                    code,
                    message,
                    path=ln.path,
                    line=ln.line,
                    event_id=event_id,
                    entity_id=str(data.get("entityId") or "").strip(),
                    type=typ,
                )
            )

        if not typ:
            issue(LEVEL_ERROR, "missing_type", "missing event type")
        elif typ not in ev_types.KNOWN_EVENT_TYPES:
            issue(LEVEL_WARN, "unknown_type", f"unknown event type {typ!r} (skipped by replay)")
        if not event_id:
            issue(LEVEL_ERROR, "missing_event_id", "missing event id")
        elif event_id in seen:
            prev = seen[event_id]
            issue(LEVEL_ERROR, "duplicate_event_id", f"duplicate event id {event_id} (also at {prev.path}:{prev.line})")
        else:
            seen[event_id] = ln
        if not str(data.get("actorId") or "").strip():
            issue(LEVEL_ERROR, "missing_actor_id", "missing actorId")

        try:
            ts = parse_ts(data.get("ts"))
        except ValueError as exc:
            issue(LEVEL_ERROR, "missing_ts", f"invalid ts: {exc}")
            ts = None
        else:
            if ts is None:
                issue(LEVEL_ERROR, "missing_ts", "missing ts")
        if ts is not None:
            if latest is not None and latest - ts > TIME_REGRESSION_ALLOWANCE:
                issue(LEVEL_WARN, "time_regression", f"ts goes back {latest - ts} from an earlier event")
            if latest is None or ts > latest:
                latest = ts

        payload = data.get("payload")
        if not isinstance(payload, dict) or not payload:
            issue(LEVEL_WARN, "empty_payload", "empty payload (expected JSON object)")


def _check_references(lines: list[_Line], report: DoctorReport) -> None:
    """Actor and entity references, resolved against the whole log (merges reorder lines)."""
    created: dict[str, set[str]] = {"actor": set(), "project": set(), "outline": set(), "item": set()}
    create_types = {
        ev_types.IDENTITY_CREATE: "actor",
        ev_types.IDENTITY_SEED: "actor",
        ev_types.PROJECT_CREATE: "project",
        ev_types.OUTLINE_CREATE: "outline",
        ev_types.ITEM_CREATE: "item",
        ev_types.ITEM_CREATED: "item",
    }
    for ln in lines:
        if ln.event is not None and ln.event.type in create_types:
            created[create_types[ln.event.type]].add(ln.event.entity_id)

    for ln in lines:
        event = ln.event
        if event is None:
            continue

        def issue(level: str, code: str, message: str, entity_id: str) -> None:
            report.issues.append(
                DoctorIssue(level, code, message, ln.path, ln.line, event.id, entity_id, event.type)
            )

        if event.actor_id and event.actor_id not in created["actor"]:
            issue(LEVEL_ERROR, "missing_actor", f"actor {event.actor_id} is never created", event.actor_id)

        wanted: list[tuple[str, str]] = []
        if event.type in _ITEM_TYPES:
            wanted.append(("item", event.entity_id))
        elif event.type in _OUTLINE_TYPES:
            wanted.append(("outline", event.entity_id))
        elif event.type in _PROJECT_TYPES:
            wanted.append(("project", event.entity_id))
        elif event.type == ev_types.ITEM_CREATE:
            wanted.append(("outline", str(event.payload.get("outlineId") or "")))
        elif event.type == ev_types.DEP_ADD:
            wanted.append(("item", str(event.payload.get("fromItemId") or "")))
            wanted.append(("item", str(event.payload.get("toItemId") or "")))
        elif event.type in (ev_types.COMMENT_ADD, ev_types.WORKLOG_ADD):
            wanted.append(("item", str(event.payload.get("itemId") or "")))
        for kind, ref in wanted:
            if ref and ref not in created[kind]:
                issue(LEVEL_WARN, "missing_entity", f"{kind} {ref} is never created", ref)


def check_invariants(agg: Aggregate) -> list[tuple[str, str]]:
    """Return (level, message) for each aggregate invariant that does not hold."""
    problems: list[tuple[str, str]] = []

    def err(message: str) -> None:
        problems.append((LEVEL_ERROR, message))

    for name, collection in (
        ("actor", agg.actors),
        ("project", agg.projects),
        ("outline", agg.outlines),
        ("item", agg.items),
        ("dependency", agg.deps),
        ("comment", agg.comments),
        ("worklog", agg.worklog),
        ("attachment", agg.attachments),
    ):
        for entity_id, n in Counter(e.id for e in collection).items():
            if n > 1:
                err(f"duplicate {name} id {entity_id}")

    for actor in agg.actors:
        if actor.kind == ACTOR_AGENT:
            owner = agg.find_actor(actor.user_id)
            if owner is None or owner.kind != ACTOR_HUMAN:
                err(f"agent {actor.id} userId does not resolve to a human")

    for outline in agg.outlines:
        if agg.find_project(outline.project_id) is None:
            err(f"outline {outline.id} project {outline.project_id} not found")

    for item in agg.items:
        outline = agg.find_outline(item.outline_id)
        if outline is None or outline.project_id != item.project_id:
            err(f"item {item.id} outline {item.outline_id} not in project {item.project_id}")
        if item.status_id and agg.status_def(item.outline_id, item.status_id) is None:
            err(f"item {item.id} status {item.status_id} not defined on outline {item.outline_id}")
        if agg.find_actor(item.owner_actor_id) is None:
            err(f"item {item.id} owner {item.owner_actor_id} not found")
        if item.parent_id:
            parent = agg.find_item(item.parent_id)
            if parent is None or parent.outline_id != item.outline_id:
                err(f"item {item.id} parent {item.parent_id} not in outline {item.outline_id}")
        seen = {item.id}
        cur = item.parent_id
        while cur:
            if cur in seen:
                err(f"item {item.id} parent chain has a cycle")
                break
            seen.add(cur)
            parent = agg.find_item(cur)
            cur = parent.parent_id if parent is not None else None

    ranks: Counter[tuple[str, str, str]] = Counter(
        (it.outline_id, it.parent_id or "", it.rank) for it in agg.items if not it.archived
    )
    for (outline_id, parent_id, rank), n in ranks.items():
        if n > 1:
            problems.append(
                (LEVEL_WARN, f"{n} siblings share rank {rank!r} in {outline_id}/{parent_id or '-'}")
            )

    pairs: Counter[tuple[str, str]] = Counter()
    for dep in agg.deps:
        if agg.find_item(dep.from_item_id) is None or agg.find_item(dep.to_item_id) is None:
            err(f"dependency {dep.id} endpoint not found")
        if dep.type == DEP_BLOCKS:
            pairs[(dep.from_item_id, dep.to_item_id)] += 1
    for (src, dst), n in pairs.items():
        if n > 1:
            err(f"{n} blocks edges from {src} to {dst}")
    return problems
