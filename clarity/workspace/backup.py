"""
Portable backups and layout migration.

A backup directory holds state.json (the snapshot), events.jsonl (the
full event log) and a manifest.json for humans. Importing replays the
events when they are present, so the imported workspace has a log that
rebuilds it.

Migration covers two older layouts: a snapshot with no event log, and
the SQLite event store, which is copied into a fresh directory.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from .. import __version__
from ..errors import ClarityIOError, ConflictError, InvalidArgumentError, NotFoundError
from ..gitsync import sync
from ..gitsync.git import Git
from ..gitsync.status import probe_status
from ..store.events import Event
from ..store.legacy_sqlite import find_legacy_db, read_legacy_db
from ..store.migrate import migrate_aggregate, migrate_snapshot_dict, synthesize_events
from ..store.model import Aggregate
from ..store.replay import replay_events
from ..store.store import RESOURCES_DIRNAME, Store, apply_local_hints
from ..store.util import atomic_write_text, format_ts, utcnow
from .registry import Registry

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"
EVENTS_FILENAME = "events.jsonl"
MANIFEST_FILENAME = "manifest.json"
MANIFEST_VERSION = 1


def read_events_jsonl(path: Path) -> list[Event]:
    events: list[Event] = []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise ClarityIOError(f"read {path}: {exc}") from exc
    for line_no, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            events.append(Event.from_json(line))
        except (json.JSONDecodeError, ValueError) as exc:
            raise ClarityIOError(f"malformed event at {path.name}:{line_no}: {exc}") from exc
    return events


def export_workspace(
    store: Store,
    to: Path | str,
    *,
    workspace_name: str = "",
    include_events: bool = True,
    force: bool = False,
) -> dict[str, Any]:
    """Write a backup of `store` into the directory `to`."""
    if not str(to).strip():
        raise InvalidArgumentError("missing --to (target directory)")
    target = Path(to)
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ClarityIOError(f"create {target}: {exc}") from exc
    if not force and any(target.iterdir()):
        raise ConflictError("target directory is not empty (pass --force to overwrite)")

    agg = store.load()
    state_path = target / STATE_FILENAME
    events_path = target / EVENTS_FILENAME
    files: dict[str, str] = {"state": STATE_FILENAME}
    events: list[Event] = []
    try:
        atomic_write_text(state_path, json.dumps(agg.to_dict(), indent=2, ensure_ascii=False) + "\n")
        if include_events:
            events = store.read_events()
            atomic_write_text(events_path, "".join(e.to_json() + "\n" for e in events))
            files["events"] = EVENTS_FILENAME
        manifest = {
            "version": MANIFEST_VERSION,
            "exportedAt": format_ts(utcnow()),
            "clarityVersion": __version__,
            "workspace": {"name": workspace_name, "dir": str(store.dir)},
            "files": files,
        }
        atomic_write_text(target / MANIFEST_FILENAME, json.dumps(manifest, indent=2) + "\n")
    except OSError as exc:
        raise ClarityIOError(f"export to {target}: {exc}") from exc

    logger.info("exported %s to %s (%d events)", store.dir, target, len(events))
    return {
        "to": str(target),
        "statePath": str(state_path),
        "eventsPath": str(events_path) if include_events else "",
        "eventsCount": len(events),
        "workspace": workspace_name,
        "workspaceDir": str(store.dir),
    }


def _load_state(path: Path) -> Aggregate:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise NotFoundError("backup file", str(path)) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ClarityIOError(f"read {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ClarityIOError(f"read {path}: not a JSON object")
    raw, legacy_order, _ = migrate_snapshot_dict(raw)
    agg = Aggregate.from_dict(raw)
    migrate_aggregate(agg, legacy_order)
    return agg


def import_workspace(
    registry: Registry,
    from_dir: Path | str,
    name: str,
    *,
    force: bool = False,
    use: bool = False,
    with_events: bool = True,
) -> dict[str, Any]:
    """
    Create local workspace `name` from a backup directory.

    With events present the snapshot is rebuilt by replay and only the
    local hints are taken from state.json.
    """
    if not str(from_dir).strip():
        raise InvalidArgumentError("missing --from (backup directory)")
    source = Path(from_dir)
    state = _load_state(source / STATE_FILENAME)

    dest = registry.local_dir(name)
    if dest.exists():
        if not force:
            raise ConflictError("workspace already exists (pass --force to replace it)")
        shutil.rmtree(dest)

    store = Store(dest, git_guard=False)
    store.ensure()
    events: list[Event] = []
    events_path = source / EVENTS_FILENAME
    if with_events and events_path.exists():
        events = read_events_jsonl(events_path)

    if events:
        store.log.append_many(events)
        agg = replay_events(events).aggregate
        apply_local_hints(agg, state.current_actor_id, state.current_project_id)
    else:
        agg = state
    store.ensure_workspace_meta()
    store.save(agg)

    if use:
        config = registry.load()
        config.current_workspace = name.strip()
        registry.save(config)

    logger.info("imported %s into %s (%d events)", source, dest, len(events))
    return {
        "workspace": name.strip(),
        "dir": str(dest),
        "from": str(source),
        "eventsCount": len(events),
        "used": use,
    }


def migrate_workspace(
    workspace_dir: Path | str,
    *,
    actor_id: str = "",
    from_snapshot: Path | str | None = None,
    git_init: bool = False,
    git_commit: bool = False,
    message: str = "",
) -> dict[str, Any]:
    """
    Give a snapshot-only workspace an event log.

    Reads `from_snapshot` (default: the workspace's own snapshot),
    synthesizes creation events for every entity and writes them with
    the workspace meta. Refuses when the workspace already has events.
    """
    store = Store(workspace_dir, git_guard=False)
    if store.log.exists():
        raise ConflictError(f"workspace already has an event log: {store.log.path}")
    snapshot = Path(from_snapshot) if from_snapshot else store.snapshot_path
    agg = _load_state(snapshot)
    actor = actor_id.strip() or agg.current_actor_id
    if not actor and agg.actors:
        actor = agg.actors[0].id

    events = synthesize_events(agg, actor)
    store.ensure()
    store.save(agg)
    store.ensure_workspace_meta()
    store.log.append_many(events)

    result: dict[str, Any] = {
        "dir": str(store.dir),
        "eventsCount": len(events),
        "gitInitialized": False,
        "committed": False,
    }
    msg = message.strip() or (
        f"clarity: migrate snapshot -> events ({actor})" if actor else "clarity: migrate snapshot -> events"
    )
    _finish_git(store.dir, result, git_init=git_init, git_commit=git_commit, message=msg)
    logger.info("migrated %s: %d events", store.dir, len(events))
    return result


def _finish_git(
    workspace_dir: Path, result: dict[str, Any], *, git_init: bool, git_commit: bool, message: str
) -> None:
    if git_init and not probe_status(workspace_dir).is_repo:
        Git(workspace_dir).run(["init"])
        result["gitInitialized"] = True
    if git_init or git_commit:
        sync.ensure_gitignore(workspace_dir)
    if git_commit:
        if not probe_status(workspace_dir).is_repo:
            raise InvalidArgumentError("cannot commit: target dir is not a git repo (try: --git-init)")
        result["committed"] = sync.commit_workspace_canonical(workspace_dir, message)


def migrate_sqlite_workspace(
    from_dir: Path | str,
    to_dir: Path | str,
    *,
    actor_id: str = "",
    git_init: bool = False,
    git_commit: bool = False,
    message: str = "",
) -> dict[str, Any]:
    """
    Copy a SQLite-backed workspace into a new directory with the JSONL layout.

    The target must be missing or empty. Events keep their ids, order and
    timestamps, the workspace id carries over into meta/workspace.json,
    and resources/ is copied along. The snapshot is rebuilt by replay.
    """
    if not str(from_dir).strip():
        raise InvalidArgumentError("missing --from")
    if not str(to_dir).strip():
        raise InvalidArgumentError("missing --to")
    source = Path(from_dir).expanduser()
    target = Path(to_dir).expanduser()
    if target.exists():
        if not target.is_dir():
            raise InvalidArgumentError(f"--to is not a directory: {target}")
        if any(target.iterdir()):
            raise ConflictError(f"target directory is not empty: {target}")

    db_path = find_legacy_db(source)
    legacy = read_legacy_db(db_path)

    store = Store(target, git_guard=False)
    store.ensure()
    store.ensure_workspace_meta(legacy.workspace_id)
    store.log.append_many(legacy.events)
    resources = source / RESOURCES_DIRNAME
    if resources.is_dir():
        try:
            shutil.copytree(resources, store.resources_dir, dirs_exist_ok=True)
        except OSError as exc:
            logger.warning("could not copy %s: %s", resources, exc)
    replayed = replay_events(legacy.events)
    apply_local_hints(replayed.aggregate, actor_id.strip(), "")
    store.save(replayed.aggregate)
    sync.ensure_gitignore(store.dir)

    result: dict[str, Any] = {
        "fromDir": str(source),
        "toDir": str(target),
        "sqlitePath": str(db_path),
        "workspaceId": legacy.workspace_id,
        "eventsCount": len(legacy.events),
        "skippedCount": replayed.skipped_count,
        "gitInitialized": False,
        "committed": False,
    }
    actor = actor_id.strip()
    msg = message.strip() or (
        f"clarity: migrate sqlite -> jsonl ({actor})" if actor else "clarity: migrate sqlite -> jsonl"
    )
    _finish_git(store.dir, result, git_init=git_init, git_commit=git_commit, message=msg)
    logger.info("migrated %s into %s: %d events", db_path, target, len(legacy.events))
    return result
