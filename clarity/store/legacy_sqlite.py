"""
Reader for the SQLite event store older workspaces kept.

Those workspaces held their log in a single SQLite file with a `meta`
key/value table and an `events` table. The reader is read-only; the
migration in clarity.workspace.backup turns what it returns into the
JSONL layout.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from ..errors import ClarityIOError, NotFoundError
from .events import Event

logger = logging.getLogger(__name__)

# Searched in order below the workspace directory.
LEGACY_DB_PATHS = (
    Path(".clarity") / "index.sqlite",
    Path(".clarity") / "clarity.sqlite",
    Path("clarity.sqlite"),
)

EVENTS_QUERY = (
    "SELECT event_id, issued_at_unixms, actor_id, type, entity_id, payload_json "
    "FROM events ORDER BY created_at_unixms ASC"
)


@dataclass
class LegacyWorkspace:
    path: Path
    workspace_id: str
    replica_id: str = ""
    events: list[Event] = field(default_factory=list)


def find_legacy_db(workspace_dir: Path | str) -> Path:
    root = Path(workspace_dir)
    for rel in LEGACY_DB_PATHS:
        candidate = root / rel
        if candidate.is_file():
            return candidate
    raise NotFoundError("sqlite event store", str(root))


def _ts(ms: int | None) -> datetime:
    return datetime.fromtimestamp((ms or 0) / 1000, tz=timezone.utc)


def _payload(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def read_legacy_db(path: Path | str) -> LegacyWorkspace:
    """Load workspace id and events from a legacy database, oldest first."""
    path = Path(path)
    try:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    except sqlite3.Error as exc:
        raise ClarityIOError(f"open {path}: {exc}") from exc
    try:
        meta = dict(conn.execute("SELECT k, v FROM meta").fetchall())
        rows = conn.execute(EVENTS_QUERY).fetchall()
    except sqlite3.Error as exc:
        raise ClarityIOError(f"read {path}: {exc}") from exc
    finally:
        conn.close()

    workspace_id = str(meta.get("workspace_id") or "").strip()
    if not workspace_id:
        raise ClarityIOError(f"read {path}: missing meta.workspace_id")

    events = [
        Event(
            id=str(event_id or "").strip(),
            ts=_ts(issued_ms),
            actor_id=str(actor_id or "").strip(),
            type=str(event_type or "").strip(),
            entity_id=str(entity_id or "").strip(),
            payload=_payload(payload_json),
        )
        for event_id, issued_ms, actor_id, event_type, entity_id, payload_json in rows
    ]
    logger.debug("read %d events from %s", len(events), path)
    return LegacyWorkspace(
        path=path,
        workspace_id=workspace_id,
        replica_id=str(meta.get("replica_id") or "").strip(),
        events=events,
    )
