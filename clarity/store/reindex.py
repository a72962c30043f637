"""Rebuild the derived snapshot from the event log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import ClarityError
from .model import Aggregate
from .replay import ReplayResult, replay_events
from .store import Store, apply_local_hints

logger = logging.getLogger(__name__)


@dataclass
class ReindexResult:
    dir: Path
    replay: ReplayResult

    @property
    def aggregate(self) -> Aggregate:
        return self.replay.aggregate

    def to_dict(self) -> dict[str, Any]:
        return {"dir": str(self.dir), **self.replay.to_dict()}

    def counts(self) -> dict[str, int]:
        agg = self.aggregate
        return {
            "actors": len(agg.actors),
            "projects": len(agg.projects),
            "outlines": len(agg.outlines),
            "items": len(agg.items),
            "deps": len(agg.deps),
            "comments": len(agg.comments),
            "worklog": len(agg.worklog),
            "attachments": len(agg.attachments),
        }


def _previous_hints(store: Store) -> tuple[str, str]:
    """Local UI hints from the current snapshot, falling back to the hints file."""
    if store.snapshot_path.exists():
        try:
            prev = store.load()
        except ClarityError as exc:
            logger.warning("ignoring unreadable snapshot during reindex: %s", exc)
        else:
            return prev.current_actor_id, prev.current_project_id
    return store.read_local_hints()


def reindex(store: Store, hints: tuple[str, str] | None = None) -> ReindexResult:
    """
    Replay the event log into a fresh snapshot.

    `currentActorId` and `currentProjectId` survive when they still
    resolve. When no actor is selected and exactly one human exists, that
    human becomes current. Pass `hints` when the snapshot has already been
    removed.
    """
    actor_hint, project_hint = hints if hints is not None else _previous_hints(store)
    result = replay_events(store.read_events())
    apply_local_hints(result.aggregate, actor_hint, project_hint)
    store.ensure()
    store.save(result.aggregate)
    logger.info(
        "reindexed %s: applied=%d skipped=%d", store.dir, result.applied_count, result.skipped_count
    )
    return ReindexResult(dir=store.dir, replay=result)
