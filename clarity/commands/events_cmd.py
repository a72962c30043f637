"""Event log listing."""

from __future__ import annotations

from ..engine import DEFAULT_EVENTS_LIMIT
from .runtime import Runtime, boundary


@boundary
def run_events_list(rt: Runtime, *, limit: int = DEFAULT_EVENTS_LIMIT, entity_id: str | None = None) -> int:
    events = rt.engine().events_list(limit=limit, entity_id=entity_id)
    meta = {"count": len(events), "limit": limit}
    if entity_id:
        meta["entity"] = entity_id
    return rt.emit(events, meta=meta)
