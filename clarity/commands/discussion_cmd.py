"""Comment and worklog commands."""

from __future__ import annotations

from .runtime import Runtime, boundary


@boundary
def run_comment_add(rt: Runtime, item_id: str, body: str, *, reply_to: str | None = None) -> int:
    comment = rt.engine().comment_add(item_id, body, reply_to=reply_to)
    return rt.emit(comment, hints=["clarity comments list " + comment.item_id])


@boundary
def run_comment_list(rt: Runtime, item_id: str, *, limit: int = 0, offset: int = 0) -> int:
    eng = rt.engine()
    comments = eng.comment_list(item_id, limit=limit, offset=offset)
    total = len(eng.agg.comments_for(item_id))
    hints = []
    end = offset + len(comments)
    if limit > 0 and end < total:
        hints.append(f"clarity comments list {item_id} --limit {limit} --offset {end}")
    return rt.emit(comments, meta={"count": len(comments), "total": total}, hints=hints)


@boundary
def run_worklog_add(rt: Runtime, item_id: str, body: str) -> int:
    entry = rt.engine().worklog_add(item_id, body)
    return rt.emit(entry, hints=["clarity worklog list " + entry.item_id])


@boundary
def run_worklog_list(rt: Runtime, item_id: str, *, limit: int = 0, offset: int = 0) -> int:
    """Only entries written under the viewer's owning human are listed."""
    entries = rt.engine().worklog_list(item_id)
    total = len(entries)
    page = entries[max(offset, 0):]
    if limit > 0:
        page = page[:limit]
    hints = []
    end = offset + len(page)
    if limit > 0 and end < total:
        hints.append(f"clarity worklog list {item_id} --limit {limit} --offset {end}")
    return rt.emit(page, meta={"count": len(page), "total": total}, hints=hints)
