"""Attachment commands."""

from __future__ import annotations

from pathlib import Path

from ..store.attachments import DEFAULT_MAX_BYTES
from ..store.model import ATTACH_COMMENT, ATTACH_ITEM
from .runtime import Runtime, boundary


def infer_entity_kind(entity_id: str) -> str:
    return ATTACH_COMMENT if entity_id.strip().startswith("cmt-") else ATTACH_ITEM


@boundary
def run_attachment_add(
    rt: Runtime,
    entity_id: str,
    path: Path,
    *,
    entity_kind: str | None = None,
    title: str = "",
    alt: str = "",
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> int:
    kind = entity_kind or infer_entity_kind(entity_id)
    att = rt.engine().attachment_add(kind, entity_id, path, title=title, alt=alt, max_bytes=max_bytes)
    return rt.emit(att, hints=["clarity attachments open " + att.id])


@boundary
def run_attachment_list(rt: Runtime, *, entity_kind: str | None = None, entity_id: str | None = None) -> int:
    atts = rt.engine().attachment_list(entity_kind, entity_id)
    return rt.emit(atts, meta={"count": len(atts)})


@boundary
def run_attachment_open(rt: Runtime, attachment_id: str) -> int:
    """Print the absolute path of the stored file; opening it is left to the caller."""
    eng = rt.engine()
    path = eng.attachment_path(attachment_id)
    verified = eng.store.attachments.verify(eng.agg.find_attachment(attachment_id))
    return rt.emit({"id": attachment_id, "path": str(path)}, meta={"exists": path.is_file(), "verified": verified})


@boundary
def run_attachment_export(rt: Runtime, attachment_id: str, to: Path) -> int:
    dest = rt.engine().attachment_export(attachment_id, to)
    return rt.emit({"id": attachment_id, "path": str(dest)})


@boundary
def run_attachment_remove(rt: Runtime, attachment_id: str) -> int:
    return rt.emit(rt.engine().attachment_remove(attachment_id))
