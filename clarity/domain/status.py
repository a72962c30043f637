"""
Outline status definitions and completion gating.

Status ids are opaque per outline; labels are the user-facing names. Input
may name a status by either, and `none` clears it.
"""

from __future__ import annotations

import re
from typing import Sequence

from ..errors import CompletionBlockedError, ConflictError, GateError, InvalidArgumentError, NotFoundError
from ..store.model import DEP_BLOCKS, Aggregate, Item, Outline, OutlineStatusDef

_NON_ID_RE = re.compile(r"[^a-z0-9-]+")
_BUILTIN = {"todo": "todo", "doing": "doing", "done": "done"}

REASON_BOTH = "has incomplete children and incomplete dependencies"
REASON_CHILDREN = "has incomplete children"
REASON_DEPS = "blocked by incomplete dependencies"


def slugify_status_id(label: str) -> str:
    s = label.strip().lower().replace(" ", "-")
    s = _NON_ID_RE.sub("-", s).strip("-")
    return s or "status"


def new_status_id(outline: Outline, label: str) -> str:
    """Slug of `label`, suffixed -2, -3, ... until unused on `outline`."""
    base = slugify_status_id(label)
    used = {d.id for d in outline.status_defs}
    if base not in used:
        return base
    for i in range(2, 1000):
        candidate = f"{base}-{i}"
        if candidate not in used:
            return candidate
    return f"{base}-x"


def normalize_status_input(raw: str | None) -> str:
    """Fold TODO/DOING/DONE to their ids; "none" and empty input clear the status."""
    text = (raw or "").strip()
    if not text or text.lower() == "none":
        return ""
    return _BUILTIN.get(text.lower(), text)


def find_status_def(outline: Outline, key: str) -> OutlineStatusDef | None:
    """Match `key` against ids first, then labels."""
    key = key.strip()
    if not key:
        return None
    for d in outline.status_defs:
        if d.id == key:
            return d
    for d in outline.status_defs:
        if d.label == key:
            return d
    return None


def resolve_status(agg: Aggregate, outline_id: str, raw: str | None) -> str:
    """Status id for user input under an outline; "" means no status."""
    text = (raw or "").strip()
    status_id = normalize_status_input(text)
    if not status_id:
        return ""
    outline = agg.require_outline(outline_id)
    found = find_status_def(outline, status_id) or find_status_def(outline, text)
    if found is None:
        raise InvalidArgumentError(f"invalid status for outline {outline_id}: {text}")
    return found.id


def is_end_state(agg: Aggregate, outline_id: str, status_id: str) -> bool:
    status_id = (status_id or "").strip()
    if not status_id:
        return False
    d = agg.status_def(outline_id, status_id)
    if d is not None:
        return d.is_end_state
    # Outlines without a definition for this id.
    return status_id.lower() == "done"


def requires_note(agg: Aggregate, outline_id: str, status_id: str) -> bool:
    d = agg.status_def(outline_id, (status_id or "").strip())
    return d is not None and d.requires_note


# -----------------------------------------------------------------------------
# Completion gating
# -----------------------------------------------------------------------------


def has_incomplete_children(agg: Aggregate, item_id: str) -> bool:
    for child in agg.children_of(item_id):
        if child.archived or not child.status_id.strip():
            continue
        if not is_end_state(agg, child.outline_id, child.status_id):
            return True
    return False


def has_incomplete_blockers(agg: Aggregate, item_id: str) -> bool:
    for dep in agg.deps:
        if dep.type != DEP_BLOCKS or dep.from_item_id != item_id:
            continue
        target = agg.find_item(dep.to_item_id)
        if target is None:
            return True
        if target.archived:
            continue
        if not is_end_state(agg, target.outline_id, target.status_id):
            return True
    return False


def completion_blocker(agg: Aggregate, item_id: str) -> str:
    """Why `item_id` cannot enter an end-state, or "" when nothing blocks it."""
    children = has_incomplete_children(agg, item_id)
    deps = has_incomplete_blockers(agg, item_id)
    if children and deps:
        return REASON_BOTH
    if children:
        return REASON_CHILDREN
    if deps:
        return REASON_DEPS
    return ""


def check_transition(agg: Aggregate, item: Item, status_id: str, *, note: str = "") -> None:
    """Gate a status change: end-states need complete children and blockers, some statuses a note."""
    if is_end_state(agg, item.outline_id, status_id):
        reason = completion_blocker(agg, item.id)
        if reason:
            raise CompletionBlockedError(item.id, reason)
    if requires_note(agg, item.outline_id, status_id) and not note.strip():
        raise GateError(f"status {status_id} requires a note (use --note)")


# -----------------------------------------------------------------------------
# Definition edits
# -----------------------------------------------------------------------------


def _check_label_free(outline: Outline, label: str) -> None:
    if any(d.label == label for d in outline.status_defs):
        raise InvalidArgumentError("status label already exists on this outline")


def add_status_def(outline: Outline, label: str, *, end: bool = False, requires_note: bool = False) -> OutlineStatusDef:
    label = label.strip()
    if not label:
        raise InvalidArgumentError("missing --label")
    _check_label_free(outline, label)
    status_def = OutlineStatusDef(
        id=new_status_id(outline, label), label=label, is_end_state=end, requires_note=requires_note
    )
    outline.status_defs.append(status_def)
    return status_def


def update_status_def(
    outline: Outline,
    key: str,
    *,
    label: str = "",
    end: bool | None = None,
    requires_note: bool | None = None,
) -> OutlineStatusDef:
    label = label.strip()
    target = find_status_def(outline, key)
    if target is None:
        raise NotFoundError("status", key)
    if label and label != target.label:
        _check_label_free(outline, label)
    if label:
        target.label = label
    if end is not None:
        target.is_end_state = end
    if requires_note is not None:
        target.requires_note = requires_note
    return target


def remove_status_def(agg: Aggregate, outline: Outline, key: str) -> OutlineStatusDef:
    target = find_status_def(outline, key)
    if target is None:
        raise NotFoundError("status", key)
    if any(it.outline_id == outline.id and it.status_id == target.id for it in agg.items):
        raise ConflictError("cannot remove status: in use by items")
    if len(outline.status_defs) == 1:
        raise ConflictError("cannot remove last status from an outline")
    outline.status_defs = [d for d in outline.status_defs if d.id != target.id]
    return target


def reorder_status_defs(outline: Outline, labels: Sequence[str]) -> None:
    """Reorder by labels; every existing label must appear exactly once."""
    labels = [label.strip() for label in labels]
    if not labels:
        raise InvalidArgumentError("missing --label (repeatable)")
    by_label = {d.label: d for d in outline.status_defs}
    if len(labels) != len(outline.status_defs):
        raise ConflictError("must provide all status labels exactly once")
    ordered: list[OutlineStatusDef] = []
    seen: set[str] = set()
    for label in labels:
        if label in seen:
            raise ConflictError("duplicate label in reorder list")
        seen.add(label)
        if label not in by_label:
            raise ConflictError(f"unknown status label in reorder list: {label}")
        ordered.append(by_label[label])
    outline.status_defs = ordered
