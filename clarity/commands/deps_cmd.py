"""Dependency commands."""

from __future__ import annotations

from ..domain.deps import DEFAULT_TREE_DEPTH
from .runtime import Runtime, boundary


@boundary
def run_dep_add(rt: Runtime, item_id: str, *, blocks: str | None = None, related: str | None = None) -> int:
    dep = rt.engine().dep_add(item_id, blocks=blocks, related=related)
    return rt.emit(dep, hints=["clarity deps tree " + dep.from_item_id, "clarity deps cycles"])


@boundary
def run_dep_remove(rt: Runtime, dep_id: str) -> int:
    return rt.emit(rt.engine().dep_remove(dep_id))


@boundary
def run_dep_list(rt: Runtime, item_id: str | None = None) -> int:
    """Edges touching `item_id` in either direction, or every edge."""
    deps = rt.engine().dep_list(item_id)
    return rt.emit(deps, meta={"count": len(deps)})


@boundary
def run_dep_tree(rt: Runtime, item_id: str, *, depth: int = DEFAULT_TREE_DEPTH) -> int:
    return rt.emit(rt.engine().dep_tree(item_id, max_depth=depth))


@boundary
def run_dep_cycles(rt: Runtime) -> int:
    cycles = rt.engine().dep_cycles()
    return rt.emit(cycles, meta={"count": len(cycles)})
