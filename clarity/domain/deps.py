"""Blocking-dependency graph: cycle detection and tree view."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterator

from ..store.model import DEP_BLOCKS, Aggregate

# Deeper trees are cut off; the JSON and EDN writers recurse per level.
DEFAULT_TREE_DEPTH = 100


def blocks_graph(agg: Aggregate) -> dict[str, list[str]]:
    """Adjacency of the blocks subgraph, edges in creation order."""
    graph: dict[str, list[str]] = defaultdict(list)
    for dep in agg.deps:
        if dep.type == DEP_BLOCKS:
            graph[dep.from_item_id].append(dep.to_item_id)
    return dict(graph)


def find_cycles(graph: dict[str, list[str]]) -> list[list[str]]:
    """
    Cycles in a directed graph as closed paths (A -> B -> ... -> A).

    Each cycle is reported once, rotated to start at its smallest node.
    The walk keeps its own stack, so long chains do not hit the recursion limit.
    """
    visited: set[str] = set()
    on_stack: set[str] = set()
    path: list[str] = []
    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    def enter(node: str) -> tuple[str, Iterator[str]]:
        visited.add(node)
        on_stack.add(node)
        path.append(node)
        return node, iter(graph.get(node, []))

    for root in list(graph):
        if root in visited:
            continue
        frames = [enter(root)]
        while frames:
            node, edges = frames[-1]
            nxt = next(edges, None)
            if nxt is None:
                frames.pop()
                path.pop()
                on_stack.discard(node)
            elif nxt not in visited:
                frames.append(enter(nxt))
            elif nxt in on_stack:
                ring = path[path.index(nxt):]
                start = ring.index(min(ring))
                normalized = tuple(ring[start:] + ring[:start])
                if normalized not in seen:
                    seen.add(normalized)
                    cycles.append(list(normalized) + [normalized[0]])
    return cycles


def deps_tree(agg: Aggregate, root_id: str, *, max_depth: int | None = None) -> dict[str, Any]:
    """
    Expand blocks edges from `root_id`.

    A node already expanded elsewhere in the tree is emitted without its
    children, so cycles terminate. Nodes at `max_depth` that still have
    edges are emitted with "truncated": true instead of their children.
    """
    graph = blocks_graph(agg)
    expanded: set[str] = set()

    def leaf(item_id: str) -> dict[str, Any]:
        item = agg.find_item(item_id)
        out: dict[str, Any] = {"id": item_id}
        if item is not None:
            out["title"] = item.title
            out["status"] = item.status_id
        return out

    def open_frame(out: dict[str, Any], item_id: str, depth: int) -> tuple[dict[str, Any], Iterator[str], int] | None:
        expanded.add(item_id)
        edges = graph.get(item_id, [])
        if max_depth is not None and depth >= max_depth:
            if edges:
                out["truncated"] = True
            return None
        return out, iter(edges), depth

    root = leaf(root_id)
    frames = []
    first = open_frame(root, root_id, 0)
    if first is not None:
        frames.append(first)
    while frames:
        out, children, depth = frames[-1]
        child_id = next(children, None)
        if child_id is None:
            frames.pop()
            continue
        child = leaf(child_id)
        out.setdefault("blocksOn", []).append(child)
        if child_id not in expanded:
            frame = open_frame(child, child_id, depth + 1)
            if frame is not None:
                frames.append(frame)
    return root
