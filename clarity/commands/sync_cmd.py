"""Git sync commands."""

from __future__ import annotations

from ..gitsync import sync
from ..store.reindex import reindex
from ..store.store import Store
from .runtime import Runtime, boundary


def _actor_label(rt: Runtime) -> str:
    agg = rt.engine().agg
    actor = agg.find_actor(rt.actor or agg.current_actor_id)
    return actor.name if actor is not None else ""


@boundary
def run_sync_status(rt: Runtime) -> int:
    st, hints = sync.sync_status(rt.workspace_dir)
    return rt.emit(st, hints=hints)


@boundary
def run_sync_remotes(rt: Runtime) -> int:
    remotes = sync.list_remotes(rt.workspace_dir)
    return rt.emit(remotes, meta={"count": len(remotes)})


@boundary
def run_sync_setup(
    rt: Runtime, *, remote_url: str = "", remote_name: str = "origin", commit: bool = True, push: bool = True
) -> int:
    data = sync.setup(rt.workspace_dir, remote_url=remote_url, remote_name=remote_name, commit=commit, push=push)
    hints = ["clarity sync status"]
    if not data["remote"]:
        hints.append("clarity sync setup --remote <url>")
    return rt.emit(data, hints=hints)


@boundary
def run_sync_pull(rt: Runtime) -> int:
    """Pull with rebase, then rebuild the snapshot from the merged log."""
    data = sync.pull(rt.workspace_dir)
    result = reindex(Store(rt.workspace_dir))
    data["reindex"] = result.to_dict()
    return rt.emit(data, hints=["clarity doctor"])


@boundary
def run_sync_push(rt: Runtime, *, message: str = "", allow_pull: bool = False, commit: bool = True) -> int:
    result = sync.push(
        rt.workspace_dir,
        message=message,
        actor_label=_actor_label(rt),
        commit=commit,
        allow_pull=allow_pull,
    )
    meta = {"steps": result.steps}
    if result.pulled:
        # Remote events arrived with the rebase.
        meta["reindex"] = reindex(Store(rt.workspace_dir)).to_dict()
    return rt.emit(result.to_dict(), meta=meta)


@boundary
def run_sync_resolve(rt: Runtime) -> int:
    data = sync.resolve(rt.workspace_dir)
    return rt.emit(data, hints=data["steps"])
