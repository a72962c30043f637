"""Workspace-level commands: init, status, doctor, reindex and the workspace registry."""

from __future__ import annotations

from pathlib import Path

from ..errors import DoctorFailedError, InvalidArgumentError
from ..gitsync.git import git_available
from ..gitsync.status import probe_status
from ..store.doctor import run_doctor
from ..store.reindex import reindex
from ..store.store import Store
from ..workspace import backup
from ..workspace.registry import KIND_GIT
from .runtime import Runtime, boundary


@boundary
def run_init(rt: Runtime) -> int:
    eng = rt.engine()
    data = eng.init()
    resolved = rt.resolve()
    hints = []
    if not eng.agg.actors:
        hints.append("clarity identity create --name <name> --use")
    if not eng.agg.projects:
        hints.append("clarity projects create --name <name> --use")
    return rt.emit(data, meta={"workspace": resolved.name, "source": resolved.source}, hints=hints)


@boundary
def run_status(rt: Runtime) -> int:
    """Where the workspace is, what it holds, and the git state when available."""
    resolved = rt.resolve()
    eng = rt.engine()
    agg = eng.agg
    data = {
        "workspace": {"name": resolved.name, "dir": str(resolved.dir), "source": resolved.source},
        "initialized": eng.store.is_initialized(),
        "currentActorId": agg.current_actor_id,
        "currentProjectId": agg.current_project_id,
        "counts": {
            "actors": len(agg.actors),
            "projects": len(agg.projects),
            "outlines": len(agg.outlines),
            "items": len(agg.items),
            "deps": len(agg.deps),
        },
        "git": None,
    }
    hints: list[str] = []
    if resolved.dir.is_dir() and git_available():
        st = probe_status(resolved.dir)
        data["git"] = st.to_dict()
        if st.conflicted:
            hints.append("clarity sync resolve")
    if not data["initialized"]:
        hints.append("clarity init")
    elif not agg.current_actor_id:
        hints.append("clarity identity create --name <name> --use")
    return rt.emit(data, hints=hints)


@boundary
def run_doctor_cmd(rt: Runtime, *, fail: bool = False) -> int:
    report = run_doctor(rt.workspace_dir)
    hints = []
    if report.issues:
        hints = ["clarity reindex", "clarity sync resolve"] if "git_in_progress" in report.codes() else ["clarity reindex"]
    rt.emit(report.to_dict(), meta={"eventsScanned": report.events_scanned, "issues": len(report.issues)}, hints=hints)
    if fail and report.issues:
        raise DoctorFailedError(f"doctor found {len(report.issues)} issue(s)")
    return 0


@boundary
def run_reindex(rt: Runtime) -> int:
    result = reindex(Store(rt.workspace_dir))
    return rt.emit(
        result.to_dict(),
        meta=result.counts(),
        hints=["clarity doctor", "clarity status"],
    )


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------


@boundary
def run_workspace_init(rt: Runtime, name: str) -> int:
    name, path = rt.registry().init(name)
    return rt.emit(
        {"workspace": name, "dir": str(path)},
        hints=["clarity identity create --name <name> --use", "clarity projects create --name <name> --use"],
    )


@boundary
def run_workspace_use(rt: Runtime, name: str) -> int:
    name, path = rt.registry().use(name)
    return rt.emit({"workspace": name, "dir": str(path)})


@boundary
def run_workspace_current(rt: Runtime) -> int:
    resolved = rt.resolve()
    return rt.emit({"workspace": resolved.name, "dir": str(resolved.dir)}, meta={"source": resolved.source})


@boundary
def run_workspace_rename(rt: Runtime, old: str, new: str) -> int:
    old, new = rt.registry().rename(old, new)
    return rt.emit({"from": old, "to": new})


@boundary
def run_workspace_add(rt: Runtime, name: str, directory: str, *, kind: str = KIND_GIT, use: bool = False) -> int:
    name, path = rt.registry().add(name, directory, kind=kind, use=use)
    hints = [] if Store(path, git_guard=False).is_initialized() else ["clarity --workspace " + name + " init"]
    return rt.emit({"workspace": name, "dir": str(path), "kind": kind, "used": use}, hints=hints)


@boundary
def run_workspace_forget(rt: Runtime, name: str) -> int:
    removed = rt.registry().forget(name)
    return rt.emit({"workspace": name.strip(), "forgotten": removed})


@boundary
def run_workspace_list(rt: Runtime, *, include_archived: bool = False) -> int:
    entries, current = rt.registry().entries()
    shown = [e for e in entries if include_archived or not e.archived]
    return rt.emit(shown, meta={"current": current, "count": len(shown)})


@boundary
def run_workspace_export(rt: Runtime, to: str, *, include_events: bool = True, force: bool = False) -> int:
    resolved = rt.resolve()
    data = backup.export_workspace(
        Store(resolved.dir, git_guard=False),
        to,
        workspace_name=resolved.name,
        include_events=include_events,
        force=force,
    )
    return rt.emit(data, hints=["clarity workspace import --from " + data["to"] + " --name <name>"])


@boundary
def run_workspace_import(
    rt: Runtime, from_dir: str, name: str, *, force: bool = False, use: bool = False, with_events: bool = True
) -> int:
    data = backup.import_workspace(rt.registry(), from_dir, name, force=force, use=use, with_events=with_events)
    hints = ["clarity doctor"] if use else ["clarity workspace use " + data["workspace"]]
    return rt.emit(data, hints=hints)


@boundary
def run_workspace_migrate(
    rt: Runtime,
    *,
    from_snapshot: Path | None = None,
    from_dir: Path | None = None,
    to_dir: Path | None = None,
    git_init: bool = False,
    git_commit: bool = False,
    message: str = "",
    register: bool = False,
    use: bool = False,
    name: str = "",
) -> int:
    if from_dir is not None or to_dir is not None:
        if from_snapshot is not None:
            raise InvalidArgumentError("--from-snapshot cannot be combined with --from/--to")
        return _migrate_sqlite(
            rt, from_dir, to_dir, git_init=git_init, git_commit=git_commit, message=message,
            register=register or use, use=use, name=name,
        )
    data = backup.migrate_workspace(
        rt.workspace_dir,
        actor_id=rt.actor or "",
        from_snapshot=from_snapshot,
        git_init=git_init,
        git_commit=git_commit,
        message=message,
    )
    return rt.emit(data, hints=["clarity doctor", "clarity reindex"])


def _migrate_sqlite(
    rt: Runtime,
    from_dir: Path | None,
    to_dir: Path | None,
    *,
    git_init: bool,
    git_commit: bool,
    message: str,
    register: bool,
    use: bool,
    name: str,
) -> int:
    if from_dir is None or to_dir is None:
        raise InvalidArgumentError("SQLite migration needs both --from and --to")
    data = backup.migrate_sqlite_workspace(
        from_dir,
        to_dir,
        actor_id=rt.actor or "",
        git_init=git_init,
        git_commit=git_commit,
        message=message,
    )
    registered = ""
    if register:
        registered, _ = rt.registry().add(name.strip() or Path(to_dir).name, to_dir, kind=KIND_GIT, use=use)
    result = {"migration": data, "registered": bool(registered), "name": registered, "used": use}
    return rt.emit(
        result,
        hints=[f"clarity --dir {to_dir} reindex", f"clarity --dir {to_dir} doctor --fail"],
    )
