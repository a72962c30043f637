"""Project, outline and outline-status commands."""

from __future__ import annotations

from typing import Sequence

from .runtime import Runtime, boundary


@boundary
def run_project_create(rt: Runtime, name: str, *, use: bool = False) -> int:
    project = rt.engine().project_create(name, use=use)
    hints = ['clarity items create --project ' + project.id + ' --title "..."']
    if not use:
        hints.insert(0, "clarity projects use " + project.id)
    return rt.emit(project, hints=hints)


@boundary
def run_project_list(rt: Runtime, *, include_archived: bool = False) -> int:
    eng = rt.engine()
    projects = eng.project_list(include_archived=include_archived)
    return rt.emit(projects, meta={"currentProjectId": eng.agg.current_project_id, "count": len(projects)})


@boundary
def run_project_use(rt: Runtime, project_id: str) -> int:
    return rt.emit(rt.engine().project_use(project_id))


@boundary
def run_project_current(rt: Runtime) -> int:
    return rt.emit(rt.engine().project_current())


@boundary
def run_project_rename(rt: Runtime, project_id: str, name: str) -> int:
    return rt.emit(rt.engine().project_rename(project_id, name))


@boundary
def run_project_archive(rt: Runtime, project_id: str, *, archived: bool = True) -> int:
    return rt.emit(rt.engine().project_archive(project_id, archived=archived))


# -----------------------------------------------------------------------------
# Outlines
# -----------------------------------------------------------------------------


@boundary
def run_outline_create(rt: Runtime, *, project_id: str | None = None, name: str | None = None, description: str = "") -> int:
    outline = rt.engine().outline_create(project_id=project_id, name=name, description=description)
    return rt.emit(outline, hints=["clarity outlines show " + outline.id])


@boundary
def run_outline_list(rt: Runtime, *, project_id: str | None = None, include_archived: bool = False) -> int:
    outlines = rt.engine().outline_list(project_id=project_id, include_archived=include_archived)
    return rt.emit(outlines, meta={"count": len(outlines)})


@boundary
def run_outline_show(rt: Runtime, outline_id: str) -> int:
    data = rt.engine().outline_show(outline_id)
    return rt.emit(data, meta={"items": len(data["items"])})


@boundary
def run_outline_rename(rt: Runtime, outline_id: str, name: str) -> int:
    return rt.emit(rt.engine().outline_rename(outline_id, name))


@boundary
def run_outline_set_description(rt: Runtime, outline_id: str, description: str) -> int:
    return rt.emit(rt.engine().outline_set_description(outline_id, description))


@boundary
def run_outline_archive(rt: Runtime, outline_id: str, *, archived: bool = True) -> int:
    return rt.emit(rt.engine().outline_archive(outline_id, archived=archived))


@boundary
def run_status_list(rt: Runtime, outline_id: str) -> int:
    return rt.emit(rt.engine().status_list(outline_id))


@boundary
def run_status_add(rt: Runtime, outline_id: str, label: str, *, end: bool = False, requires_note: bool = False) -> int:
    outline = rt.engine().status_add(outline_id, label, end=end, requires_note=requires_note)
    return rt.emit(outline.status_defs)


@boundary
def run_status_update(
    rt: Runtime,
    outline_id: str,
    key: str,
    *,
    label: str = "",
    end: bool | None = None,
    requires_note: bool | None = None,
) -> int:
    outline = rt.engine().status_update(outline_id, key, label=label, end=end, requires_note=requires_note)
    return rt.emit(outline.status_defs)


@boundary
def run_status_remove(rt: Runtime, outline_id: str, key: str) -> int:
    return rt.emit(rt.engine().status_remove(outline_id, key).status_defs)


@boundary
def run_status_reorder(rt: Runtime, outline_id: str, labels: Sequence[str]) -> int:
    return rt.emit(rt.engine().status_reorder(outline_id, labels).status_defs)
