"""CLI entrypoint for clarity."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__, settings
from .engine import DEFAULT_EVENTS_LIMIT
from .output import FORMATS


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or settings.debug_enabled() else logging.WARNING
    handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root = logging.getLogger("clarity")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


@click.group()
@click.version_option(__version__, prog_name="clarity")
@click.option("--dir", "dir_override", envvar="CLARITY_DIR", default=None, help="Workspace directory (overrides --workspace)")
@click.option("--workspace", "-w", envvar="CLARITY_WORKSPACE", default=None, help="Workspace name from the registry")
@click.option("--actor", envvar="CLARITY_ACTOR", default=None, help="Act as this actor id")
@click.option("--pretty", is_flag=True, help="Indent output")
@click.option(
    "--format",
    "fmt",
    envvar="CLARITY_FORMAT",
    type=click.Choice(FORMATS, case_sensitive=False),
    default="json",
    show_default=True,
    help="Output format",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    dir_override: str | None,
    workspace: str | None,
    actor: str | None,
    pretty: bool,
    fmt: str,
    verbose: bool,
) -> None:
    """clarity - local-first work tracker for humans and agents.

    Every command prints one JSON (or EDN) envelope with `data`, and
    optionally `meta` and `_hints`. Errors go to stderr.
    """
    from .commands.runtime import Runtime

    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["rt"] = Runtime(
        dir_override=dir_override,
        workspace=workspace,
        actor=actor,
        fmt=fmt.lower(),
        pretty=pretty,
    )


# -----------------------------------------------------------------------------
# Workspace-level commands
# -----------------------------------------------------------------------------


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the workspace layout (idempotent)."""
    from .commands.workspace_cmd import run_init

    sys.exit(run_init(ctx.obj["rt"]))


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the resolved workspace, its contents and git state."""
    from .commands.workspace_cmd import run_status

    sys.exit(run_status(ctx.obj["rt"]))


@cli.command()
@click.option("--fail", is_flag=True, help="Exit non-zero when issues are found")
@click.pass_context
def doctor(ctx: click.Context, fail: bool) -> None:
    """Validate the event log and the state it replays to."""
    from .commands.workspace_cmd import run_doctor_cmd

    sys.exit(run_doctor_cmd(ctx.obj["rt"], fail=fail))


@cli.command()
@click.pass_context
def reindex(ctx: click.Context) -> None:
    """Rebuild the snapshot from the event log."""
    from .commands.workspace_cmd import run_reindex

    sys.exit(run_reindex(ctx.obj["rt"]))


@cli.group()
def workspace() -> None:
    """Workspace registry: named local workspaces and registered Git checkouts."""
    pass


@workspace.command("init")
@click.argument("name")
@click.pass_context
def workspace_init(ctx: click.Context, name: str) -> None:
    """Create a local workspace and make it current."""
    from .commands.workspace_cmd import run_workspace_init

    sys.exit(run_workspace_init(ctx.obj["rt"], name))


@workspace.command("use")
@click.argument("name")
@click.pass_context
def workspace_use(ctx: click.Context, name: str) -> None:
    from .commands.workspace_cmd import run_workspace_use

    sys.exit(run_workspace_use(ctx.obj["rt"], name))


@workspace.command("current")
@click.pass_context
def workspace_current(ctx: click.Context) -> None:
    from .commands.workspace_cmd import run_workspace_current

    sys.exit(run_workspace_current(ctx.obj["rt"]))


@workspace.command("rename")
@click.argument("old")
@click.argument("new")
@click.pass_context
def workspace_rename(ctx: click.Context, old: str, new: str) -> None:
    from .commands.workspace_cmd import run_workspace_rename

    sys.exit(run_workspace_rename(ctx.obj["rt"], old, new))


@workspace.command("add")
@click.argument("name")
@click.option("--dir", "directory", required=True, help="Workspace directory to register")
@click.option("--kind", default="git", show_default=True, help="Workspace kind hint")
@click.option("--use", is_flag=True, help="Also set as current workspace")
@click.pass_context
def workspace_add(ctx: click.Context, name: str, directory: str, kind: str, use: bool) -> None:
    """Register an existing directory (typically a Git checkout)."""
    from .commands.workspace_cmd import run_workspace_add

    sys.exit(run_workspace_add(ctx.obj["rt"], name, directory, kind=kind, use=use))


@workspace.command("forget")
@click.argument("name")
@click.pass_context
def workspace_forget(ctx: click.Context, name: str) -> None:
    """Drop a registry entry; files are left alone."""
    from .commands.workspace_cmd import run_workspace_forget

    sys.exit(run_workspace_forget(ctx.obj["rt"], name))


@workspace.command("list")
@click.option("--include-archived", is_flag=True)
@click.pass_context
def workspace_list(ctx: click.Context, include_archived: bool) -> None:
    from .commands.workspace_cmd import run_workspace_list

    sys.exit(run_workspace_list(ctx.obj["rt"], include_archived=include_archived))


@workspace.command("export")
@click.option("--to", required=True, help="Target directory for the backup files")
@click.option("--events/--no-events", default=True, show_default=True, help="Include events.jsonl")
@click.option("--force", is_flag=True, help="Write into a non-empty directory")
@click.pass_context
def workspace_export(ctx: click.Context, to: str, events: bool, force: bool) -> None:
    """Write state.json, events.jsonl and manifest.json."""
    from .commands.workspace_cmd import run_workspace_export

    sys.exit(run_workspace_export(ctx.obj["rt"], to, include_events=events, force=force))


@workspace.command("import")
@click.argument("name", required=False)
@click.option("--from", "from_dir", required=True, help="Backup directory containing state.json")
@click.option("--name", "name_opt", default=None, help="Workspace name (overrides positional NAME)")
@click.option("--events/--no-events", default=True, show_default=True, help="Import events.jsonl if present")
@click.option("--force", is_flag=True, help="Replace an existing workspace")
@click.option("--use", is_flag=True, help="Set the imported workspace as current")
@click.pass_context
def workspace_import(
    ctx: click.Context,
    name: str | None,
    from_dir: str,
    name_opt: str | None,
    events: bool,
    force: bool,
    use: bool,
) -> None:
    """Create a local workspace from a backup directory."""
    from .commands.workspace_cmd import run_workspace_import

    target = name_opt or name or ""
    sys.exit(run_workspace_import(ctx.obj["rt"], from_dir, target, force=force, use=use, with_events=events))


@workspace.command("migrate")
@click.option(
    "--from-snapshot",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Snapshot to synthesize events from (default: the workspace snapshot)",
)
@click.option(
    "--from",
    "from_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Workspace directory holding a SQLite event store",
)
@click.option(
    "--to",
    "to_dir",
    type=click.Path(path_type=Path),
    default=None,
    help="New directory for the migrated workspace (with --from)",
)
@click.option("--git-init", is_flag=True, help="Run git init in the workspace")
@click.option("--git-commit", is_flag=True, help="Commit the canonical files")
@click.option("--message", default="", help="Commit message (with --git-commit)")
@click.option("--register", is_flag=True, help="Register the migrated workspace (with --from)")
@click.option("--use", is_flag=True, help="Register and select the migrated workspace")
@click.option("--name", default="", help="Registry name (default: the --to directory name)")
@click.pass_context
def workspace_migrate(
    ctx: click.Context,
    from_snapshot: Path | None,
    from_dir: Path | None,
    to_dir: Path | None,
    git_init: bool,
    git_commit: bool,
    message: str,
    register: bool,
    use: bool,
    name: str,
) -> None:
    """Give a snapshot-only workspace an event log, or copy a SQLite workspace to a new directory."""
    from .commands.workspace_cmd import run_workspace_migrate

    sys.exit(
        run_workspace_migrate(
            ctx.obj["rt"],
            from_snapshot=from_snapshot,
            from_dir=from_dir,
            to_dir=to_dir,
            git_init=git_init,
            git_commit=git_commit,
            message=message,
            register=register,
            use=use,
            name=name,
        )
    )


# -----------------------------------------------------------------------------
# Identity
# -----------------------------------------------------------------------------


@cli.group()
def identity() -> None:
    """Actors: humans and the agents working for them."""
    pass


@identity.command("create")
@click.option("--name", required=True, help="Display name")
@click.option("--kind", type=click.Choice(["human", "agent"]), default="human", show_default=True)
@click.option("--user", "user_id", default=None, help="Owning human actor id (required for --kind agent)")
@click.option("--use", is_flag=True, help="Set as current actor")
@click.pass_context
def identity_create(ctx: click.Context, name: str, kind: str, user_id: str | None, use: bool) -> None:
    from .commands.identity_cmd import run_identity_create

    sys.exit(run_identity_create(ctx.obj["rt"], name, kind=kind, user_id=user_id, use=use))


@identity.command("use")
@click.argument("actor_id")
@click.pass_context
def identity_use(ctx: click.Context, actor_id: str) -> None:
    from .commands.identity_cmd import run_identity_use

    sys.exit(run_identity_use(ctx.obj["rt"], actor_id))


@identity.command("list")
@click.pass_context
def identity_list(ctx: click.Context) -> None:
    from .commands.identity_cmd import run_identity_list

    sys.exit(run_identity_list(ctx.obj["rt"]))


@identity.command("whoami")
@click.pass_context
def identity_whoami(ctx: click.Context) -> None:
    from .commands.identity_cmd import run_whoami

    sys.exit(run_whoami(ctx.obj["rt"]))


@identity.group("agent")
def identity_agent() -> None:
    """Per-session agent identities."""
    pass


@identity_agent.command("ensure")
@click.option("--session", envvar="CLARITY_AGENT_SESSION", default=None, help="Agent session key")
@click.option("--name", envvar="CLARITY_AGENT_NAME", default=settings.DEFAULT_AGENT_NAME, show_default=True)
@click.option("--user", "user_id", envvar="CLARITY_AGENT_USER", default=None, help="Owning human actor id")
@click.option("--use/--no-use", default=True, show_default=True, help="Set as current actor")
@click.pass_context
def identity_agent_ensure(
    ctx: click.Context, session: str | None, name: str, user_id: str | None, use: bool
) -> None:
    """Find or create the agent for this session."""
    from .commands.identity_cmd import run_agent_ensure

    sys.exit(run_agent_ensure(ctx.obj["rt"], session=session, name=name, user_id=user_id, use=use))


@cli.group()
def agent() -> None:
    """Agent workflow shortcuts."""
    pass


@agent.command("start")
@click.argument("item_id")
@click.option("--session", envvar="CLARITY_AGENT_SESSION", default=None, help="Agent session key")
@click.option("--name", envvar="CLARITY_AGENT_NAME", default=settings.DEFAULT_AGENT_NAME, show_default=True)
@click.option("--user", "user_id", envvar="CLARITY_AGENT_USER", default=None, help="Owning human actor id")
@click.option("--take-assigned", is_flag=True, help="Take the item even if another actor holds it")
@click.pass_context
def agent_start(
    ctx: click.Context, item_id: str, session: str | None, name: str, user_id: str | None, take_assigned: bool
) -> None:
    """Ensure the session agent and claim ITEM_ID in one step."""
    from .commands.identity_cmd import run_agent_start

    sys.exit(
        run_agent_start(ctx.obj["rt"], item_id, session=session, name=name, user_id=user_id, take_assigned=take_assigned)
    )


# -----------------------------------------------------------------------------
# Projects and outlines
# -----------------------------------------------------------------------------


@cli.group()
def projects() -> None:
    pass


@projects.command("create")
@click.option("--name", required=True)
@click.option("--use", is_flag=True, help="Set as current project")
@click.pass_context
def projects_create(ctx: click.Context, name: str, use: bool) -> None:
    from .commands.projects_cmd import run_project_create

    sys.exit(run_project_create(ctx.obj["rt"], name, use=use))


@projects.command("list")
@click.option("--include-archived", is_flag=True)
@click.pass_context
def projects_list(ctx: click.Context, include_archived: bool) -> None:
    from .commands.projects_cmd import run_project_list

    sys.exit(run_project_list(ctx.obj["rt"], include_archived=include_archived))


@projects.command("use")
@click.argument("project_id")
@click.pass_context
def projects_use(ctx: click.Context, project_id: str) -> None:
    from .commands.projects_cmd import run_project_use

    sys.exit(run_project_use(ctx.obj["rt"], project_id))


@projects.command("current")
@click.pass_context
def projects_current(ctx: click.Context) -> None:
    from .commands.projects_cmd import run_project_current

    sys.exit(run_project_current(ctx.obj["rt"]))


@projects.command("rename")
@click.argument("project_id")
@click.option("--name", required=True)
@click.pass_context
def projects_rename(ctx: click.Context, project_id: str, name: str) -> None:
    from .commands.projects_cmd import run_project_rename

    sys.exit(run_project_rename(ctx.obj["rt"], project_id, name))


@projects.command("archive")
@click.argument("project_id")
@click.option("--unarchive", is_flag=True)
@click.pass_context
def projects_archive(ctx: click.Context, project_id: str, unarchive: bool) -> None:
    from .commands.projects_cmd import run_project_archive

    sys.exit(run_project_archive(ctx.obj["rt"], project_id, archived=not unarchive))


@cli.group()
def outlines() -> None:
    """Ordered item trees inside a project, each with its own statuses."""
    pass


@outlines.command("create")
@click.option("--project", "project_id", default=None, help="Project id (default: current project)")
@click.option("--name", default=None)
@click.option("--description", default="")
@click.pass_context
def outlines_create(ctx: click.Context, project_id: str | None, name: str | None, description: str) -> None:
    from .commands.projects_cmd import run_outline_create

    sys.exit(run_outline_create(ctx.obj["rt"], project_id=project_id, name=name, description=description))


@outlines.command("list")
@click.option("--project", "project_id", default=None)
@click.option("--include-archived", is_flag=True)
@click.pass_context
def outlines_list(ctx: click.Context, project_id: str | None, include_archived: bool) -> None:
    from .commands.projects_cmd import run_outline_list

    sys.exit(run_outline_list(ctx.obj["rt"], project_id=project_id, include_archived=include_archived))


@outlines.command("show")
@click.argument("outline_id")
@click.pass_context
def outlines_show(ctx: click.Context, outline_id: str) -> None:
    from .commands.projects_cmd import run_outline_show

    sys.exit(run_outline_show(ctx.obj["rt"], outline_id))


@outlines.command("rename")
@click.argument("outline_id")
@click.option("--name", required=True)
@click.pass_context
def outlines_rename(ctx: click.Context, outline_id: str, name: str) -> None:
    from .commands.projects_cmd import run_outline_rename

    sys.exit(run_outline_rename(ctx.obj["rt"], outline_id, name))


@outlines.command("set-description")
@click.argument("outline_id")
@click.option("--description", required=True)
@click.pass_context
def outlines_set_description(ctx: click.Context, outline_id: str, description: str) -> None:
    from .commands.projects_cmd import run_outline_set_description

    sys.exit(run_outline_set_description(ctx.obj["rt"], outline_id, description))


@outlines.command("archive")
@click.argument("outline_id")
@click.option("--unarchive", is_flag=True)
@click.pass_context
def outlines_archive(ctx: click.Context, outline_id: str, unarchive: bool) -> None:
    from .commands.projects_cmd import run_outline_archive

    sys.exit(run_outline_archive(ctx.obj["rt"], outline_id, archived=not unarchive))


@outlines.group("status")
def outlines_status() -> None:
    """Status definitions of an outline."""
    pass


@outlines_status.command("list")
@click.argument("outline_id")
@click.pass_context
def outlines_status_list(ctx: click.Context, outline_id: str) -> None:
    from .commands.projects_cmd import run_status_list

    sys.exit(run_status_list(ctx.obj["rt"], outline_id))


@outlines_status.command("add")
@click.argument("outline_id")
@click.option("--label", required=True)
@click.option("--end", is_flag=True, help="Mark as end-state")
@click.option("--requires-note", is_flag=True, help="Entering this status needs --note")
@click.pass_context
def outlines_status_add(ctx: click.Context, outline_id: str, label: str, end: bool, requires_note: bool) -> None:
    from .commands.projects_cmd import run_status_add

    sys.exit(run_status_add(ctx.obj["rt"], outline_id, label, end=end, requires_note=requires_note))


@outlines_status.command("update")
@click.argument("outline_id")
@click.argument("key")
@click.option("--label", default="")
@click.option("--end/--not-end", default=None, help="Set or clear end-state")
@click.option("--requires-note/--no-requires-note", default=None)
@click.pass_context
def outlines_status_update(
    ctx: click.Context, outline_id: str, key: str, label: str, end: bool | None, requires_note: bool | None
) -> None:
    """Update the status KEY (id or label)."""
    from .commands.projects_cmd import run_status_update

    sys.exit(run_status_update(ctx.obj["rt"], outline_id, key, label=label, end=end, requires_note=requires_note))


@outlines_status.command("remove")
@click.argument("outline_id")
@click.argument("key")
@click.pass_context
def outlines_status_remove(ctx: click.Context, outline_id: str, key: str) -> None:
    from .commands.projects_cmd import run_status_remove

    sys.exit(run_status_remove(ctx.obj["rt"], outline_id, key))


@outlines_status.command("reorder")
@click.argument("outline_id")
@click.option("--label", "labels", multiple=True, required=True, help="Every label once, in the new order")
@click.pass_context
def outlines_status_reorder(ctx: click.Context, outline_id: str, labels: tuple[str, ...]) -> None:
    from .commands.projects_cmd import run_status_reorder

    sys.exit(run_status_reorder(ctx.obj["rt"], outline_id, labels))


# -----------------------------------------------------------------------------
# Items
# -----------------------------------------------------------------------------


@cli.group()
def items() -> None:
    pass


@items.command("create")
@click.option("--title", required=True)
@click.option("--project", "project_id", default=None, help="Project id (default: current project)")
@click.option("--outline", "outline_id", default=None, help="Outline id (default: the project's only outline)")
@click.option("--parent", "parent_id", default=None, help="Parent item id")
@click.option("--description", default="")
@click.option("--status", default=None, help="Status id or label")
@click.option("--owner", "owner_id", default=None, help="Owner actor id (default: current actor)")
@click.option("--assign", "assign_id", default=None, help="Assignee (default: agents assign themselves)")
@click.option("--filed-from", default="", help="Origin reference prepended to the description")
@click.option("--priority", is_flag=True)
@click.option("--on-hold", is_flag=True)
@click.option("--due", default=None, help="YYYY-MM-DD, YYYY-MM-DD HH:MM or RFC3339")
@click.option("--schedule", default=None, help="YYYY-MM-DD, YYYY-MM-DD HH:MM or RFC3339")
@click.option("--tag", "tags", multiple=True)
@click.pass_context
def items_create(
    ctx: click.Context,
    title: str,
    project_id: str | None,
    outline_id: str | None,
    parent_id: str | None,
    description: str,
    status: str | None,
    owner_id: str | None,
    assign_id: str | None,
    filed_from: str,
    priority: bool,
    on_hold: bool,
    due: str | None,
    schedule: str | None,
    tags: tuple[str, ...],
) -> None:
    from .commands.items_cmd import run_item_create

    sys.exit(
        run_item_create(
            ctx.obj["rt"],
            title,
            project_id=project_id,
            outline_id=outline_id,
            parent_id=parent_id,
            description=description,
            status=status,
            owner_id=owner_id,
            assign_id=assign_id,
            filed_from=filed_from,
            priority=priority,
            on_hold=on_hold,
            due=due,
            schedule=schedule,
            tags=tags,
        )
    )


@items.command("list")
@click.option("--project", "project_id", default=None)
@click.option("--outline", "outline_id", default=None)
@click.option("--status", default=None, help="Status id or label")
@click.option("--include-archived", is_flag=True)
@click.option("--assigned", default=None, help="Actor id, 'me' or 'none'")
@click.option("--mine", is_flag=True, help="Same as --assigned me")
@click.pass_context
def items_list(
    ctx: click.Context,
    project_id: str | None,
    outline_id: str | None,
    status: str | None,
    include_archived: bool,
    assigned: str | None,
    mine: bool,
) -> None:
    from .commands.items_cmd import run_item_list

    sys.exit(
        run_item_list(
            ctx.obj["rt"],
            project_id=project_id,
            outline_id=outline_id,
            status=status,
            include_archived=include_archived,
            assigned="me" if mine else assigned,
        )
    )


@items.command("show")
@click.argument("item_id")
@click.pass_context
def items_show(ctx: click.Context, item_id: str) -> None:
    from .commands.items_cmd import run_item_show

    sys.exit(run_item_show(ctx.obj["rt"], item_id))


@items.command("events")
@click.argument("item_id")
@click.option("--limit", type=int, default=DEFAULT_EVENTS_LIMIT, show_default=True, help="0 = all")
@click.pass_context
def items_events(ctx: click.Context, item_id: str, limit: int) -> None:
    from .commands.items_cmd import run_item_events

    sys.exit(run_item_events(ctx.obj["rt"], item_id, limit=limit))


@items.command("set-title")
@click.argument("item_id")
@click.option("--title", required=True)
@click.pass_context
def items_set_title(ctx: click.Context, item_id: str, title: str) -> None:
    from .commands.items_cmd import run_item_set_title

    sys.exit(run_item_set_title(ctx.obj["rt"], item_id, title))


@items.command("set-description")
@click.argument("item_id")
@click.option("--description", required=True)
@click.pass_context
def items_set_description(ctx: click.Context, item_id: str, description: str) -> None:
    from .commands.items_cmd import run_item_set_description

    sys.exit(run_item_set_description(ctx.obj["rt"], item_id, description))


@items.command("set-status")
@click.argument("item_id")
@click.option("--status", required=True, help="Status id, label, or 'none'")
@click.option("--note", default="", help="Recorded as a comment; required by some statuses")
@click.pass_context
def items_set_status(ctx: click.Context, item_id: str, status: str, note: str) -> None:
    from .commands.items_cmd import run_item_set_status

    sys.exit(run_item_set_status(ctx.obj["rt"], item_id, status, note=note))


@items.command("set-priority")
@click.argument("item_id")
@click.option("--on/--off", "enabled", default=True, show_default=True)
@click.pass_context
def items_set_priority(ctx: click.Context, item_id: str, enabled: bool) -> None:
    from .commands.items_cmd import run_item_set_priority

    sys.exit(run_item_set_priority(ctx.obj["rt"], item_id, enabled))


@items.command("set-on-hold")
@click.argument("item_id")
@click.option("--on/--off", "enabled", default=True, show_default=True)
@click.pass_context
def items_set_on_hold(ctx: click.Context, item_id: str, enabled: bool) -> None:
    from .commands.items_cmd import run_item_set_on_hold

    sys.exit(run_item_set_on_hold(ctx.obj["rt"], item_id, enabled))


@items.command("set-due")
@click.argument("item_id")
@click.option("--at", default=None, help="YYYY-MM-DD, YYYY-MM-DD HH:MM or RFC3339")
@click.option("--clear", is_flag=True)
@click.pass_context
def items_set_due(ctx: click.Context, item_id: str, at: str | None, clear: bool) -> None:
    from .commands.items_cmd import run_item_set_due

    sys.exit(run_item_set_due(ctx.obj["rt"], item_id, at=at, clear=clear))


@items.command("set-schedule")
@click.argument("item_id")
@click.option("--at", default=None, help="YYYY-MM-DD, YYYY-MM-DD HH:MM or RFC3339")
@click.option("--clear", is_flag=True)
@click.pass_context
def items_set_schedule(ctx: click.Context, item_id: str, at: str | None, clear: bool) -> None:
    from .commands.items_cmd import run_item_set_schedule

    sys.exit(run_item_set_schedule(ctx.obj["rt"], item_id, at=at, clear=clear))


@items.command("set-assign")
@click.argument("item_id")
@click.option("--assignee", "--to", "assignee", default=None, help="Actor id to assign to")
@click.option("--clear", is_flag=True, help="Clear the assignment")
@click.option("--take-assigned", is_flag=True, help="Take over an item assigned to someone else")
@click.pass_context
def items_set_assign(
    ctx: click.Context, item_id: str, assignee: str | None, clear: bool, take_assigned: bool
) -> None:
    from .commands.items_cmd import run_item_set_assign

    sys.exit(run_item_set_assign(ctx.obj["rt"], item_id, assignee, clear=clear, take_assigned=take_assigned))


@items.group("tags")
def items_tags() -> None:
    pass


@items_tags.command("add")
@click.argument("item_id")
@click.option("--tag", "tags", multiple=True, required=True)
@click.pass_context
def items_tags_add(ctx: click.Context, item_id: str, tags: tuple[str, ...]) -> None:
    from .commands.items_cmd import run_item_tags

    sys.exit(run_item_tags(ctx.obj["rt"], "add", item_id, tags))


@items_tags.command("remove")
@click.argument("item_id")
@click.option("--tag", "tags", multiple=True, required=True)
@click.pass_context
def items_tags_remove(ctx: click.Context, item_id: str, tags: tuple[str, ...]) -> None:
    from .commands.items_cmd import run_item_tags

    sys.exit(run_item_tags(ctx.obj["rt"], "remove", item_id, tags))


@items_tags.command("set")
@click.argument("item_id")
@click.option("--tag", "tags", multiple=True, help="Repeatable; none clears all tags")
@click.pass_context
def items_tags_set(ctx: click.Context, item_id: str, tags: tuple[str, ...]) -> None:
    from .commands.items_cmd import run_item_tags

    sys.exit(run_item_tags(ctx.obj["rt"], "set", item_id, tags))


@items.command("archive")
@click.argument("item_id")
@click.option("--unarchive", is_flag=True)
@click.pass_context
def items_archive(ctx: click.Context, item_id: str, unarchive: bool) -> None:
    from .commands.items_cmd import run_item_archive

    sys.exit(run_item_archive(ctx.obj["rt"], item_id, archived=not unarchive))


@items.command("move")
@click.argument("item_id")
@click.option("--before", default=None, help="Sibling to move before")
@click.option("--after", default=None, help="Sibling to move after")
@click.pass_context
def items_move(ctx: click.Context, item_id: str, before: str | None, after: str | None) -> None:
    """Reorder ITEM_ID among its siblings."""
    from .commands.items_cmd import run_item_move

    sys.exit(run_item_move(ctx.obj["rt"], item_id, before=before, after=after))


@items.command("set-parent")
@click.argument("item_id")
@click.option("--parent", default="none", show_default=True, help="New parent item id, or 'none' for root")
@click.option("--before", default=None, help="Destination sibling to place before")
@click.option("--after", default=None, help="Destination sibling to place after")
@click.pass_context
def items_set_parent(
    ctx: click.Context, item_id: str, parent: str, before: str | None, after: str | None
) -> None:
    from .commands.items_cmd import run_item_set_parent

    sys.exit(run_item_set_parent(ctx.obj["rt"], item_id, parent, before=before, after=after))


@items.command("move-outline")
@click.argument("item_id")
@click.option("--to", required=True, help="Target outline id")
@click.option("--set-status", "status", default=None, help="Status in the target outline")
@click.pass_context
def items_move_outline(ctx: click.Context, item_id: str, to: str, status: str | None) -> None:
    from .commands.items_cmd import run_item_move_outline

    sys.exit(run_item_move_outline(ctx.obj["rt"], item_id, to, status=status))


@items.command("claim")
@click.argument("item_id")
@click.option("--take-assigned", is_flag=True, help="Take the item even if another actor holds it")
@click.pass_context
def items_claim(ctx: click.Context, item_id: str, take_assigned: bool) -> None:
    from .commands.items_cmd import run_item_claim

    sys.exit(run_item_claim(ctx.obj["rt"], item_id, take_assigned=take_assigned))


@items.command("ready")
@click.option("--include-assigned", is_flag=True, help="Include items assigned to other actors")
@click.option("--include-on-hold", is_flag=True)
@click.pass_context
def items_ready(ctx: click.Context, include_assigned: bool, include_on_hold: bool) -> None:
    """Unblocked, open items; those assigned to you first."""
    from .commands.items_cmd import run_items_ready

    sys.exit(run_items_ready(ctx.obj["rt"], include_assigned=include_assigned, include_on_hold=include_on_hold))


# -----------------------------------------------------------------------------
# Dependencies, comments, worklog
# -----------------------------------------------------------------------------


@cli.group()
def deps() -> None:
    pass


@deps.command("add")
@click.argument("item_id")
@click.option("--blocks", default=None, help="Item that blocks ITEM_ID")
@click.option("--related", default=None, help="Item related to ITEM_ID")
@click.pass_context
def deps_add(ctx: click.Context, item_id: str, blocks: str | None, related: str | None) -> None:
    from .commands.deps_cmd import run_dep_add

    sys.exit(run_dep_add(ctx.obj["rt"], item_id, blocks=blocks, related=related))


@deps.command("remove")
@click.argument("dep_id")
@click.pass_context
def deps_remove(ctx: click.Context, dep_id: str) -> None:
    from .commands.deps_cmd import run_dep_remove

    sys.exit(run_dep_remove(ctx.obj["rt"], dep_id))


@deps.command("list")
@click.argument("item_id", required=False)
@click.pass_context
def deps_list(ctx: click.Context, item_id: str | None) -> None:
    from .commands.deps_cmd import run_dep_list

    sys.exit(run_dep_list(ctx.obj["rt"], item_id))


@deps.command("tree")
@click.argument("item_id")
@click.option("--depth", type=click.IntRange(1, 100), default=100, show_default=True, help="Levels to expand before truncating")
@click.pass_context
def deps_tree(ctx: click.Context, item_id: str, depth: int) -> None:
    from .commands.deps_cmd import run_dep_tree

    sys.exit(run_dep_tree(ctx.obj["rt"], item_id, depth=depth))


@deps.command("cycles")
@click.pass_context
def deps_cycles(ctx: click.Context) -> None:
    from .commands.deps_cmd import run_dep_cycles

    sys.exit(run_dep_cycles(ctx.obj["rt"]))


@cli.group()
def comments() -> None:
    pass


@comments.command("add")
@click.argument("item_id")
@click.option("--body", required=True)
@click.option("--reply-to", default=None, help="Comment id on the same item")
@click.pass_context
def comments_add(ctx: click.Context, item_id: str, body: str, reply_to: str | None) -> None:
    from .commands.discussion_cmd import run_comment_add

    sys.exit(run_comment_add(ctx.obj["rt"], item_id, body, reply_to=reply_to))


@comments.command("list")
@click.argument("item_id")
@click.option("--limit", type=int, default=20, show_default=True, help="0 = all")
@click.option("--offset", type=int, default=0)
@click.pass_context
def comments_list(ctx: click.Context, item_id: str, limit: int, offset: int) -> None:
    from .commands.discussion_cmd import run_comment_list

    sys.exit(run_comment_list(ctx.obj["rt"], item_id, limit=limit, offset=offset))


@cli.group()
def worklog() -> None:
    """Private work notes, visible only under the author's owning human."""
    pass


@worklog.command("add")
@click.argument("item_id")
@click.option("--body", required=True)
@click.pass_context
def worklog_add(ctx: click.Context, item_id: str, body: str) -> None:
    from .commands.discussion_cmd import run_worklog_add

    sys.exit(run_worklog_add(ctx.obj["rt"], item_id, body))


@worklog.command("list")
@click.argument("item_id")
@click.option("--limit", type=int, default=20, show_default=True, help="0 = all")
@click.option("--offset", type=int, default=0)
@click.pass_context
def worklog_list(ctx: click.Context, item_id: str, limit: int, offset: int) -> None:
    from .commands.discussion_cmd import run_worklog_list

    sys.exit(run_worklog_list(ctx.obj["rt"], item_id, limit=limit, offset=offset))


# -----------------------------------------------------------------------------
# Attachments and events
# -----------------------------------------------------------------------------


@cli.group()
def attachments() -> None:
    pass


@attachments.command("add")
@click.argument("entity_id")
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--kind", "entity_kind", type=click.Choice(["item", "comment"]), default=None, help="Default: from the id prefix")
@click.option("--title", default="")
@click.option("--alt", default="")
@click.option("--max-mb", type=int, default=50, show_default=True)
@click.pass_context
def attachments_add(
    ctx: click.Context, entity_id: str, path: Path, entity_kind: str | None, title: str, alt: str, max_mb: int
) -> None:
    from .commands.attachments_cmd import run_attachment_add

    sys.exit(
        run_attachment_add(
            ctx.obj["rt"], entity_id, path, entity_kind=entity_kind, title=title, alt=alt, max_bytes=max_mb * 1024 * 1024
        )
    )


@attachments.command("list")
@click.argument("entity_id", required=False)
@click.option("--kind", "entity_kind", type=click.Choice(["item", "comment"]), default=None)
@click.pass_context
def attachments_list(ctx: click.Context, entity_id: str | None, entity_kind: str | None) -> None:
    from .commands.attachments_cmd import run_attachment_list

    sys.exit(run_attachment_list(ctx.obj["rt"], entity_kind=entity_kind, entity_id=entity_id))


@attachments.command("open")
@click.argument("attachment_id")
@click.pass_context
def attachments_open(ctx: click.Context, attachment_id: str) -> None:
    """Print the absolute path of the stored file."""
    from .commands.attachments_cmd import run_attachment_open

    sys.exit(run_attachment_open(ctx.obj["rt"], attachment_id))


@attachments.command("export")
@click.argument("attachment_id")
@click.option("--to", required=True, type=click.Path(path_type=Path), help="Destination file or directory")
@click.pass_context
def attachments_export(ctx: click.Context, attachment_id: str, to: Path) -> None:
    from .commands.attachments_cmd import run_attachment_export

    sys.exit(run_attachment_export(ctx.obj["rt"], attachment_id, to))


@attachments.command("remove")
@click.argument("attachment_id")
@click.pass_context
def attachments_remove(ctx: click.Context, attachment_id: str) -> None:
    from .commands.attachments_cmd import run_attachment_remove

    sys.exit(run_attachment_remove(ctx.obj["rt"], attachment_id))


@cli.group()
def events() -> None:
    pass


@events.command("list")
@click.option("--limit", type=int, default=DEFAULT_EVENTS_LIMIT, show_default=True, help="0 = all")
@click.option("--entity", "entity_id", default=None, help="Only events for this entity id")
@click.pass_context
def events_list(ctx: click.Context, limit: int, entity_id: str | None) -> None:
    from .commands.events_cmd import run_events_list

    sys.exit(run_events_list(ctx.obj["rt"], limit=limit, entity_id=entity_id))


# -----------------------------------------------------------------------------
# Git sync
# -----------------------------------------------------------------------------


@cli.group()
def sync() -> None:
    """Share the workspace through Git."""
    pass


@sync.command("status")
@click.pass_context
def sync_status(ctx: click.Context) -> None:
    from .commands.sync_cmd import run_sync_status

    sys.exit(run_sync_status(ctx.obj["rt"]))


@sync.command("remotes")
@click.pass_context
def sync_remotes(ctx: click.Context) -> None:
    from .commands.sync_cmd import run_sync_remotes

    sys.exit(run_sync_remotes(ctx.obj["rt"]))


@sync.command("setup")
@click.option("--remote", "remote_url", default="", help="Remote URL to add (or update)")
@click.option("--remote-name", default="origin", show_default=True)
@click.option("--commit/--no-commit", default=True, show_default=True, help="Commit canonical files")
@click.option("--push/--no-push", default=True, show_default=True, help="Push with -u when a remote is given")
@click.pass_context
def sync_setup(ctx: click.Context, remote_url: str, remote_name: str, commit: bool, push: bool) -> None:
    """git init (if needed), ignore derived files, commit, add remote, push."""
    from .commands.sync_cmd import run_sync_setup

    sys.exit(run_sync_setup(ctx.obj["rt"], remote_url=remote_url, remote_name=remote_name, commit=commit, push=push))


@sync.command("pull")
@click.pass_context
def sync_pull(ctx: click.Context) -> None:
    """git pull --rebase, then reindex."""
    from .commands.sync_cmd import run_sync_pull

    sys.exit(run_sync_pull(ctx.obj["rt"]))


@sync.command("push")
@click.option("--message", "-m", default="", help="Commit message (default: derived from the new events)")
@click.option("--pull", "allow_pull", is_flag=True, help="On a non-fast-forward rejection, pull --rebase and push again")
@click.option("--no-commit", is_flag=True, help="Push existing commits only")
@click.pass_context
def sync_push(ctx: click.Context, message: str, allow_pull: bool, no_commit: bool) -> None:
    from .commands.sync_cmd import run_sync_push

    sys.exit(run_sync_push(ctx.obj["rt"], message=message, allow_pull=allow_pull, commit=not no_commit))


@sync.command("resolve")
@click.pass_context
def sync_resolve(ctx: click.Context) -> None:
    """Explain the repository state and the steps back to a clean state."""
    from .commands.sync_cmd import run_sync_resolve

    sys.exit(run_sync_resolve(ctx.obj["rt"]))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
