"""
Git sync for a workspace directory.

Only canonical paths are staged: events/, meta/workspace.json and
resources/. The derived .clarity/ directory is kept out through
.gitignore. The workspace may sit anywhere inside the repository; every
command runs with the workspace as cwd so pathspecs stay relative to it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import SyncError
from ..store.util import format_ts, utcnow
from .git import Git, GitCommandError
from .status import RepoStatus, probe_status

logger = logging.getLogger(__name__)

CANONICAL_PATHS = ("events", "meta/workspace.json", "resources")
GITIGNORE_ENTRY = ".clarity/"
GITATTRIBUTES_ENTRY = "events/*.jsonl merge=union"
MAX_SUMMARY_EVENTS = 25
_SUMMARY_BODY_CHARS = 40

_NON_FAST_FORWARD_NEEDLES = ("non-fast-forward", "fetch first", "rejected", "updates were rejected")


def is_non_fast_forward(exc: Exception) -> bool:
    text = str(exc).lower()
    if isinstance(exc, GitCommandError):
        text = f"{text}\n{exc.stdout.lower()}\n{exc.stderr.lower()}"
    return any(needle in text for needle in _NON_FAST_FORWARD_NEEDLES)


def ensure_gitignore(workspace_dir: Path) -> bool:
    """Add the derived-dir entry to <workspace>/.gitignore; True if the file changed."""
    path = Path(workspace_dir) / ".gitignore"
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    entries = {line.strip() for line in existing.splitlines()}
    if GITIGNORE_ENTRY in entries or GITIGNORE_ENTRY.rstrip("/") in entries:
        return False
    prefix = existing if not existing or existing.endswith("\n") else existing + "\n"
    path.write_text(f"{prefix}{GITIGNORE_ENTRY}\n", encoding="utf-8")
    return True


def ensure_gitattributes(workspace_dir: Path) -> bool:
    """Merge event logs line-wise (union) so concurrent appends never conflict."""
    path = Path(workspace_dir) / ".gitattributes"
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    if GITATTRIBUTES_ENTRY in {line.strip() for line in existing.splitlines()}:
        return False
    prefix = existing if not existing or existing.endswith("\n") else existing + "\n"
    path.write_text(f"{prefix}{GITATTRIBUTES_ENTRY}\n", encoding="utf-8")
    return True


def _require_clean_state(status: RepoStatus) -> None:
    if not status.is_repo:
        raise SyncError("not a git repository (try: clarity sync setup)")
    if status.conflicted:
        raise SyncError("git repo has an in-progress merge/rebase; resolve first (try: clarity sync resolve)")


# -----------------------------------------------------------------------------
# Commit
# -----------------------------------------------------------------------------


def stage_canonical(git: Git) -> bool:
    """`git add` the canonical paths that exist; False when none do."""
    targets = [rel for rel in CANONICAL_PATHS if (git.cwd / rel).exists()]
    if not targets:
        return False
    git.run(["add", "--", *targets])
    return True


def _added_event_lines(diff: str) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for line in diff.splitlines():
        line = line.rstrip("\r")
        if not line.startswith("+") or line.startswith("+++"):
            continue
        raw = line[1:].strip()
        if not raw.startswith("{"):
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            out.append(data)
    return out


def describe_event(event: dict[str, Any]) -> str:
    """Short phrase for one event in a commit message."""
    event_type = str(event.get("type") or "").strip()
    payload = event.get("payload") if isinstance(event.get("payload"), dict) else {}
    if event_type == "item.create":
        title = str(payload.get("title") or "").strip()
        return f'create "{title}"' if title else "create item"
    if event_type == "item.set_title":
        title = str(payload.get("title") or "").strip()
        return f'title "{title}"' if title else "title item"
    if event_type == "item.set_status":
        status = str(payload.get("to") or payload.get("status") or "").strip()
        return f"status {status}" if status else "status"
    if event_type == "item.set_description":
        return "edit description"
    if event_type == "item.set_parent":
        return "move item"
    if event_type == "item.move":
        return "reorder item"
    if event_type == "comment.add":
        body = " ".join(str(payload.get("body") or "").split())
        if not body:
            return "comment"
        if len(body) > _SUMMARY_BODY_CHARS:
            body = body[:_SUMMARY_BODY_CHARS] + "..."
        return f'comment "{body}"'
    if event_type == "worklog.add":
        return "worklog"
    _, _, rest = event_type.partition(".")
    return (rest or event_type).replace("_", " ")


def staged_event_summary(git: Git, max_events: int = MAX_SUMMARY_EVENTS) -> str:
    """Summarize event lines added in the index ("" when there are none)."""
    diff = git.run(["diff", "--cached", "--unified=0", "--no-color", "--", "events"], check=False).stdout
    events = [e for e in _added_event_lines(diff) if str(e.get("type") or "").strip()]
    if not events:
        return ""
    phrases: list[str] = []
    for event in events[:max_events]:
        phrase = describe_event(event)
        if phrase and phrase not in phrases:
            phrases.append(phrase)
    if len(events) > max_events:
        phrases.append(f"+{len(events) - max_events} more")
    return "; ".join(phrases)


def commit_message(git: Git, actor_label: str = "") -> str:
    summary = staged_event_summary(git)
    actor_label = actor_label.strip()
    if summary:
        return f"clarity: {actor_label}: {summary}" if actor_label else f"clarity: {summary}"
    stamp = format_ts(utcnow().replace(microsecond=0))
    return f"clarity: {actor_label} update ({stamp})" if actor_label else f"clarity: update ({stamp})"


def commit_workspace_canonical(
    workspace_dir: Path | str, message: str = "", *, actor_label: str = "", timeout: float | None = None
) -> bool:
    """
    Stage and commit canonical workspace paths.

    Returns False when the directory is not a repository or nothing is
    staged. An empty `message` is derived from the staged events.
    """
    workspace_dir = Path(workspace_dir)
    status = probe_status(workspace_dir, timeout=timeout)
    if not status.is_repo:
        return False
    _require_clean_state(status)

    git = Git(workspace_dir, timeout=timeout)
    if not stage_canonical(git):
        return False
    if not git.output(["diff", "--cached", "--name-only"]):
        return False
    msg = message.strip() or commit_message(git, actor_label)
    git.run(["commit", "-m", msg])
    logger.info("committed workspace changes: %s", msg)
    return True


# -----------------------------------------------------------------------------
# Setup, pull, push
# -----------------------------------------------------------------------------


def set_remote(git: Git, name: str, url: str) -> None:
    name = name.strip() or "origin"
    url = url.strip()
    if not url:
        raise SyncError("empty remote url")
    if git.succeeds(["remote", "get-url", name]):
        git.run(["remote", "set-url", name, url])
    else:
        git.run(["remote", "add", name, url])


def setup(
    workspace_dir: Path | str,
    *,
    remote_url: str = "",
    remote_name: str = "origin",
    commit: bool = True,
    push: bool = True,
) -> dict[str, Any]:
    """Make the workspace a repository with the derived dir ignored, then optionally commit, add a remote and push."""
    workspace_dir = Path(workspace_dir)
    workspace_dir.mkdir(parents=True, exist_ok=True)
    git = Git(workspace_dir)
    result: dict[str, Any] = {"initialized": False, "committed": False, "remote": "", "pushed": False}

    if not probe_status(workspace_dir).is_repo:
        git.run(["init"])
        result["initialized"] = True
    result["gitignoreUpdated"] = ensure_gitignore(workspace_dir)
    result["gitattributesUpdated"] = ensure_gitattributes(workspace_dir)
    if commit:
        git.run(["add", "--", ".gitignore", ".gitattributes"])
        result["committed"] = commit_workspace_canonical(workspace_dir, "clarity: setup")
        if not result["committed"] and git.output(["diff", "--cached", "--name-only"]):
            git.run(["commit", "-m", "clarity: setup"])
            result["committed"] = True

    if remote_url.strip():
        set_remote(git, remote_name, remote_url)
        result["remote"] = remote_name.strip() or "origin"
        if push:
            branch = probe_status(workspace_dir).branch or "HEAD"
            git.run(["push", "-u", result["remote"], branch])
            result["pushed"] = True

    result["status"] = probe_status(workspace_dir).to_dict()
    return result


def pull(workspace_dir: Path | str) -> dict[str, Any]:
    """`pull --rebase`; refused while conflicted or with dirty tracked files. Callers reindex afterwards."""
    workspace_dir = Path(workspace_dir)
    status = probe_status(workspace_dir)
    _require_clean_state(status)
    if status.dirty_tracked:
        raise SyncError("repo has local changes; commit/push first (try: clarity sync push)")
    if not status.upstream:
        raise SyncError("no upstream configured (try: clarity sync setup --remote <url>)")
    Git(workspace_dir).run(["pull", "--rebase"])
    return {"pulled": True, "status": probe_status(workspace_dir).to_dict()}


@dataclass
class PushResult:
    committed: bool = False
    pulled: bool = False
    pushed: bool = False
    steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"committed": self.committed, "pulled": self.pulled, "pushed": self.pushed}


def push(
    workspace_dir: Path | str,
    *,
    message: str = "",
    actor_label: str = "",
    commit: bool = True,
    allow_pull: bool = False,
) -> PushResult:
    """
    Commit canonical paths, then push.

    A non-fast-forward rejection is retried once after `pull --rebase`
    when `allow_pull` is set; otherwise it is reported as a SyncError.
    """
    workspace_dir = Path(workspace_dir)
    _require_clean_state(probe_status(workspace_dir))
    git = Git(workspace_dir)
    result = PushResult()

    if commit:
        result.committed = commit_workspace_canonical(workspace_dir, message, actor_label=actor_label)
        if result.committed:
            result.steps.append("commit")

    result.steps.append("push")
    try:
        git.run(["push"])
    except GitCommandError as exc:
        if not is_non_fast_forward(exc):
            raise
        if not allow_pull:
            raise SyncError("push rejected (non-fast-forward); try: clarity sync push --pull") from exc
        logger.info("push rejected; retrying after pull --rebase")
        result.steps.append("pull --rebase")
        git.run(["pull", "--rebase"])
        result.pulled = True
        result.steps.append("push")
        git.run(["push"])
    result.pushed = True
    return result


# -----------------------------------------------------------------------------
# Resolve and remotes
# -----------------------------------------------------------------------------


def unmerged_files(git: Git) -> list[str]:
    out = git.try_output(["diff", "--name-only", "--diff-filter=U"])
    return [line.strip() for line in out.splitlines() if line.strip()]


def resolve(workspace_dir: Path | str) -> dict[str, Any]:
    """Describe the repository state and the steps that get it back to idle."""
    workspace_dir = Path(workspace_dir)
    status = probe_status(workspace_dir)
    data: dict[str, Any] = {"status": status.to_dict(), "files": []}
    steps: list[str]
    if not status.is_repo:
        data["state"] = "not_repo"
        steps = ["clarity sync setup"]
    elif status.conflicted:
        data["state"] = "conflict"
        data["files"] = unmerged_files(Git(workspace_dir))
        steps = [
            "git status",
            "edit each conflicted file; for events/*.jsonl keep the lines from both sides",
            "git add <file>...",
        ]
        kind = status.in_progress_kind
        if kind in ("rebase", "merge", "cherry-pick", "revert"):
            steps.append(f"git {kind} --continue")
            steps.append(f"(or abandon: git {kind} --abort)")
        else:
            steps.append("git commit")
        steps += ["clarity doctor", "clarity reindex"]
    elif status.dirty:
        data["state"] = "dirty"
        steps = ["clarity sync push"]
    elif status.behind:
        data["state"] = "behind"
        steps = ["clarity sync pull", "clarity reindex"]
    elif status.ahead:
        data["state"] = "ahead"
        steps = ["clarity sync push"]
    else:
        data["state"] = "clean"
        steps = []
    data["steps"] = steps
    return data


def list_remotes(workspace_dir: Path | str) -> list[dict[str, str]]:
    git = Git(workspace_dir)
    remotes: list[dict[str, str]] = []
    for name in git.output(["remote"]).splitlines():
        name = name.strip()
        if not name:
            continue
        remote = {"name": name}
        fetch_url = git.try_output(["remote", "get-url", name])
        push_url = git.try_output(["remote", "get-url", "--push", name])
        if fetch_url:
            remote["fetchUrl"] = fetch_url
        if push_url:
            remote["pushUrl"] = push_url
        remotes.append(remote)
    return remotes


def sync_status(workspace_dir: Path | str) -> tuple[RepoStatus, list[str]]:
    st = probe_status(workspace_dir)
    hints: list[str] = []
    if st.is_repo and (st.dirty or st.unmerged):
        hints.append("git status")
    if st.is_repo and st.behind > 0:
        hints.append("clarity sync pull")
    if st.conflicted:
        hints.append("clarity sync resolve")
    return st, hints
