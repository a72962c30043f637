"""
Repository status probe.

A directory that is not inside a Git work tree is reported as
`is_repo=False` rather than an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .git import Git

IN_PROGRESS_REFS = (
    ("MERGE_HEAD", "merge"),
    ("REBASE_HEAD", "rebase"),
    ("CHERRY_PICK_HEAD", "cherry-pick"),
    ("REVERT_HEAD", "revert"),
)
_REBASE_DIRS = ("rebase-merge", "rebase-apply")
_UNMERGED_XY = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})


@dataclass
class RepoStatus:
    is_repo: bool = False
    root: str = ""
    branch: str = ""
    head: str = ""
    upstream: str = ""
    upstream_remote: str = ""
    upstream_remote_url: str = ""
    dirty: bool = False
    dirty_tracked: bool = False
    unmerged: bool = False
    in_progress: bool = False
    in_progress_kind: str = ""
    ahead: int = 0
    behind: int = 0

    @property
    def conflicted(self) -> bool:
        """Clarity writes are blocked in this state."""
        return self.unmerged or self.in_progress

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "isRepo": self.is_repo,
            "branch": self.branch,
            "upstream": self.upstream,
            "dirty": self.dirty,
            "dirtyTracked": self.dirty_tracked,
            "unmerged": self.unmerged,
            "inProgress": self.in_progress,
            "inProgressKind": self.in_progress_kind,
            "ahead": self.ahead,
            "behind": self.behind,
        }
        if self.root:
            result["root"] = self.root
        if self.head:
            result["head"] = self.head
        if self.upstream_remote:
            result["upstreamRemote"] = self.upstream_remote
        if self.upstream_remote_url:
            result["upstreamRemoteURL"] = self.upstream_remote_url
        return result


def is_unmerged_xy(xy: str) -> bool:
    if len(xy) != 2:
        return False
    return xy in _UNMERGED_XY or "U" in xy


def parse_porcelain(out: str) -> tuple[bool, bool]:
    """(dirty, unmerged) from `git status --porcelain=v1` output."""
    dirty = False
    unmerged = False
    for line in out.splitlines():
        line = line.rstrip("\r")
        if len(line) < 2:
            continue
        xy = line[:2]
        if not xy.strip():
            continue
        dirty = True
        if is_unmerged_xy(xy):
            unmerged = True
    return dirty, unmerged


def parse_ahead_behind(out: str) -> tuple[int, int] | None:
    """Parse "<ahead>\\t<behind>" from `rev-list --left-right --count HEAD...@{u}`."""
    fields = out.split()
    if len(fields) != 2:
        return None
    try:
        return int(fields[0]), int(fields[1])
    except ValueError:
        return None


def detect_in_progress(git: Git) -> tuple[bool, str]:
    for ref, kind in IN_PROGRESS_REFS:
        if git.succeeds(["rev-parse", "--verify", "-q", ref]):
            return True, kind
    # REBASE_HEAD only exists once a rebase stops; the state dirs cover the rest.
    for name in _REBASE_DIRS:
        marker = git.try_output(["rev-parse", "--git-path", name])
        if marker and (git.cwd / marker).exists():
            return True, "rebase"
    return False, ""


def remote_url(git: Git, remote: str) -> str:
    return git.try_output(["remote", "get-url", remote])


def probe_status(directory: Path | str, *, timeout: float | None = None) -> RepoStatus:
    directory = Path(directory)
    if not directory.is_dir():
        return RepoStatus()
    git = Git(directory, timeout=timeout)
    root_result = git.run(["rev-parse", "--show-toplevel"], check=False)
    if not root_result.ok or not root_result.stdout.strip():
        return RepoStatus()

    status = RepoStatus(is_repo=True, root=root_result.stdout.strip())
    status.branch = git.try_output(["rev-parse", "--abbrev-ref", "HEAD"])
    status.head = git.try_output(["rev-parse", "--short", "HEAD"])
    status.upstream = git.try_output(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"])
    if status.upstream and "/" in status.upstream:
        status.upstream_remote = status.upstream.split("/", 1)[0].strip()
        if status.upstream_remote:
            status.upstream_remote_url = remote_url(git, status.upstream_remote)

    porcelain = git.run(["status", "--porcelain=v1"], check=False).stdout
    status.dirty, status.unmerged = parse_porcelain(porcelain)
    tracked = git.run(["status", "--porcelain=v1", "--untracked-files=no"], check=False).stdout
    status.dirty_tracked, _ = parse_porcelain(tracked)

    status.in_progress, status.in_progress_kind = detect_in_progress(git)

    if status.upstream:
        counts = git.try_output(["rev-list", "--left-right", "--count", "HEAD...@{u}"])
        parsed = parse_ahead_behind(counts)
        if parsed is not None:
            status.ahead, status.behind = parsed
    return status
