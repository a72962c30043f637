"""
Best-effort auto-sync after a mutating command.

Enabled with CLARITY_AUTOSYNC. Commits canonical paths and pushes when an
upstream exists. Failures become `warning:` lines on stderr and never
change the command's exit code.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .. import settings
from ..errors import ClarityError
from .git import Git, git_available
from .status import probe_status
from .sync import commit_workspace_canonical, is_non_fast_forward

logger = logging.getLogger(__name__)


@dataclass
class AutoSyncResult:
    committed: bool = False
    pushed: bool = False
    skipped: str = ""


def _auto_commit_and_push(workspace_dir: Path, actor_label: str, timeout: float) -> AutoSyncResult:
    status = probe_status(workspace_dir, timeout=timeout)
    if not status.is_repo:
        return AutoSyncResult(skipped="not a git repository")
    if status.conflicted:
        return AutoSyncResult(skipped="merge/rebase in progress")
    if not settings.autocommit_enabled():
        return AutoSyncResult(skipped="autocommit disabled")

    committed = commit_workspace_canonical(workspace_dir, actor_label=actor_label, timeout=timeout)
    result = AutoSyncResult(committed=committed)
    if not result.committed or not settings.autopush_enabled():
        return result

    status = probe_status(workspace_dir, timeout=timeout)
    if status.conflicted or not status.upstream:
        return result

    git = Git(workspace_dir, timeout=timeout)
    push = git.run(["push"], check=False)
    if not push.ok:
        if not (settings.autopull_rebase_enabled() and is_non_fast_forward(ClarityError(push.combined_output))):
            raise ClarityError(f"git push: {push.combined_output or push.returncode}")
        git.run(["pull", "--rebase"])
        git.run(["push"])
    result.pushed = True
    return result


def maybe_autosync(
    workspace_dir: Path | str,
    *,
    actor_label: str = "",
    warn: Callable[[str], None] | None = None,
    timeout: float = settings.AUTOSYNC_TIMEOUT_SECONDS,
) -> AutoSyncResult | None:
    """Run auto-sync when enabled; returns None when it did not run."""
    if not settings.autosync_enabled() or not git_available():
        return None
    try:
        result = _auto_commit_and_push(Path(workspace_dir), actor_label, timeout)
    except (ClarityError, subprocess.TimeoutExpired, OSError) as exc:
        message = f"warning: auto-sync failed: {exc}"
        logger.debug(message)
        if warn is not None:
            warn(message)
        return AutoSyncResult(skipped=str(exc))
    if result.skipped:
        logger.debug("auto-sync skipped: %s", result.skipped)
    return result
