from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from clarity.engine import Engine
from clarity.errors import SyncError
from clarity.gitsync import sync
from clarity.gitsync.git import GitCommandError
from clarity.gitsync.status import is_unmerged_xy, parse_ahead_behind, parse_porcelain


def _git(cwd: Path, *args: str) -> str:
    done = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return done.stdout.strip()


def test_ensure_gitignore_appends_once(tmp_path):
    (tmp_path / ".gitignore").write_text("node_modules", encoding="utf-8")
    assert sync.ensure_gitignore(tmp_path)
    assert not sync.ensure_gitignore(tmp_path)
    assert (tmp_path / ".gitignore").read_text(encoding="utf-8") == "node_modules\n.clarity/\n"


def test_ensure_gitattributes(tmp_path):
    assert sync.ensure_gitattributes(tmp_path)
    assert not sync.ensure_gitattributes(tmp_path)
    assert (tmp_path / ".gitattributes").read_text(encoding="utf-8") == "events/*.jsonl merge=union\n"


def test_describe_event():
    assert sync.describe_event({"type": "item.create", "payload": {"title": "Ship"}}) == 'create "Ship"'
    assert sync.describe_event({"type": "item.set_status", "payload": {"to": "done"}}) == "status done"
    long_body = {"type": "comment.add", "payload": {"body": "word " * 20}}
    assert sync.describe_event(long_body).endswith('..."')
    assert sync.describe_event({"type": "dep.add", "payload": {}}) == "add"
    assert sync.describe_event({"type": "outline.status_add", "payload": {}}) == "status add"


def test_added_event_lines_reads_diff():
    diff = "\n".join(
        [
            "+++ b/events/events.r1.jsonl",
            '+{"type":"item.create","payload":{"title":"A"}}',
            "+not json",
            '-{"type":"item.create"}',
        ]
    )
    assert sync._added_event_lines(diff) == [{"type": "item.create", "payload": {"title": "A"}}]


def test_non_fast_forward_detection():
    exc = GitCommandError(command=["git", "push"], returncode=1, stdout="", stderr=" ! [rejected] main (fetch first)")
    assert sync.is_non_fast_forward(exc)
    other = GitCommandError(command=["git", "push"], returncode=128, stdout="", stderr="fatal: no remote")
    assert not sync.is_non_fast_forward(other)


def test_status_parsers():
    assert parse_porcelain("") == (False, False)
    assert parse_porcelain("?? events/\n") == (True, False)
    assert parse_porcelain("UU events/events.r1.jsonl\n M meta/workspace.json\n") == (True, True)
    assert is_unmerged_xy("AA")
    assert not is_unmerged_xy("M ")
    assert parse_ahead_behind("2\t3") == (2, 3)
    assert parse_ahead_behind("") is None


def test_setup_commits_and_resolve_reports_states(tmp_path, git_env):
    ws = tmp_path / "ws"
    assert sync.resolve(tmp_path)["state"] == "not_repo"

    eng = Engine.open(ws)
    eng.init()
    data = sync.setup(ws)
    assert data["initialized"]
    assert data["committed"]
    assert data["remote"] == ""
    assert _git(ws, "ls-files").splitlines() == [".gitattributes", ".gitignore", "meta/workspace.json"]
    assert sync.resolve(ws)["state"] == "clean"

    eng.identity_create("Hana", use=True)
    state = sync.resolve(ws)
    assert state["state"] == "dirty"
    assert state["steps"] == ["clarity sync push"]


def test_commit_message_summarizes_events(tmp_path, git_env):
    ws = tmp_path / "ws"
    eng = Engine.open(ws)
    eng.init()
    sync.setup(ws)
    eng.identity_create("Hana", use=True)
    eng.project_create("Demo", use=True)
    eng.item_create("Ship it")

    assert sync.commit_workspace_canonical(ws, actor_label="Hana")
    subject = _git(ws, "log", "-1", "--format=%s")
    assert subject == 'clarity: Hana: create; create "Ship it"'
    assert not sync.commit_workspace_canonical(ws)


def test_push_rejection_without_pull_is_an_error(tmp_path, git_env):
    remote = tmp_path / "remote.git"
    remote.mkdir()
    _git(remote, "init", "--bare")

    ws_a = tmp_path / "a"
    eng_a = Engine.open(ws_a)
    eng_a.init()
    eng_a.identity_create("Hana", use=True)
    assert sync.setup(ws_a, remote_url=str(remote))["pushed"]

    ws_b = tmp_path / "b"
    _git(tmp_path, "clone", str(remote), str(ws_b))

    eng_a.project_create("From A")
    sync.push(ws_a)

    Engine.open(ws_b).project_create("From B")
    with pytest.raises(SyncError, match="--pull"):
        sync.push(ws_b)
    assert sync.resolve(ws_b)["state"] == "ahead"

    solo = _standalone_repo(tmp_path)
    with pytest.raises(SyncError, match="no upstream"):
        sync.pull(solo)


def _standalone_repo(tmp_path: Path) -> Path:
    path = tmp_path / "solo"
    Engine.open(path).init()
    sync.setup(path)
    return path
