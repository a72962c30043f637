"""Shared fixtures for clarity tests."""

from __future__ import annotations

import json
import shutil
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

import pytest

from clarity.engine import Engine
from clarity.store.events import Event
from clarity.store.model import Actor, Item, Outline, Project
from clarity.store.store import Store

_ENV_VARS = (
    "CLARITY_DIR",
    "CLARITY_WORKSPACE",
    "CLARITY_ACTOR",
    "CLARITY_FORMAT",
    "CLARITY_AUTOSYNC",
    "CLARITY_AUTOCOMMIT",
    "CLARITY_GIT_AUTOCOMMIT",
    "CLARITY_AUTOPUSH",
    "CLARITY_AUTOPULL_REBASE",
    "CLARITY_AGENT_SESSION",
    "CLARITY_AGENT_NAME",
    "CLARITY_AGENT_USER",
    "CLARITY_ASSIGN_GRACE_SECONDS",
    "CLARITY_DEBUG",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the registry at a temp config dir and clear CLARITY_* overrides."""
    config = tmp_path / "config"
    monkeypatch.setenv("CLARITY_CONFIG_DIR", str(config))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return config


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "ws"
    Engine(Store(path)).init()
    return path


@pytest.fixture
def engine(workspace: Path) -> Engine:
    return Engine.open(workspace)


@dataclass
class Seeded:
    dir: Path
    engine: Engine
    human: Actor
    project: Project
    outline: Outline

    def item(self, title: str, **kwargs) -> Item:
        return self.engine.item_create(title, **kwargs)

    def agent(self, name: str) -> Actor:
        return self.engine.identity_create(name, kind="agent", user_id=self.human.id)


@pytest.fixture
def seeded(workspace: Path, engine: Engine) -> Seeded:
    """A workspace with one human (current), one project (current) and one outline."""
    human = engine.identity_create("Hana", use=True)
    project = engine.project_create("Demo", use=True)
    outline = engine.outline_create(name="Main")
    return Seeded(dir=workspace, engine=engine, human=human, project=project, outline=outline)


@pytest.fixture
def act_as(workspace: Path) -> Callable[[str], Engine]:
    """Fresh engine acting as the given actor id."""

    def factory(actor_id: str) -> Engine:
        return Engine.open(workspace, actor_id=actor_id)

    return factory


@pytest.fixture
def git_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Deterministic git identity and no user/system config."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text("[init]\n\tdefaultBranch = main\n", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for key in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(key, "Clarity Test")
    for key in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(key, "test@example.com")


LEGACY_SCHEMA = """
CREATE TABLE meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);
CREATE TABLE events (
    event_id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    replica_id TEXT NOT NULL,
    entity_kind TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    entity_seq INTEGER NOT NULL,
    type TEXT NOT NULL,
    parents_json TEXT NOT NULL,
    issued_at_unixms INTEGER NOT NULL,
    actor_id TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    local_status TEXT NOT NULL,
    server_status TEXT NOT NULL,
    rejection_reason TEXT,
    published_at_unixms INTEGER,
    created_at_unixms INTEGER NOT NULL
);
"""


def write_legacy_db(path: Path, events: Sequence[Event], workspace_id: str = "ws-legacy") -> Path:
    """Write `events` into a SQLite file laid out like the old event store."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        with conn:
            conn.executescript(LEGACY_SCHEMA)
            conn.executemany(
                "INSERT INTO meta (k, v) VALUES (?, ?)",
                [("workspace_id", workspace_id), ("replica_id", "rep-1")],
            )
            for seq, event in enumerate(events, start=1):
                ms = int(event.ts.timestamp() * 1000)
                conn.execute(
                    "INSERT INTO events VALUES (?, ?, ?, ?, ?, ?, ?, '[]', ?, ?, ?, 'pending', 'none', NULL, NULL, ?)",
                    (
                        event.id,
                        workspace_id,
                        "rep-1",
                        event.type.split(".")[0],
                        event.entity_id,
                        seq,
                        event.type,
                        ms,
                        event.actor_id,
                        json.dumps(event.payload),
                        seq,
                    ),
                )
    finally:
        conn.close()
    return path


@pytest.fixture
def legacy_sqlite_dir(seeded: Seeded, tmp_path: Path) -> Path:
    """A workspace directory holding only .clarity/index.sqlite, built from a seeded log."""
    a = seeded.item("A")
    seeded.item("B", parent_id=a.id)
    seeded.engine.comment_add(a.id, "first")
    legacy = tmp_path / "legacy"
    write_legacy_db(legacy / ".clarity" / "index.sqlite", Store(seeded.dir).read_events())
    (legacy / "resources").mkdir()
    (legacy / "resources" / "notes.txt").write_text("kept\n", encoding="utf-8")
    return legacy
