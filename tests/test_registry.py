from __future__ import annotations

import json

import pytest

from clarity.errors import ConflictError, InvalidArgumentError, NotFoundError
from clarity.workspace.registry import Registry, normalize_workspace_name


@pytest.fixture
def registry(isolated_env) -> Registry:
    return Registry()


def test_config_dir_comes_from_environment(registry, isolated_env):
    assert registry.config_dir == isolated_env


def test_normalize_workspace_name():
    assert normalize_workspace_name("  work ") == "work"
    for bad in ("", "..", "a/b", "a\\b"):
        with pytest.raises(InvalidArgumentError):
            normalize_workspace_name(bad)


def test_resolution_order(registry, tmp_path):
    resolved = registry.resolve()
    assert (resolved.name, resolved.source) == ("default", "default")
    assert resolved.dir == registry.workspaces_root / "default"

    registry.init("work")
    assert registry.resolve().source == "current"
    assert registry.resolve().name == "work"
    named = registry.resolve(workspace="other")
    assert (named.name, named.source) == ("other", "workspace")

    explicit = registry.resolve(dir_override=str(tmp_path / "x"), workspace="other")
    assert explicit.source == "dir"
    assert explicit.dir == tmp_path / "x"


def test_init_creates_local_workspace(registry):
    name, path = registry.init("work")
    assert path == registry.workspaces_root / "work"
    assert (path / ".clarity").is_dir()
    config = json.loads(registry.config_path.read_text(encoding="utf-8"))
    assert config["currentWorkspace"] == "work"


def test_add_use_and_forget_registered_dir(registry, tmp_path):
    checkout = tmp_path / "checkout"
    checkout.mkdir()
    name, path = registry.add("team", checkout)
    assert path == checkout.resolve()
    assert registry.workspace_dir("team") == checkout.resolve()

    registry.use("team")
    assert registry.current() == ("team", checkout.resolve())
    assert registry.load().workspaces["team"].last_opened

    assert registry.forget("team")
    assert not registry.forget("team")
    assert registry.current()[0] == "default"
    assert checkout.is_dir()


def test_add_rejects_missing_dir(registry, tmp_path):
    with pytest.raises(NotFoundError):
        registry.add("nope", tmp_path / "missing")


def test_rename_local_moves_directory(registry):
    registry.init("old")
    registry.rename("old", "new")
    assert not (registry.workspaces_root / "old").exists()
    assert (registry.workspaces_root / "new").is_dir()
    assert registry.current()[0] == "new"

    registry.init("taken")
    with pytest.raises(ConflictError):
        registry.rename("new", "taken")
    with pytest.raises(NotFoundError):
        registry.rename("ghost", "spirit")


def test_rename_registered_keeps_path(registry, tmp_path):
    checkout = tmp_path / "checkout"
    checkout.mkdir()
    registry.add("team", checkout)
    registry.rename("team", "crew")
    assert registry.workspace_dir("crew") == checkout.resolve()
    assert "team" not in registry.load().workspaces


def test_entries_merge_local_and_registered(registry, tmp_path):
    registry.init("alpha")
    checkout = tmp_path / "checkout"
    checkout.mkdir()
    registry.add("beta", checkout)
    entries, current = registry.entries()
    assert current == "alpha"
    assert [(e.name, e.kind, e.registered) for e in entries] == [("alpha", "local", False), ("beta", "git", True)]


def test_unknown_config_keys_survive_save(registry):
    registry.config_dir.mkdir(parents=True)
    registry.config_path.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
    registry.init("work")
    config = json.loads(registry.config_path.read_text(encoding="utf-8"))
    assert config["theme"] == "dark"
    assert registry.config_path.with_name("config.json.bak").exists()
