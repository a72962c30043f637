"""End-to-end CLI behaviour through click's runner."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from clarity import __version__
from clarity.cli import cli
from clarity.store.eventlog import EventLog


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def ws(tmp_path):
    return str(tmp_path / "ws")


def run(runner: CliRunner, ws: str, *args: str):
    return runner.invoke(cli, ["--dir", ws, *args])


def data_of(result) -> dict:
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


@pytest.fixture
def ready_ws(runner, ws):
    data_of(run(runner, ws, "init"))
    data_of(run(runner, ws, "identity", "create", "--name", "Hana", "--use"))
    data_of(run(runner, ws, "projects", "create", "--name", "Demo", "--use"))
    return ws


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_hints_next_steps(runner, ws):
    env = data_of(run(runner, ws, "init"))
    assert env["data"]["created"] is True
    assert env["meta"] == {"workspace": "", "source": "dir"}
    assert "clarity identity create --name <name> --use" in env["_hints"]


def test_item_flow(runner, ready_ws):
    created = data_of(run(runner, ready_ws, "items", "create", "--title", "First", "--tag", "docs"))
    item = created["data"]
    assert (item["id"], item["status"], item["tags"]) == ("item-1", "todo", ["docs"])
    assert created["_hints"] == ["clarity items show item-1"]

    data_of(run(runner, ready_ws, "items", "set-status", "item-1", "--status", "DOING"))
    listed = data_of(run(runner, ready_ws, "items", "list"))
    assert [it["status"] for it in listed["data"]] == ["doing"]
    assert listed["meta"] == {"count": 1}

    shown = data_of(run(runner, ready_ws, "items", "show", "item-1"))
    assert shown["data"]["item"]["title"] == "First"
    assert shown["meta"]["canEdit"] is True


def test_errors_go_to_stderr(runner, ready_ws):
    result = run(runner, ready_ws, "items", "show", "item-404")
    assert result.exit_code == 1
    assert result.stdout == ""
    assert "error: item not found: item-404" in result.stderr


def test_unknown_actor_is_an_error(runner, ready_ws):
    result = runner.invoke(cli, ["--dir", ready_ws, "--actor", "act-9", "items", "create", "--title", "X"])
    assert result.exit_code == 1
    assert "actor not found: act-9" in result.stderr


def test_edn_output(runner, ready_ws):
    result = runner.invoke(cli, ["--dir", ready_ws, "--format", "edn", "identity", "whoami"])
    assert result.exit_code == 0
    assert result.stdout.startswith('{:data {:id "act-1", :kind "human", :name "Hana"}')


def test_bad_format_is_a_usage_error(runner, ready_ws):
    result = runner.invoke(cli, ["--dir", ready_ws, "--format", "xml", "identity", "whoami"])
    assert result.exit_code == 2


def test_doctor_fail_exits_nonzero(runner, ready_ws):
    clean = data_of(run(runner, ready_ws, "doctor", "--fail"))
    assert clean["data"]["hasErrors"] is False

    with EventLog(ready_ws).path.open("a", encoding="utf-8") as f:
        f.write("{broken\n")
    result = run(runner, ready_ws, "doctor", "--fail")
    assert result.exit_code == 1
    report = json.loads(result.stdout)
    assert report["data"]["hasErrors"] is True
    assert report["_hints"] == ["clarity reindex"]
    assert "doctor found 1 issue" in result.stderr


def test_reindex_command(runner, ready_ws):
    env = data_of(run(runner, ready_ws, "reindex"))
    assert env["meta"]["actors"] == 1
    assert env["meta"]["projects"] == 1


def test_workspace_registry_commands(runner, tmp_path):
    data_of(runner.invoke(cli, ["workspace", "init", "work"]))
    env = data_of(runner.invoke(cli, ["init"]))
    assert env["meta"] == {"workspace": "work", "source": "current"}
    listed = data_of(runner.invoke(cli, ["workspace", "list"]))
    assert [w["name"] for w in listed["data"]] == ["work"]


def test_workspace_migrate_from_sqlite(runner, legacy_sqlite_dir, tmp_path):
    target = tmp_path / "migrated"
    env = data_of(
        runner.invoke(
            cli,
            ["workspace", "migrate", "--from", str(legacy_sqlite_dir), "--to", str(target), "--use", "--name", "old"],
        )
    )
    assert env["data"]["migration"]["workspaceId"] == "ws-legacy"
    assert (env["data"]["registered"], env["data"]["name"], env["data"]["used"]) == (True, "old", True)
    assert env["_hints"] == [f"clarity --dir {target} reindex", f"clarity --dir {target} doctor --fail"]
    listed = data_of(runner.invoke(cli, ["workspace", "list"]))
    assert [w["name"] for w in listed["data"]] == ["old"]

    result = runner.invoke(cli, ["workspace", "migrate", "--from", str(legacy_sqlite_dir)])
    assert result.exit_code != 0
    assert "--from and --to" in result.stderr


def test_agent_start_claims(runner, ready_ws):
    data_of(run(runner, ready_ws, "items", "create", "--title", "Task"))
    env = data_of(run(runner, ready_ws, "agent", "start", "item-1", "--session", "s1"))
    assert env["meta"] == {"agentCreated": True, "session": "s1"}
    assert env["data"]["item"]["assignedActorId"] == env["data"]["actor"]["id"]

    ready = runner.invoke(cli, ["--dir", ready_ws, "--actor", env["data"]["actor"]["id"], "items", "ready"])
    assert [it["id"] for it in data_of(ready)["data"]] == ["item-1"]
