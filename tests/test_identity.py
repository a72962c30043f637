from __future__ import annotations

import pytest

from clarity.domain.identity import (
    agent_name,
    find_session_agent,
    normalize_session,
    resolve_agent_human,
    resolve_session,
    stable_letters,
)
from clarity.errors import InvalidArgumentError, NotFoundError


def test_normalize_session_replaces_date_suffix():
    key = normalize_session("build-2025-01-31")
    assert key.startswith("build-")
    assert len(key) == len("build-") + 3
    assert key == normalize_session("build-2025-01-31")
    assert normalize_session("  plain ") == "plain"


def test_stable_letters_are_deterministic():
    assert stable_letters("x", 5) == stable_letters("x", 5)
    assert stable_letters("x", 5).isalpha()
    assert stable_letters("x", 0) == ""


def test_resolve_session_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("CLARITY_AGENT_SESSION", "ci")
    assert resolve_session() == "ci"
    assert resolve_session("mine") == "mine"
    monkeypatch.delenv("CLARITY_AGENT_SESSION")
    generated = resolve_session()
    assert len(generated) == 3 and generated.isalpha()


def test_agent_name():
    assert agent_name("abc", "  ") == "abc Agent"
    assert agent_name("abc", "Reviewer") == "abc Reviewer"


def test_resolve_agent_human(seeded):
    agg = seeded.engine.agg
    human = seeded.human.id
    assert resolve_agent_human(agg, None, human) == human
    bot = seeded.agent("s1 Bot")
    assert resolve_agent_human(seeded.engine.agg, None, bot.id) == human
    with pytest.raises(NotFoundError):
        resolve_agent_human(agg, "act-404", None)
    with pytest.raises(InvalidArgumentError, match="human identity"):
        resolve_agent_human(seeded.engine.agg, bot.id, None)
    with pytest.raises(InvalidArgumentError, match="missing --user"):
        resolve_agent_human(agg, None, None)


def test_ensure_agent_reuses_session_actor(seeded):
    eng = seeded.engine
    first = eng.ensure_agent("s1", name="Coder")
    assert first.created
    assert first.actor.name == "s1 Coder"
    assert first.actor.user_id == seeded.human.id
    assert eng.agg.current_actor_id == first.actor.id

    again = eng.ensure_agent("s1", user_id=seeded.human.id)
    assert not again.created
    assert again.actor.id == first.actor.id
    assert find_session_agent(eng.agg, seeded.human.id, "s1").id == first.actor.id


def test_legacy_session_prefix_is_recognised(seeded):
    legacy = seeded.engine.identity_create("[agent-session:old] Bot", kind="agent", user_id=seeded.human.id)
    assert find_session_agent(seeded.engine.agg, seeded.human.id, "old").id == legacy.id


def test_agent_identity_needs_human_user(seeded):
    eng = seeded.engine
    with pytest.raises(InvalidArgumentError, match="--user"):
        eng.identity_create("Bot", kind="agent")
    bot = seeded.agent("s1 Bot")
    with pytest.raises(InvalidArgumentError, match="human identity"):
        eng.identity_create("Bot 2", kind="agent", user_id=bot.id)
    with pytest.raises(InvalidArgumentError, match="only applies"):
        eng.identity_create("Pat", user_id=seeded.human.id)
    with pytest.raises(InvalidArgumentError, match="invalid kind"):
        eng.identity_create("Robo", kind="robot")


def test_agent_start_claims_item(seeded):
    item = seeded.item("Task")
    result, claimed = seeded.engine.agent_start(item.id, session="s9", name="Worker")
    assert result.created
    assert claimed.assigned_actor_id == result.actor.id
    assert claimed.owner_actor_id == result.actor.id
    assert claimed.owner_delegated_from is None
