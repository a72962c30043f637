"""
Session-scoped agent identities.

An agent actor is found again by the session key at the start of its
name, so the same session under the same human always maps to the same
actor.
"""

from __future__ import annotations

import hashlib
import re
import secrets
import string

from ..errors import InvalidArgumentError, NotFoundError
from ..settings import env_str
from ..store.model import ACTOR_AGENT, ACTOR_HUMAN, Actor, Aggregate

_LETTERS = string.ascii_lowercase
_DATE_SUFFIX_RE = re.compile(r"^([a-zA-Z0-9][a-zA-Z0-9_-]*)-\d{4}-\d{2}-\d{2}$")


def random_letters(n: int) -> str:
    return "".join(secrets.choice(_LETTERS) for _ in range(max(n, 0)))


def stable_letters(text: str, n: int) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return "".join(_LETTERS[b % len(_LETTERS)] for b in digest[: max(n, 0)])


def normalize_session(session: str) -> str:
    """Replace a trailing -YYYY-MM-DD with three letters derived from the whole key."""
    session = session.strip()
    match = _DATE_SUFFIX_RE.match(session)
    if match is None:
        return session
    return f"{match.group(1)}-{stable_letters(session, 3)}"


def resolve_session(session: str | None = None) -> str:
    """Argument, then CLARITY_AGENT_SESSION, then a fresh random key."""
    raw = (session or "").strip() or env_str("CLARITY_AGENT_SESSION") or random_letters(3)
    return normalize_session(raw)


def resolve_agent_human(agg: Aggregate, user_id: str | None, current_actor_id: str | None) -> str:
    """Owning human for a new agent: explicit user, else the current actor's human."""
    user_id = (user_id or "").strip()
    if user_id:
        user = agg.find_actor(user_id)
        if user is None:
            raise NotFoundError("actor", user_id)
        if user.kind != ACTOR_HUMAN:
            raise InvalidArgumentError("--user must point to a human identity")
        return user.id
    if not current_actor_id:
        raise InvalidArgumentError(
            "missing --user (or set a current actor with `clarity identity use <human-actor-id>`)"
        )
    human = agg.human_for_actor(current_actor_id)
    if not human:
        raise InvalidArgumentError(
            "unable to resolve human user for current actor; pass --user <human-actor-id>"
        )
    return human


def find_session_agent(agg: Aggregate, human_id: str, session: str) -> Actor | None:
    prefixes = (f"{session} ", f"[agent-session:{session}] ")
    for actor in agg.actors:
        if actor.kind != ACTOR_AGENT or actor.user_id != human_id:
            continue
        if actor.name.startswith(prefixes):
            return actor
    return None


def agent_name(session: str, display_name: str) -> str:
    return f"{session} {display_name.strip() or 'Agent'}"
