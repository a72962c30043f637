"""Identity commands: humans, agents, and the agent start shortcut."""

from __future__ import annotations

from .runtime import Runtime, boundary


@boundary
def run_identity_create(rt: Runtime, name: str, *, kind: str = "human", user_id: str | None = None, use: bool = False) -> int:
    actor = rt.engine().identity_create(name, kind=kind, user_id=user_id, use=use)
    hints = [] if use else ["clarity identity use " + actor.id]
    return rt.emit(actor, hints=hints)


@boundary
def run_identity_use(rt: Runtime, actor_id: str) -> int:
    return rt.emit(rt.engine().identity_use(actor_id))


@boundary
def run_identity_list(rt: Runtime) -> int:
    eng = rt.engine()
    actors = eng.identity_list()
    return rt.emit(actors, meta={"currentActorId": eng.agg.current_actor_id, "count": len(actors)})


@boundary
def run_whoami(rt: Runtime) -> int:
    eng = rt.engine()
    actor = eng.whoami()
    meta = {}
    if actor.is_agent:
        meta["userId"] = actor.user_id
    return rt.emit(actor, meta=meta)


@boundary
def run_agent_ensure(
    rt: Runtime,
    *,
    session: str | None = None,
    name: str | None = None,
    user_id: str | None = None,
    use: bool = True,
) -> int:
    result = rt.engine().ensure_agent(session, name=name, user_id=user_id, use=use)
    return rt.emit(
        result.actor,
        meta={"created": result.created, "session": result.session},
        hints=[
            "export CLARITY_ACTOR=" + result.actor.id,
            "export CLARITY_AGENT_SESSION=" + result.session,
            "clarity items ready",
        ],
    )


@boundary
def run_agent_start(
    rt: Runtime,
    item_id: str,
    *,
    session: str | None = None,
    name: str | None = None,
    user_id: str | None = None,
    take_assigned: bool = False,
) -> int:
    result, item = rt.engine().agent_start(
        item_id, session=session, name=name, user_id=user_id, take_assigned=take_assigned
    )
    return rt.emit(
        {"actor": result.actor, "item": item},
        meta={"agentCreated": result.created, "session": result.session},
        hints=[
            "clarity identity whoami",
            "clarity items show " + item.id,
            'clarity worklog add ' + item.id + ' --body "..."',
        ],
    )
