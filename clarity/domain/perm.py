"""
Edit permission and assignment transfer for items.

Ownership belongs to one actor at a time. Reassigning an item to a
different actor moves ownership with it and remembers the previous holder
for a short grace window.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from ..errors import PermissionDeniedError, TakeAssignedRequiredError
from ..settings import assign_grace_seconds
from ..store.model import Aggregate, Item
from ..store.util import format_ts, utcnow


def _same_human(agg: Aggregate, a: str | None, b: str | None) -> bool:
    ha = agg.human_for_actor(a)
    return bool(ha) and ha == agg.human_for_actor(b)


def _agent_of(agg: Aggregate, actor_id: str | None, human_id: str) -> bool:
    actor = agg.find_actor(actor_id)
    return actor is not None and actor.is_agent and actor.user_id == human_id


def within_grace(item: Item, now: datetime | None = None, grace_seconds: int | None = None) -> bool:
    if not item.owner_delegated_from or item.owner_delegated_at is None:
        return False
    grace = assign_grace_seconds() if grace_seconds is None else grace_seconds
    if grace <= 0:
        return False
    now = now or utcnow()
    return now - item.owner_delegated_at < timedelta(seconds=grace)


def can_edit_item(
    agg: Aggregate,
    actor_id: str,
    item: Item,
    *,
    now: datetime | None = None,
    grace_seconds: int | None = None,
) -> bool:
    """
    True when `actor_id` may mutate `item`.

    An item assigned to an actor under a different human is locked for
    everyone outside that human. Otherwise the owner and the assignee may
    edit, as may any actor under the same human when the owner or the
    assignee is an agent (humans override their agents, sibling agents
    hand work over), and a recently delegated previous owner.
    """
    human = agg.human_for_actor(actor_id)
    if not human:
        return False

    assignee = item.assigned_actor_id
    if assignee and agg.human_for_actor(assignee) != human:
        return False

    if actor_id == item.owner_actor_id or (assignee and actor_id == assignee):
        return True
    if _agent_of(agg, item.owner_actor_id, human) or _agent_of(agg, assignee, human):
        return True
    if item.owner_delegated_from == actor_id and within_grace(item, now, grace_seconds):
        return True
    return False


def require_edit(agg: Aggregate, actor_id: str, item: Item) -> None:
    if not can_edit_item(agg, actor_id, item):
        raise PermissionDeniedError(actor_id, item.owner_actor_id, item.id)


@dataclass
class AssignOutcome:
    """Resulting ownership fields after an assignment; `changed` is False for no-ops."""

    assigned_actor_id: str | None
    owner_actor_id: str
    owner_delegated_from: str | None
    owner_delegated_at: datetime | None
    changed: bool = True

    def payload(self) -> dict[str, str]:
        return {
            "assignedActorId": self.assigned_actor_id or "",
            "ownerActorId": self.owner_actor_id,
            "ownerDelegatedFrom": self.owner_delegated_from or "",
            "ownerDelegatedAt": format_ts(self.owner_delegated_at) if self.owner_delegated_at else "",
        }

    def apply(self, item: Item) -> None:
        item.assigned_actor_id = self.assigned_actor_id
        item.owner_actor_id = self.owner_actor_id
        item.owner_delegated_from = self.owner_delegated_from
        item.owner_delegated_at = self.owner_delegated_at


def plan_assign(
    agg: Aggregate,
    actor_id: str,
    item: Item,
    assignee_id: str | None,
    *,
    take_assigned: bool = False,
    now: datetime | None = None,
) -> AssignOutcome:
    """
    Work out who owns `item` once it is assigned to `assignee_id`.

    Clearing the assignment never moves ownership. Taking an item assigned
    to someone else needs `take_assigned`. A same-human self-claim of an
    unassigned item transfers ownership without a delegation record.
    """
    now = now or utcnow()
    current = item.assigned_actor_id or None
    keep = AssignOutcome(
        assigned_actor_id=current,
        owner_actor_id=item.owner_actor_id,
        owner_delegated_from=item.owner_delegated_from,
        owner_delegated_at=item.owner_delegated_at,
        changed=False,
    )

    if not assignee_id:
        require_edit(agg, actor_id, item)
        if current is None:
            return keep
        keep.assigned_actor_id = None
        keep.changed = True
        return keep

    if assignee_id == current:
        return keep

    if assignee_id == actor_id and current is not None and not take_assigned:
        raise TakeAssignedRequiredError()

    if assignee_id == actor_id and current is None and _same_human(agg, actor_id, item.owner_actor_id):
        return AssignOutcome(
            assigned_actor_id=actor_id,
            owner_actor_id=actor_id,
            owner_delegated_from=None,
            owner_delegated_at=None,
        )

    require_edit(agg, actor_id, item)
    previous = current or item.owner_actor_id
    if assignee_id == item.owner_actor_id:
        return AssignOutcome(
            assigned_actor_id=assignee_id,
            owner_actor_id=item.owner_actor_id,
            owner_delegated_from=item.owner_delegated_from,
            owner_delegated_at=item.owner_delegated_at,
        )
    return AssignOutcome(
        assigned_actor_id=assignee_id,
        owner_actor_id=assignee_id,
        owner_delegated_from=previous,
        owner_delegated_at=now,
    )
